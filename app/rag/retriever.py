"""
Retriever Module

Looks up past exchanges similar to the current user message in the hosted
vector store (Upstash Vector), which embeds the query text server-side.

Retrieval Process:
1. Send the raw message to the query-data endpoint (top-k, with payload)
2. Keep results scoring strictly above the similarity threshold
3. Join their texts, in ranking order, into one context block

Retrieval is best-effort: any failure means "no context" and the chat
continues without it.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

import httpx

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetrievedChunk:
    """A single ranked vector store hit"""
    text: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class Retriever:
    """
    Retrieves similar past exchanges from the vector store.
    """

    def __init__(
        self,
        url: Optional[str] = settings.UPSTASH_VECTOR_URL,
        token: Optional[str] = settings.UPSTASH_VECTOR_TOKEN,
        top_k: int = settings.RETRIEVAL_TOP_K,
        similarity_threshold: float = settings.SIMILARITY_THRESHOLD,
        timeout: float = settings.RETRIEVAL_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize retriever.

        Args:
            url: Vector store REST endpoint
            token: Vector store bearer token
            top_k: Number of results to request
            similarity_threshold: Results must score strictly above this
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject a mock)
        """
        self.url = url.rstrip("/") if url else None
        self.token = token
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold
        self.timeout = timeout
        self.transport = transport

        logger.info(
            f"Initialized Retriever: top_k={top_k}, "
            f"threshold={similarity_threshold}, configured={self.is_configured}"
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.token)

    async def retrieve(self, query: str) -> List[RetrievedChunk]:
        """
        Retrieve relevant past exchanges for a message.

        Args:
            query: User message

        Returns:
            Chunks scoring above the threshold, in ranking order. Empty on
            missing configuration or any failure.
        """
        if not self.is_configured:
            logger.debug("Vector store not configured, skipping retrieval")
            return []
        if not query or not query.strip():
            return []

        payload = {
            "data": query,
            "topK": self.top_k,
            "includeData": True,
            "includeMetadata": True,
        }
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                response = await client.post(f"{self.url}/query-data", json=payload, headers=headers)
            if not response.is_success:
                logger.warning(f"Vector query returned {response.status_code}, continuing without context")
                return []
            results = response.json().get("result") or []
        except httpx.HTTPError as e:
            logger.warning(f"Vector query failed ({type(e).__name__}): {e}")
            return []
        except (ValueError, AttributeError) as e:
            logger.warning(f"Malformed vector query response: {e}")
            return []

        if not isinstance(results, list):
            logger.warning(f"Unexpected vector query result type: {type(results).__name__}")
            return []

        chunks = []
        for item in results:
            if not isinstance(item, dict):
                continue
            score = item.get("score")
            text = item.get("data")
            if not isinstance(score, (int, float)) or not isinstance(text, str) or not text:
                continue
            if score > self.similarity_threshold:
                chunks.append(RetrievedChunk(
                    text=text,
                    score=float(score),
                    metadata=item.get("metadata") or {}
                ))

        logger.info(
            f"Retrieved {len(chunks)}/{len(results)} chunks "
            f"(score > {self.similarity_threshold})"
        )
        return chunks

    async def retrieve_context(self, query: str) -> str:
        """Retrieve and join chunk texts with blank lines"""
        chunks = await self.retrieve(query)
        return "\n\n".join(chunk.text for chunk in chunks)


# Global retriever instance
_retriever = None


def get_retriever() -> Retriever:
    """Get or create retriever instance"""
    global _retriever
    if _retriever is None:
        _retriever = Retriever()
    return _retriever
