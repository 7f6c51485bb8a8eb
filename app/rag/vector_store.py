"""
Vector Store Module

Synchronous client for the hosted vector database (Upstash Vector) used by the
offline indexing script. The store embeds raw text server-side, so records
are uploaded as {id, data, metadata}.
"""

from typing import List, Dict, Any, Optional

import requests

from app.core.config import settings
from app.core.logging import get_logger
from app.rag.chunker import Chunk

logger = get_logger(__name__)


class VectorStoreError(Exception):
    """The vector store rejected a request"""


class VectorStore:
    """
    Upstash Vector REST wrapper for upserts and index statistics.
    """

    def __init__(
        self,
        url: Optional[str] = settings.UPSTASH_VECTOR_URL,
        token: Optional[str] = settings.UPSTASH_VECTOR_TOKEN,
        timeout: int = 60,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize vector store client.

        Args:
            url: REST endpoint
            token: Bearer token
            timeout: Request timeout in seconds
            session: Optional requests session (tests inject a fake)
        """
        if not url or not token:
            raise VectorStoreError("UPSTASH_VECTOR_URL and UPSTASH_VECTOR_TOKEN must be set")

        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}"})

    def upsert(self, chunks: List[Chunk]) -> Dict[str, Any]:
        """
        Insert or overwrite a batch of chunks.

        Raises:
            VectorStoreError: If the store answers non-2xx or is unreachable
        """
        body = [chunk.to_upsert() for chunk in chunks]
        try:
            response = self.session.post(f"{self.url}/upsert-data", json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise VectorStoreError(f"Upsert failed: {e}") from e

        if not response.ok:
            raise VectorStoreError(f"Upsert failed: {response.status_code} - {response.text[:500]}")

        logger.debug(f"Upserted {len(chunks)} chunks")
        return response.json()

    def info(self) -> Dict[str, Any]:
        """Index statistics (vector count, dimension, ...)"""
        try:
            response = self.session.get(f"{self.url}/info", timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise VectorStoreError(f"Info request failed: {e}") from e
        return response.json().get("result", {})
