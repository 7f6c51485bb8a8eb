"""
Chat Service Module

Business logic layer for the streaming chat relay.
Handles:
- Context retrieval (best-effort)
- System prompt and message list assembly
- Opening the upstream completion stream
- Logging the finished exchange
"""

from typing import AsyncGenerator, Dict, List, Optional, Tuple

from app.core.logging import get_logger
from app.llm.client import ChatCompletionClient, get_llm_client
from app.llm.streaming import StreamTranscript, relay_stream
from app.models.request import ChatRequest
from app.rag.prompt import PromptBuilder, get_prompt_builder
from app.rag.retriever import Retriever, get_retriever
from app.services.chat_log import ChatLogStore, get_chat_log_store

logger = get_logger(__name__)


class ChatService:
    """
    Service composing retrieval, prompt assembly, the upstream relay and
    transcript logging for one chat turn.
    """

    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        llm_client: Optional[ChatCompletionClient] = None,
        chat_log: Optional[ChatLogStore] = None
    ):
        """Initialize chat service with its collaborators (defaults to globals)"""
        self.retriever = retriever or get_retriever()
        self.prompt_builder = prompt_builder or get_prompt_builder()
        self.llm_client = llm_client or get_llm_client()
        self.chat_log = chat_log or get_chat_log_store()

        logger.info("Initialized ChatService")

    async def prepare_messages(self, request: ChatRequest) -> List[Dict[str, str]]:
        """
        Build the provider message list for a request.

        Args:
            request: Validated chat request

        Returns:
            System turn, recent history and the user turn
        """
        context = await self.retriever.retrieve_context(request.message)
        system_prompt = self.prompt_builder.build_system_prompt(context)

        logger.debug(
            f"Prepared prompt for: {request.message[:100]} "
            f"(context: {'yes' if context else 'no'})"
        )
        return self.prompt_builder.build_messages(
            system_prompt=system_prompt,
            history=request.history,
            message=request.message
        )

    async def start_relay(
        self,
        request: ChatRequest
    ) -> Tuple[AsyncGenerator[bytes, None], StreamTranscript]:
        """
        Open the upstream stream for a request.

        Args:
            request: Validated chat request

        Returns:
            The relay body generator and the transcript it fills

        Raises:
            ConfigurationError: If the provider key is missing
            UpstreamRejectionError: If the provider rejects the request
            UpstreamUnavailableError: If the provider cannot be reached
        """
        self.llm_client.ensure_configured()

        messages = await self.prepare_messages(request)
        upstream = await self.llm_client.open_stream(messages)

        logger.info(
            f"Relaying stream for session {request.session_id or '-'} "
            f"({len(messages)} messages)"
        )
        transcript = StreamTranscript()
        return relay_stream(upstream, transcript), transcript

    async def log_exchange(
        self,
        session_id: Optional[str],
        message: str,
        transcript: StreamTranscript
    ) -> bool:
        """
        Hand a finished exchange to the chat log store.

        Runs after the response body has been sent. Aborted or empty replies
        and anonymous sessions are not logged. Never raises.
        """
        if not session_id:
            return False
        if not transcript.completed:
            logger.info(f"Not logging aborted stream for session {session_id}")
            return False
        reply = transcript.text
        if not reply:
            logger.info(f"Not logging empty reply for session {session_id}")
            return False

        try:
            return await self.chat_log.append_exchange(session_id, message, reply)
        except Exception as e:
            logger.exception(f"Unexpected error logging exchange for {session_id}: {e}")
            return False


# Global service instance
_chat_service = None


def get_chat_service() -> ChatService:
    """Get or create chat service instance"""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service
