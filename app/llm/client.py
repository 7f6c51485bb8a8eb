import httpx
from typing import AsyncIterator, Optional, Dict, Any, List

from app.core.config import settings
from app.core.exceptions import (
    ConfigurationError,
    UpstreamRejectionError,
    UpstreamUnavailableError,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

# Longest provider error body kept for logs and the 502 detail
MAX_ERROR_DETAIL = 2000


class UpstreamStream:
    """
    An open streaming completion response.

    Owns both the httpx client and the response; aclose() releases both and
    is safe to call more than once.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._closed = False

    def iter_chunks(self) -> AsyncIterator[bytes]:
        """Body chunks in the order they were received"""
        return self._response.aiter_bytes()

    async def aclose(self):
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class ChatCompletionClient:
    """Client for an OpenAI-compatible streaming chat completion endpoint"""

    def __init__(
        self,
        api_key: Optional[str] = settings.DEEPSEEK_API_KEY,
        base_url: str = settings.LLM_BASE_URL,
        model: str = settings.LLM_MODEL_NAME,
        temperature: float = settings.LLM_TEMPERATURE,
        max_tokens: int = settings.LLM_MAX_TOKENS,
        connect_timeout: float = settings.LLM_CONNECT_TIMEOUT,
        read_timeout: float = settings.LLM_READ_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize completion client

        Args:
            api_key: Provider bearer token
            base_url: Provider base URL
            model: Model name (e.g., 'deepseek-chat')
            temperature: Sampling temperature
            max_tokens: Output length bound
            connect_timeout: Connection timeout in seconds
            read_timeout: Maximum wait between two streamed chunks in seconds
            transport: Optional httpx transport (tests inject a mock)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=connect_timeout,
            pool=connect_timeout,
        )
        self.transport = transport

        logger.info(f"Initialized completion client with model: {self.model}")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self):
        """Raise ConfigurationError when no API key is available"""
        if not self.api_key:
            logger.error("DEEPSEEK_API_KEY not set")
            raise ConfigurationError("DEEPSEEK_API_KEY not set")

    def _build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Build request payload for the provider"""
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
        }

    async def open_stream(self, messages: List[Dict[str, str]]) -> UpstreamStream:
        """
        Start a streaming completion and return once response headers arrive.

        Args:
            messages: Provider message list (system turn first)

        Returns:
            UpstreamStream positioned at the start of the body

        Raises:
            ConfigurationError: If no API key is configured
            UpstreamRejectionError: If the provider answers non-2xx
            UpstreamUnavailableError: If the provider cannot be reached
        """
        self.ensure_configured()

        client = httpx.AsyncClient(transport=self.transport, timeout=self.timeout)
        request = client.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            json=self._build_payload(messages),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "text/event-stream",
            },
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"Error connecting to completion provider: {e}")
            raise UpstreamUnavailableError(str(e)) from e
        except BaseException:
            await client.aclose()
            raise

        if not response.is_success:
            try:
                body = await response.aread()
                detail = body.decode("utf-8", errors="replace")[:MAX_ERROR_DETAIL]
            except httpx.HTTPError:
                detail = None
            finally:
                await response.aclose()
                await client.aclose()
            logger.error(f"Completion provider error: {response.status_code} {detail}")
            raise UpstreamRejectionError(response.status_code, detail)

        logger.debug(f"Streaming response with model: {self.model}")
        return UpstreamStream(client, response)


# Default client instance
llm_client: Optional[ChatCompletionClient] = None


def get_llm_client() -> ChatCompletionClient:
    """Get or create the completion client"""
    global llm_client
    if llm_client is None:
        llm_client = ChatCompletionClient()
    return llm_client

