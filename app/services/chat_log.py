"""
Chat Log Store Module

Persists chat transcripts in a hosted Redis-compatible REST store (Upstash
Redis) and reads them back for the log viewer and export script.

Layout:
- chat:<sessionId>  list of JSON entries {role, content, ts}, never expiring
- chat:sessions     sorted set of session ids scored by last activity (ms)

Writes are best-effort and never retried; reads raise LogStoreError.
"""

import json
import time
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, LogStoreError
from app.core.logging import get_logger
from app.models.response import ChatLogEntry, SessionSummary

logger = get_logger(__name__)


def _segment(value: Any) -> str:
    """Encode one REST path segment"""
    return quote(str(value), safe="")


class ChatLogStore:
    """
    Append-only transcript log backed by the Upstash Redis REST API.
    """

    def __init__(
        self,
        url: Optional[str] = settings.UPSTASH_REDIS_URL,
        token: Optional[str] = settings.UPSTASH_REDIS_TOKEN,
        key_prefix: str = settings.CHAT_LOG_KEY_PREFIX,
        index_key: str = settings.SESSION_INDEX_KEY,
        timeout: float = settings.LOG_STORE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize chat log store.

        Args:
            url: REST endpoint of the store
            token: Bearer token of the store
            key_prefix: Prefix of the per-session list keys
            index_key: Key of the session recency index
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject a mock)
        """
        self.url = url.rstrip("/") if url else None
        self.token = token
        self.key_prefix = key_prefix
        self.index_key = index_key
        self.timeout = timeout
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.token)

    def session_key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.token}"},
        )

    def build_exchange_commands(
        self,
        session_id: str,
        user_message: str,
        reply: str,
        ts: int
    ) -> List[List[Any]]:
        """Commands appending one exchange, sent as a single pipeline"""
        key = self.session_key(session_id)
        user_entry = ChatLogEntry(role="user", content=user_message, ts=ts)
        assistant_entry = ChatLogEntry(role="assistant", content=reply, ts=ts)
        return [
            ["RPUSH", key, json.dumps(user_entry.model_dump(), ensure_ascii=False)],
            ["RPUSH", key, json.dumps(assistant_entry.model_dump(), ensure_ascii=False)],
            ["ZADD", self.index_key, ts, session_id],
            ["PERSIST", key],
        ]

    async def append_exchange(
        self,
        session_id: Optional[str],
        user_message: str,
        reply: str
    ) -> bool:
        """
        Append a user/assistant pair to a session transcript.

        Args:
            session_id: Session to log under; None disables logging
            user_message: The user turn
            reply: The reconstructed assistant reply

        Returns:
            True if the store accepted the batch. Failures are logged and
            swallowed.
        """
        if not session_id:
            return False
        if not self.is_configured:
            logger.debug("Chat log store not configured, skipping transcript write")
            return False

        ts = int(time.time() * 1000)
        commands = self.build_exchange_commands(session_id, user_message, reply, ts)

        try:
            async with self._client() as client:
                response = await client.post(f"{self.url}/pipeline", json=commands)
            response.raise_for_status()
            results = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Redis log error for session {session_id}: {e}", exc_info=True)
            return False

        if isinstance(results, list):
            errors = [r["error"] for r in results if isinstance(r, dict) and r.get("error")]
            if errors:
                logger.error(f"Redis log error for session {session_id}: {errors}")
                return False

        logger.info(f"Logged exchange for session {session_id} ({len(reply)} chars)")
        return True

    async def _command(self, *segments: Any) -> Any:
        """Run one read command through the REST path interface"""
        if not self.is_configured:
            raise ConfigurationError("Redis not configured")

        path = "/".join(_segment(s) for s in segments)
        try:
            async with self._client() as client:
                response = await client.get(f"{self.url}/{path}")
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error reading chat log store ({segments[0]}): {e}")
            raise LogStoreError(str(e)) from e

        if isinstance(body, dict) and body.get("error"):
            logger.error(f"Chat log store error ({segments[0]}): {body['error']}")
            raise LogStoreError(body["error"])
        return body.get("result") if isinstance(body, dict) else None

    async def get_session(self, session_id: str) -> List[ChatLogEntry]:
        """
        Read the full transcript of a session, oldest first.

        Entries that cannot be decoded are skipped.
        """
        raw = await self._command("lrange", self.session_key(session_id), 0, -1) or []

        messages = []
        for item in raw:
            if not isinstance(item, str):
                continue
            try:
                messages.append(ChatLogEntry.model_validate_json(item))
            except ValueError as e:
                logger.warning(f"Skipping undecodable log entry in {session_id}: {e}")
        return messages

    async def list_sessions(self, limit: int) -> List[SessionSummary]:
        """
        List sessions, most recently active first.

        Args:
            limit: Maximum number of sessions
        """
        raw = await self._command("zrevrange", self.index_key, 0, limit - 1, "WITHSCORES") or []

        # Flat [member, score, member, score, ...]
        sessions = []
        for member, score in zip(raw[0::2], raw[1::2]):
            try:
                sessions.append(SessionSummary.from_score(member, score))
            except (TypeError, ValueError, OverflowError) as e:
                logger.warning(f"Skipping session {member} with bad score {score}: {e}")
        return sessions


# Global store instance
_chat_log_store = None


def get_chat_log_store() -> ChatLogStore:
    """Get or create chat log store instance"""
    global _chat_log_store
    if _chat_log_store is None:
        _chat_log_store = ChatLogStore()
    return _chat_log_store
