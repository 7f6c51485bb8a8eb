from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import verify_logs_secret
from app.core.config import settings
from app.core.logging import get_logger
from app.models.response import SessionListResponse, SessionLogResponse
from app.services.chat_log import ChatLogStore, get_chat_log_store

logger = get_logger(__name__)

router = APIRouter(tags=["Logs"], dependencies=[Depends(verify_logs_secret)])


def parse_limit(raw: Optional[str], default: int = settings.LOGS_DEFAULT_LIMIT) -> int:
    """Lenient limit parsing: anything unusable falls back to the default"""
    try:
        value = int(raw) if raw is not None else 0
    except ValueError:
        return default
    return value if value > 0 else default


@router.get("/logs")
async def logs(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    limit: Optional[str] = Query(default=None),
    store: ChatLogStore = Depends(get_chat_log_store)
):
    """Return one session transcript, or the most recently active sessions."""
    if session_id:
        messages = await store.get_session(session_id)
        return SessionLogResponse(session_id=session_id, messages=messages)

    sessions = await store.list_sessions(parse_limit(limit))
    logger.debug(f"Listed {len(sessions)} sessions")
    return SessionListResponse(total=len(sessions), sessions=sessions)
