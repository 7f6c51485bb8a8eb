from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


class ResponseStatus(str, Enum):
    """Response status enumeration"""
    OK = "ok"
    DEGRADED = "degraded"


class ChatLogEntry(BaseModel):
    """One stored turn of a session transcript"""
    role: str = Field(..., description="user or assistant")
    content: str = Field(..., description="Turn text")
    ts: int = Field(..., description="Epoch milliseconds when the exchange was logged")


class SessionSummary(BaseModel):
    """Session entry of the recency index"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    last_active: str = Field(..., alias="lastActive", description="ISO-8601 UTC timestamp")

    @classmethod
    def from_score(cls, session_id: str, score_ms: float) -> "SessionSummary":
        """Build a summary from a sorted-set member and its millisecond score"""
        moment = datetime.fromtimestamp(int(float(score_ms)) / 1000, tz=timezone.utc)
        iso = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(session_id=session_id, last_active=iso)


class SessionLogResponse(BaseModel):
    """Transcript of a single session"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    messages: List[ChatLogEntry] = Field(default_factory=list)


class SessionListResponse(BaseModel):
    """Most recently active sessions"""
    total: int = Field(..., ge=0)
    sessions: List[SessionSummary] = Field(default_factory=list)


class ContactResponse(BaseModel):
    """Contact form response model"""
    success: bool = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    model_config = ConfigDict(protected_namespaces=())

    status: ResponseStatus = Field(..., description="Overall status")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Check timestamp"
    )
    model_name: Optional[str] = Field(None, description="Upstream model name")
    persona_loaded: bool = Field(False, description="Knowledge files produced a persona")
    integrations: Dict[str, Any] = Field(
        default_factory=dict,
        description="Which external collaborators are configured"
    )
