from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from enum import Enum


class ChatMessageRole(str, Enum):
    """Chat message role enumeration"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """Single chat turn"""
    model_config = ConfigDict(frozen=True)

    role: ChatMessageRole
    content: str = Field(default="", max_length=50000)

    def to_provider(self) -> dict:
        """Render as an OpenAI-style message dict"""
        return {"role": self.role.value, "content": self.content}


class ChatRequest(BaseModel):
    """Chat request model"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=10000, description="User message")
    history: List[ChatMessage] = Field(
        default_factory=list,
        description="Previous turns, oldest first"
    )
    session_id: Optional[str] = Field(
        default=None,
        alias="sessionId",
        description="Opaque id grouping exchanges for logging"
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        """Validate message is not just whitespace"""
        if not v.strip():
            raise ValueError("Message cannot be empty or whitespace only")
        return v

    @field_validator("history", mode="before")
    @classmethod
    def validate_history(cls, v):
        """Treat a null history as no history"""
        return v or []

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v):
        """Blank session ids disable logging"""
        if v is None or not v.strip():
            return None
        return v


class ContactRequest(BaseModel):
    """Contact form request model"""
    message: str = Field(..., min_length=1, max_length=10000, description="Visitor message")

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError("Message cannot be empty or whitespace only")
        return v
