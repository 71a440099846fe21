"""Pydantic models for the news chat API.

This module defines the request and response models used by the HTTP
endpoints and the event frames exchanged over the streaming socket.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request model for a buffered chat message.

    The query is validated by the orchestrator rather than here so that a
    missing or blank query gets the service's own 400 body.
    """
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId", description="Existing session, omitted on first contact")
    query: Optional[str] = Field(None, description="User question", examples=["What's happening in tech?"])


class ChatResponse(BaseModel):
    """Response model for a buffered chat message.

    Attributes:
        session_id: Session the turn was stored under (generated if not supplied)
        response: Generated answer, never empty
        documents_found: Number of documents used as context
    """
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    response: str
    documents_found: int = Field(..., ge=0, alias="documentsFound")


class ClearedResponse(BaseModel):
    """Response model for clearing a session."""
    cleared: bool = True


class HealthResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service health status
        timestamp: ISO-8601 time of the check
        connections: Open streaming connections
    """

    status: str = Field(description="Service health status", examples=["ok"])
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO-8601 timestamp",
    )
    connections: int = Field(0, ge=0, description="Open streaming connections")
    details: dict[str, str] | None = Field(
        default=None,
        description="Optional dependency status",
        examples=[{"redis": "connected"}],
    )


class ErrorResponse(BaseModel):
    """Standard error response model.

    Attributes:
        error: Short error description
        message: Optional detail for server errors
    """

    error: str = Field(description="Error description", examples=["Query is required"])
    message: str | None = Field(default=None, description="Error detail")


class StreamEventType(str, Enum):
    """Server-to-client events on the streaming socket."""

    HISTORY = "history"
    STREAM_START = "streamStart"
    TOKEN = "token"
    RESPONSE_END = "responseEnd"
    ERROR = "error"


class ClientEventType(str, Enum):
    """Client-to-server events on the streaming socket."""

    USER_MESSAGE = "userMessage"
    CLEAR_SESSION = "clearSession"


class StreamEvent(BaseModel):
    """
    One socket frame.

    Attributes:
        event: Event type identifier
        data: Event payload (turn list, text chunk, or None)
    """

    event: StreamEventType
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {"event": self.event.value, "data": self.data}

    @classmethod
    def history(cls, turns: list[dict[str, Any]]) -> "StreamEvent":
        return cls(event=StreamEventType.HISTORY, data=turns)

    @classmethod
    def token(cls, chunk: str) -> "StreamEvent":
        return cls(event=StreamEventType.TOKEN, data=chunk)

    @classmethod
    def stream_start(cls) -> "StreamEvent":
        return cls(event=StreamEventType.STREAM_START)

    @classmethod
    def response_end(cls) -> "StreamEvent":
        return cls(event=StreamEventType.RESPONSE_END)


class ClientEvent(BaseModel):
    """An inbound socket frame."""

    event: str
    data: dict[str, Any] | None = None
