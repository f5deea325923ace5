"""Pydantic schemas for chat search sessions."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from .models import ChatSession


class ChatUser(BaseModel):
    """Caller identity forwarded by the web backend."""

    id: str = Field(..., min_length=1, description="Identity provider user id")
    email: str = Field(..., min_length=3, description="User email")
    name: str | None = Field(None, description="Display name")


class StartSearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=10000, description="Search query")
    user: ChatUser
    jd_id: str | None = Field(None, description="Attached job description")
    organization_id: UUID | None = Field(None, description="Tenant for analytics")


class StartSearchResponse(BaseModel):
    success: bool = True
    session_id: UUID
    message: str = "Search initiated. Connect to stream endpoint for real-time updates."


class ConversationTurn(BaseModel):
    role: str = Field(..., min_length=1)
    content: str
    timestamp: datetime | None = None


class UpdateConversationRequest(BaseModel):
    conversation_history: list[ConversationTurn]


class ToolResultsRequest(BaseModel):
    """Agent tool callback payload, stored as is."""

    results: dict[str, Any] = Field(..., description="Tool output keyed by name")


class ChatSessionResponse(BaseModel):
    session_id: UUID
    user_id: str
    title: str
    initial_query: str
    attached_jd_id: str | None = None
    conversation_history: list[dict[str, Any]]
    tool_results: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: ChatSession) -> "ChatSessionResponse":
        return cls(**entity.to_dict())


class ChatSessionEnvelope(BaseModel):
    success: bool = True
    session: ChatSessionResponse


class ChatHistoryEntry(BaseModel):
    session_id: UUID
    title: str | None = None
    initial_query: str | None = None
    message_count: int = 0
    created_at: datetime | None = None
    last_updated: datetime | None = None


class ChatHistoryResponse(BaseModel):
    success: bool = True
    sessions: list[ChatHistoryEntry]


class ChatMessageResponse(BaseModel):
    success: bool = True
    message: str
