"""Database models for chat search sessions.

The session row is the durable record of a conversation; the relay channel
with the same id is only the live delivery path. ``conversation_history``
and ``tool_results`` are stored as JSON text since their shape is owned by
the agent.
"""

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


TITLE_MAX_LENGTH = 50


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def make_session_title(query: str) -> str:
    """First 50 characters of the query, with ``...`` when cut."""
    if len(query) > TITLE_MAX_LENGTH:
        return query[:TITLE_MAX_LENGTH] + "..."
    return query


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

CHAT_SESSIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.chat_sessions (
    id UUID PRIMARY KEY,
    user_id TEXT,
    title TEXT,
    initial_query TEXT,
    attached_jd_id TEXT,
    conversation_history TEXT,
    tool_results TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# History listing, newest first. Rewritten whenever the session's
# updated_at changes.
CHAT_SESSIONS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.chat_sessions_by_user (
    user_id TEXT,
    session_id UUID,
    title TEXT,
    initial_query TEXT,
    message_count INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (user_id, session_id)
)
"""

CHAT_TABLES_CQL = [
    CHAT_SESSIONS_TABLE_CQL,
    CHAT_SESSIONS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class ChatSession:
    """A search conversation.

    Attributes:
        id: Session UUID, also the relay channel key
        user_id: Identifier of the user in the identity provider
        title: Display title derived from the first query
        initial_query: The query that opened the session
        attached_jd_id: Optional attached job description reference
        conversation_history: Ordered turns ``{role, content, timestamp}``
        tool_results: Latest agent tool callback payload, with a timestamp
    """

    def __init__(
        self,
        user_id: str,
        initial_query: str,
        id: UUID | None = None,
        title: str | None = None,
        attached_jd_id: str | None = None,
        conversation_history: list[dict[str, Any]] | None = None,
        tool_results: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.user_id = user_id
        self.initial_query = initial_query
        self.title = title or make_session_title(initial_query)
        self.attached_jd_id = attached_jd_id
        self.conversation_history = list(conversation_history or [])
        self.tool_results = tool_results
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at) or self.created_at

    @property
    def message_count(self) -> int:
        return len(self.conversation_history)

    @classmethod
    def from_row(cls, row: Any) -> "ChatSession":
        return cls(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            initial_query=row.initial_query,
            attached_jd_id=row.attached_jd_id,
            conversation_history=(
                json.loads(row.conversation_history) if row.conversation_history else []
            ),
            tool_results=json.loads(row.tool_results) if row.tool_results else None,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "initial_query": self.initial_query,
            "attached_jd_id": self.attached_jd_id,
            "conversation_history": self.conversation_history,
            "tool_results": self.tool_results,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<ChatSession {self.id} user={self.user_id} turns={self.message_count}>"
