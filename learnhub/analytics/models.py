"""Analytics event model and CQL table definitions.

Tables:
- analytics_events: events per organization and day, newest first
- analytics_events_by_user: the same events partitioned by user
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from cassandra.util import uuid_from_time


class EventType(str, Enum):
    """Analytics event types."""

    PAGE_VIEW = "page_view"
    COURSE_ENROLLED = "course_enrolled"
    LESSON_STARTED = "lesson_started"
    LESSON_COMPLETED = "lesson_completed"
    QUIZ_ATTEMPTED = "quiz_attempted"
    QUIZ_PASSED = "quiz_passed"
    COURSE_COMPLETED = "course_completed"
    CHAT_SEARCH_STARTED = "chat_search_started"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ANALYTICS_EVENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.analytics_events (
    organization_id UUID,
    day_bucket TEXT,
    event_id TIMEUUID,
    user_id UUID,
    event_type TEXT,
    event_name TEXT,
    properties TEXT,
    session_id TEXT,
    created_at TIMESTAMP,
    PRIMARY KEY ((organization_id, day_bucket), event_id)
) WITH CLUSTERING ORDER BY (event_id DESC)
"""

ANALYTICS_EVENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.analytics_events_by_user (
    user_id UUID,
    event_id TIMEUUID,
    organization_id UUID,
    event_type TEXT,
    event_name TEXT,
    properties TEXT,
    session_id TEXT,
    created_at TIMESTAMP,
    PRIMARY KEY (user_id, event_id)
) WITH CLUSTERING ORDER BY (event_id DESC)
"""

ANALYTICS_TABLES_CQL = [
    ANALYTICS_EVENTS_TABLE_CQL,
    ANALYTICS_EVENTS_BY_USER_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def get_day_bucket(dt: datetime | None = None) -> str:
    """Day partition bucket, e.g. ``2024-03-18``."""
    return (dt or datetime.now(UTC)).strftime("%Y-%m-%d")


def get_hour_bucket(dt: datetime | None = None) -> str:
    """Hour bucket for Redis counters, e.g. ``2024-03-18T14``."""
    return (dt or datetime.now(UTC)).strftime("%Y-%m-%dT%H")


def encode_properties(properties: dict[str, Any]) -> str:
    return json.dumps(properties, default=str, sort_keys=True)


def decode_properties(raw: str | None) -> dict[str, Any]:
    return json.loads(raw) if raw else {}


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class AnalyticsEvent:
    """One analytics event.

    ``session_id`` is the browser analytics session; server-side events
    leave it empty.
    """

    organization_id: UUID
    event_id: UUID
    event_type: str
    event_name: str
    created_at: datetime
    user_id: UUID | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    session_id: str = ""

    @property
    def day_bucket(self) -> str:
        return get_day_bucket(self.created_at)

    @property
    def hour_bucket(self) -> str:
        return get_hour_bucket(self.created_at)

    @classmethod
    def create(
        cls,
        organization_id: UUID,
        event_type: str,
        event_name: str,
        user_id: UUID | None = None,
        properties: dict[str, Any] | None = None,
        session_id: str = "",
        timestamp: datetime | None = None,
    ) -> "AnalyticsEvent":
        """Factory method to create a new event with a time-based id."""
        now = timestamp or datetime.now(UTC)
        return cls(
            organization_id=organization_id,
            event_id=uuid_from_time(now),
            event_type=event_type,
            event_name=event_name,
            created_at=now,
            user_id=user_id,
            properties=properties or {},
            session_id=session_id,
        )

    @classmethod
    def from_row(cls, row: Any) -> "AnalyticsEvent":
        created_at = row.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return cls(
            organization_id=row.organization_id,
            event_id=row.event_id,
            event_type=row.event_type,
            event_name=row.event_name,
            created_at=created_at,
            user_id=row.user_id,
            properties=decode_properties(row.properties),
            session_id=row.session_id or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "event_name": self.event_name,
            "properties": self.properties,
            "session_id": self.session_id,
            "timestamp": self.created_at,
        }
