"""Analytics storage: batch writes and filtered reads against Cassandra."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

import structlog

from .models import AnalyticsEvent, encode_properties, get_day_bucket


if TYPE_CHECKING:
    from uuid import UUID

    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


class AnalyticsCollector:
    """Writes event batches and serves the event listing routes."""

    def __init__(self, session: Session, keyspace: str) -> None:
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        # keyspace comes from settings, not user input
        self._insert_event = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.analytics_events
            (organization_id, day_bucket, event_id, user_id, event_type,
             event_name, properties, session_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)  # noqa: S608
        self._insert_event_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.analytics_events_by_user
            (user_id, event_id, organization_id, event_type, event_name,
             properties, session_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)  # noqa: S608
        self._get_org_day_events = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.analytics_events "
            "WHERE organization_id = ? AND day_bucket = ? LIMIT ?"
        )  # noqa: S608
        self._get_user_events = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.analytics_events_by_user "
            "WHERE user_id = ? LIMIT ?"
        )  # noqa: S608

    async def process_batch(self, events: list[AnalyticsEvent]) -> None:
        """Insert a batch. A failing event is logged and the rest still land."""
        for event in events:
            properties = encode_properties(event.properties)
            try:
                await self.session.aexecute(
                    self._insert_event,
                    [
                        event.organization_id,
                        event.day_bucket,
                        event.event_id,
                        event.user_id,
                        event.event_type,
                        event.event_name,
                        properties,
                        event.session_id,
                        event.created_at,
                    ],
                )
                if event.user_id:
                    await self.session.aexecute(
                        self._insert_event_by_user,
                        [
                            event.user_id,
                            event.event_id,
                            event.organization_id,
                            event.event_type,
                            event.event_name,
                            properties,
                            event.session_id,
                            event.created_at,
                        ],
                    )
            except Exception:
                logger.exception(
                    "analytics_event_insert_error",
                    event_type=event.event_type,
                    organization_id=str(event.organization_id),
                )

    async def list_organization_events(
        self,
        organization_id: UUID,
        day: date | None = None,
        event_type: str | None = None,
        user_id: UUID | None = None,
        course_id: str | None = None,
        limit: int = 100,
    ) -> list[AnalyticsEvent]:
        """List one day of an organization's events, newest first.

        ``event_type``, ``user_id`` and ``course_id`` (matched against the
        ``courseId`` property) filter after the partition read.
        """
        rows = await self.session.aexecute(
            self._get_org_day_events,
            [organization_id, get_day_bucket_for(day), limit],
        )
        events = [AnalyticsEvent.from_row(row) for row in rows]
        return [
            event
            for event in events
            if (event_type is None or event.event_type == event_type)
            and (user_id is None or event.user_id == user_id)
            and (course_id is None or str(event.properties.get("courseId")) == course_id)
        ]

    async def list_user_events(
        self, user_id: UUID, event_type: str | None = None, limit: int = 100
    ) -> list[AnalyticsEvent]:
        rows = await self.session.aexecute(self._get_user_events, [user_id, limit])
        events = [AnalyticsEvent.from_row(row) for row in rows]
        if event_type is None:
            return events
        return [event for event in events if event.event_type == event_type]


def get_day_bucket_for(day: date | None) -> str:
    return day.isoformat() if day else get_day_bucket()
