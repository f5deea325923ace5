"""Pydantic schemas for analytics ingest and listing."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from .models import AnalyticsEvent, EventType


MAX_BATCH_SIZE = 100


class TrackEventRequest(BaseModel):
    """Client-side analytics event."""

    organization_id: UUID
    user_id: UUID | None = None
    event_type: EventType
    event_name: str = Field(..., min_length=1, max_length=200)
    properties: dict[str, Any] = Field(default_factory=dict)
    session_id: str = Field("", max_length=200)


class TrackEventBatchRequest(BaseModel):
    events: list[TrackEventRequest] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)


class TrackEventResponse(BaseModel):
    accepted: int
    dropped: int = 0


class AnalyticsEventResponse(BaseModel):
    event_id: UUID
    organization_id: UUID
    user_id: UUID | None = None
    event_type: str
    event_name: str
    properties: dict[str, Any]
    session_id: str
    timestamp: datetime

    @classmethod
    def from_entity(cls, entity: AnalyticsEvent) -> "AnalyticsEventResponse":
        return cls(**entity.to_dict())


class AnalyticsEventListResponse(BaseModel):
    items: list[AnalyticsEventResponse]
    total: int


class EventCountersResponse(BaseModel):
    """Per event type totals for one UTC hour."""

    hour: str
    counts: dict[str, int]
    total: int
