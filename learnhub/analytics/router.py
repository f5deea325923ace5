"""Analytics API endpoints.

Ingest is fire-and-forget: events are queued and the response only says how
many were accepted. Listing reads one organization-day partition; hourly
counters come from Redis.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from learnhub.auth import ApiToken
from learnhub.core.redis import read_counters

from .dependencies import AnalyticsCollectorDep, AnalyticsEmitterDep, RedisDep
from .emitter import AnalyticsEmitter
from .models import EventType, get_hour_bucket
from .schemas import (
    AnalyticsEventListResponse,
    AnalyticsEventResponse,
    EventCountersResponse,
    TrackEventBatchRequest,
    TrackEventRequest,
    TrackEventResponse,
)


router = APIRouter(prefix="/v1/analytics", tags=["analytics"])


def _track(emitter: AnalyticsEmitter, data: TrackEventRequest) -> bool:
    return emitter.track(
        organization_id=data.organization_id,
        event_type=data.event_type.value,
        event_name=data.event_name,
        user_id=data.user_id,
        properties=data.properties,
        session_id=data.session_id,
    )


@router.post(
    "/events",
    response_model=TrackEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track event",
)
async def track_event(
    _token: ApiToken,
    data: TrackEventRequest,
    emitter: AnalyticsEmitterDep,
) -> TrackEventResponse:
    accepted = _track(emitter, data)
    return TrackEventResponse(accepted=int(accepted), dropped=int(not accepted))


@router.post(
    "/events/batch",
    response_model=TrackEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track event batch",
)
async def track_event_batch(
    _token: ApiToken,
    data: TrackEventBatchRequest,
    emitter: AnalyticsEmitterDep,
) -> TrackEventResponse:
    results = [_track(emitter, event) for event in data.events]
    accepted = sum(results)
    return TrackEventResponse(accepted=accepted, dropped=len(results) - accepted)


@router.get(
    "/organizations/{organization_id}/events",
    response_model=AnalyticsEventListResponse,
    summary="List organization events for one day",
)
async def list_organization_events(
    _token: ApiToken,
    organization_id: UUID,
    collector: AnalyticsCollectorDep,
    day: date | None = Query(None, description="UTC day, defaults to today"),
    event_type: EventType | None = Query(None),
    user_id: UUID | None = Query(None),
    course_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> AnalyticsEventListResponse:
    events = await collector.list_organization_events(
        organization_id=organization_id,
        day=day,
        event_type=event_type.value if event_type else None,
        user_id=user_id,
        course_id=str(course_id) if course_id else None,
        limit=limit,
    )
    items = [AnalyticsEventResponse.from_entity(event) for event in events]
    return AnalyticsEventListResponse(items=items, total=len(items))


@router.get(
    "/users/{user_id}/events",
    response_model=AnalyticsEventListResponse,
    summary="List a user's recent events",
)
async def list_user_events(
    _token: ApiToken,
    user_id: UUID,
    collector: AnalyticsCollectorDep,
    event_type: EventType | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> AnalyticsEventListResponse:
    events = await collector.list_user_events(
        user_id, event_type=event_type.value if event_type else None, limit=limit
    )
    items = [AnalyticsEventResponse.from_entity(event) for event in events]
    return AnalyticsEventListResponse(items=items, total=len(items))


@router.get(
    "/counters",
    response_model=EventCountersResponse,
    summary="Hourly event counters",
)
async def get_event_counters(
    _token: ApiToken,
    client: RedisDep,
    hour: str | None = Query(
        None,
        pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}$",
        description="UTC hour as YYYY-MM-DDTHH, defaults to the current hour",
    ),
) -> EventCountersResponse:
    hour_bucket = hour or get_hour_bucket()
    counts = await read_counters(client, hour_bucket, [t.value for t in EventType])
    return EventCountersResponse(
        hour=hour_bucket, counts=counts, total=sum(counts.values())
    )
