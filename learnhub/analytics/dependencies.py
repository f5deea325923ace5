"""FastAPI dependencies for analytics."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from redis.asyncio import Redis

from .collector import AnalyticsCollector
from .emitter import AnalyticsEmitter


async def get_analytics_emitter(request: Request) -> AnalyticsEmitter:
    emitter = getattr(request.app.state, "analytics_emitter", None)
    if not emitter:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics not available",
        )
    return emitter


async def get_analytics_collector(request: Request) -> AnalyticsCollector:
    collector = getattr(request.app.state, "analytics_collector", None)
    if not collector:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics storage not available",
        )
    return collector


AnalyticsEmitterDep = Annotated[AnalyticsEmitter, Depends(get_analytics_emitter)]
AnalyticsCollectorDep = Annotated[AnalyticsCollector, Depends(get_analytics_collector)]


async def get_redis_client(request: Request) -> Redis:
    client = getattr(request.app.state, "redis", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics counters not available",
        )
    return client


RedisDep = Annotated[Redis, Depends(get_redis_client)]
