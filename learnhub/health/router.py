"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request

from learnhub.config import get_settings
from learnhub.core.database import AsyncCassandraConnection


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - the process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, Any]:
    """Readiness probe with dependency status.

    Redis is optional, so only Cassandra decides ``ready``.
    """
    settings = get_settings()
    state = request.app.state

    cassandra_ok = AsyncCassandraConnection.is_connected()
    relay = getattr(state, "relay", None)
    emitter = getattr(state, "analytics_emitter", None)
    search = getattr(state, "chat_search_service", None)

    return {
        "status": "ready" if cassandra_ok else "degraded",
        "environment": settings.environment,
        "checks": {
            "cassandra": cassandra_ok,
            "redis": getattr(state, "redis", None) is not None,
            "analytics_worker": bool(emitter and emitter.is_running),
            "agent_api": settings.agent_api_configured,
        },
        "relay_channels": relay.channel_count if relay else 0,
        "active_streams": search.active_streams if search else 0,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
