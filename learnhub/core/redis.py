# ruff: noqa: PLW0603
"""Redis client lifecycle and hourly analytics counters.

Redis only holds the per-hour event type counters. Startup continues without
it and every counter call is a no-op when no client is configured.
"""

from collections.abc import Iterable, Mapping

import redis.asyncio as redis

from learnhub.config import get_settings
from learnhub.config.settings import Settings
from learnhub.core.logging import get_logger


logger = get_logger(__name__)

COUNTER_PREFIX = "analytics"

_client: redis.Redis | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis:
    """Create the shared client and check it with a ping.

    Raises:
        redis.ConnectionError: If the server cannot be reached
    """
    global _client

    settings = settings or get_settings()
    client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_unavailable", url=settings.redis_url, error=str(e))
        await client.aclose()
        raise

    _client = client
    logger.info("redis_connected", url=settings.redis_url)
    return client


async def shutdown_redis() -> None:
    global _client

    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("redis_disconnected")


def get_redis() -> redis.Redis | None:
    return _client


# ==============================================================================
# Analytics Counters
# ==============================================================================


def analytics_counter_key(hour_bucket: str, event_type: str) -> str:
    """``analytics:<YYYY-MM-DDTHH>:<event_type>``"""
    return f"{COUNTER_PREFIX}:{hour_bucket}:{event_type}"


async def increment_counters(
    client: redis.Redis,
    counts: Mapping[tuple[str, str], int],
    ttl_seconds: int,
) -> None:
    """Add ``counts`` ((hour bucket, event type) -> n) in one round trip."""
    if not counts:
        return

    pipe = client.pipeline()
    for (hour_bucket, event_type), count in counts.items():
        key = analytics_counter_key(hour_bucket, event_type)
        pipe.incrby(key, count)
        pipe.expire(key, ttl_seconds)
    await pipe.execute()


async def read_counters(
    client: redis.Redis,
    hour_bucket: str,
    event_types: Iterable[str],
) -> dict[str, int]:
    """Current counts for one hour. Missing keys read as zero."""
    event_types = list(event_types)
    values = await client.mget(
        [analytics_counter_key(hour_bucket, t) for t in event_types]
    )
    return {t: int(v or 0) for t, v in zip(event_types, values, strict=True)}
