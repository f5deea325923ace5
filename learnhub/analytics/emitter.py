"""Fire-and-forget analytics emitter with background batch writes.

- ``emit`` never blocks and never raises: it is ``asyncio.Queue.put_nowait``
  and drops (with a warning) when the queue is full
- A worker drains the queue in batches of ``batch_size`` events or every
  ``flush_interval`` seconds, whichever comes first
- Hourly per-type counters go to Redis when a client is configured
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from learnhub.core.redis import increment_counters

from .models import AnalyticsEvent


if TYPE_CHECKING:
    from uuid import UUID

    from redis.asyncio import Redis

    from .collector import AnalyticsCollector


logger = structlog.get_logger(__name__)

COUNTER_TTL_SECONDS = 7200


class AnalyticsEmitter:
    """Non-blocking analytics emitter with a background worker."""

    def __init__(
        self,
        collector: AnalyticsCollector | None = None,
        redis: Redis | None = None,
        queue_size: int = 10000,
        batch_size: int = 100,
        flush_interval: float = 1.0,
    ) -> None:
        self.collector = collector
        self.redis = redis
        self.queue_size = queue_size
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: asyncio.Queue[AnalyticsEvent] = asyncio.Queue(maxsize=queue_size)
        self._running = False
        self._worker_task: asyncio.Task | None = None
        self._last_flush_at: datetime | None = None
        self._start_time = 0.0

        self._events_emitted = 0
        self._events_dropped = 0
        self._events_processed = 0
        self._batches_flushed = 0

    # ==========================================================================
    # Emission
    # ==========================================================================

    def emit(self, event: AnalyticsEvent) -> bool:
        """Queue an event. Returns False when the queue is full and it was dropped."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._events_dropped += 1
            logger.warning(
                "analytics_queue_full",
                event_type=event.event_type,
                queue_size=self.queue_size,
                dropped_total=self._events_dropped,
            )
            return False

        self._events_emitted += 1
        return True

    def track(
        self,
        organization_id: UUID,
        event_type: str,
        event_name: str,
        user_id: UUID | None = None,
        properties: dict[str, Any] | None = None,
        session_id: str = "",
    ) -> bool:
        """Build and queue an event in one call."""
        return self.emit(
            AnalyticsEvent.create(
                organization_id=organization_id,
                event_type=event_type,
                event_name=event_name,
                user_id=user_id,
                properties=properties,
                session_id=session_id,
            )
        )

    # ==========================================================================
    # Background Worker
    # ==========================================================================

    async def start(self) -> None:
        if self._running:
            logger.warning("analytics_emitter_already_running")
            return

        self._running = True
        self._start_time = time.monotonic()
        self._worker_task = asyncio.create_task(
            self._worker_loop(), name="analytics_worker"
        )
        logger.info(
            "analytics_emitter_started",
            queue_size=self.queue_size,
            batch_size=self.batch_size,
            flush_interval=self.flush_interval,
        )

    async def stop(self) -> None:
        """Stop the worker and flush whatever is still queued."""
        if not self._running:
            return

        self._running = False

        if self._worker_task:
            try:
                await asyncio.wait_for(self._worker_task, timeout=5.0)
            except TimeoutError:
                logger.warning("analytics_worker_stop_timeout")
                self._worker_task.cancel()
            except asyncio.CancelledError:
                pass

        await self._flush_remaining()

        logger.info(
            "analytics_emitter_stopped",
            events_emitted=self._events_emitted,
            events_processed=self._events_processed,
            events_dropped=self._events_dropped,
        )

    async def _worker_loop(self) -> None:
        batch: list[AnalyticsEvent] = []

        while self._running:
            try:
                timeout_reached = False
                try:
                    event = await asyncio.wait_for(
                        self._queue.get(), timeout=self.flush_interval
                    )
                    batch.append(event)
                except TimeoutError:
                    timeout_reached = True

                if len(batch) >= self.batch_size or (timeout_reached and batch):
                    await self.flush_batch(batch)
                    batch = []

            except asyncio.CancelledError:
                if batch:
                    await self.flush_batch(batch)
                raise

            except Exception:
                logger.exception("analytics_worker_error")
                await asyncio.sleep(0.1)

        if batch:
            await self.flush_batch(batch)

    async def flush_batch(self, batch: list[AnalyticsEvent]) -> None:
        """Write one batch to storage and counters. Errors are logged, not raised."""
        if not batch:
            return

        start = time.perf_counter()
        try:
            if self.collector:
                await self.collector.process_batch(batch)
            if self.redis:
                await self._update_redis_counters(batch)
        except Exception:
            logger.exception("analytics_batch_flush_error", batch_size=len(batch))
            return

        self._events_processed += len(batch)
        self._batches_flushed += 1
        self._last_flush_at = datetime.now(UTC)
        logger.debug(
            "analytics_batch_flushed",
            batch_size=len(batch),
            elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
        )

    async def _flush_remaining(self) -> None:
        remaining: list[AnalyticsEvent] = []
        while not self._queue.empty():
            try:
                remaining.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break

        if remaining:
            logger.info("analytics_flushing_remaining", count=len(remaining))
            await self.flush_batch(remaining)

    async def _update_redis_counters(self, batch: list[AnalyticsEvent]) -> None:
        # Bucketed by when each event happened, not when the batch flushed
        counts: dict[tuple[str, str], int] = {}
        for event in batch:
            key = (event.hour_bucket, event.event_type)
            counts[key] = counts.get(key, 0) + 1

        try:
            await increment_counters(self.redis, counts, COUNTER_TTL_SECONDS)
        except Exception:
            logger.exception("analytics_redis_counter_error")

    # ==========================================================================
    # Status
    # ==========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_length(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "queue_size": self.queue_size,
            "queue_length": self._queue.qsize(),
            "events_emitted": self._events_emitted,
            "events_processed": self._events_processed,
            "events_dropped": self._events_dropped,
            "batches_flushed": self._batches_flushed,
            "last_flush_at": self._last_flush_at,
            "uptime_seconds": (
                time.monotonic() - self._start_time if self._running else 0.0
            ),
        }
