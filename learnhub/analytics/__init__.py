"""Analytics module.

Provides:
- AnalyticsEvent model and event types
- Fire-and-forget emitter with batch writes
- Ingest and listing endpoints
"""

from .collector import AnalyticsCollector
from .emitter import AnalyticsEmitter
from .models import ANALYTICS_TABLES_CQL, AnalyticsEvent, EventType


__all__ = [
    "ANALYTICS_TABLES_CQL",
    "AnalyticsCollector",
    "AnalyticsEmitter",
    "AnalyticsEvent",
    "EventType",
]
