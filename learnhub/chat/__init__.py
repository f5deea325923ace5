"""Chat search sessions and live event relay.

Provides:
- SessionRelay: in-process pub/sub keyed by session id
- Agent stream client and the producer that publishes onto the relay
- Durable chat sessions and the SSE endpoint that forwards a channel
"""

from .models import CHAT_TABLES_CQL, ChatSession
from .relay import SessionRelay
from .stream import AgentStreamClient, AgentStreamError, stream_and_publish


__all__ = [
    "CHAT_TABLES_CQL",
    "AgentStreamClient",
    "AgentStreamError",
    "ChatSession",
    "SessionRelay",
    "stream_and_publish",
]
