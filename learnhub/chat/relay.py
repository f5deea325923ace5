"""In-process publish/subscribe keyed by chat session id.

A channel exists only while it has subscribers. Publishing runs every
callback inline, in registration order, over a snapshot of the channel, so
a callback that unsubscribes itself (or another) during delivery does not
disturb the current publish. Nothing is buffered: a subscriber only sees
messages published after it registered.

One relay instance lives on ``app.state.relay``; it is process local and
does not survive a restart.
"""

from collections.abc import Callable
from typing import Any

import structlog


logger = structlog.get_logger(__name__)

RelayMessage = dict[str, Any]
Subscriber = Callable[[RelayMessage], None]


class _Subscription:
    """One registration. Identity-compared so the same callback can register twice."""

    __slots__ = ("callback",)

    def __init__(self, callback: Subscriber):
        self.callback = callback


class SessionRelay:
    """Registry of subscriber callbacks per session id."""

    def __init__(self) -> None:
        self._channels: dict[str, list[_Subscription]] = {}

    def subscribe(self, session_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for ``session_id``.

        Returns:
            An unsubscribe function. It removes exactly this registration,
            drops the channel once empty, and is safe to call more than once.
        """
        subscription = _Subscription(callback)
        self._channels.setdefault(session_id, []).append(subscription)
        logger.debug(
            "relay_subscribed",
            session_id=session_id,
            subscribers=len(self._channels[session_id]),
        )

        def unsubscribe() -> None:
            channel = self._channels.get(session_id)
            if channel is None:
                return
            try:
                channel.remove(subscription)
            except ValueError:
                return
            if not channel:
                del self._channels[session_id]
            logger.debug(
                "relay_unsubscribed", session_id=session_id, subscribers=len(channel)
            )

        return unsubscribe

    def publish(self, session_id: str, message: RelayMessage) -> None:
        """Deliver ``message`` to the current subscribers of ``session_id``.

        A failing callback is logged and skipped; the rest still receive.
        """
        channel = self._channels.get(session_id)
        if not channel:
            return

        for subscription in list(channel):
            try:
                subscription.callback(message)
            except Exception:
                logger.exception(
                    "relay_subscriber_failed",
                    session_id=session_id,
                    message_type=message.get("type"),
                )

    def has_subscribers(self, session_id: str) -> bool:
        return bool(self._channels.get(session_id))

    def subscriber_count(self, session_id: str) -> int:
        return len(self._channels.get(session_id, ()))

    @property
    def channel_count(self) -> int:
        return len(self._channels)
