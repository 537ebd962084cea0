"""Best-effort fan-out of booking and carrier events.

The core never waits for delivery: a failed enqueue is logged and dropped.
"""

import logging
from typing import Protocol

from haulage.core.config import settings

logger = logging.getLogger(__name__)

# location and status events are dropped by the worker after this long
EVENT_TTL_SECONDS = 60


def carrier_channel(carrier_id: str) -> str:
    return f"carrier:{carrier_id}"


def booking_channel(booking_id: str) -> str:
    return f"booking:{booking_id}"


class Relay(Protocol):
    def notify(self, carrier_id: str, event: str, payload: dict) -> None: ...

    def broadcast_to_booking(self, booking_id: str, event: str, payload: dict) -> None: ...


class CeleryRelay:
    """Hands events to the worker, which publishes them on Redis pub/sub."""

    def _send(self, channel: str, event: str, payload: dict) -> None:
        if not settings.RELAY_ENABLED:
            return
        from haulage.tasks.jobs import publish_event
        try:
            publish_event.apply_async((channel, event, payload), expires=EVENT_TTL_SECONDS)
        except Exception:
            logger.warning("relay enqueue failed for %s %s", channel, event, exc_info=True)

    def notify(self, carrier_id: str, event: str, payload: dict) -> None:
        self._send(carrier_channel(carrier_id), event, payload)

    def broadcast_to_booking(self, booking_id: str, event: str, payload: dict) -> None:
        self._send(booking_channel(booking_id), event, payload)


def safe_send(relay: Relay, method: str, *args) -> None:
    """Call a relay method and swallow delivery errors."""
    try:
        getattr(relay, method)(*args)
    except Exception:
        logger.warning("relay %s failed", method, exc_info=True)
