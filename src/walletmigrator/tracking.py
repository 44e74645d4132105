"""Best-effort analytics events.

Pings use a short timeout and never raise: losing an event must not affect
the migration itself.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class EventTracker:
    """Sends migration events to an analytics endpoint."""

    def __init__(
        self,
        tracking_url: str = "",
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tracking_url = tracking_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "EventTracker":
        return cls(tracking_url=settings.tracking_url, timeout=settings.tracking_timeout, **kwargs)

    @property
    def enabled(self) -> bool:
        return bool(self.tracking_url)

    async def track(self, event: str, properties: Optional[dict[str, Any]] = None) -> bool:
        """Send one event. Returns False if it was not delivered."""
        if not self.enabled:
            return False
        payload = {"event": event, "properties": properties or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.tracking_url, json=payload)
            return response.status_code < 400
        except Exception as e:
            logger.debug(f"Tracking event {event} dropped: {e}")
            return False
