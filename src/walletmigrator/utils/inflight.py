"""In-flight request de-duplication.

Concurrent callers asking for the same key share one pending request instead of
each firing their own. The map is owned by the component that uses it, so two
aggregators never see each other's requests.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightRequests(Generic[T]):
    """Coalesces concurrent requests for the same key.

    Example:
        inflight = InFlightRequests()
        result = await inflight.run(address.lower(), lambda: fetch(address))
    """

    def __init__(self, name: str = "request"):
        self.name = name
        self._pending: dict[Hashable, asyncio.Future] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        """Run factory() for key, or join the call already running for key."""
        pending = self._pending.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight {self.name} for {key}")
            return await asyncio.shield(pending)

        future = asyncio.ensure_future(factory())
        self._pending[key] = future
        try:
            return await asyncio.shield(future)
        finally:
            if self._pending.get(key) is future:
                del self._pending[key]

    def discard(self, key: Hashable) -> None:
        """Stop handing the pending request for key to new callers."""
        self._pending.pop(key, None)

    def clear(self) -> None:
        """Forget all pending requests (useful for testing)."""
        self._pending.clear()
