"""Migration status read path.

Decides, after the fact, whether the rest of the application should address a
user by the new EOA or the legacy smart wallet. Results are cached per user for
a short TTL, and concurrent lookups for one user share a single request.
"""

import logging
import time
from decimal import Decimal
from typing import Callable, Optional

from walletmigrator.api.contracts import MigrationStatusResponse
from walletmigrator.backend.client import BackendClient
from walletmigrator.exceptions import BackendError
from walletmigrator.utils.inflight import InFlightRequests

logger = logging.getLogger(__name__)


class MigrationStatusProvider:
    """Cached view of the backend's migration status."""

    def __init__(
        self,
        backend: BackendClient,
        cache_ttl: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, MigrationStatusResponse]] = {}
        self._inflight: InFlightRequests[Optional[MigrationStatusResponse]] = InFlightRequests(
            "migration status"
        )
        # Bumped on invalidate so a fetch started earlier never repopulates the cache
        self._generations: dict[str, int] = {}
        self._epoch = 0

    def _generation(self, user_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(user_id, 0)

    async def get_status(self, user_id: str) -> Optional[MigrationStatusResponse]:
        """Get the migration status, or None if the backend could not tell us."""
        cached = self._cache.get(user_id)
        if cached and self._clock() - cached[0] < self.cache_ttl:
            return cached[1]
        generation = self._generation(user_id)
        return await self._inflight.run(user_id, lambda: self._fetch(user_id, generation))

    async def _fetch(
        self, user_id: str, generation: tuple[int, int]
    ) -> Optional[MigrationStatusResponse]:
        try:
            status = await self.backend.get_migration_status(user_id)
        except BackendError as e:
            logger.warning(f"Migration status for {user_id} unavailable: {e}")
            return None

        # The backend answers 200 with an error field when its own lookup failed
        if status.error:
            logger.warning(f"Migration status for {user_id} unavailable: {status.error}")
            return None

        if self._generation(user_id) == generation:
            self._cache[user_id] = (self._clock(), status)
        else:
            logger.debug(f"Migration status for {user_id} invalidated while fetching, not cached")
        return status

    async def is_migration_complete(self, user_id: str) -> bool:
        status = await self.get_status(user_id)
        return bool(status and status.migration_completed)

    def invalidate(self, user_id: Optional[str] = None) -> None:
        """Drop cached status for one user, or for everyone."""
        if user_id is None:
            self._epoch += 1
            self._cache.clear()
            self._inflight.clear()
        else:
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
            self._cache.pop(user_id, None)
            self._inflight.discard(user_id)

    async def should_use_eoa(self, user_id: str, scw_total: Decimal, has_eoa: bool) -> bool:
        """Whether the application should act on the user's EOA.

        True once migration is complete, or when the smart wallet is empty and
        an EOA already exists (nothing is left behind by switching).
        """
        if await self.is_migration_complete(user_id):
            return True
        return has_eoa and scw_total <= 0

    async def needs_migration(
        self, user_id: str, has_smart_wallet: bool, scw_total: Decimal
    ) -> bool:
        """Whether the user should be offered the migration flow.

        Falls back to "the smart wallet still holds funds" when the backend
        status is unavailable.
        """
        if not has_smart_wallet:
            return False
        status = await self.get_status(user_id)
        if status is not None:
            return not status.migration_completed
        return scw_total > 0
