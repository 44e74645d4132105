"""Rate resolver for pegged stable tokens (cNGN -> USD).

The rate is fiat-per-USD (e.g. 1500 NGN per 1 USD), so a cNGN amount is valued
at `amount / rate`. Used for display and valuation only, never for transfer
amounts. get_rate() never raises: None means "unknown, do not block".
"""

import asyncio
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import httpx

from walletmigrator.chains import get_network

logger = logging.getLogger(__name__)

# Most reliable networks for rate fallback
RELIABLE_NETWORKS = ["Base", "BNB Smart Chain"]

# Amount quoted when asking the aggregator for a rate
RATE_QUOTE_AMOUNT = 100


def normalize_network_for_rate_fetch(network: str) -> str:
    """Convert a display name to the aggregator's identifier ("Arbitrum One" -> "arbitrum-one")."""
    return network.strip().lower().replace(" ", "-")


def get_preferred_rate_token(network: str) -> str:
    """Prefer USDC, then USDT, then the first token the network lists."""
    descriptor = get_network(network)
    if descriptor is None or not descriptor.tokens:
        return "USDC"
    symbols = [token.symbol for token in descriptor.tokens]
    if "USDC" in symbols:
        return "USDC"
    if "USDT" in symbols:
        return "USDT"
    return symbols[0]


def parse_rate_response(data: dict) -> Optional[Decimal]:
    """Extract a positive rate from {"status": ..., "data": "<rate>"}."""
    if not isinstance(data, dict) or data.get("status") == "error":
        return None
    raw = data.get("data")
    if not isinstance(raw, (str, int, float)) or isinstance(raw, bool):
        return None
    try:
        rate = Decimal(str(raw))
    except InvalidOperation:
        return None
    return rate if rate > 0 else None


class RateResolver:
    """Resolves the pegged-token rate with caching and network fallback."""

    def __init__(
        self,
        aggregator_url: str,
        currency: str = "NGN",
        cache_ttl: float = 300.0,
        primary_timeout: float = 5.0,
        fallback_timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.aggregator_url = aggregator_url.rstrip("/")
        self.currency = currency
        self.cache_ttl = cache_ttl
        self.primary_timeout = primary_timeout
        self.fallback_timeout = fallback_timeout
        self._transport = transport
        self._clock = clock
        self._cached_rate: Optional[Decimal] = None
        self._cached_at: Optional[float] = None

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "RateResolver":
        return cls(
            aggregator_url=settings.aggregator_url,
            currency=settings.rate_currency,
            cache_ttl=settings.rate_cache_ttl,
            primary_timeout=settings.rate_primary_timeout,
            fallback_timeout=settings.rate_fallback_timeout,
            **kwargs,
        )

    def _fresh_cached_rate(self) -> Optional[Decimal]:
        if self._cached_rate is None or self._cached_at is None:
            return None
        if self._clock() - self._cached_at < self.cache_ttl:
            return self._cached_rate
        return None

    def _cache(self, rate: Decimal) -> None:
        self._cached_rate = rate
        self._cached_at = self._clock()

    async def _fetch_rate(self, network: str, timeout: float) -> Optional[Decimal]:
        """Fetch the rate quoted on one network. Returns None on any failure."""
        token = get_preferred_rate_token(network)
        url = f"{self.aggregator_url}/rates/{token}/{RATE_QUOTE_AMOUNT}/{self.currency}"
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(
                    url, params={"network": normalize_network_for_rate_fetch(network)}
                )
            if response.status_code != 200:
                logger.debug(f"Rate fetch on {network} returned HTTP {response.status_code}")
                return None
            return parse_rate_response(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Rate fetch on {network} failed: {e}")
            return None

    async def _fetch_fallback_rate(self, primary_network: str) -> Optional[Decimal]:
        primary = normalize_network_for_rate_fetch(primary_network)
        candidates = [
            name for name in RELIABLE_NETWORKS
            if normalize_network_for_rate_fetch(name) != primary
        ]
        results = await asyncio.gather(
            *(self._fetch_rate(name, self.fallback_timeout) for name in candidates)
        )
        for rate in results:
            if rate is not None:
                return rate
        return None

    async def get_rate(self, network: str) -> Optional[Decimal]:
        """Get the pegged-token rate for a network, or None if unknown."""
        if not self.aggregator_url:
            return None

        fresh = self._fresh_cached_rate()
        if fresh is not None:
            return fresh

        rate = await self._fetch_rate(network, self.primary_timeout)
        if rate is None:
            rate = await self._fetch_fallback_rate(network)

        if rate is not None:
            self._cache(rate)
            return rate

        if self._cached_rate is not None:
            logger.warning(f"Using expired cached {self.currency} rate for {network}")
            return self._cached_rate

        logger.warning(f"Unable to resolve {self.currency} rate for {network}")
        return None
