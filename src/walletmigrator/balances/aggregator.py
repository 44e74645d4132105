"""Balance aggregator: one address, every registered network, concurrently.

Each network is queried with a single JSON-RPC batch of balanceOf calls. A
network that fails (RPC error, HTTP error, undecodable result) yields a snapshot
with `error` set; the aggregate call itself never raises.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Callable, Iterable, Optional

import httpx

from walletmigrator.balances.models import BalanceSnapshot
from walletmigrator.balances.rates import RateResolver
from walletmigrator.chains import NetworkDescriptor, get_networks
from walletmigrator.rpc import JsonRpcClient, decode_uint256, encode_balance_of
from walletmigrator.utils.inflight import InFlightRequests

logger = logging.getLogger(__name__)


def from_base_units(raw: int, decimals: int) -> Decimal:
    """Convert base units to a human-readable Decimal without float rounding."""
    return Decimal(raw).scaleb(-decimals)


class BalanceAggregator:
    """Fetches token balances for one address across all registered networks."""

    def __init__(
        self,
        networks: Optional[Iterable[NetworkDescriptor]] = None,
        rate_resolver: Optional[RateResolver] = None,
        rpc_timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rpc_factory: Optional[Callable[[NetworkDescriptor], JsonRpcClient]] = None,
    ):
        self.networks = list(networks) if networks is not None else list(get_networks().values())
        self.rate_resolver = rate_resolver
        self._rpc_factory = rpc_factory or (
            lambda network: JsonRpcClient(network.rpc_url, timeout=rpc_timeout, transport=transport)
        )
        self._inflight: InFlightRequests[list[BalanceSnapshot]] = InFlightRequests("balance fetch")

    async def fetch_all_network_balances(self, address: str) -> list[BalanceSnapshot]:
        """Get one snapshot per registered network, in registry order.

        Concurrent calls for the same address share one in-flight fetch.
        """
        return await self._inflight.run(address.lower(), lambda: self._fetch_all(address))

    async def _fetch_all(self, address: str) -> list[BalanceSnapshot]:
        logger.info(f"Fetching balances for {address} on {len(self.networks)} networks")
        snapshots = await asyncio.gather(
            *(self._fetch_network_safe(network, address) for network in self.networks)
        )
        failed = [s.network_name for s in snapshots if s.error]
        if failed:
            logger.warning(f"Balance fetch failed on {len(failed)} network(s): {', '.join(failed)}")
        return list(snapshots)

    async def _fetch_network_safe(
        self, network: NetworkDescriptor, address: str
    ) -> BalanceSnapshot:
        try:
            return await self.fetch_network_balance(network, address)
        except Exception as e:
            logger.error(f"Error fetching balances for {network.name}: {e}")
            return BalanceSnapshot.failed(network, address, f"Failed to fetch balances: {e}")

    async def fetch_network_balance(
        self, network: NetworkDescriptor, address: str
    ) -> BalanceSnapshot:
        """Fetch and value balances on a single network. Raises on failure."""
        if not network.tokens:
            return BalanceSnapshot(network=network, address=address)

        rpc = self._rpc_factory(network)
        data = encode_balance_of(address)
        results = await rpc.batch(
            [("eth_call", [{"to": token.address, "data": data}, "latest"]) for token in network.tokens]
        )

        raw_balances: dict[str, int] = {}
        balances: dict[str, Decimal] = {}
        for token, result in zip(network.tokens, results):
            raw = decode_uint256(result)
            raw_balances[token.symbol] = raw
            balances[token.symbol] = from_base_units(raw, token.decimals)

        total, approximate = await self._value(network, balances)
        return BalanceSnapshot(
            network=network,
            address=address,
            balances=balances,
            raw_balances=raw_balances,
            total=total,
            total_is_approximate=approximate,
        )

    async def _value(
        self, network: NetworkDescriptor, balances: dict[str, Decimal]
    ) -> tuple[Decimal, bool]:
        """USD-equivalent total. Pegged tokens are divided by the resolved rate."""
        total = Decimal("0")
        approximate = False
        rate: Optional[Decimal] = None
        rate_checked = False

        for symbol, amount in balances.items():
            token = network.get_token(symbol)
            if token is None or token.pegged_currency is None or amount == 0:
                total += amount
                continue

            if not rate_checked:
                rate = await self.rate_resolver.get_rate(network.name) if self.rate_resolver else None
                rate_checked = True

            if rate:
                total += amount / rate
            else:
                # Unknown rate: count at face value, flagged for display as approximate
                total += amount
                approximate = True

        return total, approximate
