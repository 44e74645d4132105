"""Balance snapshot types."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from walletmigrator.chains import NetworkDescriptor


@dataclass
class BalanceSnapshot:
    """Token balances on one network for one address.

    Created per fetch and replaced on refresh; never persisted. `balances` holds
    human-readable amounts, `raw_balances` the exact on-chain base units.
    """

    network: NetworkDescriptor
    address: str
    balances: dict[str, Decimal] = field(default_factory=dict)
    raw_balances: dict[str, int] = field(default_factory=dict)
    total: Decimal = Decimal("0")
    total_is_approximate: bool = False
    error: Optional[str] = None

    @property
    def network_name(self) -> str:
        return self.network.name

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_funds(self) -> bool:
        """True if any token holds a non-zero on-chain balance."""
        if self.error:
            return False
        if self.raw_balances:
            return any(amount > 0 for amount in self.raw_balances.values())
        return any(amount > 0 for amount in self.balances.values())

    def non_zero_tokens(self) -> dict[str, Decimal]:
        return {symbol: amount for symbol, amount in self.balances.items() if amount > 0}

    @classmethod
    def failed(cls, network: NetworkDescriptor, address: str, error: str) -> "BalanceSnapshot":
        """Snapshot for a network whose query failed."""
        return cls(network=network, address=address, error=error)


def sum_totals(snapshots: Iterable[BalanceSnapshot]) -> Decimal:
    """USD-equivalent total across all snapshots (errored ones count as zero)."""
    return sum((s.total for s in snapshots if s.ok), Decimal("0"))


def has_any_funds(snapshots: Iterable[BalanceSnapshot]) -> bool:
    return any(s.has_funds for s in snapshots)
