"""Multi-network balance discovery and USD valuation."""

from walletmigrator.balances.aggregator import BalanceAggregator
from walletmigrator.balances.models import BalanceSnapshot, has_any_funds, sum_totals
from walletmigrator.balances.rates import RateResolver

__all__ = [
    "BalanceAggregator",
    "BalanceSnapshot",
    "RateResolver",
    "has_any_funds",
    "sum_totals",
]
