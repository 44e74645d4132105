"""Tests for multi-network balance aggregation."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from walletmigrator.balances.aggregator import BalanceAggregator, from_base_units
from walletmigrator.balances.models import BalanceSnapshot, has_any_funds, sum_totals
from walletmigrator.rpc import decode_uint256, encode_balance_of
from walletmigrator.exceptions import RpcError

from tests.conftest import OLD_ADDRESS, FakeChain, rpc_url_for

BASE_USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
BASE_CNGN = "0x46c85152bfe9f96829aa94755d9f915f9b10ef5f"
BSC_USDT = "0x55d398326f99059ff775485246999027b3197955"


def make_aggregator(networks, chain: FakeChain, rate_resolver=None) -> BalanceAggregator:
    return BalanceAggregator(
        networks=networks.values(),
        rate_resolver=rate_resolver,
        transport=chain.transport,
    )


class TestEncoding:
    """Tests for balanceOf encoding helpers."""

    def test_encode_balance_of(self):
        data = encode_balance_of(OLD_ADDRESS)
        assert data.startswith("0x70a08231")
        assert len(data) == 10 + 64
        assert data.endswith(OLD_ADDRESS[2:])

    def test_decode_uint256(self):
        assert decode_uint256("0x" + "0" * 63 + "a") == 10

    @pytest.mark.parametrize("result", ["0x", None, "zz", "0xnothex"])
    def test_decode_rejects_malformed(self, result):
        with pytest.raises(RpcError):
            decode_uint256(result)

    def test_from_base_units_is_exact(self):
        assert from_base_units(123456789, 6) == Decimal("123.456789")
        assert from_base_units(10**18, 18) == Decimal("1")


class TestFetchAllNetworkBalances:
    """Tests for BalanceAggregator.fetch_all_network_balances."""

    @pytest.mark.asyncio
    async def test_one_snapshot_per_network_in_registry_order(self, networks):
        chain = FakeChain(balances={rpc_url_for("Base"): {BASE_USDC: 100_000_000}})
        aggregator = make_aggregator(networks, chain)

        snapshots = await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert [s.network_name for s in snapshots] == list(networks)
        base = snapshots[0]
        assert base.ok
        assert base.balances["USDC"] == Decimal("100")
        assert base.raw_balances["USDC"] == 100_000_000
        assert base.total == Decimal("100")
        assert base.has_funds
        assert not any(s.has_funds for s in snapshots[1:])

    @pytest.mark.asyncio
    async def test_failing_networks_are_isolated(self, networks):
        """Two of six networks failing still yields six snapshots."""
        chain = FakeChain(
            balances={
                rpc_url_for("Base"): {BASE_USDC: 5_000_000},
                rpc_url_for("BNB Smart Chain"): {BSC_USDT: 2 * 10**18},
            },
            failing={rpc_url_for("Polygon"), rpc_url_for("Scroll")},
        )
        aggregator = make_aggregator(networks, chain)

        snapshots = await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert len(snapshots) == 6
        errored = {s.network_name for s in snapshots if s.error}
        assert errored == {"Polygon", "Scroll"}
        for snapshot in snapshots:
            if snapshot.error:
                assert snapshot.balances == {}
                assert snapshot.total == Decimal("0")
                assert not snapshot.has_funds
        assert sum_totals(snapshots) == Decimal("7")

    @pytest.mark.asyncio
    async def test_rpc_error_object_marks_network_failed(self, networks):
        aggregator = BalanceAggregator(networks=[networks["Base"]])
        aggregator._rpc_factory = lambda network: AsyncMock(
            batch=AsyncMock(side_effect=RpcError("execution reverted", 3))
        )

        snapshots = await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert len(snapshots) == 1
        assert "execution reverted" in snapshots[0].error

    @pytest.mark.asyncio
    async def test_pegged_token_divided_by_rate(self, networks):
        chain = FakeChain(balances={rpc_url_for("Base"): {BASE_CNGN: 1_500_000_000}})
        rates = AsyncMock()
        rates.get_rate = AsyncMock(return_value=Decimal("1500"))
        aggregator = make_aggregator({"Base": networks["Base"]}, chain, rates)

        [snapshot] = await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert snapshot.balances["cNGN"] == Decimal("1500")
        assert snapshot.total == Decimal("1")
        assert not snapshot.total_is_approximate
        rates.get_rate.assert_awaited_once_with("Base")

    @pytest.mark.asyncio
    async def test_unknown_rate_counts_face_value_and_flags(self, networks):
        chain = FakeChain(
            balances={rpc_url_for("Base"): {BASE_CNGN: 200_000_000, BASE_USDC: 1_000_000}}
        )
        rates = AsyncMock()
        rates.get_rate = AsyncMock(return_value=None)
        aggregator = make_aggregator({"Base": networks["Base"]}, chain, rates)

        [snapshot] = await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert snapshot.total == Decimal("201")
        assert snapshot.total_is_approximate

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_fetch(self, networks):
        chain = FakeChain()
        aggregator = make_aggregator(networks, chain)

        first, second = await asyncio.gather(
            aggregator.fetch_all_network_balances(OLD_ADDRESS),
            aggregator.fetch_all_network_balances(OLD_ADDRESS.upper().replace("0X", "0x")),
        )

        assert first == second
        assert len(chain.requests) == len(networks)

    @pytest.mark.asyncio
    async def test_sequential_calls_refetch(self, networks):
        chain = FakeChain()
        aggregator = make_aggregator(networks, chain)

        await aggregator.fetch_all_network_balances(OLD_ADDRESS)
        await aggregator.fetch_all_network_balances(OLD_ADDRESS)

        assert len(chain.requests) == 2 * len(networks)


class TestSnapshotHelpers:
    """Tests for snapshot helper functions."""

    def test_failed_snapshot_has_no_funds(self, networks):
        snapshot = BalanceSnapshot.failed(networks["Base"], OLD_ADDRESS, "boom")
        assert not snapshot.ok
        assert not snapshot.has_funds

    def test_has_any_funds(self, networks):
        empty = BalanceSnapshot(networks["Base"], OLD_ADDRESS, raw_balances={"USDC": 0})
        funded = BalanceSnapshot(networks["Optimism"], OLD_ADDRESS, raw_balances={"USDT": 1})
        assert not has_any_funds([empty])
        assert has_any_funds([empty, funded])
