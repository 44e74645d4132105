"""Tests for the migration state machine."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from walletmigrator.balances.models import BalanceSnapshot
from walletmigrator.exceptions import (
    BackendError,
    CancellationNotAllowedError,
    InvalidTransitionError,
    SigningError,
    SmartWalletUnavailableError,
)
from walletmigrator.migration import (
    FailureKind,
    MigrationOrchestrator,
    MigrationSession,
    MigrationStep,
    RetryAction,
)
from walletmigrator.signing import LocalMessageSigner
from walletmigrator.transfer import DryRunSmartWalletClient, TransferBatcher

from tests.conftest import OLD_ADDRESS


def funded(network, **raw) -> BalanceSnapshot:
    balances = {s: Decimal(v).scaleb(-network.get_token(s).decimals) for s, v in raw.items()}
    return BalanceSnapshot(network, OLD_ADDRESS, balances=balances, raw_balances=raw,
                           total=sum(balances.values(), Decimal("0")))


def empty(network) -> BalanceSnapshot:
    return BalanceSnapshot(network, OLD_ADDRESS, raw_balances={t.symbol: 0 for t in network.tokens})


class Harness:
    """An orchestrator wired to fakes, with the fakes exposed for assertions."""

    def __init__(self, snapshots, old_verified=True, new_verified=False, kyc_ok=True,
                 client=None, signer=None):
        self.signer = signer or LocalMessageSigner(Account.create().key.hex())
        self.new_address = self.signer.address
        self.client = client if client is not None else DryRunSmartWalletClient(OLD_ADDRESS)

        self.aggregator = MagicMock()
        self.aggregator.fetch_all_network_balances = AsyncMock(return_value=snapshots)

        verified = {OLD_ADDRESS: old_verified, self.new_address: new_verified}
        self.kyc = MagicMock()
        self.kyc.get_kyc_status = AsyncMock(side_effect=lambda address: verified[address])
        self.kyc.migrate_kyc = AsyncMock(return_value=kyc_ok)

        self.backend = MagicMock()
        self.backend.deprecate_wallet = AsyncMock(return_value=True)

        self.status = MagicMock()
        self.steps: list[MigrationStep] = []

        self.orchestrator = MigrationOrchestrator(
            session=MigrationSession(OLD_ADDRESS, self.new_address, "user-1"),
            signer=self.signer,
            aggregator=self.aggregator,
            kyc_client=self.kyc,
            batcher=TransferBatcher(self.client),
            backend=self.backend,
            status_provider=self.status,
        )
        self.orchestrator.add_listener(lambda s: self.steps.append(s.step))

    @property
    def session(self) -> MigrationSession:
        return self.orchestrator.session


@pytest.fixture
def zero_snapshots(networks):
    return [empty(n) for n in networks.values()]


class TestHappyPath:
    """Full migrations that reach SUCCESS."""

    @pytest.mark.asyncio
    async def test_base_usdc_with_kyc_migration(self, networks):
        """100 USDC on Base only, old verified and new not: KYC migrates, one Base batch."""
        snapshots = [funded(networks["Base"], USDC=100_000_000)] + [
            empty(n) for name, n in networks.items() if name != "Base"
        ]
        h = Harness(snapshots)

        session = await h.orchestrator.start()
        assert session.step == MigrationStep.REVIEWING_TRANSFER
        h.kyc.migrate_kyc.assert_awaited_once()
        old, new, attestation = h.kyc.migrate_kyc.await_args.args
        assert (old, new) == (OLD_ADDRESS, h.new_address)
        assert attestation is session.attestation

        session = await h.orchestrator.approve_transfer()

        assert session.step == MigrationStep.SUCCESS
        assert session.kyc_migrated
        assert list(session.batches) == ["Base"]
        base_hash = session.batches["Base"].tx_hash
        h.backend.deprecate_wallet.assert_awaited_once_with(
            OLD_ADDRESS, h.new_address, "user-1", tx_hash=base_hash, tx_hashes={"Base": base_hash}
        )
        h.status.invalidate.assert_called_once_with("user-1")
        assert h.steps == [
            MigrationStep.SIGNING_ATTESTATION,
            MigrationStep.CHECKING_KYC,
            MigrationStep.MIGRATING_KYC,
            MigrationStep.AGGREGATING_BALANCES,
            MigrationStep.REVIEWING_TRANSFER,
            MigrationStep.TRANSFERRING,
            MigrationStep.FINALIZING,
            MigrationStep.SUCCESS,
        ]

    @pytest.mark.asyncio
    async def test_zero_balance_is_deprecate_only(self, zero_snapshots):
        h = Harness(zero_snapshots)

        session = await h.orchestrator.start()

        assert session.step == MigrationStep.SUCCESS
        assert session.batches == {}
        assert h.client.history == []
        h.backend.deprecate_wallet.assert_awaited_once_with(
            OLD_ADDRESS, h.new_address, "user-1", tx_hash=None, tx_hashes=None
        )
        assert MigrationStep.REVIEWING_TRANSFER not in h.steps
        assert MigrationStep.TRANSFERRING not in h.steps

    @pytest.mark.asyncio
    async def test_kyc_skipped_when_new_already_verified(self, zero_snapshots):
        h = Harness(zero_snapshots, old_verified=True, new_verified=True)

        session = await h.orchestrator.start()

        h.kyc.migrate_kyc.assert_not_awaited()
        assert not session.kyc_migrated
        assert MigrationStep.MIGRATING_KYC not in h.steps
        assert session.step == MigrationStep.SUCCESS

    @pytest.mark.asyncio
    async def test_kyc_skipped_when_old_never_verified(self, zero_snapshots):
        h = Harness(zero_snapshots, old_verified=False, new_verified=False)

        await h.orchestrator.start()

        h.kyc.migrate_kyc.assert_not_awaited()


class TestFailures:
    """Failure kinds and scoped retries."""

    @pytest.mark.asyncio
    async def test_kyc_failure_is_terminal_before_any_transfer(self, networks):
        h = Harness([funded(networks["Base"], USDC=1)], kyc_ok=False)

        session = await h.orchestrator.start()

        assert session.step == MigrationStep.FAILURE
        assert session.failure.kind == FailureKind.KYC
        assert session.failure.retry_action == RetryAction.CONTACT_SUPPORT
        assert "untouched" in session.failure.message
        h.aggregator.fetch_all_network_balances.assert_not_awaited()
        assert h.client.history == []
        h.backend.deprecate_wallet.assert_not_awaited()

        with pytest.raises(InvalidTransitionError):
            await h.orchestrator.retry()

    @pytest.mark.asyncio
    async def test_all_transfers_failing_still_finalizes(self, networks):
        snapshots = [funded(networks["Base"], USDC=1), funded(networks["Optimism"], USDT=2)]
        client = DryRunSmartWalletClient(OLD_ADDRESS, fail_chains={8453, 10})
        h = Harness(snapshots, client=client)

        await h.orchestrator.start()
        session = await h.orchestrator.approve_transfer()

        assert session.step == MigrationStep.SUCCESS
        assert all(not b.confirmed for b in session.batches.values())
        h.backend.deprecate_wallet.assert_awaited_once_with(
            OLD_ADDRESS, h.new_address, "user-1", tx_hash=None, tx_hashes=None
        )

    @pytest.mark.asyncio
    async def test_signing_failure_then_retry(self, zero_snapshots):
        h = Harness(zero_snapshots)
        real_sign = h.signer.sign_message
        h.signer.sign_message = AsyncMock(side_effect=SigningError("User rejected"))

        session = await h.orchestrator.start()
        assert session.step == MigrationStep.FAILURE
        assert session.failure.kind == FailureKind.SIGNING
        assert session.failure.retry_action == RetryAction.RETRY_SIGNING
        h.kyc.get_kyc_status.assert_not_awaited()

        h.signer.sign_message = real_sign
        session = await h.orchestrator.retry()

        assert session.step == MigrationStep.SUCCESS
        assert session.attestation is not None

    @pytest.mark.asyncio
    async def test_balance_failure_retries_aggregation_only(self, networks):
        errored = [BalanceSnapshot.failed(n, OLD_ADDRESS, "down") for n in networks.values()]
        h = Harness(errored)

        session = await h.orchestrator.start()
        assert session.failure.kind == FailureKind.BALANCE
        attestation = session.attestation

        h.aggregator.fetch_all_network_balances.return_value = [
            funded(networks["Base"], USDC=1)
        ]
        session = await h.orchestrator.retry()

        assert session.step == MigrationStep.REVIEWING_TRANSFER
        assert session.attestation is attestation
        assert h.kyc.get_kyc_status.await_count == 2
        assert h.kyc.migrate_kyc.await_count == 1

    @pytest.mark.asyncio
    async def test_partial_balance_errors_proceed_to_review(self, networks):
        snapshots = [
            BalanceSnapshot.failed(n, OLD_ADDRESS, "down") if name in ("Polygon", "Scroll") else empty(n)
            for name, n in networks.items()
        ]
        h = Harness(snapshots)

        session = await h.orchestrator.start()

        assert session.step == MigrationStep.REVIEWING_TRANSFER
        assert session.unavailable_networks == ["Polygon", "Scroll"]

    @pytest.mark.asyncio
    async def test_finalize_failure_retries_without_resigning_or_retransferring(self, networks):
        h = Harness([funded(networks["Base"], USDC=1)])
        h.backend.deprecate_wallet.side_effect = [BackendError("503", 503), True]

        await h.orchestrator.start()
        session = await h.orchestrator.approve_transfer()
        assert session.failure.kind == FailureKind.FINALIZE
        assert session.failure.retry_action == RetryAction.RETRY_FINALIZE
        attestation = session.attestation
        tx_hash = session.tx_hash

        session = await h.orchestrator.retry()

        assert session.step == MigrationStep.SUCCESS
        assert session.attestation is attestation
        assert len(h.client.history) == 1
        assert h.backend.deprecate_wallet.await_count == 2
        assert h.backend.deprecate_wallet.await_args.kwargs["tx_hash"] == tx_hash

    @pytest.mark.asyncio
    async def test_missing_smart_wallet_client_fails_transfer_step(self, networks):
        h = Harness([funded(networks["Base"], USDC=1)])
        h.orchestrator.batcher = TransferBatcher(None)

        await h.orchestrator.start()
        session = await h.orchestrator.approve_transfer()

        assert session.failure.kind == FailureKind.TRANSFER
        h.backend.deprecate_wallet.assert_not_awaited()

        h.orchestrator.batcher = TransferBatcher(h.client)
        session = await h.orchestrator.retry()
        assert session.step == MigrationStep.SUCCESS

    @pytest.mark.asyncio
    async def test_client_dropping_out_midway_keeps_confirmed_batches(self, networks):
        client = DropOutClient(OLD_ADDRESS, drop_chain=137)
        snapshots = [funded(networks["Base"], USDC=1), funded(networks["Polygon"], USDT=2)]
        h = Harness(snapshots, client=client)

        await h.orchestrator.start()
        session = await h.orchestrator.approve_transfer()

        assert session.failure.kind == FailureKind.TRANSFER
        assert session.batches["Base"].confirmed
        base_hash = session.batches["Base"].tx_hash

        session = await h.orchestrator.retry()

        assert session.step == MigrationStep.SUCCESS
        assert [chain_id for chain_id, _ in client.history] == [8453, 137]
        assert session.tx_hashes["Base"] == base_hash
        assert "Polygon" in session.tx_hashes

    @pytest.mark.asyncio
    async def test_unexpected_transfer_error_fails_transfer_step(self, networks):
        h = Harness([funded(networks["Base"], USDC=1)])
        real_transfer_all = h.orchestrator.batcher.transfer_all
        h.orchestrator.batcher.transfer_all = AsyncMock(side_effect=RuntimeError("boom"))

        await h.orchestrator.start()
        session = await h.orchestrator.approve_transfer()

        assert session.step == MigrationStep.FAILURE
        assert session.failure.kind == FailureKind.TRANSFER
        assert "boom" in session.failure.detail
        h.backend.deprecate_wallet.assert_not_awaited()

        h.orchestrator.batcher.transfer_all = real_transfer_all
        session = await h.orchestrator.retry()
        assert session.step == MigrationStep.SUCCESS


class DropOutClient(DryRunSmartWalletClient):
    """Dry-run client that becomes unavailable the first time it reaches drop_chain."""

    def __init__(self, address, drop_chain):
        super().__init__(address)
        self.drop_chain = drop_chain
        self.dropped = False

    async def switch_chain(self, chain_id):
        if chain_id == self.drop_chain and not self.dropped:
            self.dropped = True
            raise SmartWalletUnavailableError("Wallet session expired")
        await super().switch_chain(chain_id)


class TestReviewAndCancel:
    """Review pause, refresh and cancellation rules."""

    @pytest.mark.asyncio
    async def test_transfers_use_reviewed_snapshot(self, networks):
        live = [funded(networks["Base"], USDC=5)]
        h = Harness(live)
        await h.orchestrator.start()

        live[0].raw_balances["USDC"] = 999  # later mutation of the live snapshot
        await h.orchestrator.approve_transfer()

        [(_, [call])] = h.client.history
        assert call.amount_wei == 5

    @pytest.mark.asyncio
    async def test_refresh_replaces_reviewed_snapshot(self, networks):
        h = Harness([funded(networks["Base"], USDC=5)])
        await h.orchestrator.start()

        h.aggregator.fetch_all_network_balances.return_value = [funded(networks["Base"], USDC=7)]
        await h.orchestrator.refresh_balances()
        await h.orchestrator.approve_transfer()

        [(_, [call])] = h.client.history
        assert call.amount_wei == 7

    @pytest.mark.asyncio
    async def test_refresh_outside_review_rejected(self, zero_snapshots):
        h = Harness(zero_snapshots)
        with pytest.raises(InvalidTransitionError):
            await h.orchestrator.refresh_balances()

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, zero_snapshots):
        h = Harness(zero_snapshots)
        await h.orchestrator.start()
        with pytest.raises(InvalidTransitionError):
            await h.orchestrator.start()

    @pytest.mark.asyncio
    async def test_cancel_during_review(self, networks):
        h = Harness([funded(networks["Base"], USDC=5)])
        await h.orchestrator.start()

        session = h.orchestrator.cancel()

        assert session.step == MigrationStep.ABANDONED
        with pytest.raises(InvalidTransitionError):
            await h.orchestrator.approve_transfer()

    @pytest.mark.asyncio
    async def test_cancel_refused_while_transferring(self, networks):
        h = Harness([funded(networks["Base"], USDC=5)])
        await h.orchestrator.start()
        refused = []

        def try_cancel(session):
            if session.step == MigrationStep.TRANSFERRING:
                with pytest.raises(CancellationNotAllowedError):
                    h.orchestrator.cancel()
                refused.append(True)

        h.orchestrator.add_listener(try_cancel)
        session = await h.orchestrator.approve_transfer()

        assert refused
        assert session.step == MigrationStep.SUCCESS

    def test_invalid_transition_table(self):
        session = MigrationSession(OLD_ADDRESS, "0x2", "user-1")
        with pytest.raises(InvalidTransitionError):
            session.transition(MigrationStep.TRANSFERRING)
