"""Migration orchestrator.

Runs one user's migration from the legacy smart wallet to the new EOA:

1. Sign the identity link attestation (new wallet signs)
2. Check KYC status of both wallets, migrate KYC if needed
3. Aggregate balances on every network
4. Pause for the user to review the planned transfers
5. Transfer per network, strictly one network at a time
6. Finalize: the backend records the old wallet as deprecated

Each failure leaves the session in FAILURE with a kind, and retry() re-runs only
the failed step. Funds never move before KYC has been handled.
"""

import asyncio
import copy
import logging
from typing import Callable, Optional

from walletmigrator.balances.aggregator import BalanceAggregator
from walletmigrator.balances.models import has_any_funds
from walletmigrator.backend.client import BackendClient
from walletmigrator.exceptions import (
    BackendError,
    CancellationNotAllowedError,
    InvalidTransitionError,
    SigningError,
    SmartWalletUnavailableError,
)
from walletmigrator.kyc.client import KYCMigrationClient
from walletmigrator.migration.session import (
    FailureKind,
    MigrationSession,
    MigrationStep,
)
from walletmigrator.migration.status import MigrationStatusProvider
from walletmigrator.signing.attestation import DEFAULT_BUCKET_SECONDS, sign_link_attestation
from walletmigrator.signing.base import MessageSigner
from walletmigrator.tracking import EventTracker
from walletmigrator.transfer.batcher import TransferBatcher

logger = logging.getLogger(__name__)

StepListener = Callable[[MigrationSession], None]


class MigrationOrchestrator:
    """State machine for one migration session."""

    def __init__(
        self,
        session: MigrationSession,
        signer: Optional[MessageSigner],
        aggregator: BalanceAggregator,
        kyc_client: KYCMigrationClient,
        batcher: TransferBatcher,
        backend: BackendClient,
        status_provider: Optional[MigrationStatusProvider] = None,
        tracker: Optional[EventTracker] = None,
        attestation_bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
    ):
        self.session = session
        self.signer = signer
        self.aggregator = aggregator
        self.kyc_client = kyc_client
        self.batcher = batcher
        self.backend = backend
        self.status_provider = status_provider
        self.tracker = tracker
        self.attestation_bucket_seconds = attestation_bucket_seconds
        self._listeners: list[StepListener] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: StepListener) -> None:
        """Call listener with the session after every step change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StepListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.session)
            except Exception as e:
                logger.error(f"Step listener {listener!r} failed: {e}")

    def _move(self, step: MigrationStep) -> None:
        previous = self.session.step
        self.session.transition(step)
        logger.info(f"Migration {self.session.user_id}: {previous.value} -> {step.value}")
        self._notify()

    def _fail(self, kind: FailureKind, detail: Optional[str] = None) -> None:
        self.session.fail(kind, detail)
        logger.error(f"Migration {self.session.user_id} failed ({kind.value}): {detail}")
        self._notify()

    def _abandoned(self) -> bool:
        return self.session.step == MigrationStep.ABANDONED

    async def _track(self, event: str, **properties) -> None:
        if self.tracker is None:
            return
        properties.setdefault("userId", self.session.user_id)
        await self.tracker.track(event, properties)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> MigrationSession:
        """Begin the migration after the user approved it.

        Runs until the review pause, the deprecate-only finish, or a failure.
        """
        async with self._lock:
            if self.session.step != MigrationStep.IDLE:
                raise InvalidTransitionError(
                    f"Migration already started (step: {self.session.step.value})"
                )
            await self._track("migration_started")
            await self._run_from_signing()
            return self.session

    async def approve_transfer(self) -> MigrationSession:
        """Confirm the reviewed transfers and run them, then finalize."""
        async with self._lock:
            if self.session.step != MigrationStep.REVIEWING_TRANSFER:
                raise InvalidTransitionError(
                    f"Nothing to approve (step: {self.session.step.value})"
                )
            await self._run_transfers()
            return self.session

    async def refresh_balances(self) -> MigrationSession:
        """Re-fetch balances while reviewing.

        The new snapshot replaces the reviewed one only before approval. If every
        network fails on refresh, the earlier reviewed snapshot is kept.
        """
        async with self._lock:
            if self.session.step != MigrationStep.REVIEWING_TRANSFER:
                raise InvalidTransitionError(
                    f"Balances can only be refreshed while reviewing (step: {self.session.step.value})"
                )
            snapshots = await self.aggregator.fetch_all_network_balances(self.session.old_address)
            if self._abandoned():
                return self.session
            if not any(s.ok for s in snapshots):
                logger.warning(f"Balance refresh for {self.session.old_address} failed on every network")
                return self.session
            self._set_reviewed(snapshots)
            self._notify()
            return self.session

    async def retry(self) -> MigrationSession:
        """Re-run only the step that failed."""
        async with self._lock:
            failure = self.session.failure
            if self.session.step != MigrationStep.FAILURE or failure is None:
                raise InvalidTransitionError(
                    f"Nothing to retry (step: {self.session.step.value})"
                )
            if not failure.retryable:
                raise InvalidTransitionError(
                    f"{failure.kind.value} failure cannot be retried; contact support"
                )

            logger.info(f"Retrying migration {self.session.user_id} after {failure.kind.value} failure")
            if failure.kind == FailureKind.SIGNING:
                await self._run_from_signing()
            elif failure.kind == FailureKind.BALANCE:
                await self._run_aggregation()
            elif failure.kind == FailureKind.TRANSFER:
                await self._run_transfers()
            elif failure.kind == FailureKind.FINALIZE:
                await self._run_finalize()
            return self.session

    def cancel(self) -> MigrationSession:
        """Abandon the migration.

        Allowed before transfers begin and after a failure. Successful and
        already abandoned sessions are left as they are.

        Raises:
            CancellationNotAllowedError: While transferring or finalizing
        """
        session = self.session
        if not session.can_cancel:
            raise CancellationNotAllowedError(
                f"Migration cannot be cancelled while {session.step.value}"
            )
        if session.step in (MigrationStep.SUCCESS, MigrationStep.ABANDONED):
            return session
        self._move(MigrationStep.ABANDONED)
        return session

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_from_signing(self) -> None:
        session = self.session
        self._move(MigrationStep.SIGNING_ATTESTATION)
        try:
            session.attestation = await sign_link_attestation(
                self.signer,
                session.old_address,
                session.new_address,
                bucket_seconds=self.attestation_bucket_seconds,
            )
        except SigningError as e:
            if not self._abandoned():
                self._fail(FailureKind.SIGNING, str(e))
            return
        except Exception as e:
            # Wallet providers raise their own error types on rejection
            if not self._abandoned():
                self._fail(FailureKind.SIGNING, f"Signer error: {e}")
            return

        if self._abandoned():
            return
        await self._run_kyc()

    async def _run_kyc(self) -> None:
        session = self.session
        self._move(MigrationStep.CHECKING_KYC)
        old_verified, new_verified = await asyncio.gather(
            self.kyc_client.get_kyc_status(session.old_address),
            self.kyc_client.get_kyc_status(session.new_address),
        )
        session.kyc_checked = True
        if self._abandoned():
            return

        if old_verified and not new_verified:
            self._move(MigrationStep.MIGRATING_KYC)
            migrated = await self.kyc_client.migrate_kyc(
                session.old_address, session.new_address, session.attestation
            )
            if self._abandoned():
                return
            if not migrated:
                self._fail(FailureKind.KYC, "KYC update was rejected")
                await self._track("migration_kyc_failed")
                return
            session.kyc_migrated = True
        else:
            logger.info(
                f"Skipping KYC migration for {session.user_id} "
                f"(old verified: {old_verified}, new verified: {new_verified})"
            )

        await self._run_aggregation()

    async def _run_aggregation(self) -> None:
        session = self.session
        self._move(MigrationStep.AGGREGATING_BALANCES)
        snapshots = await self.aggregator.fetch_all_network_balances(session.old_address)
        if self._abandoned():
            return

        session.snapshots = snapshots
        if not any(s.ok for s in snapshots):
            self._fail(FailureKind.BALANCE, "Balance lookup failed on every network")
            return

        # Deprecate-only needs every network known to be empty
        if all(s.ok for s in snapshots) and not has_any_funds(snapshots):
            logger.info(f"No funds to move for {session.user_id}, deprecate-only migration")
            session.reviewed_snapshots = []
            await self._run_finalize()
            return

        self._set_reviewed(snapshots)
        self._move(MigrationStep.REVIEWING_TRANSFER)

    def _set_reviewed(self, snapshots) -> None:
        # Transfers use this frozen copy, never the live snapshot list
        self.session.snapshots = snapshots
        self.session.reviewed_snapshots = copy.deepcopy(snapshots)
        self.session.unavailable_networks = [s.network_name for s in snapshots if not s.ok]

    async def _run_transfers(self) -> None:
        session = self.session
        self._move(MigrationStep.TRANSFERRING)
        try:
            report = await self.batcher.transfer_all(
                session.reviewed_snapshots or [],
                session.old_address,
                session.new_address,
                previous=session.transfer_report,
            )
        except SmartWalletUnavailableError as e:
            if e.report is not None:
                self._record_transfers(e.report)
            self._fail(FailureKind.TRANSFER, str(e))
            return
        except Exception as e:
            logger.error(f"Unexpected transfer error for {session.user_id}: {e}")
            self._fail(FailureKind.TRANSFER, f"Unexpected transfer error: {e}")
            return

        self._record_transfers(report)
        self._notify()

        if report.failed:
            logger.warning(
                f"Transfers failed on {', '.join(b.network_name for b in report.failed)}; "
                f"finalizing anyway"
            )
        await self._track(
            "migration_transfers_done",
            confirmed=len(report.confirmed),
            failed=len(report.failed),
        )
        await self._run_finalize()

    def _record_transfers(self, report) -> None:
        session = self.session
        session.batches = {batch.network_name: batch for batch in report.batches}
        session.skipped_networks = report.skipped_networks
        session.unavailable_networks = report.unavailable_networks

    async def _run_finalize(self) -> None:
        session = self.session
        self._move(MigrationStep.FINALIZING)
        try:
            await self.backend.deprecate_wallet(
                session.old_address,
                session.new_address,
                session.user_id,
                tx_hash=session.tx_hash,
                tx_hashes=session.tx_hashes or None,
            )
        except BackendError as e:
            self._fail(FailureKind.FINALIZE, str(e))
            return

        session.finalized = True
        self._move(MigrationStep.SUCCESS)
        if self.status_provider is not None:
            self.status_provider.invalidate(session.user_id)
        await self._track("migration_completed", txHash=session.tx_hash)
