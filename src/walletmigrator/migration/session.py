"""Migration session state.

One explicit step enum drives the flow. Every step change goes through
MigrationSession.transition(), which checks it against ALLOWED_TRANSITIONS.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from walletmigrator.balances.models import BalanceSnapshot
from walletmigrator.exceptions import InvalidTransitionError
from walletmigrator.signing.attestation import LinkAttestation
from walletmigrator.transfer.base import TransferBatch, TransferReport


class MigrationStep(str, Enum):
    """Where a migration session currently is."""

    IDLE = "idle"
    SIGNING_ATTESTATION = "signing_attestation"
    CHECKING_KYC = "checking_kyc"
    MIGRATING_KYC = "migrating_kyc"
    AGGREGATING_BALANCES = "aggregating_balances"
    REVIEWING_TRANSFER = "reviewing_transfer"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    FAILURE = "failure"
    ABANDONED = "abandoned"


class FailureKind(str, Enum):
    SIGNING = "signing"
    KYC = "kyc"
    BALANCE = "balance"
    TRANSFER = "transfer"
    FINALIZE = "finalize"


class RetryAction(str, Enum):
    RETRY_SIGNING = "retry_signing"
    CONTACT_SUPPORT = "contact_support"
    RETRY_BALANCES = "retry_balances"
    RETRY_TRANSFER = "retry_transfer"
    RETRY_FINALIZE = "retry_finalize"


FAILURE_ACTIONS = {
    FailureKind.SIGNING: RetryAction.RETRY_SIGNING,
    FailureKind.KYC: RetryAction.CONTACT_SUPPORT,
    FailureKind.BALANCE: RetryAction.RETRY_BALANCES,
    FailureKind.TRANSFER: RetryAction.RETRY_TRANSFER,
    FailureKind.FINALIZE: RetryAction.RETRY_FINALIZE,
}

FAILURE_MESSAGES = {
    FailureKind.SIGNING: "The authorization signature was not completed. Please try signing again.",
    FailureKind.KYC: (
        "We could not move your verification to the new wallet. "
        "Your funds are untouched. Please contact support."
    ),
    FailureKind.BALANCE: "We could not load your balances on any network. Please retry.",
    FailureKind.TRANSFER: "Your wallet is not available to send transfers right now. Please retry.",
    FailureKind.FINALIZE: (
        "Your transfers are complete but we could not finish the migration. "
        "Please retry finalizing."
    ),
}

TERMINAL_STEPS = frozenset({MigrationStep.SUCCESS, MigrationStep.FAILURE, MigrationStep.ABANDONED})

# Cancelling here could leave the backend out of sync with on-chain state
NON_CANCELLABLE_STEPS = frozenset({MigrationStep.TRANSFERRING, MigrationStep.FINALIZING})

ALLOWED_TRANSITIONS: dict[MigrationStep, frozenset[MigrationStep]] = {
    MigrationStep.IDLE: frozenset({MigrationStep.SIGNING_ATTESTATION, MigrationStep.ABANDONED}),
    MigrationStep.SIGNING_ATTESTATION: frozenset({
        MigrationStep.CHECKING_KYC,
        MigrationStep.FAILURE,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.CHECKING_KYC: frozenset({
        MigrationStep.MIGRATING_KYC,
        MigrationStep.AGGREGATING_BALANCES,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.MIGRATING_KYC: frozenset({
        MigrationStep.AGGREGATING_BALANCES,
        MigrationStep.FAILURE,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.AGGREGATING_BALANCES: frozenset({
        MigrationStep.REVIEWING_TRANSFER,
        MigrationStep.FINALIZING,
        MigrationStep.FAILURE,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.REVIEWING_TRANSFER: frozenset({
        MigrationStep.TRANSFERRING,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.TRANSFERRING: frozenset({MigrationStep.FINALIZING, MigrationStep.FAILURE}),
    MigrationStep.FINALIZING: frozenset({MigrationStep.SUCCESS, MigrationStep.FAILURE}),
    MigrationStep.FAILURE: frozenset({
        MigrationStep.SIGNING_ATTESTATION,
        MigrationStep.AGGREGATING_BALANCES,
        MigrationStep.TRANSFERRING,
        MigrationStep.FINALIZING,
        MigrationStep.ABANDONED,
    }),
    MigrationStep.SUCCESS: frozenset(),
    MigrationStep.ABANDONED: frozenset(),
}


@dataclass(frozen=True)
class MigrationFailure:
    """A user-facing failure with the one action that recovers from it."""

    kind: FailureKind
    message: str
    detail: Optional[str] = None

    @property
    def retry_action(self) -> RetryAction:
        return FAILURE_ACTIONS[self.kind]

    @property
    def retryable(self) -> bool:
        return self.retry_action != RetryAction.CONTACT_SUPPORT

    @classmethod
    def of(cls, kind: FailureKind, detail: Optional[str] = None) -> "MigrationFailure":
        return cls(kind=kind, message=FAILURE_MESSAGES[kind], detail=detail)


@dataclass
class MigrationSession:
    """One user's in-progress migration. Lives in memory only."""

    old_address: str
    new_address: str
    user_id: str
    step: MigrationStep = MigrationStep.IDLE
    failure: Optional[MigrationFailure] = None
    attestation: Optional[LinkAttestation] = None
    kyc_checked: bool = False
    kyc_migrated: bool = False
    snapshots: list[BalanceSnapshot] = field(default_factory=list)
    reviewed_snapshots: Optional[list[BalanceSnapshot]] = None
    batches: dict[str, TransferBatch] = field(default_factory=dict)
    skipped_networks: list[str] = field(default_factory=list)
    unavailable_networks: list[str] = field(default_factory=list)
    finalized: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS

    @property
    def can_cancel(self) -> bool:
        return self.step not in NON_CANCELLABLE_STEPS

    @property
    def transfers_started(self) -> bool:
        return bool(self.batches)

    @property
    def tx_hashes(self) -> dict[str, str]:
        """Confirmed transaction hash per network, in processing order."""
        return {
            name: batch.tx_hash
            for name, batch in self.batches.items()
            if batch.confirmed and batch.tx_hash
        }

    @property
    def tx_hash(self) -> Optional[str]:
        """First confirmed transaction hash, or None for deprecate-only or all-failed."""
        return next(iter(self.tx_hashes.values()), None)

    @property
    def transfer_report(self) -> Optional[TransferReport]:
        """Report of the transfers done so far, or None before any transfer."""
        if not self.batches:
            return None
        return TransferReport(
            batches=list(self.batches.values()),
            skipped_networks=list(self.skipped_networks),
            unavailable_networks=list(self.unavailable_networks),
        )

    def transition(self, to: MigrationStep) -> None:
        """Move to another step.

        Raises:
            InvalidTransitionError: If the move is not in ALLOWED_TRANSITIONS
        """
        if to not in ALLOWED_TRANSITIONS[self.step]:
            raise InvalidTransitionError(f"Cannot move from {self.step.value} to {to.value}")
        self.step = to
        if to != MigrationStep.FAILURE:
            self.failure = None

    def fail(self, kind: FailureKind, detail: Optional[str] = None) -> None:
        self.transition(MigrationStep.FAILURE)
        self.failure = MigrationFailure.of(kind, detail)
