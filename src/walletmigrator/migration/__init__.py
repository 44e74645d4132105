"""Migration state machine and status read path."""

from walletmigrator.migration.orchestrator import MigrationOrchestrator
from walletmigrator.migration.session import (
    FailureKind,
    MigrationFailure,
    MigrationSession,
    MigrationStep,
    RetryAction,
)
from walletmigrator.migration.status import MigrationStatusProvider

__all__ = [
    "FailureKind",
    "MigrationFailure",
    "MigrationOrchestrator",
    "MigrationSession",
    "MigrationStatusProvider",
    "MigrationStep",
    "RetryAction",
]
