"""Factory for wiring a migration orchestrator from settings.

In dry-run mode transfers go through the simulated smart wallet client; otherwise
the sponsoring relayer is used.
"""

from typing import Optional

from walletmigrator.backend.client import BackendClient
from walletmigrator.balances.aggregator import BalanceAggregator
from walletmigrator.balances.rates import RateResolver
from walletmigrator.config import Settings, get_settings
from walletmigrator.kyc.client import KYCMigrationClient
from walletmigrator.migration.orchestrator import MigrationOrchestrator
from walletmigrator.migration.session import MigrationSession
from walletmigrator.migration.status import MigrationStatusProvider
from walletmigrator.signing.base import MessageSigner
from walletmigrator.tracking import EventTracker
from walletmigrator.transfer.base import SmartWalletClient
from walletmigrator.transfer.batcher import TransferBatcher
from walletmigrator.transfer.dry_run import DryRunSmartWalletClient
from walletmigrator.transfer.relayer import RelayerSmartWalletClient


def get_balance_aggregator(settings: Optional[Settings] = None) -> BalanceAggregator:
    settings = settings or get_settings()
    return BalanceAggregator(
        rate_resolver=RateResolver.from_settings(settings),
        rpc_timeout=settings.rpc_timeout,
    )


def get_status_provider(settings: Optional[Settings] = None) -> MigrationStatusProvider:
    settings = settings or get_settings()
    return MigrationStatusProvider(
        BackendClient.from_settings(settings), cache_ttl=settings.status_cache_ttl
    )


def get_smart_wallet_client(
    old_address: str, settings: Optional[Settings] = None
) -> SmartWalletClient:
    """Smart wallet client for the legacy wallet.

    Raises:
        SmartWalletUnavailableError: If live mode has no relayer configured
    """
    settings = settings or get_settings()
    if settings.dry_run:
        return DryRunSmartWalletClient(old_address)
    return RelayerSmartWalletClient.from_settings(old_address, settings)


def create_orchestrator(
    old_address: str,
    new_address: str,
    user_id: str,
    signer: Optional[MessageSigner],
    settings: Optional[Settings] = None,
    status_provider: Optional[MigrationStatusProvider] = None,
) -> MigrationOrchestrator:
    """Build an orchestrator for a new migration session.

    Args:
        old_address: Legacy smart wallet address
        new_address: New EOA address (also the attestation signer)
        user_id: Identity provider user ID
        signer: Message signer of the new wallet
        settings: Settings to use (defaults to get_settings())
        status_provider: Shared status provider to invalidate on success

    Returns:
        MigrationOrchestrator in the IDLE step
    """
    settings = settings or get_settings()
    return MigrationOrchestrator(
        session=MigrationSession(old_address=old_address, new_address=new_address, user_id=user_id),
        signer=signer,
        aggregator=get_balance_aggregator(settings),
        kyc_client=KYCMigrationClient(settings.backend_url, timeout=settings.backend_timeout),
        batcher=TransferBatcher(get_smart_wallet_client(old_address, settings)),
        backend=BackendClient.from_settings(settings),
        status_provider=status_provider or get_status_provider(settings),
        tracker=EventTracker.from_settings(settings),
        attestation_bucket_seconds=settings.attestation_bucket_seconds,
    )
