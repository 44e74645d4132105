"""Sponsored batched transfers from the legacy wallet to the new wallet."""

from walletmigrator.transfer.base import (
    SmartWalletClient,
    TransferBatch,
    TransferCall,
    TransferReport,
    TransferStatus,
)
from walletmigrator.transfer.batcher import TransferBatcher
from walletmigrator.transfer.dry_run import DryRunSmartWalletClient
from walletmigrator.transfer.relayer import RelayerSmartWalletClient

__all__ = [
    "DryRunSmartWalletClient",
    "RelayerSmartWalletClient",
    "SmartWalletClient",
    "TransferBatch",
    "TransferBatcher",
    "TransferCall",
    "TransferReport",
    "TransferStatus",
]
