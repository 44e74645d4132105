"""Ledger module: wallet deprecation records, KYC profiles and used nonces."""

from walletmigrator.ledger.database import close_db, get_db, init_db
from walletmigrator.ledger.models import (
    AttestationNonce,
    KYCProfile,
    Wallet,
    WalletStatus,
    WalletType,
)
from walletmigrator.ledger.repository import WalletRepository

__all__ = [
    # Models
    "AttestationNonce",
    "KYCProfile",
    "Wallet",
    # Enums
    "WalletStatus",
    "WalletType",
    # Database
    "close_db",
    "get_db",
    "init_db",
    "WalletRepository",
]
