"""SQLAlchemy models for the wallet backend."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class WalletStatus(str, Enum):
    """Status of a wallet record."""

    ACTIVE = "active"
    DEPRECATED = "deprecated"  # Replaced by a migrated-to wallet


class WalletType(str, Enum):
    """Kind of wallet."""

    SMART_WALLET = "smart_wallet"  # Legacy smart-contract wallet
    EOA = "eoa"                    # Externally-owned account


class Wallet(Base):
    """A user's wallet and, once migrated away from, its deprecation record.

    Addresses are stored lower-cased.
    """

    __tablename__ = "wallets"
    __table_args__ = (Index("ix_wallets_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False, index=True)
    wallet_type: Mapped[str] = mapped_column(String(20), default=WalletType.SMART_WALLET.value)
    status: Mapped[str] = mapped_column(String(20), default=WalletStatus.ACTIVE.value)

    # Deprecation record
    replaced_by: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    migration_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    migration_tx_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    migration_tx_hashes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    deprecated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_deprecated(self) -> bool:
        return self.status == WalletStatus.DEPRECATED.value


class KYCProfile(Base):
    """Verified identity attached to exactly one wallet address."""

    __tablename__ = "kyc_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    previous_wallet_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AttestationNonce(Base):
    """Attestation nonce that has been consumed (each nonce is single-use)."""

    __tablename__ = "attestation_nonces"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    nonce: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
