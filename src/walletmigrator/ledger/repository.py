"""Repository for wallet deprecation and KYC re-linking."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from walletmigrator.exceptions import KYCLinkError, NonceReusedError, WalletConflictError
from walletmigrator.ledger.models import (
    AttestationNonce,
    KYCProfile,
    Wallet,
    WalletStatus,
    WalletType,
)

logger = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    return address.strip().lower()


class WalletRepository:
    """Repository for all wallet-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Wallet operations
    async def get_wallet(self, address: str) -> Optional[Wallet]:
        stmt = select(Wallet).where(Wallet.address == normalize_address(address))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_wallets(self, user_id: str) -> list[Wallet]:
        stmt = select(Wallet).where(Wallet.user_id == user_id).order_by(Wallet.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_or_create_wallet(
        self,
        user_id: str,
        address: str,
        wallet_type: WalletType = WalletType.SMART_WALLET,
    ) -> Wallet:
        """Get existing wallet or register a new active one."""
        wallet = await self.get_wallet(address)
        if wallet is None:
            wallet = Wallet(
                user_id=user_id,
                address=normalize_address(address),
                wallet_type=wallet_type.value,
                status=WalletStatus.ACTIVE.value,
                migration_completed=False,
            )
            self.session.add(wallet)
            await self.session.flush()
        return wallet

    async def get_migration_status(self, user_id: str) -> tuple[bool, bool]:
        """Migration status for a user.

        Returns:
            (migration_completed, has_smart_wallet)
        """
        wallets = await self.get_user_wallets(user_id)
        smart_wallets = [w for w in wallets if w.wallet_type == WalletType.SMART_WALLET.value]
        completed = any(w.migration_completed for w in smart_wallets)
        return completed, bool(smart_wallets)

    async def deprecate_wallet(
        self,
        old_address: str,
        new_address: str,
        user_id: str,
        tx_hash: Optional[str] = None,
        tx_hashes: Optional[dict[str, str]] = None,
    ) -> tuple[Wallet, bool]:
        """Record old_address as deprecated in favor of new_address.

        Repeating the same (old, new) pair leaves the record untouched.

        Returns:
            (old wallet, True if this call created the record)

        Raises:
            WalletConflictError: If old_address was deprecated in favor of another
                wallet, or either wallet belongs to another user
        """
        old = normalize_address(old_address)
        new = normalize_address(new_address)

        old_wallet = await self.get_wallet(old)
        if old_wallet is not None and old_wallet.user_id != user_id:
            raise WalletConflictError(f"Wallet {old} belongs to another user")

        if old_wallet is not None and old_wallet.is_deprecated:
            if old_wallet.replaced_by != new:
                raise WalletConflictError(
                    f"Wallet {old} was already migrated to {old_wallet.replaced_by}"
                )
            logger.info(f"Deprecation {old} -> {new} already recorded")
            return old_wallet, False

        new_wallet = await self.get_wallet(new)
        if new_wallet is not None and new_wallet.user_id != user_id:
            raise WalletConflictError(f"Wallet {new} belongs to another user")

        if old_wallet is None:
            old_wallet = await self.get_or_create_wallet(user_id, old, WalletType.SMART_WALLET)

        old_wallet.status = WalletStatus.DEPRECATED.value
        old_wallet.replaced_by = new
        old_wallet.migration_completed = True
        old_wallet.migration_tx_hash = tx_hash
        old_wallet.migration_tx_hashes = dict(tx_hashes) if tx_hashes else None
        old_wallet.deprecated_at = datetime.now(timezone.utc)

        new_wallet = await self.get_or_create_wallet(user_id, new, WalletType.EOA)
        new_wallet.wallet_type = WalletType.EOA.value
        new_wallet.status = WalletStatus.ACTIVE.value

        await self.session.flush()
        logger.info(f"Wallet {old} deprecated in favor of {new} (user {user_id}, tx {tx_hash})")
        return old_wallet, True

    # KYC operations
    async def get_kyc_profile(self, address: str) -> Optional[KYCProfile]:
        stmt = select(KYCProfile).where(KYCProfile.wallet_address == normalize_address(address))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def is_kyc_verified(self, address: str) -> bool:
        profile = await self.get_kyc_profile(address)
        return bool(profile and profile.verified)

    async def set_kyc_verified(
        self, address: str, user_id: Optional[str] = None, verified: bool = True
    ) -> KYCProfile:
        """Create or update the KYC profile of a wallet."""
        profile = await self.get_kyc_profile(address)
        if profile is None:
            profile = KYCProfile(wallet_address=normalize_address(address), user_id=user_id)
            self.session.add(profile)
        profile.verified = verified
        profile.verified_at = datetime.now(timezone.utc) if verified else None
        await self.session.flush()
        return profile

    async def use_nonce(self, nonce: str, wallet_address: str) -> AttestationNonce:
        """Consume an attestation nonce.

        Raises:
            NonceReusedError: If the nonce was used before
        """
        stmt = select(AttestationNonce).where(AttestationNonce.nonce == nonce)
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            raise NonceReusedError(f"Nonce {nonce} has already been used")

        record = AttestationNonce(nonce=nonce, wallet_address=normalize_address(wallet_address))
        self.session.add(record)
        await self.session.flush()
        return record

    async def relink_kyc(self, old_address: str, new_address: str) -> KYCProfile:
        """Move the verified KYC profile from old_address to new_address.

        Raises:
            KYCLinkError: If old is not verified or new already has a profile
        """
        old = normalize_address(old_address)
        new = normalize_address(new_address)

        profile = await self.get_kyc_profile(old)
        if profile is None or not profile.verified:
            raise KYCLinkError(f"Wallet {old} has no verified KYC profile")

        existing = await self.get_kyc_profile(new)
        if existing is not None:
            if existing.verified:
                raise KYCLinkError(f"Wallet {new} is already verified")
            await self.session.delete(existing)
            await self.session.flush()

        profile.previous_wallet_address = old
        profile.wallet_address = new
        await self.session.flush()
        logger.info(f"KYC profile moved {old} -> {new}")
        return profile
