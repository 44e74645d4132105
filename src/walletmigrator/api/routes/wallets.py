"""Wallet migration endpoints: status read path and deprecation record."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from walletmigrator.api.contracts import (
    DeprecateWalletRequest,
    DeprecateWalletResponse,
    MigrationStatusResponse,
)
from walletmigrator.config import get_settings
from walletmigrator.exceptions import WalletConflictError
from walletmigrator.ledger.database import get_db
from walletmigrator.ledger.repository import WalletRepository

logger = logging.getLogger(__name__)

router = APIRouter()


async def require_access_token(authorization: Optional[str] = Header(None)) -> bool:
    """Verify the bearer access token.

    If API_ACCESS_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.api_access_token:
        return True

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")

    if authorization[len("Bearer "):] != settings.api_access_token:
        raise HTTPException(status_code=401, detail="Invalid access token")

    return True


def _deprecate_error(status_code: int, error: str) -> JSONResponse:
    body = DeprecateWalletResponse(success=False, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


@router.get("/wallets/migration-status", response_model=MigrationStatusResponse)
async def get_migration_status(user_id: str = Query(..., alias="userId", min_length=1)):
    """Whether the user's legacy wallet has been migrated.

    Safe to poll. Lookup errors still answer 200 with migrationCompleted false.
    """
    try:
        async with get_db() as session:
            repo = WalletRepository(session)
            completed, has_smart_wallet = await repo.get_migration_status(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Migration status lookup for {user_id} failed: {e}")
        return MigrationStatusResponse(
            migration_completed=False, status="unknown", error="Status lookup failed"
        )

    return MigrationStatusResponse(
        migration_completed=completed,
        status="completed" if completed else "pending",
        has_smart_wallet=has_smart_wallet,
    )


async def _record_deprecation(payload: DeprecateWalletRequest) -> bool:
    async with get_db() as session:
        repo = WalletRepository(session)
        _, created = await repo.deprecate_wallet(
            payload.old_address,
            payload.new_address,
            payload.user_id,
            tx_hash=payload.tx_hash,
            tx_hashes=payload.tx_hashes,
        )
    return created


@router.post("/wallets/deprecate", response_model=DeprecateWalletResponse)
async def deprecate_wallet(
    payload: DeprecateWalletRequest,
    x_wallet_address: Optional[str] = Header(None),
    _: bool = Depends(require_access_token),
):
    """Record the old wallet as deprecated in favor of the new one.

    Idempotent for the same (oldAddress, newAddress) pair. The acting wallet
    header must be the new address.
    """
    if not x_wallet_address or x_wallet_address.lower() != payload.new_address.lower():
        return _deprecate_error(403, "X-Wallet-Address must match newAddress")

    if payload.old_address.lower() == payload.new_address.lower():
        return _deprecate_error(400, "oldAddress and newAddress must differ")

    try:
        try:
            created = await _record_deprecation(payload)
        except IntegrityError:
            # A concurrent request inserted the same wallet first; its record now decides
            logger.info(f"Concurrent deprecation of {payload.old_address}, re-reading record")
            created = await _record_deprecation(payload)
    except WalletConflictError as e:
        return _deprecate_error(409, str(e))

    message = "Wallet deprecated" if created else "Wallet already deprecated"
    return DeprecateWalletResponse(success=True, message=message)
