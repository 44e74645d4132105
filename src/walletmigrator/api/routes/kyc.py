"""KYC status and re-link endpoints."""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from walletmigrator.api.contracts import (
    KYCStatusResponse,
    UpdateWalletAddressRequest,
    UpdateWalletAddressResponse,
)
from walletmigrator.config import get_settings
from walletmigrator.exceptions import AttestationError, KYCLinkError, NonceReusedError
from walletmigrator.ledger.database import get_db
from walletmigrator.ledger.repository import WalletRepository, normalize_address
from walletmigrator.signing.attestation import verify_link_attestation

logger = logging.getLogger(__name__)

router = APIRouter()


def _kyc_error(status_code: int, message: str) -> JSONResponse:
    body = UpdateWalletAddressResponse(status="error", message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


@router.get("/kyc/status", response_model=KYCStatusResponse)
async def get_kyc_status(wallet_address: str = Query(..., alias="walletAddress", min_length=1)):
    """KYC verification status of one wallet address."""
    async with get_db() as session:
        repo = WalletRepository(session)
        verified = await repo.is_kyc_verified(wallet_address)
    return KYCStatusResponse(wallet_address=normalize_address(wallet_address), verified=verified)


@router.post("/kyc/update-wallet-address", response_model=UpdateWalletAddressResponse)
async def update_wallet_address(payload: UpdateWalletAddressRequest):
    """Move verified KYC from the old wallet to the new one.

    The attestation must be signed by the new wallet over the link message,
    with a nonce that is recent and has not been used before.
    """
    settings = get_settings()
    try:
        verify_link_attestation(
            payload.old_wallet_address,
            payload.new_wallet_address,
            payload.signature,
            payload.nonce,
            bucket_seconds=settings.attestation_bucket_seconds,
            max_age_buckets=settings.attestation_max_age_buckets,
        )
    except AttestationError as e:
        logger.warning(
            f"Rejected KYC link {payload.old_wallet_address} -> {payload.new_wallet_address}: {e}"
        )
        return _kyc_error(401, str(e))

    try:
        async with get_db() as session:
            repo = WalletRepository(session)
            await repo.use_nonce(payload.nonce, payload.new_wallet_address)
            await repo.relink_kyc(payload.old_wallet_address, payload.new_wallet_address)
    except NonceReusedError as e:
        return _kyc_error(409, str(e))
    except KYCLinkError as e:
        return _kyc_error(409, str(e))

    return UpdateWalletAddressResponse(status="success", message="KYC wallet address updated")
