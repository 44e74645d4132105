"""KYC migration client.

Talks to the identity service to check verification status and to re-point
verified KYC from the old wallet to the new one. Expected failures (invalid
signature, backend rejection, transport errors) are reported as False, never
raised.
"""

import logging
from typing import Optional

import httpx

from walletmigrator.api.contracts import (
    KYCStatusResponse,
    UpdateWalletAddressRequest,
    UpdateWalletAddressResponse,
)
from walletmigrator.signing.attestation import LinkAttestation

logger = logging.getLogger(__name__)


class KYCMigrationClient:
    """Client for the KYC endpoints of the backend."""

    def __init__(
        self,
        backend_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = backend_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def get_kyc_status(self, wallet_address: str) -> bool:
        """Check whether a wallet address is KYC-verified. False on any failure."""
        try:
            async with self._client() as client:
                response = await client.get(
                    "/api/v1/kyc/status", params={"walletAddress": wallet_address}
                )
            if response.status_code != 200:
                logger.warning(
                    f"KYC status lookup for {wallet_address} returned HTTP {response.status_code}"
                )
                return False
            return KYCStatusResponse.model_validate(response.json()).verified
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"KYC status lookup for {wallet_address} failed: {e}")
            return False

    async def migrate_kyc(
        self,
        old_address: str,
        new_address: str,
        attestation: LinkAttestation,
    ) -> bool:
        """Re-point verified KYC from old_address to new_address.

        Returns:
            True if the backend confirmed the update
        """
        payload = UpdateWalletAddressRequest(
            old_wallet_address=old_address,
            new_wallet_address=new_address,
            signature=attestation.signature,
            nonce=attestation.nonce,
        )
        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/v1/kyc/update-wallet-address",
                    json=payload.model_dump(by_alias=True),
                )
            result = UpdateWalletAddressResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"KYC migration {old_address} -> {new_address} failed: {e}")
            return False

        if result.status != "success":
            logger.error(
                f"KYC migration {old_address} -> {new_address} rejected: "
                f"{result.message or result.status}"
            )
            return False

        logger.info(f"KYC migrated {old_address} -> {new_address}")
        return True
