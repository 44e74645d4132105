"""Client for the wallet backend (system of record for migrations)."""

import logging
from typing import Optional

import httpx

from walletmigrator.api.contracts import (
    DeprecateWalletRequest,
    DeprecateWalletResponse,
    MigrationStatusResponse,
)
from walletmigrator.exceptions import BackendError

logger = logging.getLogger(__name__)


class BackendClient:
    """Finalizes migrations and reads migration status."""

    def __init__(
        self,
        backend_url: str,
        access_token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = backend_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "BackendClient":
        return cls(
            backend_url=settings.backend_url,
            access_token=settings.access_token,
            timeout=settings.backend_timeout,
            **kwargs,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    async def deprecate_wallet(
        self,
        old_address: str,
        new_address: str,
        user_id: str,
        tx_hash: Optional[str] = None,
        tx_hashes: Optional[dict[str, str]] = None,
    ) -> bool:
        """Durably record that old_address is deprecated in favor of new_address.

        Safe to repeat: the backend treats the same (old, new) pair as the same record.

        Raises:
            BackendError: If the request fails or the backend does not confirm
        """
        payload = DeprecateWalletRequest(
            old_address=old_address,
            new_address=new_address,
            user_id=user_id,
            tx_hash=tx_hash,
            tx_hashes=tx_hashes or None,
        )
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "X-Wallet-Address": new_address,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/v1/wallets/deprecate",
                    json=payload.model_dump(by_alias=True),
                    headers=headers,
                )
        except httpx.HTTPError as e:
            raise BackendError(f"Deprecate request failed: {e}")

        try:
            result = DeprecateWalletResponse.model_validate(response.json())
        except ValueError:
            raise BackendError(
                f"Deprecate returned unreadable response (HTTP {response.status_code})",
                response.status_code,
            )

        if response.status_code != 200 or not result.success:
            raise BackendError(
                result.error or f"Deprecate failed with HTTP {response.status_code}",
                response.status_code,
            )

        logger.info(f"Backend recorded deprecation {old_address} -> {new_address} (tx={tx_hash})")
        return True

    async def get_migration_status(self, user_id: str) -> MigrationStatusResponse:
        """Read migration status for a user.

        Raises:
            BackendError: If the status could not be read
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    "/api/v1/wallets/migration-status", params={"userId": user_id}
                )
        except httpx.HTTPError as e:
            raise BackendError(f"Migration status request failed: {e}")

        if response.status_code != 200:
            raise BackendError(
                f"Migration status returned HTTP {response.status_code}", response.status_code
            )
        try:
            return MigrationStatusResponse.model_validate(response.json())
        except ValueError as e:
            raise BackendError(f"Unreadable migration status: {e}")
