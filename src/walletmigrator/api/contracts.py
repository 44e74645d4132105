"""Request/response contracts shared by the backend routes and their clients.

Field names on the wire are camelCase; Python attributes are snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _Contract(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DeprecateWalletRequest(_Contract):
    """Record that the old wallet is deprecated in favor of the new one."""

    old_address: str = Field(..., alias="oldAddress", min_length=1, description="Legacy SCW address")
    new_address: str = Field(..., alias="newAddress", min_length=1, description="New EOA address")
    user_id: str = Field(..., alias="userId", min_length=1, description="Identity provider user ID")
    tx_hash: Optional[str] = Field(
        None, alias="txHash", description="First confirmed transfer hash (None if nothing moved)"
    )
    tx_hashes: Optional[dict[str, str]] = Field(
        None, alias="txHashes", description="Confirmed transfer hash per network"
    )


class DeprecateWalletResponse(_Contract):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class MigrationStatusResponse(_Contract):
    migration_completed: bool = Field(False, alias="migrationCompleted")
    status: str = "unknown"
    has_smart_wallet: bool = Field(False, alias="hasSmartWallet")
    error: Optional[str] = None


class KYCStatusResponse(_Contract):
    wallet_address: str = Field(..., alias="walletAddress")
    verified: bool = False


class UpdateWalletAddressRequest(_Contract):
    """Move verified KYC from one wallet to another, proven by a link attestation."""

    old_wallet_address: str = Field(..., alias="oldWalletAddress", min_length=1)
    new_wallet_address: str = Field(..., alias="newWalletAddress", min_length=1)
    signature: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)


class UpdateWalletAddressResponse(_Contract):
    status: str
    message: Optional[str] = None
