"""Exception hierarchy for the migration flow.

Per-network RPC and transfer problems are recorded on snapshots and batches,
not raised. Only failures that stop a whole step use these exceptions.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for migration errors."""

    pass


class RpcError(MigrationError):
    """Raised when a JSON-RPC call fails or returns an error object."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class SigningError(MigrationError):
    """Raised when the attestation could not be signed."""

    pass


class SignatureRejectedError(SigningError):
    """Raised when the user declined the signature request."""

    pass


class AttestationError(MigrationError):
    """Raised when a link attestation fails verification."""

    pass


class SmartWalletUnavailableError(MigrationError):
    """Raised when no usable smart wallet client is available for transfers.

    When raised partway through a transfer run, report holds the batches
    finished before the client dropped out.
    """

    def __init__(self, message: str, report=None):
        self.report = report
        super().__init__(message)


class BackendError(MigrationError):
    """Raised when the backend rejects or cannot be reached for a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class InvalidTransitionError(MigrationError):
    """Raised on a state machine transition that is not allowed."""

    pass


class CancellationNotAllowedError(MigrationError):
    """Raised when the flow cannot be cancelled in its current step."""

    pass


class WalletConflictError(MigrationError):
    """Raised when a wallet is already deprecated in favor of a different wallet."""

    pass


class KYCLinkError(MigrationError):
    """Raised when a KYC profile cannot be moved to the new wallet."""

    pass


class NonceReusedError(AttestationError):
    """Raised when an attestation nonce has already been used."""

    pass
