"""Base interface for message signing.

Signing flow:
1. Build the human-readable message
2. Ask the wallet holder's signer for an EIP-191 personal signature
3. Return the signature (the private key is never exposed)
"""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class MessageSigner(ABC):
    """Abstract signer held by the user (embedded wallet, injected wallet, local key).

    Implementations raise SignatureRejectedError when the user declines and
    SigningError when the signer is unavailable.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Address whose key produces the signatures."""
        pass

    @abstractmethod
    async def sign_message(self, message: str) -> str:
        """Sign a text message (EIP-191 personal_sign).

        Args:
            message: Message to sign

        Returns:
            0x-prefixed 65-byte signature as hex
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"
