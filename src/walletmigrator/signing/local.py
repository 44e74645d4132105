"""Local signing backend.

Uses an in-memory private key. Suitable for development, tests and the CLI;
the app's embedded wallet plays this role in production.
"""

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from walletmigrator.exceptions import SigningError
from walletmigrator.signing.base import MessageSigner

logger = logging.getLogger(__name__)


class LocalMessageSigner(MessageSigner):
    """Signs messages with a private key held in memory."""

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as e:
            raise SigningError(f"Invalid private key: {e}")

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_message(self, message: str) -> str:
        try:
            signed = self._account.sign_message(encode_defunct(text=message))
        except Exception as e:
            logger.error(f"Local signing failed: {e}")
            raise SigningError(str(e))
        return "0x" + bytes(signed.signature).hex()
