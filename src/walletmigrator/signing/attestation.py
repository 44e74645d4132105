"""Link attestations: a signed statement that the holder of the new wallet's key
authorizes moving verified identity from the old wallet to the new one.

The message text is built in exactly one place (build_link_message) and used by
both the client that signs and the backend that verifies. Changing the format
breaks verification of every attestation produced by the other side.

Nonce format: "<time bucket, base36>-<16 random hex chars>". The bucket is
floor(unix_time / bucket_seconds), so an attestation expires after a few buckets
without a server-issued challenge.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from walletmigrator.exceptions import AttestationError, SigningError
from walletmigrator.signing.base import MessageSigner

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

DEFAULT_BUCKET_SECONDS = 300


@dataclass(frozen=True)
class LinkAttestation:
    """Signed attestation binding old_address to new_address."""

    message: str
    signature: str
    nonce: str


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def time_bucket(bucket_seconds: int = DEFAULT_BUCKET_SECONDS, now: Optional[float] = None) -> int:
    """Coarse time bucket for the given (or current) unix time."""
    current = time.time() if now is None else now
    return int(current // bucket_seconds)


def generate_time_based_nonce(
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS, now: Optional[float] = None
) -> str:
    """Generate a nonce embedding the current time bucket plus a random part."""
    return f"{_to_base36(time_bucket(bucket_seconds, now))}-{secrets.token_hex(8)}"


def parse_nonce_bucket(nonce: str) -> int:
    """Extract the time bucket from a nonce. Raises AttestationError if malformed."""
    bucket_part, sep, random_part = nonce.partition("-")
    if not sep or not bucket_part or len(random_part) != 16:
        raise AttestationError(f"Malformed nonce: {nonce!r}")
    try:
        int(random_part, 16)
        return int(bucket_part, 36)
    except ValueError:
        raise AttestationError(f"Malformed nonce: {nonce!r}")


def build_link_message(old_address: str, new_address: str, nonce: str) -> str:
    """Build the exact text that is signed and later verified."""
    return (
        f"I authorize linking my verified identity from wallet {old_address.lower()} "
        f"to wallet {new_address.lower()} with nonce {nonce}"
    )


async def sign_link_attestation(
    signer: MessageSigner,
    old_address: str,
    new_address: str,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
    now: Optional[float] = None,
) -> LinkAttestation:
    """Produce a signed attestation binding old_address to new_address.

    Raises:
        SigningError: If the signer is unavailable or the user rejects the request
    """
    if signer is None:
        raise SigningError("No signer available")

    nonce = generate_time_based_nonce(bucket_seconds, now)
    message = build_link_message(old_address, new_address, nonce)
    logger.info(f"Requesting link attestation {old_address} -> {new_address}")
    signature = await signer.sign_message(message)
    return LinkAttestation(message=message, signature=signature, nonce=nonce)


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that signed a text message."""
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise AttestationError(f"Invalid signature: {e}")


def verify_link_attestation(
    old_address: str,
    new_address: str,
    signature: str,
    nonce: str,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
    max_age_buckets: int = 2,
    now: Optional[float] = None,
) -> str:
    """Verify an attestation the way the backend does.

    The message is rebuilt from the addresses and nonce, the signer must be the
    new wallet, and the nonce bucket must be current or at most max_age_buckets old.

    Returns:
        The recovered signer address

    Raises:
        AttestationError: If any check fails
    """
    bucket = parse_nonce_bucket(nonce)
    current = time_bucket(bucket_seconds, now)
    if bucket > current:
        raise AttestationError("Nonce is from the future")
    if current - bucket > max_age_buckets:
        raise AttestationError("Nonce has expired")

    message = build_link_message(old_address, new_address, nonce)
    recovered = recover_signer(message, signature)
    if recovered.lower() != new_address.lower():
        raise AttestationError(
            f"Signature was produced by {recovered}, expected {new_address}"
        )
    return recovered
