"""Identity link signing (attestations binding an old wallet to a new one)."""

from walletmigrator.signing.attestation import (
    LinkAttestation,
    build_link_message,
    generate_time_based_nonce,
    sign_link_attestation,
    verify_link_attestation,
)
from walletmigrator.signing.base import MessageSigner
from walletmigrator.signing.local import LocalMessageSigner

__all__ = [
    "LinkAttestation",
    "LocalMessageSigner",
    "MessageSigner",
    "build_link_message",
    "generate_time_based_nonce",
    "sign_link_attestation",
    "verify_link_attestation",
]
