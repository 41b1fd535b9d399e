"""
Caller Identities and Record References

Identities are Ed25519 public keys, base64 encoded. Authentication
(proving the caller holds the matching private key) happens before a
call reaches this service; here identities are only generated, checked
for shape, and used to derive storage references.

References are uuid5 values, so the same identity always addresses
the same record.
"""

import base64
import binascii
from typing import Tuple
from uuid import UUID, uuid5

from nacl.exceptions import CryptoError
from nacl.signing import SigningKey, VerifyKey


# Stable namespace for record references (never change this)
ORGAN_MATCHING_NAMESPACE = UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")

PROGRAM_STATE_REF = uuid5(ORGAN_MATCHING_NAMESPACE, "organ-matching:program_state")


class Identity:
    """
    Ed25519 identity helpers.
    """

    @staticmethod
    def generate_keypair() -> Tuple[str, str]:
        """
        Generate a new Ed25519 keypair.

        Returns:
            Tuple of (private_key_b64, identity_b64)
        """
        signing_key = SigningKey.generate()
        verify_key = signing_key.verify_key

        private_b64 = base64.b64encode(bytes(signing_key)).decode("utf-8")
        public_b64 = base64.b64encode(bytes(verify_key)).decode("utf-8")

        return private_b64, public_b64

    @staticmethod
    def generate() -> str:
        """Generate a fresh identity, discarding the private key."""
        return Identity.generate_keypair()[1]

    @staticmethod
    def is_valid(identity: str) -> bool:
        """
        Check that a string is a base64 Ed25519 public key.
        """
        try:
            raw = base64.b64decode(identity, validate=True)
            VerifyKey(raw)
            return True
        except (binascii.Error, ValueError, TypeError, CryptoError):
            return False


def recipient_ref(owner: str) -> UUID:
    """Storage reference of the recipient owned by ``owner``."""
    return uuid5(ORGAN_MATCHING_NAMESPACE, f"organ-matching:recipient:{owner}")


def donor_ref(owner: str) -> UUID:
    """Storage reference of the donor owned by ``owner``."""
    return uuid5(ORGAN_MATCHING_NAMESPACE, f"organ-matching:donor:{owner}")


def authority_ref(authority: str) -> UUID:
    """Storage reference of a medical authority record."""
    return uuid5(ORGAN_MATCHING_NAMESPACE, f"organ-matching:authority:{authority}")


def match_ref(donor: UUID) -> UUID:
    """Storage reference of the proposal for a donor (one per donor)."""
    return uuid5(ORGAN_MATCHING_NAMESPACE, f"organ-matching:match:{donor}")
