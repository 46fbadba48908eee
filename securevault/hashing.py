"""
SecureVault Hashing

All hashes use SHA-256. Digests are handled as raw 32-byte values and
rendered as "sha256:<lowercase hex>" at the edges (logs, events, HTTP).
"""

import hashlib
from dataclasses import dataclass
from typing import Union

from .encoding import pack_authorization

# Prepended to every authorization digest before signing, so a signature over
# a bare 32-byte digest from some other protocol is never accepted here.
SIGNING_PREAMBLE = b"\x19SecureVault Signed Authorization:\n32"

DIGEST_SIZE = 32
DIGEST_PREFIX = "sha256:"


def sha256_digest(data: Union[bytes, str]) -> bytes:
    """Compute SHA-256 and return the raw 32-byte digest."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


@dataclass(frozen=True)
class AuthorizationRequest:
    """The exact parameters a withdrawal authorization is bound to."""
    vault_identity: str
    recipient: str
    amount: int
    nonce: int
    network_context: int

    def encode(self) -> bytes:
        return pack_authorization(
            self.vault_identity,
            self.recipient,
            self.amount,
            self.nonce,
            self.network_context,
        )

    def digest(self) -> bytes:
        return authorization_digest(
            self.vault_identity,
            self.recipient,
            self.amount,
            self.nonce,
            self.network_context,
        )


def authorization_digest(
    vault_identity: str,
    recipient: str,
    amount: int,
    nonce: int,
    network_context: int
) -> bytes:
    """
    Compute the authorization digest.

    digest = SHA-256(enc(vault) || enc(recipient) || u256(amount) || u256(nonce) || u256(network))
    """
    packed = pack_authorization(vault_identity, recipient, amount, nonce, network_context)
    return sha256_digest(packed)


def signing_hash(digest: bytes) -> bytes:
    """
    Wrap an authorization digest for signing.

    signing_hash = SHA-256(SIGNING_PREAMBLE || digest)
    """
    if len(digest) != DIGEST_SIZE:
        raise ValueError(f"Digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
    return sha256_digest(SIGNING_PREAMBLE + digest)


def format_digest(digest: bytes) -> str:
    """Render a digest as "sha256:<hex>"."""
    return f"{DIGEST_PREFIX}{digest.hex()}"


def parse_digest(value: Union[bytes, str]) -> bytes:
    """
    Parse a digest from raw bytes, "sha256:<hex>", "0x<hex>" or bare hex.

    Raises:
        ValueError: not a 32-byte digest
    """
    if isinstance(value, bytes):
        raw = value
    else:
        text = value.strip().lower()
        if text.startswith(DIGEST_PREFIX):
            text = text[len(DIGEST_PREFIX):]
        elif text.startswith("0x"):
            text = text[2:]
        raw = bytes.fromhex(text)

    if len(raw) != DIGEST_SIZE:
        raise ValueError(f"Digest must be {DIGEST_SIZE} bytes, got {len(raw)}")
    return raw
