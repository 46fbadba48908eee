"""
SecureVault Authorization Encoding

Packs the fields of a withdrawal authorization into an unambiguous byte string.

Rules:
- Identities: one length byte followed by the UTF-8 bytes (1-255 bytes)
- Integers (amount, nonce, network id): 32-byte big-endian unsigned
- Fields concatenated in a fixed order

Every field boundary is recoverable from the bytes alone, so two different
tuples can never encode to the same byte string.
"""

from typing import Any

UINT256_MAX = 2 ** 256 - 1
MAX_IDENTITY_BYTES = 255


class EncodingError(ValueError):
    """Raised when a field cannot be encoded."""


def encode_identity(identity: Any) -> bytes:
    """
    Encode an identity string with a one-byte length prefix.

    Raises:
        EncodingError: identity is not a non-empty string of at most 255 bytes
    """
    if not isinstance(identity, str) or not identity:
        raise EncodingError(f"Identity must be a non-empty string, got {identity!r}")

    raw = identity.encode('utf-8')
    if len(raw) > MAX_IDENTITY_BYTES:
        raise EncodingError(f"Identity exceeds {MAX_IDENTITY_BYTES} bytes")

    return bytes([len(raw)]) + raw


def encode_uint256(value: Any) -> bytes:
    """
    Encode an integer as 32 bytes, big-endian.

    Raises:
        EncodingError: value is not an int in [0, 2**256)
    """
    # bool is an int subclass; True must not silently become 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"Expected integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"Integer out of uint256 range: {value}")

    return value.to_bytes(32, 'big')


def pack_authorization(
    vault_identity: str,
    recipient: str,
    amount: int,
    nonce: int,
    network_context: int
) -> bytes:
    """
    Pack a withdrawal authorization tuple.

    Order: vault_identity, recipient, amount, nonce, network_context.
    """
    return b"".join([
        encode_identity(vault_identity),
        encode_identity(recipient),
        encode_uint256(amount),
        encode_uint256(nonce),
        encode_uint256(network_context),
    ])
