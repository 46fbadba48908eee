"""
SecureVault Cryptographic Signing

Withdrawal authorizations are signed with recoverable ECDSA over secp256k1.
The signer's identity is recovered from (signature, message) and compared
against the registered authority; no separate public-key lookup is needed.

Signature wire form is 65 bytes: r (32) || s (32) || v (1), v in {27, 28}.
A raw recovery id (v in {0, 1}) is also accepted on input.

Identities are compressed SEC1 public keys rendered as "0x" + 66 hex chars.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from coincurve import PrivateKey, PublicKey

from .hashing import authorization_digest, signing_hash

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SIGNATURE_LENGTH = 65
V_OFFSET = 27


class SignatureFormatError(ValueError):
    """Raised when a signature is structurally invalid or cannot be recovered."""


def _strip_hex(value: str) -> str:
    value = value.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return value


@dataclass(frozen=True)
class RecoverableSignature:
    """
    A recoverable ECDSA signature with named scalar fields.

    Validated on construction:
    - 0 < r < n
    - 0 < s <= n/2 (high-s signatures are malleable and rejected)
    - v in {27, 28}
    """
    r: int
    s: int
    v: int

    def __post_init__(self):
        for name in ("r", "s", "v"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise SignatureFormatError(f"Signature field {name} must be an integer")
        if not 0 < self.r < SECP256K1_N:
            raise SignatureFormatError("Signature r out of range")
        if not 0 < self.s <= SECP256K1_HALF_N:
            raise SignatureFormatError("Signature s out of range or not canonical (high-s)")
        if self.v not in (V_OFFSET, V_OFFSET + 1):
            raise SignatureFormatError(f"Invalid recovery discriminant v={self.v}")

    @property
    def recovery_id(self) -> int:
        return self.v - V_OFFSET

    @classmethod
    def from_bytes(cls, data: bytes) -> "RecoverableSignature":
        """Parse the 65-byte r || s || v form."""
        if len(data) != SIGNATURE_LENGTH:
            raise SignatureFormatError(
                f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(data)}"
            )
        v = data[64]
        if v in (0, 1):
            v += V_OFFSET
        return cls(
            r=int.from_bytes(data[0:32], 'big'),
            s=int.from_bytes(data[32:64], 'big'),
            v=v,
        )

    @classmethod
    def from_hex(cls, value: str) -> "RecoverableSignature":
        try:
            data = bytes.fromhex(_strip_hex(value))
        except ValueError as e:
            raise SignatureFormatError(f"Signature is not valid hex: {e}") from e
        return cls.from_bytes(data)

    @classmethod
    def parse(cls, value: Union["RecoverableSignature", bytes, str]) -> "RecoverableSignature":
        """Accept a RecoverableSignature, raw bytes, or hex string."""
        if isinstance(value, RecoverableSignature):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(bytes(value))
        if isinstance(value, str):
            return cls.from_hex(value)
        raise SignatureFormatError(f"Unsupported signature type: {type(value).__name__}")

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, 'big') + self.s.to_bytes(32, 'big') + bytes([self.v])

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    def to_compact_recoverable(self) -> bytes:
        """r || s || recovery_id, the layout libsecp256k1 expects."""
        return self.r.to_bytes(32, 'big') + self.s.to_bytes(32, 'big') + bytes([self.recovery_id])

    def to_dict(self) -> Dict[str, Any]:
        return {"r": hex(self.r), "s": hex(self.s), "v": self.v}


def normalize_identity(value: Any) -> str:
    """
    Validate a public-key identity and return its canonical form.

    Accepts compressed (33-byte) or uncompressed (65-byte) SEC1 keys as
    hex (with or without "0x") or bytes.

    Raises:
        ValueError: not a valid secp256k1 public key
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str) and value.strip():
        try:
            raw = bytes.fromhex(_strip_hex(value))
        except ValueError as e:
            raise ValueError(f"Identity is not valid hex: {e}") from e
    else:
        raise ValueError("Identity must be a non-empty hex string or bytes")

    if len(raw) not in (33, 65):
        raise ValueError(f"Public key must be 33 or 65 bytes, got {len(raw)}")

    try:
        key = PublicKey(raw)
    except Exception as e:  # coincurve raises ValueError on bad points
        raise ValueError(f"Invalid secp256k1 public key: {e}") from e

    return "0x" + key.format(compressed=True).hex()


def recover_signer(message_hash: bytes, signature: Union[RecoverableSignature, bytes, str]) -> str:
    """
    Recover the signer identity from a 32-byte message hash and signature.

    Raises:
        SignatureFormatError: signature malformed or recovery failed
    """
    sig = RecoverableSignature.parse(signature)
    if len(message_hash) != 32:
        raise SignatureFormatError("Message hash must be 32 bytes")

    try:
        key = PublicKey.from_signature_and_message(
            sig.to_compact_recoverable(), message_hash, hasher=None
        )
    except Exception as e:  # coincurve raises ValueError when no point recovers
        raise SignatureFormatError(f"Signer recovery failed: {e}") from e

    return "0x" + key.format(compressed=True).hex()


class AuthoritySigner:
    """
    Holds a signing authority's private key and issues withdrawal authorizations.

    This is the off-system side of the protocol: the vault never holds one.
    """

    def __init__(self, private_key: Optional[PrivateKey] = None, key_id: Optional[str] = None):
        self._key = private_key or PrivateKey()
        self.identity = "0x" + self._key.public_key.format(compressed=True).hex()
        self.key_id = key_id or f"kid:{self.identity[2:18]}"

    @classmethod
    def generate(cls, key_id: Optional[str] = None) -> "AuthoritySigner":
        return cls(PrivateKey(), key_id=key_id)

    @classmethod
    def from_hex(cls, private_key_hex: str, key_id: Optional[str] = None) -> "AuthoritySigner":
        return cls(PrivateKey.from_hex(_strip_hex(private_key_hex)), key_id=key_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthoritySigner":
        signer = cls.from_hex(data["private_key_hex"], key_id=data.get("key_id"))
        declared = data.get("identity")
        if declared and normalize_identity(declared) != signer.identity:
            raise ValueError("Key file identity does not match private key")
        return signer

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "algorithm": "secp256k1-recoverable",
            "identity": self.identity,
            "private_key_hex": self._key.to_hex(),
        }

    def sign_digest(self, digest: bytes) -> RecoverableSignature:
        """Sign an authorization digest (domain separation applied here)."""
        compact = self._key.sign_recoverable(signing_hash(digest), hasher=None)
        return RecoverableSignature.from_bytes(compact)

    def authorize(
        self,
        vault_identity: str,
        recipient: str,
        amount: int,
        nonce: int,
        network_context: int
    ) -> RecoverableSignature:
        """Issue a signature authorizing exactly this withdrawal."""
        digest = authorization_digest(vault_identity, recipient, amount, nonce, network_context)
        return self.sign_digest(digest)


# Convenience functions

def generate_signing_key() -> Tuple[bytes, str]:
    """
    Generate a secp256k1 key pair.

    Returns:
        Tuple of (private_key_bytes, identity)
    """
    key = PrivateKey()
    return key.secret, "0x" + key.public_key.format(compressed=True).hex()
