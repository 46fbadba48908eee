"""
SecureVault Authorization Registry

Owns the registered signing authority and the set of consumed authorization
digests. Its one state-changing operation, verify_and_consume(), succeeds at
most once for any given authorization tuple.

Verification order:
1. Recompute the digest from the tuple
2. Reject if the digest was already consumed
3. Recover the signer over the domain-separated digest; reject unless it is
   the registered authority
4. Record the digest as consumed
5. Return a receipt

Nothing is recorded on failure.
"""

import hmac
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

from .encoding import EncodingError
from .errors import AlreadyConsumed, AlreadyInitialized, InvalidAuthority, InvalidSignature, NotInitialized
from .events import AuthorizationConsumed, Event, EventLog, EventSink, SignerSet
from .hashing import authorization_digest, format_digest, parse_digest, signing_hash
from .logging_config import audit_log
from .signing import RecoverableSignature, SignatureFormatError, normalize_identity, recover_signer
from .stores import ConsumedStore, InMemoryConsumedStore

logger = logging.getLogger(__name__)

SIGNING_AUTHORITY_KEY = "signing_authority"


@dataclass(frozen=True)
class AuthorizationReceipt:
    """Proof that an authorization was verified and consumed."""
    digest: bytes
    signer: str
    vault_identity: str
    recipient: str
    amount: int
    nonce: int
    network_context: int

    @property
    def digest_hex(self) -> str:
        return format_digest(self.digest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "digest": self.digest_hex,
            "signer": self.signer,
            "vault_identity": self.vault_identity,
            "recipient": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "network_context": self.network_context,
        }


@dataclass
class _Frame:
    """Consumptions and events of one open transaction."""
    consumed: List[bytes] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)


class AuthorizationRegistry:
    """
    The single source of truth for which withdrawals are authorized.

    Usage:
        registry = AuthorizationRegistry()
        registry.initialize(authority_public_key_hex)

        receipt = registry.verify_and_consume(
            vault_identity, recipient, amount, nonce, network_id, signature
        )
    """

    def __init__(
        self,
        identity: str = "authorization-registry",
        store: Optional[ConsumedStore] = None,
        events: Optional[EventSink] = None
    ):
        self.identity = identity
        self.store = store or InMemoryConsumedStore()
        self.events = events or EventLog()
        self._lock = threading.RLock()
        self._frames: List[_Frame] = []
        self._signing_authority: Optional[str] = self.store.get_meta(SIGNING_AUTHORITY_KEY)

    @property
    def initialized(self) -> bool:
        return self._signing_authority is not None

    @property
    def signing_authority(self) -> Optional[str]:
        return self._signing_authority

    def initialize(self, signing_identity: Union[str, bytes]) -> str:
        """
        Register the signing authority. Allowed exactly once.

        Returns:
            The canonical identity that was registered

        Raises:
            AlreadyInitialized: an authority is already registered
            InvalidAuthority: identity is empty or not a valid public key
        """
        with self._lock:
            if self.initialized:
                raise AlreadyInitialized("Registry already initialized")
            if not signing_identity:
                raise InvalidAuthority("Signing authority must not be empty")

            try:
                identity = normalize_identity(signing_identity)
            except ValueError as e:
                raise InvalidAuthority(str(e)) from e

            self.store.set_meta(SIGNING_AUTHORITY_KEY, identity)
            self._signing_authority = identity
            self._emit(SignerSet(identity=identity))
            logger.info("Registry %s initialized with signer %s", self.identity, identity)
            return identity

    def verify_and_consume(
        self,
        vault_identity: str,
        recipient: str,
        amount: int,
        nonce: int,
        network_context: int,
        signature: Union[RecoverableSignature, bytes, str]
    ) -> AuthorizationReceipt:
        """
        Verify a withdrawal authorization and consume it.

        Raises:
            NotInitialized: no signing authority registered
            AlreadyConsumed: this exact tuple was consumed before
            InvalidSignature: malformed signature, or not signed by the authority
        """
        with self._lock:
            if not self.initialized:
                raise NotInitialized("Registry has no signing authority")

            try:
                digest = authorization_digest(vault_identity, recipient, amount, nonce, network_context)
            except EncodingError as e:
                # an unencodable tuple can never have been signed
                audit_log.authorization_rejected(None, f"unencodable: {e}")
                raise InvalidSignature(f"Authorization cannot be encoded: {e}") from e

            digest_hex = format_digest(digest)

            if self.store.contains(digest):
                audit_log.authorization_rejected(digest_hex, "ALREADY_CONSUMED")
                raise AlreadyConsumed("Authorization already consumed", digest=digest_hex)

            try:
                signer = recover_signer(signing_hash(digest), signature)
            except SignatureFormatError as e:
                audit_log.authorization_rejected(digest_hex, f"malformed signature: {e}")
                raise InvalidSignature(f"Invalid signature: {e}", digest=digest_hex) from e

            if not hmac.compare_digest(signer.encode(), self._signing_authority.encode()):
                audit_log.authorization_rejected(digest_hex, "signer mismatch")
                audit_log.security_event("UNAUTHORIZED_SIGNER", severity="high", signer=signer, digest=digest_hex)
                raise InvalidSignature("Invalid signature", digest=digest_hex)

            if not self.store.add(digest):
                raise AlreadyConsumed("Authorization already consumed", digest=digest_hex)
            if self._frames:
                self._frames[-1].consumed.append(digest)

            self._emit(AuthorizationConsumed(
                digest=digest_hex,
                vault_identity=vault_identity,
                recipient=recipient,
                amount=amount,
            ))
            audit_log.authorization_consumed(digest_hex, vault_identity, recipient, amount)

            return AuthorizationReceipt(
                digest=digest,
                signer=signer,
                vault_identity=vault_identity,
                recipient=recipient,
                amount=amount,
                nonce=nonce,
                network_context=network_context,
            )

    def is_consumed(self, digest: Union[bytes, str]) -> bool:
        """Membership test for a consumed digest. Side-effect free."""
        return self.store.contains(parse_digest(digest))

    def consumed_count(self) -> int:
        return self.store.count()

    @contextmanager
    def transaction(self) -> Iterator["AuthorizationRegistry"]:
        """
        Hold the registry lock across a larger operation.

        Digests consumed inside the block are released again, and their events
        dropped, if the block raises. Events are published when it exits cleanly.
        """
        with self._lock:
            frame = _Frame()
            self._frames.append(frame)
            try:
                yield self
            except BaseException:
                self._frames.pop()
                for digest in reversed(frame.consumed):
                    self.store.discard(digest)
                if frame.consumed:
                    logger.warning(
                        "Registry %s rolled back %d consumption(s)", self.identity, len(frame.consumed)
                    )
                raise
            self._frames.pop()
            for event in frame.events:
                self.events.publish(self.identity, event)

    def _emit(self, event: Event) -> None:
        if self._frames:
            self._frames[-1].events.append(event)
        else:
            self.events.publish(self.identity, event)
