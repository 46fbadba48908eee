"""
SecureVault Value Vault

Holds deposited value and releases it only against an authorization that the
bound AuthorizationRegistry verifies and consumes.

Withdrawal ordering:
    checks -> registry consumes digest -> total decremented -> external transfer

The registry consumption and the decrement both happen before control leaves
the vault. If the transfer fails or is interrupted, both are undone before the
failure is raised, so neither the caller nor the transfer backend can observe
one without the other. On SQLite stores that share a database nothing is
committed until the transfer settles, so a crash mid-transfer leaves the
authorization unspent and the total intact.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .context import ExecutionContext
from .encoding import UINT256_MAX, EncodingError, encode_identity
from .errors import (
    AlreadyInitialized,
    InsufficientBalance,
    InvalidAmount,
    InvalidDepositor,
    InvalidRecipient,
    InvalidRegistry,
    NotInitialized,
    TransferFailed,
    VaultError,
    ZeroAmount,
)
from .events import Deposit, Event, EventLog, EventSink, VaultInitialized, Withdrawal
from .logging_config import audit_log
from .registry import AuthorizationRegistry
from .signing import RecoverableSignature
from .stores import InMemoryLedgerStore, LedgerStore
from .transfer import InMemoryTransferBackend, TransferBackend

logger = logging.getLogger(__name__)

REGISTRY_IDENTITY_KEY = "registry_identity"


@dataclass(frozen=True)
class WithdrawalReceipt:
    """Result of a successful withdrawal."""
    recipient: str
    amount: int
    nonce: int
    digest: str
    transfer_id: Optional[str]
    total_held: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "digest": self.digest,
            "transfer_id": self.transfer_id,
            "total_held": self.total_held,
        }


def _check_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise ZeroAmount("Amount must be greater than zero")
    if amount > UINT256_MAX:
        raise InvalidAmount("Amount exceeds uint256 range")
    return amount


def _is_valid_identity(identity: Any) -> bool:
    try:
        encode_identity(identity)
    except EncodingError:
        return False
    return True


class ValueVault:
    """
    Custodies value for depositors.

    Usage:
        vault = ValueVault("vault-001", transfer_backend=backend)
        vault.initialize(registry)

        vault.deposit("alice", 100)
        vault.withdraw("bob", 10, nonce=1, signature=sig, context=ExecutionContext(network_id=1))
    """

    def __init__(
        self,
        identity: str,
        transfer_backend: Optional[TransferBackend] = None,
        store: Optional[LedgerStore] = None,
        events: Optional[EventSink] = None
    ):
        if not _is_valid_identity(identity):
            raise ValueError(f"Invalid vault identity: {identity!r}")

        self.identity = identity
        self.transfer_backend = transfer_backend or InMemoryTransferBackend()
        self.store = store or InMemoryLedgerStore()
        self.events = events or EventLog()
        self._lock = threading.RLock()
        self._registry: Optional[AuthorizationRegistry] = None
        self._registry_identity: Optional[str] = self.store.get_meta(REGISTRY_IDENTITY_KEY)

    @property
    def initialized(self) -> bool:
        return self._registry_identity is not None

    @property
    def registry(self) -> Optional[AuthorizationRegistry]:
        return self._registry

    def initialize(self, registry: AuthorizationRegistry) -> None:
        """
        Bind the registry this vault trusts. Allowed exactly once.

        Raises:
            AlreadyInitialized: a registry is already bound
            InvalidRegistry: registry is None or not a registry
        """
        with self._lock:
            if self.initialized:
                raise AlreadyInitialized("Vault already initialized")
            if registry is None:
                raise InvalidRegistry("Registry must not be None")
            if not callable(getattr(registry, "verify_and_consume", None)):
                raise InvalidRegistry(f"Not an authorization registry: {type(registry).__name__}")

            self.store.set_meta(REGISTRY_IDENTITY_KEY, registry.identity)
            self._registry_identity = registry.identity
            self._registry = registry
            self._emit(VaultInitialized(registry_identity=registry.identity))
            logger.info("Vault %s bound to registry %s", self.identity, registry.identity)

    def attach(self, registry: AuthorizationRegistry) -> None:
        """
        Reconnect the registry recorded in a persistent store after a restart.

        Only the registry the vault was originally initialized with is accepted.
        """
        with self._lock:
            if not self.initialized:
                raise NotInitialized("Vault was never initialized; use initialize()")
            if self._registry is not None:
                raise AlreadyInitialized("Registry already attached")
            if registry is None or getattr(registry, "identity", None) != self._registry_identity:
                raise InvalidRegistry(f"Vault is bound to registry {self._registry_identity}")
            self._registry = registry

    def deposit(self, depositor: str, amount: int) -> int:
        """
        Accept value from a depositor. No authorization required.

        Returns:
            The new total held

        Raises:
            ZeroAmount: amount <= 0
            InvalidAmount: amount not an integer, or total would overflow
            InvalidDepositor: depositor identity empty or too long
        """
        with self._lock:
            amount = _check_amount(amount)
            if not _is_valid_identity(depositor):
                raise InvalidDepositor(f"Invalid depositor: {depositor!r}")
            if self.store.get_total() + amount > UINT256_MAX:
                raise InvalidAmount("Deposit would overflow total held")

            with self.store.transaction():
                self.store.credit_entry(depositor, amount)
                total = self.store.adjust_total(amount)

            self._emit(Deposit(depositor=depositor, amount=amount))
            audit_log.deposit(self.identity, depositor, amount, total)
            return total

    def deposit_from(self, context: ExecutionContext, amount: int) -> int:
        """Deposit on behalf of the context's caller."""
        return self.deposit(context.caller, amount)

    def withdraw(
        self,
        recipient: str,
        amount: int,
        nonce: int,
        signature: Union[RecoverableSignature, bytes, str],
        context: ExecutionContext
    ) -> WithdrawalReceipt:
        """
        Release value against a signed authorization.

        Raises:
            NotInitialized: no registry bound
            InvalidRecipient: recipient empty
            ZeroAmount / InvalidAmount: bad amount
            InsufficientBalance: amount exceeds total held
            AlreadyConsumed / InvalidSignature: from the registry, unchanged
            TransferFailed: external transfer failed; nothing was changed
        """
        with self._lock:
            try:
                return self._withdraw(recipient, amount, nonce, signature, context)
            except TransferFailed:
                raise
            except VaultError as e:
                audit_log.withdrawal_rejected(self.identity, str(recipient), amount, e.code.value)
                raise

    def _withdraw(self, recipient, amount, nonce, signature, context) -> WithdrawalReceipt:
        if self._registry is None:
            raise NotInitialized("Vault has no bound registry")
        if not _is_valid_identity(recipient):
            raise InvalidRecipient(f"Invalid recipient: {recipient!r}")
        amount = _check_amount(amount)
        if amount > self.store.get_total():
            raise InsufficientBalance(
                "Insufficient vault balance", requested=amount, available=self.store.get_total()
            )

        # Both stores may share one SqliteDatabase; the outer transaction keeps
        # consumption and decrement uncommitted until the transfer has settled.
        compensated = False
        failure: Optional[BaseException] = None
        with self.store.transaction():
            try:
                with self._registry.transaction():
                    receipt = self._registry.verify_and_consume(
                        self.identity, recipient, amount, nonce, context.network_id, signature
                    )
                    self.store.adjust_total(-amount)

                    try:
                        result = self.transfer_backend.transfer(recipient, amount)
                    except BaseException as e:
                        self._rollback(recipient, amount, repr(e))
                        compensated = True
                        if not isinstance(e, Exception):
                            raise
                        raise TransferFailed(f"Transfer failed: {e}", recipient=recipient) from e
                    if not result.ok:
                        self._rollback(recipient, amount, result.error or "unknown")
                        compensated = True
                        raise TransferFailed(f"Transfer failed: {result.error}", recipient=recipient)
            except BaseException as e:
                if not compensated:
                    raise
                # commit the compensation so withdrawals nested in the
                # transfer callback are kept
                failure = e

        if failure is not None:
            raise failure

        # registry events are published on leaving the transaction, so the
        # consumption precedes the withdrawal in event order
        self._emit(Withdrawal(recipient=recipient, amount=amount, nonce=nonce))
        audit_log.withdrawal(self.identity, recipient, amount, nonce, result.transfer_id)

        return WithdrawalReceipt(
            recipient=recipient,
            amount=amount,
            nonce=nonce,
            digest=receipt.digest_hex,
            transfer_id=result.transfer_id,
            total_held=self.store.get_total(),
        )

    def _rollback(self, recipient: str, amount: int, error: str) -> None:
        self.store.adjust_total(amount)
        audit_log.withdrawal_rolled_back(self.identity, recipient, amount, error)

    def get_balance(self) -> int:
        """Total value currently held."""
        return self.store.get_total()

    def get_user_balance(self, identity: str) -> int:
        """Accumulated deposits of one depositor."""
        return self.store.get_entry(identity)

    def _emit(self, event: Event) -> None:
        self.events.publish(self.identity, event)
