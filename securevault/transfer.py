"""
SecureVault External Transfer

The vault moves value out through a TransferBackend. This is the only point
where control leaves the vault's trust boundary.
"""

import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one external transfer."""
    ok: bool
    transfer_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, transfer_id: Optional[str] = None) -> "TransferResult":
        return cls(ok=True, transfer_id=transfer_id or secrets.token_hex(8))

    @classmethod
    def failure(cls, error: str) -> "TransferResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class Payout:
    """Record of a completed transfer."""
    transfer_id: str
    recipient: str
    amount: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transfer_id": self.transfer_id,
            "recipient": self.recipient,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


class TransferBackend(ABC):
    """
    Abstract interface for moving value to a recipient.

    Implementations report failure either by returning a failed
    TransferResult or by raising; the vault treats both the same way.
    """

    @abstractmethod
    def transfer(self, recipient: str, amount: int) -> TransferResult:
        pass


class InMemoryTransferBackend(TransferBackend):
    """
    Records payouts in memory.

    WARNING: Moves no real value. For development, tests and the demo.

    Args:
        fail_with: if set, every transfer fails with this error
        on_transfer: called before the payout is recorded; may reenter the vault
    """

    def __init__(
        self,
        fail_with: Optional[str] = None,
        on_transfer: Optional[Callable[[str, int], None]] = None
    ):
        self.fail_with = fail_with
        self.on_transfer = on_transfer
        self._payouts: List[Payout] = []
        self._lock = threading.Lock()

    def transfer(self, recipient: str, amount: int) -> TransferResult:
        if self.on_transfer is not None:
            self.on_transfer(recipient, amount)
        if self.fail_with:
            return TransferResult.failure(self.fail_with)

        result = TransferResult.success()
        with self._lock:
            self._payouts.append(Payout(result.transfer_id, recipient, amount))
        return result

    @property
    def payouts(self) -> List[Payout]:
        with self._lock:
            return self._payouts[:]

    def total_paid(self, recipient: Optional[str] = None) -> int:
        return sum(p.amount for p in self.payouts if recipient is None or p.recipient == recipient)
