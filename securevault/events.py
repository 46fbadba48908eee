"""
SecureVault Events

Observable, ordered, immutable records of state changes.

Events produced inside an atomic operation are buffered by the component and
published only once the operation commits; a rolled-back operation leaves no
event behind.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type


@dataclass(frozen=True)
class Event:
    """Base class for all events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, **asdict(self)}


@dataclass(frozen=True)
class Deposit(Event):
    depositor: str
    amount: int


@dataclass(frozen=True)
class Withdrawal(Event):
    recipient: str
    amount: int
    nonce: int


@dataclass(frozen=True)
class AuthorizationConsumed(Event):
    digest: str
    vault_identity: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class SignerSet(Event):
    identity: str


@dataclass(frozen=True)
class VaultInitialized(Event):
    registry_identity: str


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.__name__: cls
    for cls in (Deposit, Withdrawal, AuthorizationConsumed, SignerSet, VaultInitialized)
}


@dataclass(frozen=True)
class EventRecord:
    """A published event with its position in the log."""
    sequence: int
    source: str
    event: Event
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "source": self.source,
            "emitted_at": self.emitted_at.isoformat().replace("+00:00", "Z"),
            **self.event.to_dict(),
        }


class EventSink(ABC):
    """Abstract interface for publishing events."""

    @abstractmethod
    def publish(self, source: str, event: Event) -> EventRecord:
        """Append an event. Returns the stored record."""
        pass

    @abstractmethod
    def query(
        self,
        event_type: Optional[Type[Event]] = None,
        source: Optional[str] = None,
        since_sequence: Optional[int] = None
    ) -> List[EventRecord]:
        """Query published events in publication order."""
        pass


class EventLog(EventSink):
    """
    In-memory append-only event log.

    Sequence numbers start at 1 and are strictly increasing.
    """

    def __init__(self):
        self._records: List[EventRecord] = []
        self._lock = threading.Lock()

    def publish(self, source: str, event: Event) -> EventRecord:
        with self._lock:
            record = EventRecord(sequence=len(self._records) + 1, source=source, event=event)
            self._records.append(record)
            return record

    def query(
        self,
        event_type: Optional[Type[Event]] = None,
        source: Optional[str] = None,
        since_sequence: Optional[int] = None
    ) -> List[EventRecord]:
        with self._lock:
            records = self._records[:]

        if event_type:
            records = [r for r in records if isinstance(r.event, event_type)]
        if source:
            records = [r for r in records if r.source == source]
        if since_sequence is not None:
            records = [r for r in records if r.sequence > since_sequence]

        return records

    def events(self, event_type: Optional[Type[Event]] = None) -> List[Event]:
        """Published events without their records."""
        return [r.event for r in self.query(event_type=event_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
