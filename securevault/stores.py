"""
SecureVault State Stores

Storage interfaces for the two exclusively-owned pieces of state:

- ConsumedStore: the registry's consumed authorization digests plus metadata
- LedgerStore: the vault's per-depositor entries, total held, plus metadata

In-memory implementations are for tests and single-process use. The SQLite
implementations persist across restarts.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Set, Union


class ConsumedStore(ABC):
    """
    Abstract interface for tracking consumed authorization digests.

    Implementations must be:
    - Consistent (add() returns True at most once per digest)
    - Exact (no false negatives on contains())
    """

    @abstractmethod
    def add(self, digest: bytes) -> bool:
        """
        Mark a digest consumed.

        Returns:
            True if newly consumed, False if already present
        """
        pass

    @abstractmethod
    def contains(self, digest: bytes) -> bool:
        """Check whether a digest has been consumed."""
        pass

    @abstractmethod
    def discard(self, digest: bytes) -> None:
        """Remove a digest. Only used to roll back an uncommitted consumption."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass

    @abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        pass


class LedgerStore(ABC):
    """Abstract interface for vault balances."""

    @abstractmethod
    def get_total(self) -> int:
        pass

    @abstractmethod
    def adjust_total(self, delta: int) -> int:
        """
        Add delta (may be negative) to the total held.

        Returns:
            The new total

        Raises:
            ValueError: the total would become negative
        """
        pass

    @abstractmethod
    def get_entry(self, identity: str) -> int:
        """Accumulated deposits for an identity, zero if unknown."""
        pass

    @abstractmethod
    def credit_entry(self, identity: str, amount: int) -> int:
        """Increase an identity's entry. Returns the new entry."""
        pass

    @abstractmethod
    def get_meta(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_meta(self, key: str, value: str) -> None:
        pass

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes so they commit together."""
        yield


class InMemoryConsumedStore(ConsumedStore):
    """
    In-memory consumed-digest store.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._consumed: Set[bytes] = set()
        self._meta: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, digest: bytes) -> bool:
        with self._lock:
            if digest in self._consumed:
                return False
            self._consumed.add(digest)
            return True

    def contains(self, digest: bytes) -> bool:
        with self._lock:
            return digest in self._consumed

    def discard(self, digest: bytes) -> None:
        with self._lock:
            self._consumed.discard(digest)

    def count(self) -> int:
        with self._lock:
            return len(self._consumed)

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._meta[key] = value


class InMemoryLedgerStore(LedgerStore):
    """
    In-memory ledger store.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._total = 0
        self._entries: Dict[str, int] = {}
        self._meta: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_total(self) -> int:
        with self._lock:
            return self._total

    def adjust_total(self, delta: int) -> int:
        with self._lock:
            new_total = self._total + delta
            if new_total < 0:
                raise ValueError(f"Total held would become negative: {new_total}")
            self._total = new_total
            return new_total

    def get_entry(self, identity: str) -> int:
        with self._lock:
            return self._entries.get(identity, 0)

    def credit_entry(self, identity: str, amount: int) -> int:
        with self._lock:
            self._entries[identity] = self._entries.get(identity, 0) + amount
            return self._entries[identity]

    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            return self._meta.get(key)

    def set_meta(self, key: str, value: str) -> None:
        with self._lock:
            self._meta[key] = value


# ============================================================
# SQLite
# ============================================================

class SqliteDatabase:
    """
    A single SQLite connection shared by the stores of one process.

    Amounts are stored as decimal TEXT since they may exceed 64 bits.
    Transactions nest; only the outermost one commits or rolls back. A vault
    and its registry share one instance so a withdrawal commits as a unit.
    """

    def __init__(self, path: Union[str, Path] = ":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self.init_schema()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commits on success, rolls back on failure."""
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.execute("ROLLBACK")
                raise
            self._depth -= 1
            if outermost:
                self._conn.execute("COMMIT")

    def query_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def init_schema(self) -> None:
        """Safe to call multiple times (uses IF NOT EXISTS)."""
        with self.transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS meta (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (namespace, key)
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS consumed_authorizations (
                namespace TEXT NOT NULL,
                digest BLOB NOT NULL,
                consumed_at INTEGER NOT NULL,
                PRIMARY KEY (namespace, digest)
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger_entries (
                namespace TEXT NOT NULL,
                identity TEXT NOT NULL,
                amount TEXT NOT NULL,
                PRIMARY KEY (namespace, identity)
            );""")

    def get_meta(self, namespace: str, key: str) -> Optional[str]:
        row = self.query_one(
            "SELECT value FROM meta WHERE namespace=? AND key=?", (namespace, key)
        )
        return row["value"] if row else None

    def set_meta(self, namespace: str, key: str, value: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO meta(namespace, key, value) VALUES(?,?,?)",
                (namespace, key, value)
            )

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class SqliteConsumedStore(ConsumedStore):
    """SQLite-backed consumed-digest store. Uses INSERT OR IGNORE for atomic add."""

    def __init__(self, db: SqliteDatabase, namespace: str = "registry"):
        self.db = db
        self.namespace = namespace

    def add(self, digest: bytes) -> bool:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO consumed_authorizations(namespace, digest, consumed_at) "
                "VALUES(?,?,?)",
                (self.namespace, digest, int(time.time()))
            )
            return cur.rowcount == 1

    def contains(self, digest: bytes) -> bool:
        row = self.db.query_one(
            "SELECT 1 FROM consumed_authorizations WHERE namespace=? AND digest=?",
            (self.namespace, digest)
        )
        return row is not None

    def discard(self, digest: bytes) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "DELETE FROM consumed_authorizations WHERE namespace=? AND digest=?",
                (self.namespace, digest)
            )

    def count(self) -> int:
        row = self.db.query_one(
            "SELECT COUNT(*) AS cnt FROM consumed_authorizations WHERE namespace=?",
            (self.namespace,)
        )
        return row["cnt"]

    def get_meta(self, key: str) -> Optional[str]:
        return self.db.get_meta(self.namespace, key)

    def set_meta(self, key: str, value: str) -> None:
        self.db.set_meta(self.namespace, key, value)


class SqliteLedgerStore(LedgerStore):
    """SQLite-backed ledger store."""

    TOTAL_KEY = "total_held"

    def __init__(self, db: SqliteDatabase, namespace: str = "vault"):
        self.db = db
        self.namespace = namespace

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.db.transaction():
            yield

    def get_total(self) -> int:
        return int(self.db.get_meta(self.namespace, self.TOTAL_KEY) or 0)

    def adjust_total(self, delta: int) -> int:
        with self.db.transaction():
            new_total = self.get_total() + delta
            if new_total < 0:
                raise ValueError(f"Total held would become negative: {new_total}")
            self.db.set_meta(self.namespace, self.TOTAL_KEY, str(new_total))
            return new_total

    def get_entry(self, identity: str) -> int:
        row = self.db.query_one(
            "SELECT amount FROM ledger_entries WHERE namespace=? AND identity=?",
            (self.namespace, identity)
        )
        return int(row["amount"]) if row else 0

    def credit_entry(self, identity: str, amount: int) -> int:
        with self.db.transaction() as conn:
            new_amount = self.get_entry(identity) + amount
            conn.execute(
                "INSERT OR REPLACE INTO ledger_entries(namespace, identity, amount) VALUES(?,?,?)",
                (self.namespace, identity, str(new_amount))
            )
            return new_amount

    def get_meta(self, key: str) -> Optional[str]:
        return self.db.get_meta(self.namespace, key)

    def set_meta(self, key: str, value: str) -> None:
        self.db.set_meta(self.namespace, key, value)
