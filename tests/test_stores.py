"""
SecureVault Store Test Suite

In-memory and SQLite stores, and recovery of registry and vault state
after a restart.
"""

import asyncio
import os
import subprocess
import sys
import tempfile
import textwrap
import unittest

from securevault import (
    AlreadyConsumed,
    AlreadyInitialized,
    AuthoritySigner,
    AuthorizationRegistry,
    ExecutionContext,
    InMemoryConsumedStore,
    InMemoryLedgerStore,
    InMemoryTransferBackend,
    InvalidRegistry,
    NotInitialized,
    SqliteConsumedStore,
    SqliteDatabase,
    SqliteLedgerStore,
    TransferBackend,
    TransferFailed,
    ValueVault,
    authorization_digest,
)

NETWORK = 5


class ConsumedStoreContract:
    """Behaviour every ConsumedStore must have."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_add_once(self):
        digest = b"\x01" * 32
        self.assertTrue(self.store.add(digest))
        self.assertFalse(self.store.add(digest))
        self.assertTrue(self.store.contains(digest))
        self.assertEqual(self.store.count(), 1)

    def test_exact_membership(self):
        self.store.add(b"\x01" * 32)
        self.assertFalse(self.store.contains(b"\x01" * 31 + b"\x02"))

    def test_discard(self):
        digest = b"\x03" * 32
        self.store.add(digest)
        self.store.discard(digest)
        self.assertFalse(self.store.contains(digest))
        self.store.discard(digest)

    def test_meta(self):
        self.assertIsNone(self.store.get_meta("signing_authority"))
        self.store.set_meta("signing_authority", "0xabc")
        self.assertEqual(self.store.get_meta("signing_authority"), "0xabc")


class LedgerStoreContract:
    """Behaviour every LedgerStore must have."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_totals(self):
        self.assertEqual(self.store.get_total(), 0)
        self.assertEqual(self.store.adjust_total(50), 50)
        self.assertEqual(self.store.adjust_total(-20), 30)

    def test_total_never_negative(self):
        self.store.adjust_total(10)
        with self.assertRaises(ValueError):
            self.store.adjust_total(-11)
        self.assertEqual(self.store.get_total(), 10)

    def test_entries(self):
        self.assertEqual(self.store.get_entry("alice"), 0)
        self.assertEqual(self.store.credit_entry("alice", 5), 5)
        self.assertEqual(self.store.credit_entry("alice", 7), 12)

    def test_amounts_beyond_64_bits(self):
        big = 2 ** 200
        self.store.adjust_total(big)
        self.store.credit_entry("whale", big)
        self.assertEqual(self.store.get_total(), big)
        self.assertEqual(self.store.get_entry("whale"), big)


class TestInMemoryConsumedStore(ConsumedStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryConsumedStore()


class TestInMemoryLedgerStore(LedgerStoreContract, unittest.TestCase):
    def make_store(self):
        return InMemoryLedgerStore()


class TestSqliteConsumedStore(ConsumedStoreContract, unittest.TestCase):
    def make_store(self):
        db = SqliteDatabase(":memory:")
        self.addCleanup(db.close)
        return SqliteConsumedStore(db)

    def test_namespaces_isolated(self):
        other = SqliteConsumedStore(self.store.db, namespace="other-registry")
        self.store.add(b"\x09" * 32)
        self.assertFalse(other.contains(b"\x09" * 32))


class TestSqliteLedgerStore(LedgerStoreContract, unittest.TestCase):
    def make_store(self):
        db = SqliteDatabase(":memory:")
        self.addCleanup(db.close)
        return SqliteLedgerStore(db)

    def test_transaction_rolls_back_together(self):
        with self.assertRaises(RuntimeError):
            with self.store.transaction():
                self.store.credit_entry("alice", 5)
                self.store.adjust_total(5)
                raise RuntimeError("abort")
        self.assertEqual(self.store.get_entry("alice"), 0)
        self.assertEqual(self.store.get_total(), 0)


class TestRestart(unittest.TestCase):
    """State written by one process is honoured by the next."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = os.path.join(self.tmp.name, "state", "vault.db")
        self.authority = AuthoritySigner.generate()
        self.context = ExecutionContext(network_id=NETWORK)

    def _open(self):
        db = SqliteDatabase(self.path)
        registry = AuthorizationRegistry("registry-1", store=SqliteConsumedStore(db, "registry-1"))
        vault = ValueVault("vault-1", store=SqliteLedgerStore(db, "vault-1"))
        return db, registry, vault

    def test_state_survives_restart(self):
        db, registry, vault = self._open()
        registry.initialize(self.authority.identity)
        vault.initialize(registry)
        vault.deposit("alice", 100)
        sig = self.authority.authorize("vault-1", "bob", 10, 1, NETWORK)
        vault.withdraw("bob", 10, 1, sig, self.context)
        db.close()

        db, registry, vault = self._open()
        self.addCleanup(db.close)

        self.assertTrue(registry.initialized)
        self.assertEqual(registry.signing_authority, self.authority.identity)
        with self.assertRaises(AlreadyInitialized):
            registry.initialize(self.authority.identity)

        self.assertTrue(vault.initialized)
        self.assertEqual(vault.get_balance(), 90)
        self.assertEqual(vault.get_user_balance("alice"), 100)

        with self.assertRaises(NotInitialized):
            vault.withdraw("bob", 10, 1, sig, self.context)

        vault.attach(registry)
        with self.assertRaises(AlreadyConsumed):
            vault.withdraw("bob", 10, 1, sig, self.context)
        with self.assertRaises(AlreadyInitialized):
            vault.initialize(registry)

    def test_attach_only_original_registry(self):
        db, registry, vault = self._open()
        registry.initialize(self.authority.identity)
        vault.initialize(registry)
        db.close()

        db, registry, vault = self._open()
        self.addCleanup(db.close)
        with self.assertRaises(InvalidRegistry):
            vault.attach(AuthorizationRegistry("impostor"))
        vault.attach(registry)
        with self.assertRaises(AlreadyInitialized):
            vault.attach(registry)

    def test_attach_requires_prior_initialize(self):
        db, registry, vault = self._open()
        self.addCleanup(db.close)
        with self.assertRaises(NotInitialized):
            vault.attach(registry)


class TestSqliteInterruptedTransaction(unittest.TestCase):

    def test_interrupt_leaves_connection_usable(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "vault.db")
            db = SqliteDatabase(path)
            store = SqliteLedgerStore(db)
            with self.assertRaises(KeyboardInterrupt):
                with store.transaction():
                    store.adjust_total(99)
                    raise KeyboardInterrupt()
            store.adjust_total(5)
            db.close()

            db = SqliteDatabase(path)
            self.assertEqual(SqliteLedgerStore(db).get_total(), 5)
            db.close()


class InterruptedBackend(TransferBackend):
    def transfer(self, recipient, amount):
        raise asyncio.CancelledError()


class TestSqliteWithdrawalAtomicity(unittest.TestCase):
    """A withdrawal on shared SQLite stores commits all of its writes or none."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = os.path.join(self.tmp.name, "vault.db")
        self.authority = AuthoritySigner.generate()
        self.context = ExecutionContext(network_id=NETWORK)
        self.backend = InMemoryTransferBackend()

        db, registry, vault = self._open()
        registry.initialize(self.authority.identity)
        vault.initialize(registry)
        vault.deposit("alice", 100)
        db.close()

        self.sig = self.authority.authorize("vault-1", "bob", 10, 1, NETWORK)
        self.digest = authorization_digest("vault-1", "bob", 10, 1, NETWORK)

    def _open(self):
        db = SqliteDatabase(self.path)
        registry = AuthorizationRegistry("registry-1", store=SqliteConsumedStore(db, "registry-1"))
        vault = ValueVault(
            "vault-1", transfer_backend=self.backend, store=SqliteLedgerStore(db, "vault-1")
        )
        if vault.initialized:
            vault.attach(registry)
        return db, registry, vault

    def _assert_persisted(self, total, consumed):
        db, registry, vault = self._open()
        try:
            self.assertEqual(vault.get_balance(), total)
            self.assertEqual(registry.is_consumed(self.digest), consumed)
        finally:
            db.close()

    def test_failed_transfer_persists_nothing(self):
        db, registry, vault = self._open()
        self.backend.fail_with = "bank offline"
        with self.assertRaises(TransferFailed):
            vault.withdraw("bob", 10, 1, self.sig, self.context)
        db.close()
        self._assert_persisted(100, False)

        db, registry, vault = self._open()
        self.backend.fail_with = None
        vault.withdraw("bob", 10, 1, self.sig, self.context)
        db.close()
        self._assert_persisted(90, True)

    def test_cancelled_transfer_persists_nothing(self):
        db, registry, vault = self._open()
        vault.transfer_backend = InterruptedBackend()
        with self.assertRaises(asyncio.CancelledError):
            vault.withdraw("bob", 10, 1, self.sig, self.context)
        db.close()
        self._assert_persisted(100, False)

    def test_nested_success_survives_outer_failure(self):
        db, registry, vault = self._open()
        inner_sig = self.authority.authorize("vault-1", "carol", 20, 7, NETWORK)
        inner_digest = authorization_digest("vault-1", "carol", 20, 7, NETWORK)

        def reenter(recipient, amount):
            if recipient == "bob":
                vault.withdraw("carol", 20, 7, inner_sig, self.context)
                self.backend.fail_with = "outer leg failed"

        self.backend.on_transfer = reenter
        with self.assertRaises(TransferFailed):
            vault.withdraw("bob", 10, 1, self.sig, self.context)
        db.close()

        self._assert_persisted(80, False)
        db, registry, vault = self._open()
        self.addCleanup(db.close)
        self.assertTrue(registry.is_consumed(inner_digest))
        self.assertEqual(self.backend.total_paid("carol"), 20)

    def test_crash_during_transfer_persists_nothing(self):
        """The process dies while the transfer is in flight."""
        script = textwrap.dedent("""
            import os, sys
            from securevault import (
                AuthorizationRegistry, ExecutionContext, SqliteConsumedStore,
                SqliteDatabase, SqliteLedgerStore, TransferBackend, ValueVault,
            )

            class CrashingBackend(TransferBackend):
                def transfer(self, recipient, amount):
                    os._exit(3)

            db = SqliteDatabase(sys.argv[1])
            registry = AuthorizationRegistry("registry-1", store=SqliteConsumedStore(db, "registry-1"))
            vault = ValueVault("vault-1", transfer_backend=CrashingBackend(),
                               store=SqliteLedgerStore(db, "vault-1"))
            vault.attach(registry)
            vault.withdraw("bob", 10, 1, sys.argv[2], ExecutionContext(network_id=int(sys.argv[3])))
        """)
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(p for p in (root, env.get("PYTHONPATH")) if p)

        proc = subprocess.run(
            [sys.executable, "-c", script, self.path, self.sig.to_hex(), str(NETWORK)],
            env=env, capture_output=True,
        )
        self.assertEqual(proc.returncode, 3, proc.stderr.decode("utf-8", "replace"))

        self._assert_persisted(100, False)
        db, registry, vault = self._open()
        self.addCleanup(db.close)
        vault.withdraw("bob", 10, 1, self.sig, self.context)
        self.assertEqual(vault.get_balance(), 90)


if __name__ == "__main__":
    unittest.main()
