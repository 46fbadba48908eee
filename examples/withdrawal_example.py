#!/usr/bin/env python3
"""
SecureVault Example - Complete End-to-End Flow

Walks through setup, deposits, an authorized withdrawal, the rejections a
vault must produce, and a withdrawal whose bank transfer fails and is
rolled back. State is kept in a SQLite file so the final step can show a
restart picking up where it left off.

Run with: python examples/withdrawal_example.py
"""

import os
import tempfile
from typing import Optional

from securevault import (
    AuthoritySigner,
    AuthorizationRegistry,
    EventLog,
    ExecutionContext,
    InMemoryTransferBackend,
    SqliteConsumedStore,
    SqliteDatabase,
    SqliteLedgerStore,
    ValueVault,
    VaultError,
)

NETWORK_ID = 31337


def open_components(db: SqliteDatabase, events: EventLog, backend: InMemoryTransferBackend):
    registry = AuthorizationRegistry(
        "registry-001", store=SqliteConsumedStore(db, "registry-001"), events=events
    )
    vault = ValueVault(
        "vault-001", transfer_backend=backend, store=SqliteLedgerStore(db, "vault-001"), events=events
    )
    return registry, vault


def try_withdraw(vault: ValueVault, label: str, recipient: str, amount: int, nonce: int,
                 signature, context: ExecutionContext) -> Optional[str]:
    try:
        receipt = vault.withdraw(recipient, amount, nonce, signature, context)
    except VaultError as e:
        retry = " (retryable)" if e.retryable else ""
        print(f"  ✗ {label}: {e.code.value}{retry}")
        return None
    print(f"  ✓ {label}: paid {amount} to {recipient} [{receipt.transfer_id}], "
          f"vault holds {receipt.total_held}")
    return receipt.digest


def main():
    print("=" * 70)
    print("SecureVault - Authorized Withdrawal Example")
    print("=" * 70)

    workdir = tempfile.mkdtemp(prefix="securevault-")
    db_path = os.path.join(workdir, "vault.db")

    # =========================================================================
    # SETUP
    # =========================================================================

    print("\n" + "-" * 70)
    print("SETUP")
    print("-" * 70)

    authority = AuthoritySigner.generate(key_id="kid:treasury-2026")
    print(f"\nSigning authority: {authority.identity}")

    events = EventLog()
    backend = InMemoryTransferBackend()
    db = SqliteDatabase(db_path)
    registry, vault = open_components(db, events, backend)

    registry.initialize(authority.identity)
    vault.initialize(registry)
    print(f"Vault {vault.identity} bound to {registry.identity}")

    context = ExecutionContext(network_id=NETWORK_ID, caller="alice")
    vault.deposit_from(context, 1_000)
    vault.deposit_from(context.with_caller("carol"), 250)
    print(f"Deposits received, vault holds {vault.get_balance()}")

    # =========================================================================
    # WITHDRAWALS
    # =========================================================================

    print("\n" + "-" * 70)
    print("WITHDRAWALS")
    print("-" * 70 + "\n")

    sig = authority.authorize(vault.identity, "bob", 400, 1, NETWORK_ID)
    digest = try_withdraw(vault, "authorized", "bob", 400, 1, sig, context)
    try_withdraw(vault, "replayed", "bob", 400, 1, sig, context)
    try_withdraw(vault, "amount altered", "bob", 401, 1, sig, context)

    outsider = AuthoritySigner.generate()
    forged = outsider.authorize(vault.identity, "mallory", 100, 2, NETWORK_ID)
    try_withdraw(vault, "unknown signer", "mallory", 100, 2, forged, context)

    other_network = authority.authorize(vault.identity, "bob", 100, 3, 1)
    try_withdraw(vault, "other network", "bob", 100, 3, other_network, context)

    too_much = authority.authorize(vault.identity, "bob", 5_000, 4, NETWORK_ID)
    try_withdraw(vault, "overdraw", "bob", 5_000, 4, too_much, context)

    # =========================================================================
    # TRANSFER FAILURE
    # =========================================================================

    print("\n" + "-" * 70)
    print("TRANSFER FAILURE")
    print("-" * 70 + "\n")

    payout = authority.authorize(vault.identity, "dave", 200, 5, NETWORK_ID)
    backend.fail_with = "beneficiary bank unavailable"
    try_withdraw(vault, "bank down", "dave", 200, 5, payout, context)
    print(f"  vault still holds {vault.get_balance()}")
    backend.fail_with = None
    try_withdraw(vault, "retried", "dave", 200, 5, payout, context)

    db.close()

    # =========================================================================
    # RESTART
    # =========================================================================

    print("\n" + "-" * 70)
    print("RESTART")
    print("-" * 70 + "\n")

    db = SqliteDatabase(db_path)
    registry, vault = open_components(db, EventLog(), backend)
    vault.attach(registry)
    print(f"  signer restored: {registry.signing_authority == authority.identity}")
    print(f"  vault holds {vault.get_balance()}, alice deposited {vault.get_user_balance('alice')}")
    print(f"  first withdrawal consumed: {registry.is_consumed(digest)}")
    try_withdraw(vault, "replayed after restart", "bob", 400, 1, sig, context)
    db.close()

    # =========================================================================
    # EVENTS
    # =========================================================================

    print("\n" + "-" * 70)
    print("EVENTS")
    print("-" * 70)

    for record in events.query():
        fields = {k: v for k, v in record.event.to_dict().items() if k != "event"}
        print(f"  {record.sequence:>2}. [{record.source}] {record.event.name} {fields}")

    print(f"\nPayouts: {[p.to_dict()['recipient'] for p in backend.payouts]}")
    print(f"State kept in {db_path}")

    print("\n" + "=" * 70)
    print("Example Complete")
    print("=" * 70)


if __name__ == "__main__":
    main()
