#!/usr/bin/env python3
"""
SecureVault Command Line Interface

Usage:
    securevault keygen [--output <file>] [--key-id <id>]
    securevault digest --vault <id> --recipient <id> --amount <n> --nonce <n> --network <n>
    securevault sign --key <file> --vault <id> --recipient <id> --amount <n> --nonce <n> --network <n>
    securevault recover --digest <digest> --signature <hex>
    securevault demo
"""

import argparse
import json
import sys


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def _tuple_args(args):
    return (args.vault, args.recipient, args.amount, args.nonce, args.network)


def cmd_keygen(args):
    """Generate an authority signing key."""
    from securevault.signing import AuthoritySigner

    signer = AuthoritySigner.generate(key_id=args.key_id)

    if args.output:
        save_json(signer.to_dict(), args.output)
        print(f"Key saved to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(signer.to_dict(), indent=2))

    print(signer.identity)
    return 0


def cmd_digest(args):
    """Compute the authorization digest for a withdrawal."""
    from securevault.hashing import authorization_digest, format_digest

    print(format_digest(authorization_digest(*_tuple_args(args))))
    return 0


def cmd_sign(args):
    """Sign a withdrawal authorization."""
    from securevault.hashing import authorization_digest, format_digest
    from securevault.signing import AuthoritySigner

    signer = AuthoritySigner.from_dict(load_json(args.key))
    digest = authorization_digest(*_tuple_args(args))
    signature = signer.sign_digest(digest)

    print(json.dumps({
        "signer": signer.identity,
        "digest": format_digest(digest),
        "signature": signature.to_hex(),
        **signature.to_dict(),
    }, indent=2))
    return 0


def cmd_recover(args):
    """Recover the signer of an authorization digest."""
    from securevault.hashing import parse_digest, signing_hash
    from securevault.signing import SignatureFormatError, recover_signer

    try:
        signer = recover_signer(signing_hash(parse_digest(args.digest)), args.signature)
    except (SignatureFormatError, ValueError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(signer)
    return 0


def cmd_demo(args):
    """Run a deposit / withdraw / replay demonstration."""
    from securevault import (
        AuthoritySigner,
        AuthorizationRegistry,
        EventLog,
        ExecutionContext,
        ValueVault,
        VaultError,
    )

    print("=" * 60)
    print("SecureVault Demonstration")
    print("=" * 60)

    events = EventLog()
    authority = AuthoritySigner.generate()
    outsider = AuthoritySigner.generate()
    context = ExecutionContext(network_id=31337, caller="depositor")

    registry = AuthorizationRegistry(events=events)
    registry.initialize(authority.identity)
    vault = ValueVault("demo-vault", events=events)
    vault.initialize(registry)

    vault.deposit_from(context, 100)
    print(f"\nDeposited 100, total held: {vault.get_balance()}")

    def attempt(label, amount, nonce, signer):
        signature = signer.authorize(vault.identity, "recipient", amount, nonce, context.network_id)
        try:
            receipt = vault.withdraw("recipient", amount, nonce, signature, context)
            print(f"✓ {label}: withdrew {amount}, total held {receipt.total_held}")
        except VaultError as e:
            print(f"✗ {label}: {e.code.value}")
        return signature

    signature = attempt("authorized withdrawal", 10, 1, authority)
    try:
        vault.withdraw("recipient", 10, 1, signature, context)
    except VaultError as e:
        print(f"✗ replay: {e.code.value}")
    attempt("foreign signer", 10, 2, outsider)
    attempt("overdraw", 200, 3, authority)

    print(f"\nEvents ({len(events)}):")
    for record in events.query():
        print(f"  {record.sequence}. {record.event.name}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="SecureVault: authorized, single-use withdrawals",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def add_tuple_args(p):
        p.add_argument("-V", "--vault", required=True, help="Vault identity")
        p.add_argument("-r", "--recipient", required=True, help="Recipient identity")
        p.add_argument("-a", "--amount", required=True, type=int, help="Amount in base units")
        p.add_argument("-n", "--nonce", required=True, type=int, help="Caller-chosen nonce")
        p.add_argument("-N", "--network", required=True, type=int, help="Network identifier")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate authority signing key")
    keygen_parser.add_argument("-o", "--output", help="Output file for key")
    keygen_parser.add_argument("-k", "--key-id", help="Key identifier")

    # digest
    digest_parser = subparsers.add_parser("digest", help="Compute authorization digest")
    add_tuple_args(digest_parser)

    # sign
    sign_parser = subparsers.add_parser("sign", help="Sign a withdrawal authorization")
    sign_parser.add_argument("-k", "--key", required=True, help="Key JSON file")
    add_tuple_args(sign_parser)

    # recover
    recover_parser = subparsers.add_parser("recover", help="Recover signer from signature")
    recover_parser.add_argument("-d", "--digest", required=True, help="Authorization digest")
    recover_parser.add_argument("-s", "--signature", required=True, help="Signature hex")

    # demo
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args()

    commands = {
        "keygen": cmd_keygen,
        "digest": cmd_digest,
        "sign": cmd_sign,
        "recover": cmd_recover,
        "demo": cmd_demo,
    }
    if args.command in commands:
        sys.exit(commands[args.command](args))
    parser.print_help()


if __name__ == "__main__":
    main()
