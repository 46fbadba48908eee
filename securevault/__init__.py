"""
SecureVault Reference Implementation

Version: 1.0.0
License: Apache 2.0

Value custody that releases funds only against a cryptographically
authorized, single-use withdrawal instruction.

An authorization is a recoverable secp256k1 signature over:
    SHA-256(PREAMBLE || SHA-256(vault || recipient || amount || nonce || network))

The registry accepts each authorization at most once. The vault consumes the
authorization and decrements its balance before any value leaves.

Usage:
    from securevault import (
        AuthoritySigner,
        AuthorizationRegistry,
        ExecutionContext,
        ValueVault,
    )

    authority = AuthoritySigner.generate()

    registry = AuthorizationRegistry()
    registry.initialize(authority.identity)

    vault = ValueVault("vault-001")
    vault.initialize(registry)
    vault.deposit("alice", 100)

    ctx = ExecutionContext(network_id=1)
    sig = authority.authorize("vault-001", "bob", 10, 1, ctx.network_id)
    receipt = vault.withdraw("bob", 10, 1, sig, ctx)
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Encoding and hashing
from .encoding import EncodingError, encode_identity, encode_uint256, pack_authorization
from .hashing import (
    SIGNING_PREAMBLE,
    AuthorizationRequest,
    authorization_digest,
    format_digest,
    parse_digest,
    sha256_digest,
    signing_hash,
)

# Signing
from .signing import (
    AuthoritySigner,
    RecoverableSignature,
    SignatureFormatError,
    generate_signing_key,
    normalize_identity,
    recover_signer,
)

# Errors
from .errors import (
    AlreadyConsumed,
    AlreadyInitialized,
    AuthorizationError,
    BalanceError,
    ErrorCategory,
    ErrorCode,
    InsufficientBalance,
    InvalidAmount,
    InvalidAuthority,
    InvalidDepositor,
    InvalidRecipient,
    InvalidRegistry,
    InvalidSignature,
    NotInitialized,
    SetupError,
    TransferFailed,
    VaultError,
    ZeroAmount,
)

# Events
from .events import (
    AuthorizationConsumed,
    Deposit,
    Event,
    EventLog,
    EventRecord,
    EventSink,
    SignerSet,
    VaultInitialized,
    Withdrawal,
)

# Stores
from .stores import (
    ConsumedStore,
    InMemoryConsumedStore,
    InMemoryLedgerStore,
    LedgerStore,
    SqliteConsumedStore,
    SqliteDatabase,
    SqliteLedgerStore,
)

# Context and transfer
from .context import ExecutionContext
from .transfer import InMemoryTransferBackend, Payout, TransferBackend, TransferResult

# Components
from .registry import AuthorizationReceipt, AuthorizationRegistry
from .vault import ValueVault, WithdrawalReceipt


__all__ = [
    "__version__",

    # Encoding / hashing
    "EncodingError",
    "encode_identity",
    "encode_uint256",
    "pack_authorization",
    "SIGNING_PREAMBLE",
    "AuthorizationRequest",
    "authorization_digest",
    "format_digest",
    "parse_digest",
    "sha256_digest",
    "signing_hash",

    # Signing
    "AuthoritySigner",
    "RecoverableSignature",
    "SignatureFormatError",
    "generate_signing_key",
    "normalize_identity",
    "recover_signer",

    # Errors
    "AlreadyConsumed",
    "AlreadyInitialized",
    "AuthorizationError",
    "BalanceError",
    "ErrorCategory",
    "ErrorCode",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidAuthority",
    "InvalidDepositor",
    "InvalidRecipient",
    "InvalidRegistry",
    "InvalidSignature",
    "NotInitialized",
    "SetupError",
    "TransferFailed",
    "VaultError",
    "ZeroAmount",

    # Events
    "AuthorizationConsumed",
    "Deposit",
    "Event",
    "EventLog",
    "EventRecord",
    "EventSink",
    "SignerSet",
    "VaultInitialized",
    "Withdrawal",

    # Stores
    "ConsumedStore",
    "InMemoryConsumedStore",
    "InMemoryLedgerStore",
    "LedgerStore",
    "SqliteConsumedStore",
    "SqliteDatabase",
    "SqliteLedgerStore",

    # Context / transfer
    "ExecutionContext",
    "InMemoryTransferBackend",
    "Payout",
    "TransferBackend",
    "TransferResult",

    # Components
    "AuthorizationReceipt",
    "AuthorizationRegistry",
    "ValueVault",
    "WithdrawalReceipt",
]
