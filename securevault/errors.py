"""
SecureVault Errors

Every failure aborts its operation and is raised with a specific code.

Categories:
- SETUP: permanent misuse of initialization, never retried
- AUTHORIZATION: terminal for that exact request; a fresh authorization is needed
- BALANCE: caller input errors
- TRANSFER: external transfer failed, state rolled back; retry may succeed later
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Classification of a failure."""
    SETUP = "SETUP"
    AUTHORIZATION = "AUTHORIZATION"
    BALANCE = "BALANCE"
    TRANSFER = "TRANSFER"


class ErrorCode(str, Enum):
    """Specific failure kinds."""
    ALREADY_INITIALIZED = "ALREADY_INITIALIZED"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    INVALID_AUTHORITY = "INVALID_AUTHORITY"
    INVALID_REGISTRY = "INVALID_REGISTRY"
    ALREADY_CONSUMED = "ALREADY_CONSUMED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    ZERO_AMOUNT = "ZERO_AMOUNT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    INVALID_DEPOSITOR = "INVALID_DEPOSITOR"
    TRANSFER_FAILED = "TRANSFER_FAILED"


class VaultError(Exception):
    """Base class for all SecureVault failures."""

    code: ErrorCode
    category: ErrorCategory
    retryable = False

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.details = details
        super().__init__(message or self.code.value)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "code": self.code.value,
            "category": self.category.value,
            "message": str(self),
            "retryable": self.retryable,
        }
        if self.details:
            d["details"] = self.details
        return d


# Setup

class SetupError(VaultError):
    category = ErrorCategory.SETUP


class AlreadyInitialized(SetupError):
    code = ErrorCode.ALREADY_INITIALIZED


class NotInitialized(SetupError):
    code = ErrorCode.NOT_INITIALIZED


class InvalidAuthority(SetupError):
    code = ErrorCode.INVALID_AUTHORITY


class InvalidRegistry(SetupError):
    code = ErrorCode.INVALID_REGISTRY


# Authorization

class AuthorizationError(VaultError):
    category = ErrorCategory.AUTHORIZATION


class AlreadyConsumed(AuthorizationError):
    code = ErrorCode.ALREADY_CONSUMED


class InvalidSignature(AuthorizationError):
    code = ErrorCode.INVALID_SIGNATURE


# Balance

class BalanceError(VaultError):
    category = ErrorCategory.BALANCE


class InsufficientBalance(BalanceError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class ZeroAmount(BalanceError):
    code = ErrorCode.ZERO_AMOUNT


class InvalidAmount(BalanceError):
    code = ErrorCode.INVALID_AMOUNT


class InvalidRecipient(BalanceError):
    code = ErrorCode.INVALID_RECIPIENT


class InvalidDepositor(BalanceError):
    code = ErrorCode.INVALID_DEPOSITOR


# Transfer

class TransferFailed(VaultError):
    code = ErrorCode.TRANSFER_FAILED
    category = ErrorCategory.TRANSFER
    retryable = True
