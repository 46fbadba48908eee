"""
Logging configuration for SecureVault.

Provides structured JSON logging for audit trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems like ELK, Splunk, or CloudWatch.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        # amounts may exceed float precision; keep them as strings
        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    Records deposits, authorization decisions, withdrawals and
    security-relevant rejections.
    """

    def __init__(self, name: str = "securevault.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def deposit(self, vault_identity: str, depositor: str, amount: int, total_held: int) -> None:
        self._log(
            logging.INFO,
            "DEPOSIT",
            vault_identity=vault_identity,
            depositor=depositor,
            amount=str(amount),
            total_held=str(total_held),
            message=f"Deposit of {amount} by {depositor}"
        )

    def authorization_consumed(self, digest: str, vault_identity: str, recipient: str, amount: int) -> None:
        self._log(
            logging.INFO,
            "AUTHORIZATION_CONSUMED",
            digest=digest,
            vault_identity=vault_identity,
            recipient=recipient,
            amount=str(amount),
            message=f"Authorization {digest} consumed"
        )

    def authorization_rejected(self, digest: Optional[str], reason: str) -> None:
        """Log a rejected authorization."""
        self._log(
            logging.WARNING,
            "AUTHORIZATION_REJECTED",
            digest=digest,
            reason=reason,
            message=f"Authorization rejected: {reason}"
        )

    def withdrawal(
        self,
        vault_identity: str,
        recipient: str,
        amount: int,
        nonce: int,
        transfer_id: Optional[str] = None
    ) -> None:
        self._log(
            logging.INFO,
            "WITHDRAWAL",
            vault_identity=vault_identity,
            recipient=recipient,
            amount=str(amount),
            nonce=str(nonce),
            transfer_id=transfer_id,
            message=f"Withdrawal of {amount} to {recipient}"
        )

    def withdrawal_rejected(self, vault_identity: str, recipient: str, amount: int, reason: str) -> None:
        self._log(
            logging.WARNING,
            "WITHDRAWAL_REJECTED",
            vault_identity=vault_identity,
            recipient=recipient,
            amount=str(amount),
            reason=reason,
            message=f"Withdrawal rejected: {reason}"
        )

    def withdrawal_rolled_back(self, vault_identity: str, recipient: str, amount: int, error: str) -> None:
        """Log a withdrawal undone because the external transfer failed."""
        self._log(
            logging.ERROR,
            "WITHDRAWAL_ROLLED_BACK",
            vault_identity=vault_identity,
            recipient=recipient,
            amount=str(amount),
            error=error,
            message=f"Transfer failed, withdrawal rolled back: {error}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
