# Cipherkeep - Security Audit Log
#
# Append-only structured log of key lifecycle and crypto events.
# Never carries a master password, auth hash, raw key or plaintext:
# details are limited to counts, lengths, iteration numbers, item ids
# and key fingerprints.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

# Detail keys that must never reach the log, whatever the caller passes
_FORBIDDEN_DETAIL_KEYS = frozenset({
    "password",
    "master_password",
    "auth_hash",
    "authHash",
    "key",
    "raw_key",
    "plaintext",
    "token",
})


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Crypto runtime
    PROVIDER_UNAVAILABLE = "crypto.provider.unavailable"

    # Session lifecycle
    SESSION_UNLOCKING = "session.unlocking"
    SESSION_UNLOCKED = "session.unlocked"
    SESSION_UNLOCK_FAILED = "session.unlock.failed"
    SESSION_UNLOCK_ABORTED = "session.unlock.aborted"
    SESSION_LOCKED = "session.locked"

    # Vault items
    ITEM_DECRYPT_FAILED = "vault.item.decrypt_failed"
    VAULT_EXPORTED = "vault.exported"
    VAULT_IMPORTED = "vault.imported"

    # Generator
    GENERATOR_POLICY_DEFAULTED = "generator.policy.defaulted"

    # API client
    API_REGISTER = "api.register"
    API_LOGIN = "api.login"
    API_LOGOUT = "api.logout"

    # System
    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual, e.g. an item that failed to decrypt
    - ALERT: A security control fired (tamper detected, unlock aborted)
    - CRITICAL: The runtime cannot operate securely
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for crypto and session events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - Daily log file under ``log_dir``
    - Secret-bearing detail keys are dropped before rendering
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: settings.audit_dir)
        """
        if log_dir is None:
            from ..config import get_settings
            log_dir = get_settings().audit_dir

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._file_handler = self._setup_file_handler()
        self.logger = structlog.get_logger("cipherkeep.audit")

    def _setup_file_handler(self) -> logging.Handler:
        """Attach a daily file handler to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting

        audit_logger = logging.getLogger("cipherkeep.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        return file_handler

    def close(self) -> None:
        """Detach and close the file handler."""
        logging.getLogger("cipherkeep.audit").removeHandler(self._file_handler)
        self._file_handler.close()

    @staticmethod
    def _scrub(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not details:
            return {}
        return {k: v for k, v in details.items() if k not in _FORBIDDEN_DETAIL_KEYS}

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a security event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)
            user_context: Caller context (account email, surface, etc.)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": self._scrub(details),
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("security_event", **event_data)

        return event_id

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging security events.

    Usage:
        log_security_event(
            EventType.SESSION_LOCKED,
            EventSeverity.INFO,
            "Session locked",
            details={"reason": "logout"}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
