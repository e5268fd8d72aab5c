"""Cipherkeep settings: one place for every cryptographic parameter.

Every client surface (web, extension, CLI, mobile) must agree on these
values bit for bit, otherwise envelopes produced by one client cannot be
opened by another.  Nothing here is secret.

Overridable values are read from the environment:

    CIPHERKEEP_KEY_ITERATIONS     PBKDF2 rounds for the encryption key
    CIPHERKEEP_AUTH_ITERATIONS    PBKDF2 rounds for the auth hash
    CIPHERKEEP_API_URL            Base URL of the vault API
    CIPHERKEEP_AUDIT_DIR          Directory for the audit log
    CIPHERKEEP_IDLE_LOCK_SECONDS  Idle lock for sessions (0 = disabled)
    CIPHERKEEP_REQUEST_TIMEOUT    HTTP timeout in seconds
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional


class InvalidConfiguration(ValueError):
    """Raised when settings from the environment are invalid"""
    pass

# ── Wire-format constants (never configurable) ──────────────────────

SALT_LENGTH = 16  # 128-bit account salt
KEY_LENGTH = 32  # 256 bits for AES-256-GCM
AUTH_HASH_LENGTH = 32  # 256-bit auth digest
NONCE_LENGTH = 12  # 96-bit nonce for GCM
TAG_LENGTH = 16  # 128-bit GCM tag
MIN_ENVELOPE_LENGTH = NONCE_LENGTH + TAG_LENGTH

# ── KDF defaults ────────────────────────────────────────────────────

DEFAULT_KEY_ITERATIONS = 100_000
DEFAULT_AUTH_ITERATIONS = 200_000
MIN_ITERATIONS = 1

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_AUDIT_DIR = "./audit_logs"
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class CryptoSettings:
    """Runtime settings shared by every client surface."""

    key_iterations: int = DEFAULT_KEY_ITERATIONS
    auth_iterations: int = DEFAULT_AUTH_ITERATIONS
    api_url: str = DEFAULT_API_URL
    audit_dir: Path = Path(DEFAULT_AUDIT_DIR)
    idle_lock_seconds: float = 0.0
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        if self.key_iterations < MIN_ITERATIONS:
            raise InvalidConfiguration(
                f"key_iterations must be >= {MIN_ITERATIONS}; got {self.key_iterations}"
            )
        if self.auth_iterations < MIN_ITERATIONS:
            raise InvalidConfiguration(
                f"auth_iterations must be >= {MIN_ITERATIONS}; got {self.auth_iterations}"
            )
        if self.idle_lock_seconds < 0:
            raise InvalidConfiguration("idle_lock_seconds must not be negative")
        if self.request_timeout <= 0:
            raise InvalidConfiguration("request_timeout must be positive")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["audit_dir"] = str(self.audit_dir)
        return d


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be an integer; got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise InvalidConfiguration(f"{name} must be a number; got {raw!r}")


def load_settings() -> CryptoSettings:
    """Build settings from the environment (unset variables keep defaults)."""
    return CryptoSettings(
        key_iterations=_env_int("CIPHERKEEP_KEY_ITERATIONS", DEFAULT_KEY_ITERATIONS),
        auth_iterations=_env_int("CIPHERKEEP_AUTH_ITERATIONS", DEFAULT_AUTH_ITERATIONS),
        api_url=os.environ.get("CIPHERKEEP_API_URL", DEFAULT_API_URL),
        audit_dir=Path(os.environ.get("CIPHERKEEP_AUDIT_DIR", DEFAULT_AUDIT_DIR)),
        idle_lock_seconds=_env_float("CIPHERKEEP_IDLE_LOCK_SECONDS", 0.0),
        request_timeout=_env_float("CIPHERKEEP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
    )


# Global settings instance
_settings: Optional[CryptoSettings] = None


def get_settings() -> CryptoSettings:
    """Get global settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
