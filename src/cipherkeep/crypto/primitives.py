"""Random and encoding primitives used by every crypto call.

All randomness comes from the operating system CSPRNG (``os.urandom`` /
``secrets``).  There is no fallback: a runtime without a secure source
raises ``InsecureRandomUnavailable`` instead of quietly switching to the
``random`` module.

Base64 uses the standard alphabet with padding, the encoding every other
client (``btoa`` / ``atob`` in the browser) reads and writes.
"""

import base64
import binascii
import hmac
import logging
import os
import secrets

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import CryptoProviderUnavailable, InsecureRandomUnavailable

logger = logging.getLogger(__name__)

_provider_checked = False


# ── Randomness ──────────────────────────────────────────────────────


def random_bytes(length: int) -> bytes:
    """Return ``length`` bytes from the OS CSPRNG.

    Raises:
        InsecureRandomUnavailable: The OS has no secure random source.
    """
    if length < 0:
        raise ValueError(f"length must be >= 0; got {length}")
    try:
        return os.urandom(length)
    except NotImplementedError as exc:
        raise InsecureRandomUnavailable(
            "No cryptographically secure random source is available"
        ) from exc


def random_below(upper: int) -> int:
    """Unbiased random integer in ``[0, upper)`` from the OS CSPRNG."""
    if upper <= 0:
        raise ValueError(f"upper must be positive; got {upper}")
    try:
        return secrets.randbelow(upper)
    except NotImplementedError as exc:
        raise InsecureRandomUnavailable(
            "No cryptographically secure random source is available"
        ) from exc


# ── Encoding ────────────────────────────────────────────────────────


def b64encode(data: bytes) -> str:
    """Encode binary data as standard padded base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode standard base64 text, rejecting non-alphabet characters.

    Raises:
        ValueError: If the input is not valid base64 (``binascii.Error``
            is a ``ValueError`` subclass).
    """
    if isinstance(text, str):
        try:
            text = text.encode("ascii")
        except UnicodeEncodeError as exc:
            raise binascii.Error("base64 text must be ASCII") from exc
    return base64.b64decode(text, validate=True)


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without leaking timing."""
    return hmac.compare_digest(a, b)


# ── Provider check ──────────────────────────────────────────────────


def ensure_provider() -> None:
    """Verify AES-256-GCM and PBKDF2-HMAC-SHA256 are usable.

    The result is cached after the first successful check.

    Raises:
        CryptoProviderUnavailable: The ``cryptography`` backend lacks a
            required primitive.
    """
    global _provider_checked
    if _provider_checked:
        return

    try:
        AESGCM(bytes(32))
        PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=bytes(16),
            iterations=1,
        )
    except UnsupportedAlgorithm as exc:
        logger.error("Crypto provider check failed: %s", exc)
        from ..core import EventSeverity, EventType, get_audit_logger
        get_audit_logger().log_event(
            event_type=EventType.PROVIDER_UNAVAILABLE,
            severity=EventSeverity.CRITICAL,
            message="Required crypto primitives are unavailable",
            details={"error": str(exc)},
        )
        raise CryptoProviderUnavailable(
            "AES-256-GCM or PBKDF2-HMAC-SHA256 is not supported by this runtime"
        ) from exc

    _provider_checked = True
