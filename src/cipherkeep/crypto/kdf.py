# Cipherkeep - Key Derivation
#
# Master password + account salt -> two distinct artifacts:
#   - Auth hash (PBKDF2-SHA256, 200k rounds, base64) -- sent to the server
#   - Encryption key (PBKDF2-SHA256, 100k rounds, 256-bit) -- never leaves
#     client memory
#
# Both reduce to the master password; the split keeps an auth-hash leak
# from handing out the vault key directly and vice versa.

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import (
    AUTH_HASH_LENGTH,
    DEFAULT_AUTH_ITERATIONS,
    DEFAULT_KEY_ITERATIONS,
    KEY_LENGTH,
    MIN_ITERATIONS,
    SALT_LENGTH,
)
from .exceptions import CryptoProviderUnavailable, KeyDerivationFailure
from .primitives import b64decode, b64encode, constant_time_equals, ensure_provider, random_bytes

logger = logging.getLogger(__name__)


class EncryptionKey:
    """
    A derived AES-256-GCM key held in volatile memory.

    Immutable once constructed; a fresh unlock produces a fresh object.
    The raw bytes are only reachable through ``raw_bytes`` and are never
    rendered by ``repr``/``str``.  The library never serializes a key.
    """

    __slots__ = ("_key",)

    def __init__(self, raw: bytes):
        if not isinstance(raw, (bytes, bytearray)) or len(raw) != KEY_LENGTH:
            raise ValueError(f"EncryptionKey requires exactly {KEY_LENGTH} bytes")
        object.__setattr__(self, "_key", bytes(raw))

    def __setattr__(self, name, value):
        raise AttributeError("EncryptionKey is immutable")

    def __delattr__(self, name):
        raise AttributeError("EncryptionKey is immutable")

    @property
    def raw_bytes(self) -> bytes:
        return self._key

    def fingerprint(self) -> str:
        """Short SHA-256 fingerprint, safe to log and display."""
        return hashlib.sha256(b"cipherkeep:key-fingerprint:" + self._key).hexdigest()[:16]

    def __eq__(self, other) -> bool:
        if not isinstance(other, EncryptionKey):
            return NotImplemented
        return constant_time_equals(self._key, other._key)

    def __hash__(self) -> int:
        return hash(self.fingerprint())

    def __repr__(self) -> str:
        return f"EncryptionKey(fingerprint={self.fingerprint()})"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("EncryptionKey must not be serialized")


@dataclass(frozen=True)
class KeyDerivationParams:
    """Non-secret per-account KDF parameters, stored server-side in cleartext."""

    salt: bytes
    iterations: int = DEFAULT_KEY_ITERATIONS

    def __post_init__(self):
        _validate_salt(self.salt)
        _validate_iterations(self.iterations)

    @classmethod
    def new(cls, iterations: int = DEFAULT_KEY_ITERATIONS) -> "KeyDerivationParams":
        """Fresh parameters for a new account (registration only)."""
        return cls(salt=generate_salt(), iterations=iterations)

    def to_dict(self) -> Dict[str, Any]:
        return {"salt": b64encode(self.salt), "iterations": self.iterations}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "KeyDerivationParams":
        """Rebuild from the ``{salt, iterations}`` account record.

        Raises:
            KeyDerivationFailure: Missing or malformed fields.
        """
        try:
            salt = b64decode(d["salt"])
            iterations = d.get("iterations", DEFAULT_KEY_ITERATIONS)
        except (KeyError, TypeError, ValueError) as exc:
            raise KeyDerivationFailure(f"Invalid key derivation parameters: {exc}") from exc
        if isinstance(iterations, str) and iterations.isdigit():
            iterations = int(iterations)
        return cls(salt=salt, iterations=iterations)


# ── Validation ──────────────────────────────────────────────────────


def _validate_password(password: str) -> None:
    if not isinstance(password, str) or not password:
        raise KeyDerivationFailure("Master password must be a non-empty string")


def _validate_salt(salt: bytes) -> None:
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LENGTH:
        raise KeyDerivationFailure(f"Salt must be exactly {SALT_LENGTH} bytes")


def _validate_iterations(iterations: int) -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        raise KeyDerivationFailure("Iterations must be an integer")
    if iterations < MIN_ITERATIONS:
        raise KeyDerivationFailure(f"Iterations must be >= {MIN_ITERATIONS}; got {iterations}")


# ── Derivation ──────────────────────────────────────────────────────


def _pbkdf2(password: str, salt: bytes, iterations: int, length: int) -> bytes:
    _validate_password(password)
    _validate_salt(salt)
    _validate_iterations(iterations)
    ensure_provider()

    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=bytes(salt),
            iterations=iterations,
        )
        return kdf.derive(password.encode("utf-8"))
    except UnsupportedAlgorithm as exc:
        raise CryptoProviderUnavailable("PBKDF2-HMAC-SHA256 is not available") from exc
    except (ValueError, TypeError, OverflowError) as exc:
        raise KeyDerivationFailure(f"Key derivation failed: {exc}") from exc


def generate_salt() -> bytes:
    """Generate a 16-byte account salt from the OS CSPRNG."""
    return random_bytes(SALT_LENGTH)


def derive_key(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_KEY_ITERATIONS,
) -> EncryptionKey:
    """
    Derive the vault encryption key from the master password.

    PBKDF2-HMAC-SHA256 producing 256 bits for AES-256-GCM.  Identical
    inputs always give a bit-identical key, which is what lets login
    reproduce the key created at registration.

    Args:
        password: Master password (non-empty)
        salt: Account salt (exactly 16 bytes)
        iterations: PBKDF2 rounds (default 100,000)

    Returns:
        EncryptionKey held in memory only

    Raises:
        KeyDerivationFailure: Bad parameters or KDF error
        CryptoProviderUnavailable: PBKDF2/AES-GCM missing from the runtime
    """
    raw = _pbkdf2(password, salt, iterations, KEY_LENGTH)
    key = EncryptionKey(raw)
    logger.debug("Derived encryption key %s (%d iterations)", key.fingerprint(), iterations)
    return key


def derive_auth_hash(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_AUTH_ITERATIONS,
) -> str:
    """
    Derive the base64 auth hash sent to the server instead of the password.

    Same PBKDF2-SHA256 construction as ``derive_key`` but raw bits at a
    higher round count.  Never usable as an encryption key.

    Returns:
        Base64 text of the 32-byte digest
    """
    raw = _pbkdf2(password, salt, iterations, AUTH_HASH_LENGTH)
    return b64encode(raw)


async def derive_key_async(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_KEY_ITERATIONS,
) -> EncryptionKey:
    """Run ``derive_key`` off the event loop thread."""
    return await asyncio.to_thread(derive_key, password, salt, iterations)


async def derive_auth_hash_async(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_AUTH_ITERATIONS,
) -> str:
    """Run ``derive_auth_hash`` off the event loop thread."""
    return await asyncio.to_thread(derive_auth_hash, password, salt, iterations)


def derive_from_params(password: str, params: KeyDerivationParams) -> EncryptionKey:
    """Derive the key for stored ``{salt, iterations}`` parameters."""
    return derive_key(password, params.salt, params.iterations)
