# Cipherkeep - Encrypted Envelope
#
# Wire/storage format shared by every client:
#
#     EncryptedEnvelope := base64( NONCE(12 bytes) || AES-256-GCM CIPHERTEXT || TAG(16 bytes) )
#
# - Fresh random nonce per encryption (never reused under a key)
# - Non-string payloads are canonical JSON (sorted keys, compact, UTF-8)
# - Decryption fails closed: a bad tag raises AuthenticationFailure and
#   nothing of the plaintext is returned

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import MIN_ENVELOPE_LENGTH, NONCE_LENGTH
from .exceptions import (
    AuthenticationFailure,
    CryptoError,
    CryptoProviderUnavailable,
    MalformedEnvelope,
)
from .kdf import EncryptionKey
from .primitives import b64decode, b64encode, random_bytes

logger = logging.getLogger(__name__)


def canonical_json(payload: Any) -> str:
    """Serialize a payload the same way on every client.

    NaN and infinities are rejected with ``ValueError``; they have no
    standard JSON form.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def _aead(key: EncryptionKey) -> AESGCM:
    if not isinstance(key, EncryptionKey):
        raise TypeError(f"key must be an EncryptionKey; got {type(key).__name__}")
    try:
        return AESGCM(key.raw_bytes)
    except UnsupportedAlgorithm as exc:
        raise CryptoProviderUnavailable("AES-256-GCM is not available") from exc


# ── Envelope framing ────────────────────────────────────────────────


def pack_envelope(nonce: bytes, ciphertext: bytes) -> str:
    """Frame nonce and ciphertext+tag as one base64 envelope."""
    if len(nonce) != NONCE_LENGTH:
        raise ValueError(f"nonce must be {NONCE_LENGTH} bytes; got {len(nonce)}")
    return b64encode(nonce + ciphertext)


def unpack_envelope(envelope: str) -> Tuple[bytes, bytes]:
    """Split an envelope into ``(nonce, ciphertext_and_tag)``.

    Raises:
        MalformedEnvelope: Not a string, not valid base64, or shorter than
            nonce + tag.
    """
    if not isinstance(envelope, (str, bytes)):
        raise MalformedEnvelope(f"Envelope must be base64 text; got {type(envelope).__name__}")
    try:
        blob = b64decode(envelope)
    except ValueError as exc:
        raise MalformedEnvelope("Envelope is not valid base64") from exc

    if len(blob) < MIN_ENVELOPE_LENGTH:
        raise MalformedEnvelope(
            f"Envelope is {len(blob)} bytes; minimum is {MIN_ENVELOPE_LENGTH}"
        )
    return blob[:NONCE_LENGTH], blob[NONCE_LENGTH:]


# ── Encrypt / decrypt ───────────────────────────────────────────────


def encrypt(plaintext: Any, key: EncryptionKey) -> str:
    """
    Encrypt a payload into a base64 envelope.

    Strings are encrypted as-is (UTF-8); anything else is serialized with
    ``canonical_json`` first.  Two calls with identical inputs never give
    the same envelope.

    Args:
        plaintext: String or JSON-serializable value
        key: Derived encryption key

    Returns:
        base64(nonce || ciphertext || tag)

    Raises:
        TypeError: Payload is not JSON-serializable
        ValueError: Payload contains NaN or an infinite float
        CryptoProviderUnavailable: No secure random source or AES-GCM
    """
    if isinstance(plaintext, str):
        data = plaintext
    else:
        data = canonical_json(plaintext)

    aesgcm = _aead(key)
    nonce = random_bytes(NONCE_LENGTH)
    ciphertext = aesgcm.encrypt(nonce, data.encode("utf-8"), None)
    return pack_envelope(nonce, ciphertext)


def decrypt(envelope: str, key: EncryptionKey) -> Any:
    """
    Decrypt an envelope and return the payload.

    If the plaintext parses as JSON the parsed value is returned,
    otherwise the raw string.  Text nested too deeply to parse
    also comes back as the raw string.

    Raises:
        MalformedEnvelope: Bad base64 or too short
        AuthenticationFailure: Tag did not verify (wrong key, corruption,
            tampering)
    """
    nonce, ciphertext = unpack_envelope(envelope)
    aesgcm = _aead(key)

    try:
        plaintext_bytes = aesgcm.decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise AuthenticationFailure("Envelope failed authentication") from exc

    try:
        text = plaintext_bytes.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedEnvelope("Decrypted payload is not UTF-8 text") from exc

    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return text


async def encrypt_async(plaintext: Any, key: EncryptionKey) -> str:
    return await asyncio.to_thread(encrypt, plaintext, key)


async def decrypt_async(envelope: str, key: EncryptionKey) -> Any:
    return await asyncio.to_thread(decrypt, envelope, key)


# ── Batch decryption ────────────────────────────────────────────────


@dataclass
class DecryptOutcome:
    """Result for one envelope in a batch: a value or a failure marker."""

    index: int
    ok: bool
    value: Any = None
    error: Optional[CryptoError] = None

    @property
    def failed(self) -> bool:
        return not self.ok

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "ok": self.ok,
            "error": type(self.error).__name__ if self.error else None,
        }


def decrypt_many(envelopes: Iterable[str], key: EncryptionKey) -> List[DecryptOutcome]:
    """
    Decrypt a batch, continuing past bad items.

    ``AuthenticationFailure`` and ``MalformedEnvelope`` mark that item as
    failed; every other item is still decrypted.  A missing crypto provider
    is not per-item and propagates.
    """
    outcomes: List[DecryptOutcome] = []
    for index, envelope in enumerate(envelopes):
        try:
            value = decrypt(envelope, key)
        except (AuthenticationFailure, MalformedEnvelope) as exc:
            logger.warning("Envelope %d failed to decrypt: %s", index, type(exc).__name__)
            outcomes.append(DecryptOutcome(index=index, ok=False, error=exc))
            continue
        outcomes.append(DecryptOutcome(index=index, ok=True, value=value))
    return outcomes
