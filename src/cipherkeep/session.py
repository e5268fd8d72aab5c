"""Vault session: the one place an encryption key lives.

State machine::

    LOCKED --unlock()--> UNLOCKING --derived--> UNLOCKED
       ^                     |                      |
       +---- failure/abort --+------ lock() --------+

- ``unlock()`` runs PBKDF2 off the event loop.  Cancelling it, or calling
  ``lock()`` while it runs, leaves the session LOCKED with no key.
- The key is write-once per unlock cycle: a new unlock replaces it
  wholesale, it is never mutated.
- Encrypt/decrypt read the resident key; ``VaultLocked`` when there is
  none.  Any number of concurrent readers is fine.
- ``idle_lock_seconds`` (0 = off) locks lazily on the next key access,
  there is no background timer.
- ``async with VaultSession() as s:`` locks on exit, so the key cannot
  outlive the host's session scope.

The session is a plain object owned by the caller; there is no
module-level key.
"""

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

from .config import get_settings
from .core import EventSeverity, EventType, get_audit_logger
from .crypto import envelope
from .crypto.exceptions import (
    CryptoProviderUnavailable,
    UnlockAborted,
    VaultLocked,
)
from .crypto.kdf import EncryptionKey, KeyDerivationParams, derive_key_async

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"


class VaultSession:
    """
    Holds at most one derived EncryptionKey for one authenticated session.

    Usage::

        async with VaultSession() as session:
            await session.unlock(master_password, params)
            envelope = session.encrypt({"username": "alice", "password": "..."})
            item = session.decrypt(envelope)
        # locked here
    """

    def __init__(
        self,
        idle_lock_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if idle_lock_seconds is None:
            idle_lock_seconds = get_settings().idle_lock_seconds
        if idle_lock_seconds < 0:
            raise ValueError("idle_lock_seconds must not be negative")

        self.idle_lock_seconds = idle_lock_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = SessionState.LOCKED
        self._key: Optional[EncryptionKey] = None
        self._params: Optional[KeyDerivationParams] = None
        self._generation = 0
        self._last_used = 0.0
        self._audit = get_audit_logger()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_unlocked(self) -> bool:
        return self._state == SessionState.UNLOCKED

    @property
    def params(self) -> Optional[KeyDerivationParams]:
        """KDF parameters of the current unlock (non-secret)."""
        return self._params

    @property
    def key_fingerprint(self) -> Optional[str]:
        key = self._key
        return key.fingerprint() if key is not None else None

    def __repr__(self) -> str:
        return f"VaultSession(state={self._state.value})"

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def unlock(self, password: str, params: KeyDerivationParams) -> None:
        """
        Derive the key and move to UNLOCKED.

        Call only after the server accepted the auth hash.  Any resident key
        is dropped first; an unlock already in flight is superseded.

        Raises:
            KeyDerivationFailure: Bad parameters or KDF error (re-prompt)
            CryptoProviderUnavailable: Runtime lacks PBKDF2/AES-GCM (fatal)
            UnlockAborted: ``lock()`` was called before derivation finished
            asyncio.CancelledError: The awaiting task was cancelled
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._key = None
            self._params = None
            self._state = SessionState.UNLOCKING

        try:
            self._audit.log_event(
                event_type=EventType.SESSION_UNLOCKING,
                severity=EventSeverity.INFO,
                message="Deriving session key",
                details={"iterations": params.iterations},
            )
            key = await derive_key_async(password, params.salt, params.iterations)
        except asyncio.CancelledError:
            self._abandon(generation, "cancelled")
            raise
        except Exception as exc:
            with self._lock:
                if generation == self._generation:
                    self._state = SessionState.LOCKED
            severity = (
                EventSeverity.CRITICAL
                if isinstance(exc, CryptoProviderUnavailable)
                else EventSeverity.ALERT
            )
            self._audit.log_event(
                event_type=EventType.SESSION_UNLOCK_FAILED,
                severity=severity,
                message=f"Session unlock failed: {type(exc).__name__}",
            )
            raise

        with self._lock:
            if generation != self._generation:
                superseded = True
            else:
                superseded = False
                self._key = key
                self._params = params
                self._state = SessionState.UNLOCKED
                self._last_used = self._clock()

        if superseded:
            self._audit.log_event(
                event_type=EventType.SESSION_UNLOCK_ABORTED,
                severity=EventSeverity.ALERT,
                message="Derived key discarded: session was locked during unlock",
            )
            raise UnlockAborted("Session was locked before key derivation finished")

        self._audit.log_event(
            event_type=EventType.SESSION_UNLOCKED,
            severity=EventSeverity.INFO,
            message="Session unlocked",
            details={"key_fingerprint": key.fingerprint()},
        )

    def _abandon(self, generation: int, reason: str) -> None:
        with self._lock:
            if generation == self._generation:
                self._generation += 1
                self._state = SessionState.LOCKED
        self._audit.log_event(
            event_type=EventType.SESSION_UNLOCK_ABORTED,
            severity=EventSeverity.ALERT,
            message=f"Session unlock aborted ({reason})",
        )

    def lock(self, reason: str = "explicit") -> None:
        """Drop the key and return to LOCKED.  Valid from every state."""
        with self._lock:
            previous = self._state
            self._generation += 1
            self._key = None
            self._params = None
            self._state = SessionState.LOCKED

        if previous == SessionState.LOCKED:
            return

        logger.debug("Session locked from %s (%s)", previous.value, reason)
        self._audit.log_event(
            event_type=EventType.SESSION_LOCKED,
            severity=EventSeverity.INFO,
            message="Session locked",
            details={"reason": reason, "previous_state": previous.value},
        )

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    def _require_key(self) -> EncryptionKey:
        with self._lock:
            if self._state != SessionState.UNLOCKED or self._key is None:
                raise VaultLocked("Vault session is locked")
            now = self._clock()
            if not self.idle_lock_seconds or now - self._last_used <= self.idle_lock_seconds:
                self._last_used = now
                return self._key

        self.lock(reason="idle")
        raise VaultLocked("Vault session locked after inactivity")

    def encrypt(self, payload: Any) -> str:
        return envelope.encrypt(payload, self._require_key())

    def decrypt(self, data: str) -> Any:
        return envelope.decrypt(data, self._require_key())

    def decrypt_many(self, envelopes: Iterable[str]) -> List[envelope.DecryptOutcome]:
        return envelope.decrypt_many(envelopes, self._require_key())

    async def encrypt_async(self, payload: Any) -> str:
        return await envelope.encrypt_async(payload, self._require_key())

    async def decrypt_async(self, data: str) -> Any:
        return await envelope.decrypt_async(data, self._require_key())

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def __enter__(self) -> "VaultSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.lock(reason="scope_exit")

    async def __aenter__(self) -> "VaultSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.lock(reason="scope_exit")
