# Tests for the vault session key lifecycle
#
# Coverage:
#   - LOCKED -> UNLOCKING -> UNLOCKED transitions and lock() from each state
#   - Unlock failures leave the session locked with no key
#   - Cancellation and lock() racing an in-flight unlock
#   - Idle lock with an injected clock
#   - Scope exit locks (sync and async context managers)

import asyncio

import pytest

import cipherkeep.session as session_mod
from cipherkeep.crypto.exceptions import (
    AuthenticationFailure,
    KeyDerivationFailure,
    UnlockAborted,
    VaultLocked,
)
from cipherkeep.crypto.kdf import EncryptionKey, KeyDerivationParams
from cipherkeep.session import SessionState, VaultSession

PASSWORD = "correct horse battery staple"


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def slow_derive(monkeypatch):
    """Replace key derivation with one that waits for ``release``."""
    release = asyncio.Event()

    async def _derive(password, salt, iterations):
        await release.wait()
        return EncryptionKey(bytes(32))

    monkeypatch.setattr(session_mod, "derive_key_async", _derive)
    return release


def _events(audit_lines, prefix="session."):
    return [e["event_type"] for e in audit_lines() if e["event_type"].startswith(prefix)]


# ── Transitions ─────────────────────────────────────────────────────


class TestUnlock:
    def test_starts_locked(self):
        session = VaultSession()
        assert session.state == SessionState.LOCKED
        assert not session.is_unlocked
        assert session.key_fingerprint is None
        assert session.params is None

    @pytest.mark.asyncio
    async def test_unlock_and_round_trip(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)

        assert session.state == SessionState.UNLOCKED
        assert session.params == params
        env = session.encrypt({"username": "alice"})
        assert session.decrypt(env) == {"username": "alice"}

    @pytest.mark.asyncio
    async def test_same_password_and_salt_reproduce_key(self, params):
        """A key created at registration is reproduced at login."""
        first = VaultSession()
        await first.unlock(PASSWORD, params)
        env = first.encrypt({"n": 1})
        first.lock()

        second = VaultSession()
        await second.unlock(PASSWORD, KeyDerivationParams.from_dict(params.to_dict()))
        assert second.decrypt(env) == {"n": 1}

    @pytest.mark.asyncio
    async def test_relock_with_new_salt_gives_new_key(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)
        old_fingerprint = session.key_fingerprint
        env = session.encrypt("secret")
        session.lock()

        await session.unlock(PASSWORD, KeyDerivationParams.new(iterations=params.iterations))
        assert session.key_fingerprint != old_fingerprint
        with pytest.raises(AuthenticationFailure):
            session.decrypt(env)

    @pytest.mark.asyncio
    async def test_unlock_failure_stays_locked(self, params, audit_lines):
        session = VaultSession()
        with pytest.raises(KeyDerivationFailure):
            await session.unlock("", params)

        assert session.state == SessionState.LOCKED
        assert session.key_fingerprint is None
        assert "session.unlock.failed" in _events(audit_lines)

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_to_locked(self, params, monkeypatch, audit_lines):
        async def _broken(password, salt, iterations):
            raise RuntimeError("kdf backend exploded")

        monkeypatch.setattr(session_mod, "derive_key_async", _broken)
        session = VaultSession()
        with pytest.raises(RuntimeError):
            await session.unlock(PASSWORD, params)

        assert session.state == SessionState.LOCKED
        assert "session.unlock.failed" in _events(audit_lines)

    @pytest.mark.asyncio
    async def test_bad_params_object_returns_to_locked(self):
        session = VaultSession()
        with pytest.raises(AttributeError):
            await session.unlock(PASSWORD, {"salt": "AAAA", "iterations": 1000})

        assert session.state == SessionState.LOCKED
        assert session.key_fingerprint is None

    @pytest.mark.asyncio
    async def test_failed_reunlock_drops_previous_key(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)
        with pytest.raises(KeyDerivationFailure):
            await session.unlock("", params)
        with pytest.raises(VaultLocked):
            session.encrypt("x")

    @pytest.mark.asyncio
    async def test_audit_trail(self, params, audit_lines):
        session = VaultSession()
        await session.unlock(PASSWORD, params)
        session.lock()

        assert _events(audit_lines) == [
            "session.unlocking",
            "session.unlocked",
            "session.locked",
        ]
        unlocked = [e for e in audit_lines() if e["event_type"] == "session.unlocked"][0]
        assert unlocked["details"]["key_fingerprint"] == _fingerprint_for(params)

    def test_repr_has_no_key(self):
        assert repr(VaultSession()) == "VaultSession(state=locked)"


def _fingerprint_for(params):
    from cipherkeep.crypto.kdf import derive_key
    return derive_key(PASSWORD, params.salt, params.iterations).fingerprint()


class TestLock:
    def test_lock_when_locked_is_noop(self, audit_lines):
        session = VaultSession()
        session.lock()
        assert session.state == SessionState.LOCKED
        assert "session.locked" not in _events(audit_lines)

    @pytest.mark.asyncio
    async def test_lock_clears_key(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)
        session.lock()

        assert session.state == SessionState.LOCKED
        assert session.key_fingerprint is None
        assert session.params is None
        with pytest.raises(VaultLocked):
            session.encrypt({"a": 1})
        with pytest.raises(VaultLocked):
            session.decrypt("AAAA")
        with pytest.raises(VaultLocked):
            session.decrypt_many([])

    @pytest.mark.asyncio
    async def test_locked_async_operations(self):
        session = VaultSession()
        with pytest.raises(VaultLocked):
            await session.encrypt_async("x")
        with pytest.raises(VaultLocked):
            await session.decrypt_async("x")


# ── In-flight unlock ────────────────────────────────────────────────


class TestInFlightUnlock:
    @pytest.mark.asyncio
    async def test_state_is_unlocking_while_deriving(self, params, slow_derive):
        session = VaultSession()
        task = asyncio.create_task(session.unlock(PASSWORD, params))
        await asyncio.sleep(0)

        assert session.state == SessionState.UNLOCKING
        with pytest.raises(VaultLocked):
            session.encrypt("x")

        slow_derive.set()
        await task
        assert session.state == SessionState.UNLOCKED

    @pytest.mark.asyncio
    async def test_cancel_leaves_locked(self, params, slow_derive, audit_lines):
        session = VaultSession()
        task = asyncio.create_task(session.unlock(PASSWORD, params))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.state == SessionState.LOCKED
        assert session.key_fingerprint is None
        assert "session.unlock.aborted" in _events(audit_lines)

    @pytest.mark.asyncio
    async def test_lock_during_unlock_discards_key(self, params, slow_derive):
        session = VaultSession()
        task = asyncio.create_task(session.unlock(PASSWORD, params))
        await asyncio.sleep(0)

        session.lock(reason="logout")
        slow_derive.set()
        with pytest.raises(UnlockAborted):
            await task

        assert session.state == SessionState.LOCKED
        assert session.key_fingerprint is None

    @pytest.mark.asyncio
    async def test_newer_unlock_supersedes_older(self, params, monkeypatch):
        releases = {}

        async def _derive(password, salt, iterations):
            releases[password] = asyncio.Event()
            await releases[password].wait()
            return EncryptionKey(password.encode().ljust(32, b"\0"))

        monkeypatch.setattr(session_mod, "derive_key_async", _derive)
        session = VaultSession()

        first = asyncio.create_task(session.unlock("first", params))
        await asyncio.sleep(0)
        second = asyncio.create_task(session.unlock("second", params))
        await asyncio.sleep(0)

        releases["second"].set()
        await second
        releases["first"].set()
        with pytest.raises(UnlockAborted):
            await first

        assert session.state == SessionState.UNLOCKED
        assert session.key_fingerprint == EncryptionKey(b"second".ljust(32, b"\0")).fingerprint()


# ── Idle lock ───────────────────────────────────────────────────────


class TestIdleLock:
    @pytest.mark.asyncio
    async def test_locks_after_idle_period(self, params, audit_lines):
        clock = FakeClock()
        session = VaultSession(idle_lock_seconds=60, clock=clock)
        await session.unlock(PASSWORD, params)

        clock.now += 30
        env = session.encrypt("still active")
        clock.now += 59
        assert session.decrypt(env) == "still active"

        clock.now += 61
        with pytest.raises(VaultLocked):
            session.decrypt(env)
        assert session.state == SessionState.LOCKED

        locked = [e for e in audit_lines() if e["event_type"] == "session.locked"]
        assert locked[-1]["details"]["reason"] == "idle"

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, params):
        clock = FakeClock()
        session = VaultSession(clock=clock)
        await session.unlock(PASSWORD, params)
        clock.now += 10 ** 6
        assert session.decrypt(session.encrypt("x")) == "x"

    def test_setting_from_environment(self, monkeypatch):
        monkeypatch.setenv("CIPHERKEEP_IDLE_LOCK_SECONDS", "300")
        assert VaultSession().idle_lock_seconds == 300

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            VaultSession(idle_lock_seconds=-1)


# ── Scope ───────────────────────────────────────────────────────────


class TestScope:
    @pytest.mark.asyncio
    async def test_async_context_manager_locks(self, params):
        async with VaultSession() as session:
            await session.unlock(PASSWORD, params)
            assert session.is_unlocked
        assert session.state == SessionState.LOCKED

    @pytest.mark.asyncio
    async def test_context_manager_locks_on_error(self, params):
        session = VaultSession()
        with pytest.raises(RuntimeError):
            async with session:
                await session.unlock(PASSWORD, params)
                raise RuntimeError("host crashed")
        assert session.key_fingerprint is None

    @pytest.mark.asyncio
    async def test_sync_context_manager_locks(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)
        with session:
            session.encrypt("x")
        assert session.state == SessionState.LOCKED


# ── Concurrency ─────────────────────────────────────────────────────


class TestConcurrentUse:
    @pytest.mark.asyncio
    async def test_parallel_encrypt_decrypt(self, params):
        session = VaultSession()
        await session.unlock(PASSWORD, params)

        envs = await asyncio.gather(*[session.encrypt_async({"i": i}) for i in range(20)])
        values = await asyncio.gather(*[session.decrypt_async(e) for e in envs])
        assert values == [{"i": i} for i in range(20)]
        assert len(set(envs)) == 20
