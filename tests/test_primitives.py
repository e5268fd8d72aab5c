# Tests for the random, encoding and provider primitives
#
# Coverage:
#   - CSPRNG byte/int helpers and the no-fallback failure mode
#   - Strict base64 decoding
#   - Provider check caching and failure mapping

import base64
import binascii

import pytest
from cryptography.exceptions import UnsupportedAlgorithm

import cipherkeep.crypto.primitives as primitives
from cipherkeep.crypto.exceptions import (
    CryptoProviderUnavailable,
    InsecureRandomUnavailable,
)
from cipherkeep.crypto.primitives import (
    b64decode,
    b64encode,
    constant_time_equals,
    ensure_provider,
    random_below,
    random_bytes,
)


# ── Randomness ──────────────────────────────────────────────────────


class TestRandomBytes:
    def test_length(self):
        assert len(random_bytes(16)) == 16
        assert random_bytes(0) == b""

    def test_distinct(self):
        assert random_bytes(32) != random_bytes(32)

    def test_negative_length_rejected(self):
        with pytest.raises(ValueError):
            random_bytes(-1)

    def test_no_secure_source_raises(self, monkeypatch):
        def _unavailable(n):
            raise NotImplementedError("no entropy source")

        monkeypatch.setattr(primitives.os, "urandom", _unavailable)
        with pytest.raises(InsecureRandomUnavailable):
            random_bytes(12)

    def test_insecure_random_is_provider_error(self):
        assert issubclass(InsecureRandomUnavailable, CryptoProviderUnavailable)


class TestRandomBelow:
    def test_range(self):
        values = {random_below(5) for _ in range(500)}
        assert values <= {0, 1, 2, 3, 4}
        assert len(values) == 5

    def test_non_positive_upper_rejected(self):
        with pytest.raises(ValueError):
            random_below(0)

    def test_no_secure_source_raises(self, monkeypatch):
        def _unavailable(n):
            raise NotImplementedError

        monkeypatch.setattr(primitives.secrets, "randbelow", _unavailable)
        with pytest.raises(InsecureRandomUnavailable):
            random_below(10)


# ── Encoding ────────────────────────────────────────────────────────


class TestBase64:
    def test_standard_alphabet_with_padding(self):
        assert b64encode(b"\xfb\xff") == "+/8="

    def test_decode_matches_stdlib(self):
        data = bytes(range(256))
        assert b64decode(base64.b64encode(data).decode()) == data

    def test_decode_accepts_bytes(self):
        assert b64decode(b"aGk=") == b"hi"

    def test_rejects_non_alphabet(self):
        with pytest.raises(binascii.Error):
            b64decode("not*base64!")

    def test_rejects_non_ascii(self):
        with pytest.raises(ValueError):
            b64decode("aGké")


def test_constant_time_equals():
    assert constant_time_equals(b"abc", b"abc")
    assert not constant_time_equals(b"abc", b"abd")


# ── Provider check ──────────────────────────────────────────────────


class TestEnsureProvider:
    def test_available(self, monkeypatch):
        monkeypatch.setattr(primitives, "_provider_checked", False)
        ensure_provider()
        assert primitives._provider_checked is True

    def test_missing_primitive_raises(self, monkeypatch, audit_lines):
        def _unsupported(key):
            raise UnsupportedAlgorithm("AES-GCM disabled")

        monkeypatch.setattr(primitives, "_provider_checked", False)
        monkeypatch.setattr(primitives, "AESGCM", _unsupported)
        with pytest.raises(CryptoProviderUnavailable):
            ensure_provider()
        assert primitives._provider_checked is False

        events = [e for e in audit_lines() if e["event_type"] == "crypto.provider.unavailable"]
        assert len(events) == 1
        assert events[0]["severity"] == "critical"
