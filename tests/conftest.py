"""
Shared pytest fixtures for the Cipherkeep test suite.

Autouse fixtures below isolate tests from the live environment:
  - Audit logger -> temp directory  (prevents test events in ./audit_logs)
  - Settings     -> fresh per test  (CIPHERKEEP_* variables cleared)
"""

import pytest

# Low PBKDF2 round count so the suite stays fast; the construction is the
# same at any count.
FAST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import cipherkeep.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Clear CIPHERKEEP_* variables and drop the cached settings."""
    import os
    import cipherkeep.config as config_mod

    for name in list(os.environ):
        if name.startswith("CIPHERKEEP_"):
            monkeypatch.delenv(name, raising=False)
    config_mod.reset_settings()

    yield

    config_mod.reset_settings()


@pytest.fixture
def params():
    """Fresh account KDF parameters at a test-friendly round count."""
    from cipherkeep.crypto.kdf import KeyDerivationParams
    return KeyDerivationParams.new(iterations=FAST_ITERATIONS)


@pytest.fixture
def key(params):
    """Encryption key derived from a fixed master password."""
    from cipherkeep.crypto.kdf import derive_key
    return derive_key("correct horse battery staple", params.salt, params.iterations)


@pytest.fixture
def audit_lines(tmp_path):
    """Read back the JSON lines written to the temp audit log."""
    import json

    def _read():
        lines = []
        for path in sorted((tmp_path / "audit_logs").glob("audit_*.log")):
            for line in path.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    lines.append(json.loads(line))
        return lines

    return _read
