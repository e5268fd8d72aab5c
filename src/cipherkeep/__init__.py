# Cipherkeep - Zero-knowledge password vault client core
#
# The server stores opaque envelopes and non-sensitive metadata.  Keys are
# derived from the master password on the client and never leave it.

__version__ = "0.1.0"
__author__ = "Cipherkeep Team"
__description__ = "Client-side envelope encryption for a zero-knowledge password vault"

from .core import (
    EventType,
    EventSeverity,
    get_audit_logger,
)
from .crypto import (
    AuthenticationFailure,
    CryptoError,
    CryptoProviderUnavailable,
    EncryptionKey,
    InsecureRandomUnavailable,
    InvalidGeneratorPolicy,
    KeyDerivationFailure,
    KeyDerivationParams,
    MalformedEnvelope,
    UnlockAborted,
    VaultLocked,
    decrypt,
    decrypt_many,
    derive_auth_hash,
    derive_key,
    encrypt,
    generate_salt,
)
from .generator import (
    PasswordStrengthResult,
    StrengthCategory,
    analyze_password_strength,
    generate_password,
)
from .session import SessionState, VaultSession

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "CryptoError",
    "CryptoProviderUnavailable",
    "InsecureRandomUnavailable",
    "KeyDerivationFailure",
    "AuthenticationFailure",
    "MalformedEnvelope",
    "InvalidGeneratorPolicy",
    "VaultLocked",
    "UnlockAborted",
    "EncryptionKey",
    "KeyDerivationParams",
    "generate_salt",
    "derive_key",
    "derive_auth_hash",
    "encrypt",
    "decrypt",
    "decrypt_many",
    "PasswordStrengthResult",
    "StrengthCategory",
    "analyze_password_strength",
    "generate_password",
    "SessionState",
    "VaultSession",
]
