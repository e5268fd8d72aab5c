# Crypto Module - Zero-knowledge envelope encryption
#
# Master password -> PBKDF2 auth hash (server) + AES-256-GCM key (client)
# Vault payloads sealed as base64(nonce || ciphertext || tag)

from .exceptions import (
    AuthenticationFailure,
    CryptoError,
    CryptoProviderUnavailable,
    InsecureRandomUnavailable,
    InvalidGeneratorPolicy,
    KeyDerivationFailure,
    MalformedEnvelope,
    UnlockAborted,
    VaultLocked,
)
from .kdf import (
    EncryptionKey,
    KeyDerivationParams,
    derive_auth_hash,
    derive_auth_hash_async,
    derive_key,
    derive_key_async,
    generate_salt,
)
from .envelope import (
    DecryptOutcome,
    decrypt,
    decrypt_async,
    decrypt_many,
    encrypt,
    encrypt_async,
)

__all__ = [
    # Errors
    "CryptoError",
    "CryptoProviderUnavailable",
    "InsecureRandomUnavailable",
    "KeyDerivationFailure",
    "AuthenticationFailure",
    "MalformedEnvelope",
    "InvalidGeneratorPolicy",
    "VaultLocked",
    "UnlockAborted",
    # Key derivation
    "EncryptionKey",
    "KeyDerivationParams",
    "generate_salt",
    "derive_key",
    "derive_key_async",
    "derive_auth_hash",
    "derive_auth_hash_async",
    # Envelopes
    "DecryptOutcome",
    "encrypt",
    "encrypt_async",
    "decrypt",
    "decrypt_async",
    "decrypt_many",
]
