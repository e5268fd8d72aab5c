"""
Cipherkeep Crypto Exception Classes
"""


class CryptoError(Exception):
    """Base exception for client-side crypto operations"""
    pass


class CryptoProviderUnavailable(CryptoError):
    """Raised when the runtime lacks a secure random source or cipher primitive"""
    pass


class InsecureRandomUnavailable(CryptoProviderUnavailable):
    """Raised when only a non-cryptographic random source is reachable"""
    pass


class KeyDerivationFailure(CryptoError):
    """Raised when PBKDF2 derivation fails (bad parameters or provider error)"""
    pass


class AuthenticationFailure(CryptoError):
    """Raised when an AES-GCM tag does not verify (wrong key or tampering)"""
    pass


class MalformedEnvelope(CryptoError):
    """Raised when an envelope is not valid base64 or is too short"""
    pass


class InvalidGeneratorPolicy(CryptoError):
    """Raised when a password generation request cannot be satisfied"""
    pass


class VaultLocked(CryptoError):
    """Raised when encrypt/decrypt is attempted without a resident key"""
    pass


class UnlockAborted(CryptoError):
    """Raised when a lock lands while an unlock is still deriving its key"""
    pass
