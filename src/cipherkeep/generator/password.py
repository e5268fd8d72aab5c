# Cipherkeep - Password Generator
#
# Random passwords drawn from the OS CSPRNG (secrets.randbelow, which is
# rejection-sampled, so no modulo bias).  Charset = union of the selected
# pools; with no pool selected the generator falls back to
# lowercase + digits and records an audit event instead of failing.

import logging
from dataclasses import dataclass
from typing import Any, Dict

from ..core import EventSeverity, EventType, get_audit_logger
from ..crypto.exceptions import InvalidGeneratorPolicy
from ..crypto.primitives import random_below
from .strength import PasswordStrengthResult, analyze_password_strength

logger = logging.getLogger(__name__)

UPPERCASE_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE_CHARS = "abcdefghijklmnopqrstuvwxyz"
NUMBER_CHARS = "0123456789"
SYMBOL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
AMBIGUOUS_CHARS = "0O1lI"

DEFAULT_LENGTH = 16
MIN_LENGTH = 1
MAX_LENGTH = 1024


@dataclass(frozen=True)
class GeneratedPassword:
    """A generated password plus its strength analysis."""

    password: str
    strength: PasswordStrengthResult

    def __repr__(self) -> str:
        return f"GeneratedPassword(length={len(self.password)}, score={self.strength.score})"

    def to_dict(self) -> Dict[str, Any]:
        return {"password": self.password, "strength": self.strength.to_dict()}


def build_charset(
    include_uppercase: bool = True,
    include_lowercase: bool = True,
    include_numbers: bool = True,
    include_symbols: bool = True,
    exclude_ambiguous: bool = False,
) -> str:
    """Union of the selected pools (lowercase + digits when none selected)."""
    charset = ""
    if include_uppercase:
        charset += UPPERCASE_CHARS
    if include_lowercase:
        charset += LOWERCASE_CHARS
    if include_numbers:
        charset += NUMBER_CHARS
    if include_symbols:
        charset += SYMBOL_CHARS

    if not charset:
        logger.info("No character classes selected; using lowercase + numbers")
        get_audit_logger().log_event(
            event_type=EventType.GENERATOR_POLICY_DEFAULTED,
            severity=EventSeverity.INFO,
            message="Password generator fell back to lowercase + numbers",
        )
        charset = LOWERCASE_CHARS + NUMBER_CHARS

    if exclude_ambiguous:
        charset = "".join(c for c in charset if c not in AMBIGUOUS_CHARS)
    return charset


def generate_password(
    length: int = DEFAULT_LENGTH,
    include_uppercase: bool = True,
    include_lowercase: bool = True,
    include_numbers: bool = True,
    include_symbols: bool = True,
    exclude_ambiguous: bool = False,
) -> str:
    """
    Generate a random password of exactly ``length`` characters.

    Args:
        length: Number of characters (1-1024)
        include_uppercase: Draw from A-Z
        include_lowercase: Draw from a-z
        include_numbers: Draw from 0-9
        include_symbols: Draw from ``SYMBOL_CHARS``
        exclude_ambiguous: Drop look-alike characters (0 O 1 l I)

    Raises:
        InvalidGeneratorPolicy: ``length`` is not an int in range
        InsecureRandomUnavailable: No secure random source
    """
    if isinstance(length, bool) or not isinstance(length, int):
        raise InvalidGeneratorPolicy(f"length must be an integer; got {length!r}")
    if not MIN_LENGTH <= length <= MAX_LENGTH:
        raise InvalidGeneratorPolicy(
            f"length must be between {MIN_LENGTH} and {MAX_LENGTH}; got {length}"
        )

    charset = build_charset(
        include_uppercase=include_uppercase,
        include_lowercase=include_lowercase,
        include_numbers=include_numbers,
        include_symbols=include_symbols,
        exclude_ambiguous=exclude_ambiguous,
    )
    return "".join(charset[random_below(len(charset))] for _ in range(length))


def generate_new_password(**options) -> GeneratedPassword:
    """Generate a password with ``generate_password`` options and score it."""
    password = generate_password(**options)
    return GeneratedPassword(password=password, strength=analyze_password_strength(password))
