"""Password strength heuristic (a UX signal, not a security proof).

Score (0-100):

    min(length * 2.5, 40)                 length component
  + 10 * character classes present        diversity component
  - 10 if 3+ identical characters in a row
  - 10 if a 3-character ascending run ("abc", "123")

clamped to [0, 100].  Categories: <20 Very Weak, <40 Weak, <60 Moderate,
<80 Strong, else Very Strong.

The weights are ad hoc and kept exactly so every client shows the same
number for the same password.  Do not use the result as the only gate
for accepting a password.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

# Alphabet sizes used for the coarse entropy estimate
UPPERCASE_POOL_SIZE = 26
LOWERCASE_POOL_SIZE = 26
DIGIT_POOL_SIZE = 10
SYMBOL_POOL_SIZE = 33

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"[0-9]")
_SYMBOL_RE = re.compile(r"[^A-Za-z0-9]")
_REPEATED_RE = re.compile(r"(.)\1{2,}", re.DOTALL)
_SEQUENTIAL_RE = re.compile(
    "|".join(
        [
            "abc", "bcd", "cde", "def", "efg", "fgh", "ghi", "hij", "ijk",
            "jkl", "klm", "lmn", "mno", "nop", "opq", "pqr", "qrs", "rst",
            "stu", "tuv", "uvw", "vwx", "wxy", "xyz",
            "012", "123", "234", "345", "456", "567", "678", "789",
        ]
    ),
    re.IGNORECASE,
)


class StrengthCategory(str, Enum):
    """Coarse strength buckets shown to the user."""

    VERY_WEAK = "VeryWeak"
    WEAK = "Weak"
    MODERATE = "Moderate"
    STRONG = "Strong"
    VERY_STRONG = "VeryStrong"

    @property
    def label(self) -> str:
        return {
            StrengthCategory.VERY_WEAK: "Very Weak",
            StrengthCategory.WEAK: "Weak",
            StrengthCategory.MODERATE: "Moderate",
            StrengthCategory.STRONG: "Strong",
            StrengthCategory.VERY_STRONG: "Very Strong",
        }[self]

    @classmethod
    def from_score(cls, score: float) -> "StrengthCategory":
        if score < 20:
            return cls.VERY_WEAK
        if score < 40:
            return cls.WEAK
        if score < 60:
            return cls.MODERATE
        if score < 80:
            return cls.STRONG
        return cls.VERY_STRONG


@dataclass(frozen=True)
class PasswordStrengthResult:
    """Stateless analysis of one password; recomputed on demand."""

    score: float
    category: StrengthCategory
    length: int
    has_uppercase: bool
    has_lowercase: bool
    has_numbers: bool
    has_symbols: bool
    entropy_bits: float
    has_repeated_chars: bool
    has_sequential_chars: bool

    @property
    def class_count(self) -> int:
        return sum([self.has_uppercase, self.has_lowercase, self.has_numbers, self.has_symbols])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "category": self.category.value,
            "label": self.category.label,
            "length": self.length,
            "has_uppercase": self.has_uppercase,
            "has_lowercase": self.has_lowercase,
            "has_numbers": self.has_numbers,
            "has_symbols": self.has_symbols,
            "entropy_bits": round(self.entropy_bits, 2),
            "has_repeated_chars": self.has_repeated_chars,
            "has_sequential_chars": self.has_sequential_chars,
        }


def analyze_password_strength(password: str) -> PasswordStrengthResult:
    """Score ``password`` with the shared heuristic (see module docstring)."""
    if not isinstance(password, str):
        raise TypeError(f"password must be a string; got {type(password).__name__}")

    length = len(password)
    has_uppercase = bool(_UPPER_RE.search(password))
    has_lowercase = bool(_LOWER_RE.search(password))
    has_numbers = bool(_DIGIT_RE.search(password))
    has_symbols = bool(_SYMBOL_RE.search(password))

    alphabet = 0
    if has_uppercase:
        alphabet += UPPERCASE_POOL_SIZE
    if has_lowercase:
        alphabet += LOWERCASE_POOL_SIZE
    if has_numbers:
        alphabet += DIGIT_POOL_SIZE
    if has_symbols:
        alphabet += SYMBOL_POOL_SIZE
    entropy_bits = math.log2(alphabet) * length if alphabet else 0.0

    has_repeated_chars = bool(_REPEATED_RE.search(password))
    has_sequential_chars = bool(_SEQUENTIAL_RE.search(password))

    class_count = sum([has_uppercase, has_lowercase, has_numbers, has_symbols])
    score = min(length * 2.5, 40) + class_count * 10
    if has_repeated_chars:
        score -= 10
    if has_sequential_chars:
        score -= 10
    score = max(0.0, min(float(score), 100.0))

    return PasswordStrengthResult(
        score=score,
        category=StrengthCategory.from_score(score),
        length=length,
        has_uppercase=has_uppercase,
        has_lowercase=has_lowercase,
        has_numbers=has_numbers,
        has_symbols=has_symbols,
        entropy_bits=entropy_bits,
        has_repeated_chars=has_repeated_chars,
        has_sequential_chars=has_sequential_chars,
    )
