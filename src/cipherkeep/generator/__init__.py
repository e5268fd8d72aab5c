# Generator Module - Password generation and strength scoring

from .password import (
    GeneratedPassword,
    build_charset,
    generate_new_password,
    generate_password,
)
from .strength import (
    PasswordStrengthResult,
    StrengthCategory,
    analyze_password_strength,
)

__all__ = [
    "GeneratedPassword",
    "build_charset",
    "generate_password",
    "generate_new_password",
    "PasswordStrengthResult",
    "StrengthCategory",
    "analyze_password_strength",
]
