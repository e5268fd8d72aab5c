# Cipherkeep - Command Line Entry Point
#
# Offline utilities over the crypto core: password generation, strength
# scoring, salt generation and auth-hash derivation.  Output is JSON.
# Master passwords are read with getpass, never from argv.

import argparse
import getpass
import json
import sys

from . import __version__
from .config import DEFAULT_AUTH_ITERATIONS
from .core import get_audit_logger, EventType, EventSeverity
from .crypto.exceptions import CryptoError, CryptoProviderUnavailable
from .crypto.kdf import derive_auth_hash, generate_salt
from .crypto.primitives import b64decode, b64encode
from .generator import analyze_password_strength, generate_new_password
from .generator.password import DEFAULT_LENGTH


def _cmd_generate(args) -> dict:
    generated = generate_new_password(
        length=args.length,
        include_uppercase=not args.no_uppercase,
        include_lowercase=not args.no_lowercase,
        include_numbers=not args.no_numbers,
        include_symbols=not args.no_symbols,
        exclude_ambiguous=args.exclude_ambiguous,
    )
    return generated.to_dict()


def _cmd_strength(args) -> dict:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    return analyze_password_strength(password).to_dict()


def _cmd_salt(args) -> dict:
    return {"salt": b64encode(generate_salt())}


def _cmd_auth_hash(args) -> dict:
    try:
        salt = b64decode(args.salt)
    except ValueError:
        raise SystemExit("error: --salt must be base64")
    password = getpass.getpass("Master password: ")
    return {
        "authHash": derive_auth_hash(password, salt, args.iterations),
        "iterations": args.iterations,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cipherkeep",
        description="Cipherkeep - client-side crypto utilities for a zero-knowledge vault",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Cipherkeep v{__version__}"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a random password")
    gen.add_argument("--length", type=int, default=DEFAULT_LENGTH, help=f"Password length (default: {DEFAULT_LENGTH})")
    gen.add_argument("--no-uppercase", action="store_true", help="Exclude A-Z")
    gen.add_argument("--no-lowercase", action="store_true", help="Exclude a-z")
    gen.add_argument("--no-numbers", action="store_true", help="Exclude 0-9")
    gen.add_argument("--no-symbols", action="store_true", help="Exclude symbols")
    gen.add_argument("--exclude-ambiguous", action="store_true", help="Exclude 0 O 1 l I")
    gen.set_defaults(func=_cmd_generate)

    strength = sub.add_parser("strength", help="Score a password")
    strength.add_argument("password", nargs="?", help="Password to score (prompted when omitted)")
    strength.set_defaults(func=_cmd_strength)

    salt = sub.add_parser("salt", help="Generate a new 16-byte account salt")
    salt.set_defaults(func=_cmd_salt)

    auth = sub.add_parser("auth-hash", help="Derive the auth hash for a salt")
    auth.add_argument("--salt", required=True, help="Account salt (base64)")
    auth.add_argument("--iterations", type=int, default=DEFAULT_AUTH_ITERATIONS, help=f"PBKDF2 rounds (default: {DEFAULT_AUTH_ITERATIONS})")
    auth.set_defaults(func=_cmd_auth_hash)

    return parser


def main(argv=None) -> int:
    """Main entry point for Cipherkeep."""
    args = build_parser().parse_args(argv)

    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Cipherkeep CLI invoked",
        details={"version": __version__, "command": args.command}
    )

    try:
        result = args.func(args)
    except CryptoProviderUnavailable as e:
        print(f"error: secure crypto primitives unavailable: {e}", file=sys.stderr)
        return 2
    except CryptoError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
