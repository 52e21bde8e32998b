#!/usr/bin/env python3
"""Keychain management for the dashboard's API credentials.

The SnapTrade client id / consumer key and the token-verification secret
can live in the system keychain instead of ``.env``; the settings loader
reads the keychain first.

Usage:
    python -m scripts.manage_credentials show
    python -m scripts.manage_credentials set SNAPTRADE_CLIENT_ID
    python -m scripts.manage_credentials delete SNAPTRADE_CLIENT_ID
    python -m scripts.manage_credentials import-env [--env-file PATH] [--clean]
"""

import argparse
import getpass
import re
import sys
from pathlib import Path

from dotenv import dotenv_values

from services.credential_manager import (
    CREDENTIAL_KEYS,
    delete_credential,
    get_credential,
    set_credential,
)

DEFAULT_ENV_FILE = Path(__file__).parent.parent / ".env"


def show() -> int:
    """Print which credentials are stored, without their values."""
    for key in sorted(CREDENTIAL_KEYS):
        state = "stored" if get_credential(key) else "missing"
        print(f"  {key:<24} {state}")
    return 0


def store(key: str, value: str | None = None) -> int:
    """Store one credential, prompting for the value if not given."""
    if key not in CREDENTIAL_KEYS:
        print(f"Unknown credential {key!r}. Expected one of: {', '.join(sorted(CREDENTIAL_KEYS))}")
        return 1
    if value is None:
        value = getpass.getpass(f"{key}: ")
    if not set_credential(key, value):
        print(f"Could not store {key}")
        return 1
    print(f"Stored {key}")
    return 0


def remove(key: str) -> int:
    if not delete_credential(key):
        print(f"Could not delete {key}")
        return 1
    print(f"Deleted {key}")
    return 0


def import_env(env_path: Path, clean: bool = False) -> int:
    """Copy credentials from a ``.env`` file into the keychain.

    Keys already holding the same value are left alone. With ``clean``,
    every key that ends up in the keychain is removed from the file;
    other lines and comments are preserved.
    """
    if not env_path.exists():
        print(f"No .env file found at {env_path}")
        return 1

    values = dotenv_values(env_path)
    in_keychain: list[str] = []
    failed: list[str] = []

    for key in sorted(CREDENTIAL_KEYS):
        value = values.get(key)
        if not value:
            continue
        if get_credential(key) == value or set_credential(key, value):
            in_keychain.append(key)
        else:
            failed.append(key)

    for key in in_keychain:
        print(f"  + {key}")
    for key in failed:
        print(f"  ! {key}")
    if not in_keychain and not failed:
        print("No credentials found in .env")

    if clean and in_keychain:
        _strip_keys(env_path, in_keychain)
    return 1 if failed else 0


def _strip_keys(env_path: Path, keys: list[str]) -> None:
    pattern = re.compile(r"^(" + "|".join(re.escape(k) for k in keys) + r")\s*=")
    lines = env_path.read_text().splitlines(keepends=True)
    env_path.write_text("".join(line for line in lines if not pattern.match(line)))
    print(f"Removed {len(keys)} credential(s) from {env_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage API credentials in the system keychain")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("show", help="List stored credentials")

    set_parser = subparsers.add_parser("set", help="Store a credential (prompts for the value)")
    set_parser.add_argument("key", help="Credential name")

    delete_parser = subparsers.add_parser("delete", help="Remove a credential")
    delete_parser.add_argument("key", help="Credential name")

    import_parser = subparsers.add_parser("import-env", help="Copy credentials from .env")
    import_parser.add_argument("--env-file", type=Path, default=DEFAULT_ENV_FILE)
    import_parser.add_argument(
        "--clean", action="store_true", help="Remove imported credentials from the file"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "show":
        return show()
    if args.command == "set":
        return store(args.key)
    if args.command == "delete":
        return remove(args.key)
    if args.command == "import-env":
        return import_env(args.env_file, clean=args.clean)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
