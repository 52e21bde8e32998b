#!/usr/bin/env python3
"""
Operator utility for SnapTrade users stored by the dashboard.

Runs the same services as the API against the configured database, which
helps when support needs to inspect or repair one user's connection.

Usage:
    1. Set SNAPTRADE_CLIENT_ID and SNAPTRADE_CONSUMER_KEY in .env or keychain
    2. Run: python -m scripts.manage_snaptrade_users status --user-id <id>
    3. Run: python -m scripts.manage_snaptrade_users register --user-id <id>
    4. Run: python -m scripts.manage_snaptrade_users secret --user-id <id> [--force]
    5. Run: python -m scripts.manage_snaptrade_users link --user-id <id> --redirect-uri <url>
    6. Run: python -m scripts.manage_snaptrade_users holdings --user-id <id>
    7. Run: python -m scripts.manage_snaptrade_users deregister --user-id <id>
"""

import argparse
import sys

from sqlalchemy.orm import Session

from database import create_tables, session_scope
from integrations.exceptions import ProviderError
from integrations.provider_protocol import BrokerClient
from integrations.snaptrade_client import SnapTradeClient
from logging_config import setup_logging
from services.credential_service import CredentialService, secret_kind
from services.holdings_service import HoldingsService
from services.link_service import LinkError, LinkService


def _mask(secret: str) -> str:
    """Show only the last four characters of a secret."""
    if len(secret) <= 4:
        return "****"
    return "*" * 8 + secret[-4:]


def show_status(db: Session, credentials: CredentialService, user_id: str) -> int:
    """Print the stored connection for a user."""
    connection = credentials.get_connection(db, user_id)
    if connection is None:
        print(f"No SnapTrade connection stored for user '{user_id}'.")
        return 1

    data = connection.broker_data or {}
    print("\n" + "=" * 60)
    print(f"User:                {user_id}")
    print(f"Active:              {connection.is_active}")
    print(f"Secret kind:         {secret_kind(connection).value}")
    print(f"Registration method: {data.get('registration_method', '-')}")
    print(f"Registered at:       {data.get('registered_at', '-')}")
    print(f"SnapTrade user id:   {data.get('snap_trade_user_id', '-')}")
    if data.get("brokerage"):
        print(f"Brokerage:           {data['brokerage']}")
    if data.get("error_message"):
        print(f"Last error:          {data['error_message']}")
    print("=" * 60 + "\n")
    return 0


def register(db: Session, credentials: CredentialService, user_id: str) -> int:
    """Register a user unless an active secret is already stored."""
    print(f"Registering user: {user_id}")
    try:
        registered = credentials.register_user(db, user_id)
    except ProviderError as e:
        print(f"Error registering user: {e}")
        return 1
    print(f"SUCCESS! SnapTrade user id: {registered.user_id}")
    return 0


def show_secret(db: Session, credentials: CredentialService, user_id: str, force: bool) -> int:
    """Resolve (optionally refresh) a user's secret and print its kind."""
    try:
        secret = credentials.resolve_secret(db, user_id, force_refresh=force)
    except ProviderError as e:
        print(f"Error resolving secret: {e}")
        return 1
    print(f"Secret:    {_mask(secret.value)}")
    print(f"Kind:      {secret.kind.value}")
    if secret.is_degraded:
        print("WARNING: this is not a SnapTrade-issued secret; broker calls will fail.")
        return 1
    return 0


def create_link(
    db: Session,
    credentials: CredentialService,
    user_id: str,
    redirect_uri: str,
    broker: str | None,
) -> int:
    """Print a connection-portal URL for a user."""
    try:
        url = LinkService(credentials).create_link(db, user_id, redirect_uri, broker_id=broker)
    except (ProviderError, LinkError) as e:
        print(f"Error creating link: {e}")
        return 1
    print("\n" + "=" * 60)
    print("Open this URL in your browser to connect a brokerage:")
    print("=" * 60)
    print(url)
    print("=" * 60 + "\n")
    return 0


def show_holdings(
    db: Session, credentials: CredentialService, user_id: str, account_id: str | None
) -> int:
    """Print the live holdings view for a user."""
    try:
        holdings = HoldingsService(credentials).fetch_holdings(db, user_id, account_id=account_id)
    except ProviderError as e:
        print(f"Error fetching holdings: {e}")
        return 1

    if not holdings:
        print("No holdings found.")
        return 0

    exit_code = 0
    for holding in holdings:
        if holding.is_error:
            print(f"ERROR: {holding.error_message}")
            exit_code = 1
            continue
        marker = " (syncing)" if holding.is_pending else ""
        print(
            f"  {holding.account_name:<24} {holding.symbol:<10} "
            f"{holding.quantity:>12.4f} @ {holding.price_per_share:>10.2f} "
            f"= {holding.total_value:>12.2f} {holding.currency}{marker}"
        )
    return exit_code


def deregister(db: Session, credentials: CredentialService, user_id: str, assume_yes: bool) -> int:
    """Delete the SnapTrade user and deactivate the stored connection."""
    if not assume_yes:
        print(f"This deletes SnapTrade user '{user_id}' and ALL of its brokerage connections.")
        confirm = input("Continue? [y/N] ").strip().lower()
        if confirm != "y":
            print("Aborted.")
            return 1
    try:
        credentials.deregister_user(db, user_id)
    except ProviderError as e:
        print(f"Error deleting user: {e}")
        return 1
    print(f"SUCCESS! User '{user_id}' has been deregistered.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage SnapTrade users stored by the dashboard")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--user-id", required=True, help="Application user ID")
        return sub

    add_command("status", "Show the stored connection for a user")
    add_command("register", "Register a user with SnapTrade")

    secret_parser = add_command("secret", "Resolve a user's secret")
    secret_parser.add_argument(
        "--force", action="store_true", help="Re-register even if the secret is fresh"
    )

    link_parser = add_command("link", "Generate a connection-portal URL")
    link_parser.add_argument("--redirect-uri", required=True, help="Where the portal redirects")
    link_parser.add_argument("--broker", default=None, help="Broker to pre-select (e.g., ALPACA)")

    holdings_parser = add_command("holdings", "Show live holdings")
    holdings_parser.add_argument("--account-id", default=None, help="Only this account")

    deregister_parser = add_command("deregister", "Delete a user from SnapTrade")
    deregister_parser.add_argument("--yes", action="store_true", help="Skip confirmation")

    return parser


def main(argv: list[str] | None = None, client: BrokerClient | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()
    create_tables()
    credentials = CredentialService(client or SnapTradeClient())

    with session_scope() as db:
        if args.command == "status":
            return show_status(db, credentials, args.user_id)
        if args.command == "register":
            return register(db, credentials, args.user_id)
        if args.command == "secret":
            return show_secret(db, credentials, args.user_id, args.force)
        if args.command == "link":
            return create_link(db, credentials, args.user_id, args.redirect_uri, args.broker)
        if args.command == "holdings":
            return show_holdings(db, credentials, args.user_id, args.account_id)
        if args.command == "deregister":
            return deregister(db, credentials, args.user_id, args.yes)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
