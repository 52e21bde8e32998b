"""Import service - turns SnapTrade holdings into stored assets after linking."""

import logging
import time
from collections.abc import Callable
from decimal import Decimal

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import (
    BrokerNotInitializedError,
    ProviderError,
    ProviderSyncPendingError,
)
from integrations.provider_protocol import (
    BrokerAccount,
    BrokerBalance,
    BrokerClient,
    BrokerPosition,
)
from models import Asset, AssetCategory
from models.utils import utc_now, utc_timestamp
from services.connection_store import BrokerConnectionStore
from services.credential_service import BrokerSecret, CredentialService
from services.holdings_service import CASH_SYMBOL, purchase_price

logger = logging.getLogger(__name__)

INVESTMENTS_CATEGORY_SLUG = "investments"
ASSET_SOURCE = "snaptrade"


class CategoryNotFoundError(Exception):
    """The asset category imports are filed under does not exist."""

    pass


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(round(value, 4)))


def is_interactive_brokers(account: BrokerAccount) -> bool:
    return "INTERACTIVE" in (account.institution or "").upper()


def is_importable_cash(balance: BrokerBalance, account: BrokerAccount) -> bool:
    """Cash balances are imported when positive.

    Interactive Brokers does not flag its cash entries, so any positive
    balance from it counts.
    """
    if balance.amount <= 0:
        return False
    return balance.is_cash or is_interactive_brokers(account)


class ImportService:
    """Handles the post-connection callback from the SnapTrade portal."""

    def __init__(
        self,
        credentials: CredentialService,
        sleep: Callable[[float], None] = time.sleep,
        settle_seconds: float | None = None,
    ):
        """Initialize the import service.

        Args:
            credentials: Credential service (also provides the broker client)
            sleep: Delay function, replaced in tests
            settle_seconds: Wait after refreshing an authorization.
                            Defaults to settings.CALLBACK_SETTLE_SECONDS.
        """
        self._credentials = credentials
        self._sleep = sleep
        if settle_seconds is None:
            settle_seconds = settings.CALLBACK_SETTLE_SECONDS
        self._settle_seconds = settle_seconds

    @property
    def _client(self) -> BrokerClient:
        return self._credentials.client

    def _require_configured(self) -> None:
        if not self._client.is_configured():
            raise BrokerNotInitializedError(
                "SnapTrade SDK not initialized", provider_name=self._client.provider_name
            )

    def handle_callback(
        self,
        db: Session,
        user_id: str,
        authorization_id: str | None = None,
        brokerage: str | None = None,
    ) -> list[BrokerAccount]:
        """Record a completed connection and import its holdings as assets.

        Every position and every positive cash balance becomes a new Asset
        in the investments category. Imports are append-only, so running
        this twice for the same account stores the holdings twice.
        Accounts SnapTrade is still syncing are skipped.

        Args:
            db: Database session
            user_id: Application user ID
            authorization_id: Brokerage authorization created by the portal
            brokerage: Brokerage name reported by the portal

        Returns:
            The user's accounts

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
            CategoryNotFoundError: The investments category is missing
            ProviderError: Accounts or holdings could not be read
        """
        self._require_configured()
        secret = self._credentials.resolve_secret(db, user_id)

        with BrokerConnectionStore.locked(user_id):
            existing = BrokerConnectionStore.get(db, user_id)
            existing_data = (existing.broker_data or {}) if existing is not None else {}
            BrokerConnectionStore.update(
                db,
                user_id,
                {
                    "connected_at": utc_timestamp(),
                    "brokerage": brokerage or existing_data.get("brokerage"),
                    "authorization_id": authorization_id
                    or existing_data.get("authorization_id"),
                },
                is_active=True,
            )

        if authorization_id:
            self._refresh_authorization(secret, authorization_id)

        accounts = self._client.list_accounts(secret.remote_user_id, secret.value)

        category = (
            db.query(AssetCategory)
            .filter(AssetCategory.slug == INVESTMENTS_CATEGORY_SLUG)
            .first()
        )
        if category is None:
            logger.error("Investment category not found")
            raise CategoryNotFoundError(
                f"Asset category '{INVESTMENTS_CATEGORY_SLUG}' not found"
            )

        try:
            created = 0
            for account in accounts:
                created += self._import_account(db, user_id, secret, account, category)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Imported %d assets from %d SnapTrade accounts for user %s",
            created,
            len(accounts),
            user_id,
        )
        return accounts

    def disconnect(self, db: Session, user_id: str, authorization_id: str) -> bool:
        """Remove a brokerage authorization and deactivate the connection.

        Returns:
            True; also when no account belongs to the authorization

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
            ProviderError: The accounts could not be listed
        """
        self._require_configured()
        secret = self._credentials.resolve_secret(db, user_id)
        accounts = self._client.list_accounts(secret.remote_user_id, secret.value)

        if not any(account.authorization_id == authorization_id for account in accounts):
            logger.warning("No account found with connection ID %s", authorization_id)
            return True

        try:
            self._client.remove_authorization(
                secret.remote_user_id, secret.value, authorization_id
            )
            logger.info("Removed brokerage authorization %s", authorization_id)
        except ProviderError as exc:
            logger.error("Error removing brokerage authorization %s: %s", authorization_id, exc)

        with BrokerConnectionStore.locked(user_id):
            BrokerConnectionStore.deactivate(
                db,
                user_id,
                {"disconnected_at": utc_timestamp(), "authorization_id": authorization_id},
            )
        return True

    def _refresh_authorization(self, secret: BrokerSecret, authorization_id: str) -> None:
        try:
            logger.info("Refreshing brokerage authorization %s", authorization_id)
            self._client.refresh_authorization(
                secret.remote_user_id, secret.value, authorization_id
            )
        except ProviderError as exc:
            logger.error("Error refreshing brokerage authorization %s: %s", authorization_id, exc)
            return
        # Give SnapTrade a moment to propagate the refreshed holdings
        self._sleep(self._settle_seconds)

    def _import_account(
        self,
        db: Session,
        user_id: str,
        secret: BrokerSecret,
        account: BrokerAccount,
        category: AssetCategory,
    ) -> int:
        try:
            positions = self._client.list_positions(
                secret.remote_user_id, secret.value, account.id
            )
        except ProviderSyncPendingError:
            logger.warning("Account %s is still syncing, skipping import", account.id)
            return 0

        balances = self._client.list_balances(secret.remote_user_id, secret.value, account.id)

        created = 0
        for position in positions:
            db.add(self._position_asset(user_id, position, account, category))
            created += 1
        for balance in balances:
            if is_importable_cash(balance, account):
                logger.debug("Importing cash balance %s %s", balance.amount, balance.currency)
                db.add(self._cash_asset(user_id, balance, account, category))
                created += 1
        db.flush()
        return created

    def _position_asset(
        self,
        user_id: str,
        position: BrokerPosition,
        account: BrokerAccount,
        category: AssetCategory,
    ) -> Asset:
        total_value = position.units * position.price
        return Asset(
            user_id=user_id,
            name=position.symbol,
            value=_to_decimal(total_value),
            description=f"{position.units:g} shares of {position.symbol}",
            location=account.name,
            acquisition_date=utc_now(),
            acquisition_value=_to_decimal(position.book_value or total_value),
            category_id=category.id,
            is_liability=False,
            asset_metadata={
                "symbol": position.symbol,
                "price_per_share": position.price,
                "purchase_price": purchase_price(position.book_value, position.units),
                "quantity": position.units,
                "currency": position.currency or "USD",
                "asset_type": "stock",
                "source": ASSET_SOURCE,
                "account_id": account.id,
                "account_name": account.name,
                "broker_name": account.institution,
            },
        )

    def _cash_asset(
        self,
        user_id: str,
        balance: BrokerBalance,
        account: BrokerAccount,
        category: AssetCategory,
    ) -> Asset:
        return Asset(
            user_id=user_id,
            name=f"Cash ({balance.currency})",
            value=_to_decimal(balance.amount),
            description=f"Cash balance in {account.name}",
            location=account.name,
            acquisition_date=utc_now(),
            acquisition_value=_to_decimal(balance.amount),
            category_id=category.id,
            is_liability=False,
            asset_metadata={
                "symbol": CASH_SYMBOL,
                "price_per_share": balance.amount,
                "purchase_price": balance.amount,
                "quantity": 1,
                "currency": balance.currency or "USD",
                "asset_type": "cash",
                "source": ASSET_SOURCE,
                "account_id": account.id,
                "account_name": account.name,
                "broker_name": account.institution,
                "balance_type": balance.balance_type or "CASH",
            },
        )
