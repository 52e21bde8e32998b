"""Holdings service - live account and holdings view from SnapTrade."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

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
from services.credential_service import CredentialService

logger = logging.getLogger(__name__)

PENDING_SYMBOL = "PENDING"
ERROR_SYMBOL = "ERROR"
CASH_SYMBOL = "CASH"


@dataclass
class Holding:
    """One row of the holdings view.

    Besides real positions this carries two kinds of marker rows:
    ``PENDING`` for an account SnapTrade is still syncing, and a single
    ``ERROR`` row when the whole fetch failed.
    """

    symbol: str
    name: str
    quantity: float
    price_per_share: float
    total_value: float
    gain_loss: float
    purchase_price: float
    account_id: str
    account_name: str
    broker_name: str
    currency: str = "USD"
    is_pending: bool = False
    is_error: bool = False
    error_message: str | None = None


def purchase_price(book_value: float, quantity: float) -> float:
    """Average cost per unit; 0 when the quantity is 0."""
    if not quantity:
        return 0.0
    return book_value / quantity


def holding_from_position(position: BrokerPosition, account: BrokerAccount) -> Holding:
    total_value = position.units * position.price
    return Holding(
        symbol=position.symbol,
        name=position.description or position.symbol,
        quantity=position.units,
        price_per_share=position.price,
        total_value=total_value,
        gain_loss=total_value - position.book_value,
        purchase_price=purchase_price(position.book_value, position.units),
        account_id=account.id,
        account_name=account.name,
        broker_name=account.institution,
        currency=position.currency or "USD",
    )


def holding_from_cash(balance: BrokerBalance, account: BrokerAccount) -> Holding:
    return Holding(
        symbol=CASH_SYMBOL,
        name=f"Cash ({balance.currency})",
        quantity=1,
        price_per_share=balance.amount,
        total_value=balance.amount,
        gain_loss=0.0,
        purchase_price=balance.amount,
        account_id=account.id,
        account_name=account.name,
        broker_name=account.institution,
        currency=balance.currency or "USD",
    )


def pending_holding(account: BrokerAccount) -> Holding:
    return Holding(
        symbol=PENDING_SYMBOL,
        name=f"{account.name or 'Account'} (Syncing...)",
        quantity=0.0,
        price_per_share=0.0,
        total_value=0.0,
        gain_loss=0.0,
        purchase_price=0.0,
        account_id=account.id,
        account_name=account.name,
        broker_name=account.institution,
        is_pending=True,
    )


def error_holding(message: str) -> Holding:
    return Holding(
        symbol=ERROR_SYMBOL,
        name="Error fetching holdings",
        quantity=0.0,
        price_per_share=0.0,
        total_value=0.0,
        gain_loss=0.0,
        purchase_price=0.0,
        account_id="error",
        account_name="Error",
        broker_name="SnapTrade",
        is_error=True,
        error_message=message,
    )


class HoldingsService:
    """Reads accounts and holdings for a user straight from SnapTrade."""

    def __init__(self, credentials: CredentialService):
        self._credentials = credentials

    @property
    def _client(self) -> BrokerClient:
        return self._credentials.client

    def _require_configured(self) -> None:
        if not self._client.is_configured():
            raise BrokerNotInitializedError(
                "SnapTrade SDK not initialized", provider_name=self._client.provider_name
            )

    def fetch_accounts(self, db: Session, user_id: str) -> list[BrokerAccount]:
        """List the user's linked brokerage accounts.

        Raises:
            ProviderError: The accounts could not be listed
        """
        self._require_configured()
        secret = self._credentials.resolve_secret(db, user_id)
        accounts = self._client.list_accounts(secret.remote_user_id, secret.value)
        logger.info("Fetched %d SnapTrade accounts for user %s", len(accounts), user_id)
        return accounts

    def fetch_holdings(
        self, db: Session, user_id: str, account_id: str | None = None
    ) -> list[Holding]:
        """Build the holdings view for a user.

        Failures for one account are logged and that account is skipped.
        An account SnapTrade is still syncing yields a PENDING row. If the
        fetch fails as a whole, the result is a single ERROR row.

        Args:
            db: Database session
            user_id: Application user ID
            account_id: Only include this account, if given

        Returns:
            List of Holding rows

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
        """
        self._require_configured()
        try:
            secret = self._credentials.resolve_secret(db, user_id)
            accounts = self._client.list_accounts(secret.remote_user_id, secret.value)
            if account_id:
                accounts = [account for account in accounts if account.id == account_id]

            holdings: list[Holding] = []
            for account in accounts:
                holdings.extend(
                    self._account_holdings(secret.remote_user_id, secret.value, account)
                )
            return holdings
        except Exception as exc:
            logger.error("Error fetching SnapTrade holdings for %s: %s", user_id, exc, exc_info=True)
            return [error_holding(str(exc) or "Unknown error")]

    def _account_holdings(
        self, remote_user_id: str, user_secret: str, account: BrokerAccount
    ) -> list[Holding]:
        try:
            positions = self._client.list_positions(remote_user_id, user_secret, account.id)
        except ProviderSyncPendingError:
            logger.warning("Account %s sync not yet completed, adding placeholder", account.id)
            return [pending_holding(account)]
        except ProviderError as exc:
            logger.error("Error fetching positions for account %s: %s", account.id, exc)
            return []

        holdings = [holding_from_position(position, account) for position in positions]

        try:
            balances = self._client.list_balances(remote_user_id, user_secret, account.id)
        except ProviderError as exc:
            logger.warning("Error fetching balances for account %s: %s", account.id, exc)
            return holdings

        holdings.extend(
            holding_from_cash(balance, account)
            for balance in balances
            if balance.is_cash and balance.amount > 0
        )
        return holdings
