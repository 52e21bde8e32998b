"""Link service - builds SnapTrade connection-portal URLs."""

import logging

from sqlalchemy.orm import Session

from integrations.exceptions import (
    BrokerNotInitializedError,
    ProviderAPIError,
    ProviderError,
    ProviderUserExistsError,
    ProviderUserNotRegisteredError,
)
from integrations.provider_protocol import BrokerClient
from models.utils import utc_timestamp
from services.connection_store import BrokerConnectionStore
from services.credential_service import BrokerSecret, CredentialService, to_broker_secret

logger = logging.getLogger(__name__)

SUPPORTED_BROKERS = frozenset(
    {
        "ALPACA",
        "FIDELITY",
        "QUESTRADE",
        "ROBINHOOD",
        "TRADIER",
        "TRADESTATION",
        "VANGUARD",
        "SCHWAB",
    }
)

# Brokers whose portal flow breaks when pre-selected; the user picks them
# from the full list instead.
UNFILTERED_BROKERS = frozenset({"IBKR", "INTERACTIVE_BROKERS", "SCHWAB"})


class LinkError(Exception):
    """A connection-portal URL could not be produced."""

    pass


def normalize_broker(broker_id: str | None) -> str | None:
    """Map a requested broker to the value sent to SnapTrade.

    Returns:
        Upper-cased broker slug, or None when no broker should be sent
    """
    if not broker_id:
        return None
    broker = broker_id.strip().upper()
    if not broker:
        return None
    if broker in UNFILTERED_BROKERS:
        logger.info("Opening unfiltered connection portal for %s", broker)
        return None
    if broker not in SUPPORTED_BROKERS:
        logger.warning("Broker %s is not in the supported list, passing it through", broker)
    return broker


class LinkService:
    """Generates connection-portal URLs, repairing the registration if needed."""

    def __init__(self, credentials: CredentialService):
        self._credentials = credentials

    @property
    def _client(self) -> BrokerClient:
        return self._credentials.client

    def create_link(
        self,
        db: Session,
        user_id: str,
        redirect_uri: str,
        broker_id: str | None = None,
    ) -> str:
        """Return a SnapTrade connection-portal URL for the user.

        Args:
            db: Database session
            user_id: Application user ID
            redirect_uri: Where the portal redirects when the user is done
            broker_id: Optional broker to pre-select (e.g., "alpaca")

        Returns:
            The portal URL

        Raises:
            BrokerNotInitializedError: SnapTrade credentials are not configured
            LinkError: The URL could not be produced after the retry
        """
        if not self._client.is_configured():
            raise BrokerNotInitializedError(
                "SnapTrade SDK not initialized", provider_name=self._client.provider_name
            )

        broker = normalize_broker(broker_id)
        secret = self._credentials.resolve_secret(db, user_id)
        if secret.is_degraded:
            logger.warning(
                "Creating link for user %s with a %s secret", user_id, secret.kind.value
            )

        try:
            try:
                url = self._login(secret, redirect_uri, broker)
            except ProviderUserNotRegisteredError:
                logger.warning("SnapTrade does not know user %s, re-registering", user_id)
                secret = self._reregister(db, user_id)
                url = self._login(secret, redirect_uri, broker)
        except ProviderError as exc:
            detail = getattr(exc, "detail", None) or str(exc)
            logger.error("Failed to create link for user %s: %s", user_id, detail)
            raise LinkError(f"Failed to link account: {detail}") from exc

        BrokerConnectionStore.update(
            db,
            user_id,
            {"connection_started": utc_timestamp(), "broker_id": broker or "any"},
        )
        return url

    def _login(self, secret: BrokerSecret, redirect_uri: str, broker: str | None) -> str:
        return self._client.login_link(
            secret.remote_user_id, secret.value, redirect_uri, broker=broker
        )

    def _reregister(self, db: Session, user_id: str) -> BrokerSecret:
        """Force a fresh registration; on a conflict, recreate the remote user."""
        try:
            self._credentials.register_user(db, user_id, force=True)
        except ProviderAPIError as exc:
            if exc.status_code != 400 and not isinstance(exc, ProviderUserExistsError):
                raise
            return self._recreate_user(db, user_id)
        return to_broker_secret(BrokerConnectionStore.get(db, user_id))

    def _recreate_user(self, db: Session, user_id: str) -> BrokerSecret:
        logger.warning("Recreating SnapTrade user %s", user_id)
        with BrokerConnectionStore.locked(user_id):
            try:
                self._client.delete_user(user_id)
            except ProviderError as exc:
                logger.warning("Delete before re-registration failed for %s: %s", user_id, exc)

            registered = self._client.register_user(user_id)
            connection = BrokerConnectionStore.upsert(
                db,
                user_id,
                registered.user_secret,
                {
                    "registered_at": utc_timestamp(),
                    "snap_trade_user_id": registered.user_id,
                    "registration_method": "recreated",
                },
                replace_data=True,
            )
            return to_broker_secret(connection)
