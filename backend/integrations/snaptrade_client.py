"""SnapTrade API client wrapper.

This module implements the BrokerClient protocol on top of the SnapTrade
SDK. It is the only place that talks to the SDK: responses are normalized
into :mod:`integrations.provider_protocol` dataclasses and SDK exceptions
are classified into :mod:`integrations.exceptions` types.
"""

import json
import logging

import urllib3
from snaptrade_client import SnapTrade
from snaptrade_client.exceptions import ApiException

from config import settings
from integrations.exceptions import (
    BrokerNotInitializedError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
    ProviderSyncPendingError,
    ProviderUserExistsError,
    ProviderUserNotRegisteredError,
)
from integrations.provider_protocol import (
    BrokerAccount,
    BrokerBalance,
    BrokerPosition,
    RegisteredUser,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "SnapTrade"
CONNECTION_PORTAL_VERSION = "v4"

_USER_EXISTS_MARKER = "already exist"
_NOT_REGISTERED_MARKERS = (
    "not registered",
    "does not exist",
    "not found",
    "invalid userid",
    "invalid user id",
    "invalid usersecret",
)


def _get(obj, key, default=None):
    """Get a field from a dict or an SDK object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key, default)
    else:
        value = getattr(obj, key, default)
    return default if value is None else value


def _to_float(value) -> float:
    """Parse a numeric field, treating missing or malformed values as 0."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _body(response):
    """Unwrap an SDK response; some endpoints return the payload directly."""
    if isinstance(response, (list, dict)):
        return response
    return getattr(response, "body", response)


def _error_body(exc: Exception):
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return body
    return body


def _error_status(exc: Exception) -> int:
    status = getattr(exc, "status", None)
    if not status:
        body = _error_body(exc)
        if isinstance(body, dict):
            status = body.get("status_code")
    try:
        return int(status or 0)
    except (TypeError, ValueError):
        return 0


def error_detail(exc: Exception) -> str:
    """Best human-readable description of an SDK error."""
    body = _error_body(exc)
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if detail:
            return str(detail)
        return json.dumps(body, default=str)
    if isinstance(body, str) and body:
        return body
    return str(getattr(exc, "reason", None) or exc or "Unknown error")


def classify_api_error(exc: Exception, action: str) -> ProviderError:
    """Map a SnapTrade SDK exception onto the provider exception hierarchy.

    Args:
        exc: The exception raised by the SDK.
        action: Short description of the call, used in the message.

    Returns:
        A ProviderError subclass instance (not raised).
    """
    status = _error_status(exc)
    detail = error_detail(exc)
    message = f"SnapTrade {action} failed (HTTP {status or 'unknown'}): {detail}"
    lowered = detail.lower()

    if status == 400 and _USER_EXISTS_MARKER in lowered:
        return ProviderUserExistsError(
            message, provider_name=PROVIDER_NAME, status_code=status, detail=detail
        )
    if status == 425:
        return ProviderSyncPendingError(
            message, provider_name=PROVIDER_NAME, status_code=status, detail=detail
        )
    if status in (401, 403, 404) and any(m in lowered for m in _NOT_REGISTERED_MARKERS):
        return ProviderUserNotRegisteredError(message, provider_name=PROVIDER_NAME)
    if status in (401, 403):
        return ProviderAuthError(message, provider_name=PROVIDER_NAME)
    return ProviderAPIError(
        message, provider_name=PROVIDER_NAME, status_code=status or None, detail=detail
    )


class SnapTradeClient:
    """Wrapper around the SnapTrade SDK.

    The SDK object is created lazily, and only when both API credentials
    are configured. Without them every call raises
    :class:`BrokerNotInitializedError`.
    """

    def __init__(
        self,
        client_id: str | None = None,
        consumer_key: str | None = None,
    ):
        """Initialize the client with API credentials.

        Args:
            client_id: SnapTrade client ID (defaults to settings)
            consumer_key: SnapTrade consumer key (defaults to settings)
        """
        self._client_id = client_id or settings.SNAPTRADE_CLIENT_ID
        self._consumer_key = consumer_key or settings.SNAPTRADE_CONSUMER_KEY
        self._sdk: SnapTrade | None = None

    @property
    def provider_name(self) -> str:
        """Return the provider name used in logs and errors."""
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """Check if SnapTrade API credentials are configured."""
        return bool(self._client_id and self._consumer_key)

    def _get_sdk(self) -> SnapTrade:
        """Return (and cache) the SDK client."""
        if not self.is_configured():
            raise BrokerNotInitializedError(
                "SnapTrade SDK not initialized. "
                "Set SNAPTRADE_CLIENT_ID and SNAPTRADE_CONSUMER_KEY.",
                provider_name=PROVIDER_NAME,
            )
        if self._sdk is None:
            logger.info("Initializing SnapTrade SDK")
            self._sdk = SnapTrade(
                consumer_key=self._consumer_key,
                client_id=self._client_id,
            )
        return self._sdk

    def _call(self, action: str, fn, **kwargs):
        """Invoke an SDK method, translating its failures into ProviderErrors."""
        try:
            return _body(fn(**kwargs))
        except ApiException as exc:
            raise classify_api_error(exc, action) from exc
        except (urllib3.exceptions.HTTPError, OSError) as exc:
            raise ProviderConnectionError(
                f"SnapTrade {action} failed: {exc}", provider_name=PROVIDER_NAME
            ) from exc

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def check_status(self) -> dict:
        """Check the SnapTrade API status endpoint."""
        sdk = self._get_sdk()
        body = self._call("status check", sdk.api_status.check)
        return body if isinstance(body, dict) else {"value": str(body)}

    def register_user(self, user_id: str) -> RegisteredUser:
        """Register a new SnapTrade user and return its secret."""
        sdk = self._get_sdk()
        body = self._call(
            "registration",
            sdk.authentication.register_snap_trade_user,
            user_id=user_id,
        )
        user_secret = _get(body, "userSecret") or _get(body, "user_secret")
        if not user_secret:
            raise ProviderDataError(
                "Failed to register user with SnapTrade - no data returned",
                provider_name=PROVIDER_NAME,
            )
        remote_user_id = _get(body, "userId") or _get(body, "user_id") or user_id
        return RegisteredUser(user_id=str(remote_user_id), user_secret=str(user_secret))

    def delete_user(self, user_id: str) -> None:
        """Delete a SnapTrade user and every connection it owns."""
        sdk = self._get_sdk()
        self._call(
            "user deletion",
            sdk.authentication.delete_snap_trade_user,
            user_id=user_id,
        )

    def login_link(
        self,
        user_id: str,
        user_secret: str,
        redirect_uri: str,
        broker: str | None = None,
    ) -> str:
        """Generate a connection portal URL.

        Args:
            user_id: SnapTrade user ID.
            user_secret: SnapTrade user secret.
            redirect_uri: Where the portal sends the user when done.
            broker: Optional broker slug; omitted from the request when None.

        Returns:
            The portal redirect URI.
        """
        sdk = self._get_sdk()
        kwargs = {
            "user_id": user_id,
            "user_secret": user_secret,
            "immediate_redirect": True,
            "custom_redirect": redirect_uri,
            "connection_portal_version": CONNECTION_PORTAL_VERSION,
        }
        if broker:
            kwargs["broker"] = broker
        body = self._call("login", sdk.authentication.login_snap_trade_user, **kwargs)
        if not body:
            raise ProviderDataError(
                "Failed to generate connection portal URL - no data returned",
                provider_name=PROVIDER_NAME,
            )
        redirect = (
            _get(body, "redirectURI")
            or _get(body, "redirect_uri")
            or _get(body, "loginRedirectURI")
        )
        if not redirect:
            logger.error("No redirectURI in login response: %s", body)
            raise ProviderDataError(
                "Failed to generate connection portal URL - no redirect URI",
                provider_name=PROVIDER_NAME,
            )
        return str(redirect)

    # ------------------------------------------------------------------
    # Account information
    # ------------------------------------------------------------------

    def list_accounts(self, user_id: str, user_secret: str) -> list[BrokerAccount]:
        """Fetch the user's linked brokerage accounts."""
        sdk = self._get_sdk()
        accounts = self._call(
            "account listing",
            sdk.account_information.list_user_accounts,
            user_id=user_id,
            user_secret=user_secret,
        )
        if accounts is None:
            raise ProviderDataError("Failed to fetch accounts", provider_name=PROVIDER_NAME)
        return [self._map_account(account) for account in accounts]

    def list_positions(
        self, user_id: str, user_secret: str, account_id: str
    ) -> list[BrokerPosition]:
        """Fetch positions for one account."""
        sdk = self._get_sdk()
        positions = self._call(
            f"positions for account {account_id}",
            sdk.account_information.get_user_account_positions,
            user_id=user_id,
            user_secret=user_secret,
            account_id=account_id,
        )
        return [
            self._map_position(position)
            for position in positions or []
            if _get(position, "symbol") is not None
        ]

    def list_balances(
        self, user_id: str, user_secret: str, account_id: str
    ) -> list[BrokerBalance]:
        """Fetch balances for one account."""
        sdk = self._get_sdk()
        balances = self._call(
            f"balances for account {account_id}",
            sdk.account_information.get_user_account_balance,
            user_id=user_id,
            user_secret=user_secret,
            account_id=account_id,
        )
        return [self._map_balance(balance) for balance in balances or []]

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def remove_authorization(
        self, user_id: str, user_secret: str, authorization_id: str
    ) -> None:
        """Remove a brokerage authorization (disconnects its accounts)."""
        sdk = self._get_sdk()
        self._call(
            "authorization removal",
            sdk.connections.remove_brokerage_authorization,
            authorization_id=authorization_id,
            user_id=user_id,
            user_secret=user_secret,
        )

    def refresh_authorization(
        self, user_id: str, user_secret: str, authorization_id: str
    ) -> None:
        """Ask SnapTrade to refresh holdings for a brokerage authorization."""
        sdk = self._get_sdk()
        self._call(
            "authorization refresh",
            sdk.connections.refresh_brokerage_authorization,
            authorization_id=authorization_id,
            user_id=user_id,
            user_secret=user_secret,
        )

    # ------------------------------------------------------------------
    # Response mapping
    # ------------------------------------------------------------------

    def _map_account(self, account) -> BrokerAccount:
        brokerage = _get(account, "brokerage")
        institution = (
            _get(account, "institution_name")
            or self._extract_brokerage_name(brokerage)
            or self._extract_brokerage_name(_get(account, "brokerage_authorization"))
            or PROVIDER_NAME
        )
        return BrokerAccount(
            id=str(_get(account, "id", "")),
            name=_get(account, "name") or "Investment Account",
            institution=institution,
            number=_get(account, "number"),
            authorization_id=self._extract_authorization_id(account),
        )

    def _map_position(self, position) -> BrokerPosition:
        symbol_data = _get(position, "symbol")
        units = _to_float(_get(position, "units", _get(position, "quantity")))
        price = _to_float(_get(position, "price"))

        book_value_raw = _get(position, "book_value", _get(position, "bookValue"))
        if book_value_raw is not None:
            book_value = _to_float(book_value_raw)
        else:
            book_value = _to_float(_get(position, "average_purchase_price")) * units

        currency = self._extract_currency(_get(position, "currency"))
        if currency is None:
            currency = self._extract_currency(_get(symbol_data, "currency")) or "USD"

        return BrokerPosition(
            symbol=self._extract_symbol(symbol_data),
            description=self._extract_description(symbol_data),
            units=units,
            price=price,
            book_value=book_value,
            currency=currency,
        )

    def _map_balance(self, balance) -> BrokerBalance:
        currency = self._extract_currency(_get(balance, "currency")) or "USD"
        balance_type = _get(balance, "type")
        amount_raw = _get(balance, "amount")
        cash = _get(balance, "cash")
        if amount_raw is not None:
            # Legacy shape: an amount plus a cash flag
            amount = _to_float(amount_raw)
            is_cash = bool(cash) or balance_type == "CASH"
        else:
            # Current shape: the cash field holds the cash amount
            amount = _to_float(cash)
            is_cash = cash is not None
        return BrokerBalance(
            currency=currency,
            amount=amount,
            is_cash=is_cash,
            balance_type=balance_type,
        )

    def _extract_symbol(self, symbol_data) -> str:
        """Extract symbol string from various response formats."""
        if symbol_data is None:
            return "UNKNOWN"
        if isinstance(symbol_data, str):
            return symbol_data
        result = _get(symbol_data, "symbol")
        if result is None:
            return "UNKNOWN"
        # Universal symbols nest another symbol object one level down
        if isinstance(result, str):
            return result
        return self._extract_symbol(result)

    def _extract_description(self, symbol_data) -> str | None:
        """Extract the security description, searching nested symbol objects."""
        if symbol_data is None or isinstance(symbol_data, str):
            return None
        description = _get(symbol_data, "description")
        if description:
            return str(description)
        nested = _get(symbol_data, "symbol")
        if nested is not None and not isinstance(nested, str):
            return self._extract_description(nested)
        return None

    def _extract_currency(self, currency) -> str | None:
        """Extract a currency code from a code string or currency object."""
        if currency is None:
            return None
        if isinstance(currency, str):
            return currency
        code = _get(currency, "code")
        return str(code) if code else None

    def _extract_brokerage_name(self, brokerage) -> str | None:
        """Extract brokerage name from a brokerage or authorization object."""
        if brokerage is None or isinstance(brokerage, str):
            # A bare string is an authorization ID, not a name
            return None
        name = _get(brokerage, "name")
        if isinstance(name, str) and name:
            return name
        nested = _get(brokerage, "brokerage")
        if isinstance(nested, str):
            return nested
        if nested is not None:
            return _get(nested, "name")
        return None

    def _extract_authorization_id(self, account) -> str | None:
        """Find the brokerage authorization an account belongs to."""
        auth = _get(account, "brokerage_authorization")
        if isinstance(auth, str):
            return auth
        if auth is not None and _get(auth, "id"):
            return str(_get(auth, "id"))
        brokerage = _get(account, "brokerage")
        auth_id = _get(brokerage, "authorizationId") or _get(brokerage, "authorization_id")
        return str(auth_id) if auth_id else None
