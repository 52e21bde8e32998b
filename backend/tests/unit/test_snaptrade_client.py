"""Unit tests for SnapTradeClient."""

import json
from unittest.mock import MagicMock, patch

import pytest
import urllib3
from snaptrade_client.exceptions import ApiException

from integrations.exceptions import (
    BrokerNotInitializedError,
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderSyncPendingError,
    ProviderUserExistsError,
    ProviderUserNotRegisteredError,
)
from integrations.snaptrade_client import SnapTradeClient, classify_api_error, error_detail


class FakeApiException(ApiException):
    """ApiException with a fixed status and body, independent of the SDK constructor."""

    def __init__(self, status, body=None, reason="Error"):
        Exception.__init__(self, f"({status}) {reason}")
        self.status = status
        self.reason = reason
        self.body = body
        self.headers = None


@pytest.fixture
def mock_empty_settings():
    """Fixture that mocks settings with empty credential values."""
    with patch("integrations.snaptrade_client.settings") as mock_settings:
        mock_settings.SNAPTRADE_CLIENT_ID = ""
        mock_settings.SNAPTRADE_CONSUMER_KEY = ""
        yield mock_settings


@pytest.fixture
def sdk():
    """Patch the SDK class and return the mock SDK instance."""
    with patch("integrations.snaptrade_client.SnapTrade") as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def client(sdk):
    return SnapTradeClient(client_id="test_id", consumer_key="test_key")


class TestConfiguration:
    def test_provider_name(self, client):
        assert client.provider_name == "SnapTrade"

    def test_is_configured_true(self, client):
        assert client.is_configured() is True

    def test_is_configured_false_missing_consumer_key(self, mock_empty_settings):
        client = SnapTradeClient(client_id="test_id", consumer_key="")
        assert client.is_configured() is False

    def test_unconfigured_call_raises_not_initialized(self, mock_empty_settings):
        client = SnapTradeClient()
        with patch("integrations.snaptrade_client.SnapTrade") as mock_cls:
            with pytest.raises(BrokerNotInitializedError, match="SnapTrade SDK not initialized"):
                client.list_accounts("u1", "s1")
        mock_cls.assert_not_called()

    def test_sdk_created_lazily_once(self):
        with patch("integrations.snaptrade_client.SnapTrade") as mock_cls:
            client = SnapTradeClient(client_id="test_id", consumer_key="test_key")
            mock_cls.assert_not_called()

            mock_cls.return_value.account_information.list_user_accounts.return_value = []
            client.list_accounts("u1", "s1")
            client.list_accounts("u1", "s1")

        mock_cls.assert_called_once_with(consumer_key="test_key", client_id="test_id")


class TestRegistration:
    def test_register_user_returns_secret(self, client, sdk):
        sdk.authentication.register_snap_trade_user.return_value = MagicMock(
            body={"userId": "u1", "userSecret": "secret-abc"}
        )

        result = client.register_user("u1")

        assert result.user_id == "u1"
        assert result.user_secret == "secret-abc"
        sdk.authentication.register_snap_trade_user.assert_called_once_with(user_id="u1")

    def test_register_user_without_secret_raises_data_error(self, client, sdk):
        sdk.authentication.register_snap_trade_user.return_value = MagicMock(body={"userId": "u1"})

        with pytest.raises(ProviderDataError):
            client.register_user("u1")

    def test_register_existing_user_classified(self, client, sdk):
        sdk.authentication.register_snap_trade_user.side_effect = FakeApiException(
            400, body=json.dumps({"detail": "User with the following userId already exist"})
        )

        with pytest.raises(ProviderUserExistsError) as exc_info:
            client.register_user("u1")

        assert exc_info.value.status_code == 400
        assert "already exist" in exc_info.value.detail


class TestLoginLink:
    def test_login_link_sends_portal_options(self, client, sdk):
        sdk.authentication.login_snap_trade_user.return_value = MagicMock(
            body={"redirectURI": "https://portal.example/abc"}
        )

        url = client.login_link("u1", "s1", "https://app.example/done", broker="ALPACA")

        assert url == "https://portal.example/abc"
        sdk.authentication.login_snap_trade_user.assert_called_once_with(
            user_id="u1",
            user_secret="s1",
            immediate_redirect=True,
            custom_redirect="https://app.example/done",
            connection_portal_version="v4",
            broker="ALPACA",
        )

    def test_login_link_omits_broker_when_none(self, client, sdk):
        sdk.authentication.login_snap_trade_user.return_value = MagicMock(
            body={"redirectURI": "https://portal.example/abc"}
        )

        client.login_link("u1", "s1", "https://app.example/done")

        kwargs = sdk.authentication.login_snap_trade_user.call_args.kwargs
        assert "broker" not in kwargs

    def test_login_link_without_redirect_raises_data_error(self, client, sdk):
        sdk.authentication.login_snap_trade_user.return_value = MagicMock(body={"other": 1})

        with pytest.raises(ProviderDataError, match="no redirect URI"):
            client.login_link("u1", "s1", "https://app.example/done")


class TestAccountMapping:
    def test_list_accounts_maps_dicts(self, client, sdk):
        sdk.account_information.list_user_accounts.return_value = MagicMock(
            body=[
                {
                    "id": "acc_1",
                    "name": "Brokerage",
                    "number": "1234",
                    "institution_name": "Alpaca",
                    "brokerage_authorization": "auth_1",
                },
                {"id": "acc_2", "name": None, "brokerage": {"name": "Questrade", "authorizationId": "auth_2"}},
            ]
        )

        accounts = client.list_accounts("u1", "s1")

        assert [a.id for a in accounts] == ["acc_1", "acc_2"]
        assert accounts[0].institution == "Alpaca"
        assert accounts[0].authorization_id == "auth_1"
        assert accounts[1].name == "Investment Account"
        assert accounts[1].institution == "Questrade"
        assert accounts[1].authorization_id == "auth_2"

    def test_list_accounts_accepts_bare_list(self, client, sdk):
        sdk.account_information.list_user_accounts.return_value = [{"id": "acc_1", "name": "A"}]

        accounts = client.list_accounts("u1", "s1")

        assert accounts[0].institution == "SnapTrade"

    def test_positions_with_nested_symbol(self, client, sdk):
        sdk.account_information.get_user_account_positions.return_value = MagicMock(
            body=[
                {
                    "symbol": {"symbol": {"symbol": "AAPL", "description": "Apple Inc."}},
                    "units": "10",
                    "price": 150.0,
                    "average_purchase_price": 120.0,
                    "currency": {"code": "USD"},
                },
                {"symbol": None, "units": 1, "price": 1},
            ]
        )

        positions = client.list_positions("u1", "s1", "acc_1")

        assert len(positions) == 1
        assert positions[0].symbol == "AAPL"
        assert positions[0].description == "Apple Inc."
        assert positions[0].units == 10.0
        assert positions[0].book_value == pytest.approx(1200.0)
        assert positions[0].currency == "USD"

    def test_positions_book_value_field_preferred(self, client, sdk):
        sdk.account_information.get_user_account_positions.return_value = MagicMock(
            body=[{"symbol": "VTI", "quantity": 2, "price": 200, "bookValue": 300}]
        )

        positions = client.list_positions("u1", "s1", "acc_1")

        assert positions[0].symbol == "VTI"
        assert positions[0].units == 2.0
        assert positions[0].book_value == 300.0

    def test_balances_legacy_and_current_shapes(self, client, sdk):
        sdk.account_information.get_user_account_balance.return_value = MagicMock(
            body=[
                {"currency": {"code": "USD"}, "cash": 250.5},
                {"currency": "CAD", "amount": "10", "cash": False, "type": "CASH"},
                {"currency": "USD", "amount": "99", "cash": False, "type": "MARGIN"},
            ]
        )

        balances = client.list_balances("u1", "s1", "acc_1")

        assert balances[0].amount == 250.5 and balances[0].is_cash is True
        assert balances[1].currency == "CAD" and balances[1].is_cash is True
        assert balances[2].is_cash is False
        assert balances[2].balance_type == "MARGIN"


class TestErrorClassification:
    def test_425_is_sync_pending(self, client, sdk):
        sdk.account_information.get_user_account_positions.side_effect = FakeApiException(
            425, body={"detail": "Too early"}
        )

        with pytest.raises(ProviderSyncPendingError) as exc_info:
            client.list_positions("u1", "s1", "acc_1")

        assert exc_info.value.retriable is True

    def test_status_read_from_body_when_missing(self):
        exc = FakeApiException(None, body={"status_code": 425, "detail": "Too early"})
        assert isinstance(classify_api_error(exc, "positions"), ProviderSyncPendingError)

    def test_not_registered(self):
        exc = FakeApiException(401, body=b'{"detail": "User is not registered"}')
        assert isinstance(classify_api_error(exc, "login"), ProviderUserNotRegisteredError)

    def test_plain_auth_error(self):
        exc = FakeApiException(401, body={"detail": "Invalid signature"})
        result = classify_api_error(exc, "login")
        assert type(result) is ProviderAuthError

    def test_other_status_is_api_error(self):
        exc = FakeApiException(500, body="upstream failure")
        result = classify_api_error(exc, "accounts")
        assert type(result) is ProviderAPIError
        assert result.status_code == 500
        assert result.detail == "upstream failure"

    def test_400_without_conflict_text_is_api_error(self):
        exc = FakeApiException(400, body={"message": "Bad request"})
        result = classify_api_error(exc, "registration")
        assert type(result) is ProviderAPIError
        assert result.status_code == 400

    def test_error_detail_falls_back_to_reason(self):
        exc = FakeApiException(503, body=None, reason="Service Unavailable")
        assert error_detail(exc) == "Service Unavailable"

    def test_transport_error_is_connection_error(self, client, sdk):
        sdk.account_information.list_user_accounts.side_effect = urllib3.exceptions.MaxRetryError(
            None, "/accounts"
        )

        with pytest.raises(ProviderConnectionError):
            client.list_accounts("u1", "s1")


class TestConnections:
    def test_remove_authorization(self, client, sdk):
        client.remove_authorization("u1", "s1", "auth_1")

        sdk.connections.remove_brokerage_authorization.assert_called_once_with(
            authorization_id="auth_1", user_id="u1", user_secret="s1"
        )

    def test_refresh_authorization(self, client, sdk):
        client.refresh_authorization("u1", "s1", "auth_1")

        sdk.connections.refresh_brokerage_authorization.assert_called_once_with(
            authorization_id="auth_1", user_id="u1", user_secret="s1"
        )

    def test_check_status(self, client, sdk):
        sdk.api_status.check.return_value = MagicMock(body={"online": True})

        assert client.check_status() == {"online": True}
