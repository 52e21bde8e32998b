"""Normalized broker data types and the broker client protocol.

The SnapTrade SDK returns loosely-typed dicts or SDK objects depending on
endpoint and version. The adapter maps every response to the dataclasses
below so services never touch raw SDK payloads.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class RegisteredUser:
    """Result of registering a remote identity."""

    user_id: str
    user_secret: str


@dataclass
class BrokerAccount:
    """Normalized brokerage account."""

    id: str  # Provider's external ID for the account
    name: str  # Account name/nickname
    institution: str  # Brokerage name (e.g., "Fidelity")
    number: str | None = None  # Account number (if available)
    authorization_id: str | None = None  # Connection the account belongs to


@dataclass
class BrokerPosition:
    """Normalized position within one account."""

    symbol: str
    description: str | None
    units: float
    price: float
    book_value: float  # Total cost of the position, 0 when unknown
    currency: str = "USD"


@dataclass
class BrokerBalance:
    """Normalized balance entry within one account."""

    currency: str
    amount: float
    is_cash: bool
    balance_type: str | None = None


class BrokerClient(Protocol):
    """Operations the services need from the broker-aggregation API.

    Every method raises a subclass of
    :class:`~integrations.exceptions.ProviderError` on failure.
    """

    @property
    def provider_name(self) -> str: ...

    def is_configured(self) -> bool: ...

    def check_status(self) -> dict: ...

    def register_user(self, user_id: str) -> RegisteredUser: ...

    def delete_user(self, user_id: str) -> None: ...

    def login_link(
        self,
        user_id: str,
        user_secret: str,
        redirect_uri: str,
        broker: str | None = None,
    ) -> str: ...

    def list_accounts(self, user_id: str, user_secret: str) -> list[BrokerAccount]: ...

    def list_positions(
        self, user_id: str, user_secret: str, account_id: str
    ) -> list[BrokerPosition]: ...

    def list_balances(
        self, user_id: str, user_secret: str, account_id: str
    ) -> list[BrokerBalance]: ...

    def remove_authorization(
        self, user_id: str, user_secret: str, authorization_id: str
    ) -> None: ...

    def refresh_authorization(
        self, user_id: str, user_secret: str, authorization_id: str
    ) -> None: ...
