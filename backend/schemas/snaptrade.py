"""Pydantic schemas for the SnapTrade endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SuccessResponse(CamelModel):
    success: bool = True


class ApiStatusResponse(CamelModel):
    """Response for the SnapTrade API status check."""

    status: str
    data: dict


class RegisterRequest(CamelModel):
    """Request body for registration.

    ``user_id`` is optional; when sent it must match the caller.
    """

    user_id: Optional[str] = None


class RegisterResponse(CamelModel):
    success: bool = True
    user_id: str


class SecretRefreshResponse(CamelModel):
    """Outcome of a forced secret refresh. The secret itself is never returned."""

    success: bool = True
    secret_kind: Literal["real", "fallback", "pending"]
    is_degraded: bool


class ConnectionStatusResponse(CamelModel):
    """Stored SnapTrade connection state for the caller."""

    connected: bool
    is_active: bool = False
    secret_kind: Optional[Literal["real", "fallback", "pending"]] = None
    is_fake_secret: bool = False
    registration_method: Optional[str] = None
    registered_at: Optional[str] = None
    connected_at: Optional[str] = None
    disconnected_at: Optional[str] = None
    brokerage: Optional[str] = None
    authorization_id: Optional[str] = None


class LinkRequest(CamelModel):
    """Request body for generating a connection-portal URL."""

    redirect_uri: str
    broker_id: Optional[str] = None
    user_id: Optional[str] = None


class LinkResponse(CamelModel):
    redirect_uri: str


class CallbackRequest(CamelModel):
    """Request body sent after the portal redirects back."""

    authorization_id: Optional[str] = None
    brokerage: Optional[str] = None
    user_id: Optional[str] = None


class AccountResponse(CamelModel):
    """A linked brokerage account."""

    id: str
    name: str
    institution: str
    number: Optional[str] = None
    authorization_id: Optional[str] = None


class CallbackResponse(CamelModel):
    success: bool = True
    accounts: list[AccountResponse]


class HoldingResponse(CamelModel):
    """One row of the holdings view, including PENDING/ERROR marker rows."""

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
    error_message: Optional[str] = None


class SyncResponse(CamelModel):
    """Envelope returned by the sync endpoint."""

    success: bool
    sync_status: Literal["success", "partial", "failed"]
    sync_message: str
    accounts: list[AccountResponse] = []
    holdings: list[HoldingResponse] = []
