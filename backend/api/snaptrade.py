"""SnapTrade API endpoints."""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from api.auth import get_current_user_id, verify_user_access
from api.helpers import error_to_http
from database import get_db
from integrations.exceptions import BrokerNotInitializedError, ProviderError
from integrations.provider_protocol import BrokerClient
from integrations.snaptrade_client import SnapTradeClient
from schemas.snaptrade import (
    AccountResponse,
    ApiStatusResponse,
    CallbackRequest,
    CallbackResponse,
    ConnectionStatusResponse,
    HoldingResponse,
    LinkRequest,
    LinkResponse,
    RegisterRequest,
    RegisterResponse,
    SecretRefreshResponse,
    SuccessResponse,
)
from services.credential_service import CredentialService, secret_kind
from services.holdings_service import HoldingsService
from services.import_service import CategoryNotFoundError, ImportService
from services.link_service import LinkError, LinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/snaptrade", tags=["snaptrade"])


@lru_cache
def _default_broker_client() -> SnapTradeClient:
    return SnapTradeClient()


def get_broker_client() -> BrokerClient:
    """Get the shared SnapTrade client (overridden in tests)."""
    return _default_broker_client()


def get_credential_service(
    client: BrokerClient = Depends(get_broker_client),
) -> CredentialService:
    return CredentialService(client)


def get_link_service(
    credentials: CredentialService = Depends(get_credential_service),
) -> LinkService:
    return LinkService(credentials)


def get_holdings_service(
    credentials: CredentialService = Depends(get_credential_service),
) -> HoldingsService:
    return HoldingsService(credentials)


def get_import_service(
    credentials: CredentialService = Depends(get_credential_service),
) -> ImportService:
    return ImportService(credentials)


def _require_configured(client: BrokerClient) -> None:
    if not client.is_configured():
        raise error_to_http(
            BrokerNotInitializedError(
                "SnapTrade SDK not initialized", provider_name=client.provider_name
            ),
            "checking configuration",
        )


@router.get("/status", response_model=ApiStatusResponse)
def get_api_status(client: BrokerClient = Depends(get_broker_client)):
    """Check that the SnapTrade API is reachable."""
    try:
        data = client.check_status()
    except ProviderError as e:
        raise error_to_http(e, "checking SnapTrade API status")
    return ApiStatusResponse(status="ok", data=data)


@router.post("/register", response_model=RegisterResponse)
def register(
    request: Optional[RegisterRequest] = Body(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Register the caller with SnapTrade.

    Returns the SnapTrade user id, which differs from the caller's id when
    registration had to fall back to a modified id.

    Raises:
        HTTPException:
            - 403 Forbidden: Body names a different user
            - 503 Service Unavailable: SnapTrade is not configured
            - 500 Internal Server Error: Registration failed
    """
    verify_user_access(request.user_id if request else None, user_id)
    try:
        registered = credentials.register_user(db, user_id)
    except ProviderError as e:
        raise error_to_http(e, "registering SnapTrade user")
    return RegisterResponse(user_id=registered.user_id)


@router.delete("/register", response_model=SuccessResponse)
def deregister(
    requested_user_id: Optional[str] = Query(None, alias="userId"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Delete the caller's SnapTrade user and deactivate the stored connection."""
    verify_user_access(requested_user_id, user_id)
    try:
        credentials.deregister_user(db, user_id)
    except ProviderError as e:
        raise error_to_http(e, "deleting SnapTrade user")
    return SuccessResponse()


@router.post("/refresh-user", response_model=SecretRefreshResponse)
def refresh_user(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Force re-registration of the caller's SnapTrade secret.

    Always succeeds once SnapTrade is configured; a failed refresh is
    reported through ``secretKind`` / ``isDegraded``.
    """
    _require_configured(credentials.client)
    secret = credentials.resolve_secret(db, user_id, force_refresh=True)
    return SecretRefreshResponse(secret_kind=secret.kind.value, is_degraded=secret.is_degraded)


@router.get("/connection", response_model=ConnectionStatusResponse)
def get_connection(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Describe the caller's stored SnapTrade connection."""
    connection = credentials.get_connection(db, user_id)
    if connection is None:
        return ConnectionStatusResponse(connected=False)

    data = connection.broker_data or {}
    return ConnectionStatusResponse(
        connected=connection.has_usable_secret,
        is_active=connection.is_active,
        secret_kind=secret_kind(connection).value,
        is_fake_secret=connection.is_fake_secret,
        registration_method=data.get("registration_method"),
        registered_at=data.get("registered_at"),
        connected_at=data.get("connected_at"),
        disconnected_at=data.get("disconnected_at"),
        brokerage=data.get("brokerage"),
        authorization_id=data.get("authorization_id"),
    )


@router.post("/link", response_model=LinkResponse)
def create_link(
    request: LinkRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    link_service: LinkService = Depends(get_link_service),
):
    """Generate a SnapTrade connection-portal URL for the caller.

    Raises:
        HTTPException:
            - 403 Forbidden: Body names a different user
            - 503 Service Unavailable: SnapTrade is not configured
            - 500 Internal Server Error: The URL could not be generated
    """
    verify_user_access(request.user_id, user_id)
    try:
        url = link_service.create_link(
            db, user_id, request.redirect_uri, broker_id=request.broker_id
        )
    except (ProviderError, LinkError) as e:
        raise error_to_http(e, "creating SnapTrade link")
    return LinkResponse(redirect_uri=url)


@router.post("/callback", response_model=CallbackResponse)
def handle_callback(
    request: CallbackRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    import_service: ImportService = Depends(get_import_service),
):
    """Record a completed connection and import its holdings as assets."""
    verify_user_access(request.user_id, user_id)
    try:
        accounts = import_service.handle_callback(
            db,
            user_id,
            authorization_id=request.authorization_id,
            brokerage=request.brokerage,
        )
    except (ProviderError, CategoryNotFoundError) as e:
        raise error_to_http(e, "handling SnapTrade callback")
    return CallbackResponse(
        accounts=[AccountResponse.model_validate(account) for account in accounts]
    )


@router.get("/accounts", response_model=list[AccountResponse])
def list_accounts(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    holdings_service: HoldingsService = Depends(get_holdings_service),
):
    """List the caller's linked brokerage accounts."""
    try:
        accounts = holdings_service.fetch_accounts(db, user_id)
    except ProviderError as e:
        raise error_to_http(e, "fetching SnapTrade accounts")
    return [AccountResponse.model_validate(account) for account in accounts]


@router.get("/holdings", response_model=list[HoldingResponse])
def list_holdings(
    account_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    holdings_service: HoldingsService = Depends(get_holdings_service),
):
    """Live holdings for the caller, optionally for one account.

    Failures show up as PENDING/ERROR rows rather than error responses.
    """
    try:
        holdings = holdings_service.fetch_holdings(db, user_id, account_id=account_id)
    except ProviderError as e:
        raise error_to_http(e, "fetching SnapTrade holdings")
    return [HoldingResponse.model_validate(holding) for holding in holdings]


@router.delete("/connections/{authorization_id}", response_model=SuccessResponse)
def delete_connection(
    authorization_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    import_service: ImportService = Depends(get_import_service),
):
    """Remove a brokerage authorization and deactivate the connection."""
    try:
        import_service.disconnect(db, user_id, authorization_id)
    except ProviderError as e:
        raise error_to_http(e, "deleting SnapTrade connection")
    return SuccessResponse()
