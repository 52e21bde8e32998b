"""Sync API endpoint - one-shot refresh of accounts and holdings."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from api.auth import get_current_user_id
from api.snaptrade import get_holdings_service
from database import get_db
from integrations.exceptions import ProviderError
from schemas.snaptrade import AccountResponse, HoldingResponse, SyncResponse
from services.holdings_service import HoldingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/snaptrade", tags=["sync"])


@router.post("/sync", response_model=SyncResponse)
def trigger_sync(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    holdings_service: HoldingsService = Depends(get_holdings_service),
):
    """Fetch the caller's accounts and holdings in one call.

    Always returns 200 unless something unexpected happens. Partial
    failures are reported through ``syncStatus``:

    - ``success``: accounts and holdings were fetched
    - ``partial``: accounts or holdings could not be fetched
    - ``failed``: unexpected error (HTTP 500)
    """
    sync_status = "success"
    sync_message = "Data synchronized successfully"
    accounts = []
    holdings = []

    try:
        try:
            accounts = holdings_service.fetch_accounts(db, user_id)
        except ProviderError as e:
            logger.warning("Error fetching accounts during sync: %s", e)
            sync_status = "partial"
            sync_message = "Could not fetch all account information"

        try:
            holdings = holdings_service.fetch_holdings(db, user_id)
        except ProviderError as e:
            logger.warning("Error fetching holdings during sync: %s", e)
            sync_status = "partial"
            sync_message = "Could not fetch all holdings information"
        else:
            if any(holding.is_error for holding in holdings):
                sync_status = "partial"
                sync_message = "Could not fetch all holdings information"

        return SyncResponse(
            success=True,
            sync_status=sync_status,
            sync_message=sync_message,
            accounts=[AccountResponse.model_validate(a) for a in accounts],
            holdings=[HoldingResponse.model_validate(h) for h in holdings],
        )
    except Exception as e:
        # Safety catch for unexpected errors; the envelope still reports them
        logger.error("Unexpected error during SnapTrade sync", exc_info=True)
        message = str(e) or "Unknown error"
        failed = SyncResponse(success=False, sync_status="failed", sync_message=message)
        return JSONResponse(
            status_code=500,
            content={"error": message, **failed.model_dump(by_alias=True)},
        )
