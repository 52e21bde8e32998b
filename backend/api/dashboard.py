"""Dashboard and asset list API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.auth import get_current_user_id
from database import get_db
from schemas.dashboard import AssetResponse, CategoryTotalResponse, DashboardResponse
from services.dashboard_service import DashboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])
assets_router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Net worth, totals, and per-category breakdown for the caller.

    Liabilities are subtracted from their category's total and from net worth.
    """
    summary = DashboardService.get_summary(db, user_id)
    return DashboardResponse(
        total_assets=summary.total_assets,
        total_liabilities=summary.total_liabilities,
        net_worth=summary.net_worth,
        categories=[
            CategoryTotalResponse.model_validate(category) for category in summary.categories
        ],
    )


@assets_router.get("", response_model=list[AssetResponse])
def list_assets(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's assets, newest first."""
    return [AssetResponse.model_validate(asset) for asset in DashboardService.list_assets(db, user_id)]
