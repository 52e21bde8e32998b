"""Test fixtures and sample data."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import Asset, AssetCategory, BrokerConnection
from models.broker_connection import SNAPTRADE_API_KEY_LABEL, SNAPTRADE_BROKER_ID
from services.dashboard_service import DashboardService

TEST_USER_ID = "user-1"


def create_connection(
    db: Session,
    user_id: str = TEST_USER_ID,
    secret: str = "stored-secret",
    is_active: bool = True,
    registered_days_ago: float | None = 1,
    **broker_data,
) -> BrokerConnection:
    """Create a stored SnapTrade connection.

    This is a helper function (not a fixture) for tests that need
    connections in specific states.
    """
    data = dict(broker_data)
    if registered_days_ago is not None:
        registered_at = datetime.now(timezone.utc) - timedelta(days=registered_days_ago)
        data.setdefault("registered_at", registered_at.isoformat())
    data.setdefault("snap_trade_user_id", user_id)
    connection = BrokerConnection(
        user_id=user_id,
        broker_id=SNAPTRADE_BROKER_ID,
        api_key=SNAPTRADE_API_KEY_LABEL,
        secret=secret,
        is_active=is_active,
        broker_data=data,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def create_asset(
    db: Session,
    name: str,
    value: str,
    category: AssetCategory | None = None,
    is_liability: bool = False,
    user_id: str = TEST_USER_ID,
) -> Asset:
    """Create a stored asset for dashboard tests."""
    asset = Asset(
        user_id=user_id,
        name=name,
        value=Decimal(value),
        category_id=category.id if category else None,
        is_liability=is_liability,
        asset_metadata={},
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@pytest.fixture
def categories(db: Session) -> dict[str, AssetCategory]:
    """Seed the default asset categories, keyed by slug."""
    DashboardService.seed_default_categories(db)
    return {category.slug: category for category in db.query(AssetCategory).all()}


@pytest.fixture
def connection(db: Session) -> BrokerConnection:
    """Create a fresh, real SnapTrade connection for the test user."""
    return create_connection(db, registration_method="direct")
