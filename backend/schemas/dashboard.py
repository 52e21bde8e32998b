"""Pydantic schemas for the dashboard and asset list."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from schemas.snaptrade import CamelModel


class CategoryResponse(CamelModel):
    id: str
    name: str
    slug: str
    icon: Optional[str] = None


class AssetResponse(CamelModel):
    """A stored asset with its category."""

    id: str
    name: str
    value: Decimal
    description: Optional[str] = None
    location: Optional[str] = None
    acquisition_date: Optional[datetime] = None
    acquisition_value: Optional[Decimal] = None
    is_liability: bool
    category: Optional[CategoryResponse] = None
    # Read from the ORM attribute, exposed as "metadata"
    metadata: dict = Field(default_factory=dict, validation_alias="asset_metadata")
    created_at: Optional[datetime] = None


class CategoryTotalResponse(CamelModel):
    slug: str
    name: str
    icon: Optional[str] = None
    total: Decimal
    asset_count: int


class DashboardResponse(CamelModel):
    """Net worth summary for the caller."""

    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal
    categories: list[CategoryTotalResponse]
