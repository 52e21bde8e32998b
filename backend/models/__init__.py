"""SQLAlchemy ORM models."""

from .asset import Asset
from .asset_category import AssetCategory
from .broker_connection import BrokerConnection
from .utils import generate_uuid, parse_timestamp, utc_timestamp

__all__ = [
    "Asset",
    "AssetCategory",
    "BrokerConnection",
    "generate_uuid",
    "parse_timestamp",
    "utc_timestamp",
]
