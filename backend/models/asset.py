"""Asset model - a financial record counted toward net worth."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Asset(Base):
    """A user's asset or liability.

    Assets imported from SnapTrade carry provenance in ``asset_metadata``
    (``source``, ``symbol``, ``account_id`` ...). Imports are append-only:
    each import run adds new rows, nothing is matched against earlier rows.
    """

    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    value = Column(Numeric(18, 4), nullable=False)
    description = Column(String, nullable=True)
    location = Column(String, nullable=True)
    acquisition_date = Column(DateTime, nullable=True)
    acquisition_value = Column(Numeric(18, 4), nullable=True)
    category_id = Column(String(36), ForeignKey("asset_categories.id"), nullable=True)
    is_liability = Column(Boolean, default=False, nullable=False)
    # "metadata" is reserved on declarative classes
    asset_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    category = relationship("AssetCategory", back_populates="assets")
