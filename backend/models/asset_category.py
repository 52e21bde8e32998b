"""AssetCategory model - dashboard grouping for assets."""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class AssetCategory(Base):
    """A category such as Cash, Investments or Debt, looked up by slug."""

    __tablename__ = "asset_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)  # e.g., "investments"
    icon = Column(String, nullable=True)

    # Relationships
    assets = relationship("Asset", back_populates="category")
