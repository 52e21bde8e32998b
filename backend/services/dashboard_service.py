"""Dashboard service - net worth and category totals from stored assets."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session, joinedload

from models import Asset, AssetCategory

logger = logging.getLogger(__name__)

UNCATEGORIZED_SLUG = "uncategorized"

# (name, slug, icon)
DEFAULT_CATEGORIES = [
    ("Cash", "cash", "wallet"),
    ("Investments", "investments", "trending-up"),
    ("Real Estate", "real-estate", "home"),
    ("Cryptocurrency", "cryptocurrency", "bitcoin"),
    ("Precious Metals", "precious-metals", "gem"),
    ("Debt", "debt", "credit-card"),
]


@dataclass
class CategoryTotal:
    """Net value of one category (liabilities count negative)."""

    slug: str
    name: str
    icon: str | None
    total: Decimal = Decimal("0")
    asset_count: int = 0


@dataclass
class DashboardSummary:
    total_assets: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    categories: list[CategoryTotal] = field(default_factory=list)

    @property
    def net_worth(self) -> Decimal:
        return self.total_assets - self.total_liabilities


class DashboardService:
    """Aggregates a user's assets for the dashboard."""

    @staticmethod
    def list_assets(db: Session, user_id: str) -> list[Asset]:
        """List a user's assets, newest first, with categories loaded."""
        return (
            db.query(Asset)
            .options(joinedload(Asset.category))
            .filter(Asset.user_id == user_id)
            .order_by(Asset.created_at.desc())
            .all()
        )

    @staticmethod
    def get_summary(db: Session, user_id: str) -> DashboardSummary:
        """Compute net worth and per-category totals for a user.

        Every category appears in the result, including empty ones.
        Assets without a category are grouped under ``uncategorized``,
        which is only listed when it has assets.

        Args:
            db: Database session
            user_id: Application user ID

        Returns:
            DashboardSummary
        """
        summary = DashboardSummary()
        by_slug: dict[str, CategoryTotal] = {}
        for category in db.query(AssetCategory).order_by(AssetCategory.name).all():
            by_slug[category.slug] = CategoryTotal(
                slug=category.slug, name=category.name, icon=category.icon
            )

        for asset in DashboardService.list_assets(db, user_id):
            value = Decimal(asset.value or 0)
            if asset.is_liability:
                summary.total_liabilities += value
            else:
                summary.total_assets += value

            slug = asset.category.slug if asset.category is not None else UNCATEGORIZED_SLUG
            if slug not in by_slug:
                by_slug[slug] = CategoryTotal(slug=slug, name="Uncategorized", icon=None)
            bucket = by_slug[slug]
            bucket.total += -value if asset.is_liability else value
            bucket.asset_count += 1

        summary.categories = list(by_slug.values())
        return summary

    @staticmethod
    def seed_default_categories(db: Session) -> None:
        """Create any missing default categories.

        Existing categories (matched by slug) are left untouched.
        """
        existing = {slug for (slug,) in db.query(AssetCategory.slug).all()}
        added = 0
        for name, slug, icon in DEFAULT_CATEGORIES:
            if slug in existing:
                continue
            db.add(AssetCategory(name=name, slug=slug, icon=icon))
            added += 1

        if added == 0:
            logger.info("Asset categories already exist, skipping seed")
            return
        db.commit()
        logger.info("Seeded %d default asset categories", added)
