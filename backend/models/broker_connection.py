"""BrokerConnection model - a user's link to a broker-aggregation identity."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, UniqueConstraint

from database import Base
from models.utils import generate_uuid

SNAPTRADE_BROKER_ID = "snaptrade"
SNAPTRADE_API_KEY_LABEL = "snaptrade_user"
PENDING_REGISTRATION_SECRET = "pending_registration"


class BrokerConnection(Base):
    """Stored SnapTrade session secret and status metadata for one user.

    One row per (user_id, broker_id). Rows are never deleted; disconnecting
    or deregistering flips ``is_active`` and records why in ``broker_data``.
    """

    __tablename__ = "broker_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "broker_id", name="uix_user_broker"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    broker_id = Column(String, nullable=False, default=SNAPTRADE_BROKER_ID)
    api_key = Column(String, nullable=True)
    secret = Column(String, nullable=True)  # placeholder, real secret, or synthesized fallback
    is_active = Column(Boolean, default=True, nullable=False)
    broker_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_placeholder(self) -> bool:
        return self.secret == PENDING_REGISTRATION_SECRET

    @property
    def is_fake_secret(self) -> bool:
        return bool((self.broker_data or {}).get("is_fake_secret"))

    @property
    def has_usable_secret(self) -> bool:
        """True when the row is active and holds something other than the placeholder."""
        return bool(self.is_active and self.secret and not self.is_placeholder)
