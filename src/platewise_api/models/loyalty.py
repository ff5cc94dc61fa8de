"""Loyalty points, reward catalog and redemption ticket models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID

from platewise_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RewardPoint(Base):
    """Spendable points balance for one customer at one restaurant."""

    __tablename__ = "reward_points"
    __table_args__ = (
        UniqueConstraint("customer_id", "restaurant_id", name="uq_reward_points_customer_restaurant"),
        CheckConstraint("points >= 0", name="ck_reward_points_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    restaurant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    points = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class RewardItem(Base):
    """Reward shop entry that customers exchange points for."""

    __tablename__ = "reward_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    points_required = Column(Integer, nullable=False)
    # None means unlimited stock
    stock = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="1")
    is_deleted = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def snapshot(self) -> dict[str, object]:
        """Immutable copy stored on redemption tickets."""

        return {
            "item_id": str(self.id),
            "category": self.category,
            "description": self.description,
            "points_required": int(self.points_required),
        }


class RedemptionStatus(str, Enum):
    """Lifecycle statuses for reward redemption tickets."""

    ACTIVE = "active"
    ACTIVATED = "activated"
    COMPLETED = "completed"
    EXPIRED = "expired"


class RewardRedemption(Base):
    """Claim ticket for a redeemed reward item."""

    __tablename__ = "reward_redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    restaurant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    reward_item_snapshot = Column(JSON, nullable=False)
    status = Column(
        SqlEnum(
            RedemptionStatus,
            name="reward_redemption_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=RedemptionStatus.ACTIVE,
        server_default=RedemptionStatus.ACTIVE.value,
    )
    # Unique while present; NULL once the ticket leaves the activated state.
    code = Column(String(6), nullable=True, unique=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    activated_at = Column(DateTime(timezone=True), nullable=True, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)


__all__ = [
    "RedemptionStatus",
    "RewardItem",
    "RewardPoint",
    "RewardRedemption",
]
