from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, JSON, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from platewise_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatusEnum(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderTypeEnum(str, Enum):
    PREORDER = "preorder"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "code", name="uq_orders_restaurant_code"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    type = Column(
        SqlEnum(
            OrderTypeEnum,
            name="order_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OrderTypeEnum.PREORDER,
        server_default=OrderTypeEnum.PREORDER.value,
    )
    # Present only while the order is pending.
    code = Column(String(6), nullable=True)
    line_items = Column(JSON, nullable=False, default=list)
    total = Column(Numeric(12, 2), nullable=False, server_default="0")
    status = Column(
        SqlEnum(
            OrderStatusEnum,
            name="order_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OrderStatusEnum.PENDING,
        server_default=OrderStatusEnum.PENDING.value,
    )
    table_number = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
