"""SQLAlchemy models package."""

from .loyalty import RedemptionStatus, RewardItem, RewardPoint, RewardRedemption  # noqa: F401
from .menu import MenuItem  # noqa: F401
from .order import Order, OrderStatusEnum, OrderTypeEnum  # noqa: F401
