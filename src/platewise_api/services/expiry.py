"""Bulk reaping of claim tickets whose time window has elapsed."""

from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.core.clock import utcnow
from platewise_api.core.settings import settings
from platewise_api.models.loyalty import RedemptionStatus, RewardRedemption
from platewise_api.models.order import Order, OrderStatusEnum


class ExpirySweeper:
    """Self-limiting bulk transitions; rows already moved no longer match the filters."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        activation_window: timedelta | None = None,
        pending_order_ttl: timedelta | None = None,
    ) -> None:
        self._session = session
        self._activation_window = activation_window or timedelta(
            minutes=settings.redemption_activation_window_minutes
        )
        self._pending_order_ttl = pending_order_ttl or timedelta(minutes=settings.pending_order_ttl_minutes)

    async def expire_stale_redemptions(self, *, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self._activation_window
        stmt = (
            update(RewardRedemption)
            .where(
                RewardRedemption.status == RedemptionStatus.ACTIVATED,
                RewardRedemption.activated_at <= cutoff,
            )
            .values(status=RedemptionStatus.EXPIRED, code=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("Expired stale redemptions", count=count, cutoff=cutoff.isoformat())
        return count

    async def delete_stale_orders(self, *, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self._pending_order_ttl
        stmt = (
            delete(Order)
            .where(
                Order.status == OrderStatusEnum.PENDING,
                Order.created_at <= cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("Deleted stale pending orders", count=count, cutoff=cutoff.isoformat())
        return count


__all__ = ["ExpirySweeper"]
