"""Points ledger enforcing a non-negative balance per customer and restaurant."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.models.loyalty import RewardPoint
from platewise_api.services.outcomes import FailureReason, Outcome, Page


class PointsLedger:
    """Atomic credits and debits against :class:`RewardPoint` balances.

    Every mutation is a single conditional ``UPDATE`` so two concurrent debits
    can never both pass the balance check. Mutations join the caller's
    transaction; committing is left to the caller.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def adjust_points(self, change: int, restaurant_id: UUID, customer_id: UUID) -> bool:
        """Apply ``change`` to the balance; ``False`` means the balance would go negative."""

        change = int(change)
        if await self._apply_change(change, restaurant_id, customer_id):
            logger.info(
                "Adjusted points balance",
                restaurant_id=str(restaurant_id),
                customer_id=str(customer_id),
                change=change,
            )
            return True

        if change < 0:
            # Either no balance exists or it is too small; nothing to debit.
            logger.info(
                "Rejected points debit",
                restaurant_id=str(restaurant_id),
                customer_id=str(customer_id),
                change=change,
            )
            return False

        try:
            async with self._session.begin_nested():
                self._session.add(
                    RewardPoint(customer_id=customer_id, restaurant_id=restaurant_id, points=change)
                )
        except IntegrityError:
            logger.warning(
                "Detected race when creating points balance",
                restaurant_id=str(restaurant_id),
                customer_id=str(customer_id),
            )
            return await self._apply_change(change, restaurant_id, customer_id)

        logger.info(
            "Created points balance",
            restaurant_id=str(restaurant_id),
            customer_id=str(customer_id),
            points=change,
        )
        return True

    async def _apply_change(self, change: int, restaurant_id: UUID, customer_id: UUID) -> bool:
        stmt = (
            update(RewardPoint)
            .where(
                RewardPoint.customer_id == customer_id,
                RewardPoint.restaurant_id == restaurant_id,
                RewardPoint.points + change >= 0,
            )
            .values(points=RewardPoint.points + change)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def get_balance(self, restaurant_id: UUID, customer_id: UUID) -> RewardPoint | None:
        stmt = (
            select(RewardPoint)
            .where(
                RewardPoint.customer_id == customer_id,
                RewardPoint.restaurant_id == restaurant_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_balances(self, customer_id: UUID, *, page: int = 1, limit: int = 20) -> Page[RewardPoint]:
        page = max(page, 1)
        limit = max(limit, 1)
        stmt = (
            select(RewardPoint)
            .where(RewardPoint.customer_id == customer_id)
            .order_by(RewardPoint.created_at.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        count_stmt = select(func.count()).select_from(RewardPoint).where(RewardPoint.customer_id == customer_id)
        items = (await self._session.execute(stmt)).scalars().all()
        total = int((await self._session.execute(count_stmt)).scalar_one())
        return Page(items=items, page=page, limit=limit, total_count=total)

    async def update_points(self, restaurant_id: UUID, customer_id: UUID, change: int) -> Outcome[bool]:
        """Staff-initiated adjustment, committed on success."""

        applied = await self.adjust_points(change, restaurant_id, customer_id)
        if not applied:
            await self._session.rollback()
            return Outcome.fail(FailureReason.INSUFFICIENT_BALANCE, "Insufficient balance")
        await self._session.commit()
        return Outcome.success(True)


__all__ = ["PointsLedger"]
