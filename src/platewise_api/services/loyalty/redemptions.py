"""Reward redemption ticket lifecycle."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.core.clock import ensure_utc, utcnow
from platewise_api.core.settings import settings
from platewise_api.models.loyalty import RedemptionStatus, RewardItem, RewardRedemption
from platewise_api.services.codes import CodeAllocator, CodeScope
from platewise_api.services.loyalty.ledger import PointsLedger
from platewise_api.services.outcomes import FailureReason, Outcome, Page

REDEMPTION_CODE_SCOPE = CodeScope(name="reward_redemptions", column=RewardRedemption.code)


class _StockExhausted(Exception):
    """Stock reached zero between the availability check and the decrement."""


class RedemptionStateMachine:
    """Drives tickets through active -> activated -> completed / expired."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        ledger: PointsLedger | None = None,
        code_allocator: CodeAllocator | None = None,
        activation_window: timedelta | None = None,
    ) -> None:
        self._session = session
        self._ledger = ledger or PointsLedger(session)
        self._codes = code_allocator or CodeAllocator(session)
        self._activation_window = activation_window or timedelta(
            minutes=settings.redemption_activation_window_minutes
        )

    @property
    def activation_window(self) -> timedelta:
        return self._activation_window

    async def get_ticket(self, ticket_id: UUID) -> RewardRedemption | None:
        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_redemptions(
        self,
        customer_id: UUID,
        *,
        page: int = 1,
        limit: int = 20,
    ) -> Page[RewardRedemption]:
        page = max(page, 1)
        limit = max(limit, 1)
        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.customer_id == customer_id)
            .order_by(RewardRedemption.redeemed_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        count_stmt = (
            select(func.count())
            .select_from(RewardRedemption)
            .where(RewardRedemption.customer_id == customer_id)
        )
        items = (await self._session.execute(stmt)).scalars().all()
        total = int((await self._session.execute(count_stmt)).scalar_one())
        return Page(items=items, page=page, limit=limit, total_count=total)

    async def redeem(
        self,
        customer_id: UUID,
        restaurant_id: UUID,
        reward_item_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[RewardRedemption]:
        """Debit points, take one unit of stock and open an ``active`` ticket.

        The debit, the stock decrement and the ticket insert share the session
        transaction; any refusal or fault after the debit rolls all of them back.
        """

        item = await self._session.get(RewardItem, reward_item_id, populate_existing=True)
        if item is None or item.is_deleted or not item.is_active or item.restaurant_id != restaurant_id:
            return Outcome.fail(FailureReason.NOT_FOUND, "Reward item not found")
        if item.stock is not None and item.stock <= 0:
            return Outcome.fail(FailureReason.OUT_OF_STOCK, "Reward item is out of stock")

        snapshot = item.snapshot()
        points_required = int(item.points_required)
        limited_stock = item.stock is not None
        timestamp = now or utcnow()

        try:
            debited = await self._ledger.adjust_points(-points_required, restaurant_id, customer_id)
            if not debited:
                await self._session.rollback()
                return Outcome.fail(FailureReason.INSUFFICIENT_BALANCE, "Insufficient balance")

            if limited_stock:
                await self._decrement_stock(reward_item_id)

            ticket = RewardRedemption(
                customer_id=customer_id,
                restaurant_id=restaurant_id,
                reward_item_snapshot=snapshot,
                status=RedemptionStatus.ACTIVE,
                redeemed_at=timestamp,
            )
            self._session.add(ticket)
            await self._session.commit()
        except _StockExhausted:
            await self._session.rollback()
            logger.info(
                "Reward stock exhausted during redemption",
                reward_item_id=str(reward_item_id),
                customer_id=str(customer_id),
            )
            return Outcome.fail(FailureReason.OUT_OF_STOCK, "Reward item is out of stock")
        except Exception:
            await self._session.rollback()
            logger.exception(
                "Redemption rolled back",
                reward_item_id=str(reward_item_id),
                customer_id=str(customer_id),
            )
            raise

        logger.info(
            "Created reward redemption",
            redemption_id=str(ticket.id),
            customer_id=str(customer_id),
            restaurant_id=str(restaurant_id),
            points=points_required,
        )
        return Outcome.success(ticket)

    async def _decrement_stock(self, reward_item_id: UUID) -> None:
        stmt = (
            update(RewardItem)
            .where(RewardItem.id == reward_item_id, RewardItem.stock > 0)
            .values(stock=RewardItem.stock - 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise _StockExhausted()

    async def activate(
        self,
        ticket_id: UUID,
        customer_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[RewardRedemption]:
        """Assign a claim code and start the activation window."""

        ticket = await self.get_ticket(ticket_id)
        if ticket is None or ticket.customer_id != customer_id:
            return Outcome.fail(FailureReason.NOT_FOUND, "Reward redemption not found")
        if ticket.status != RedemptionStatus.ACTIVE:
            return Outcome.fail(
                FailureReason.INVALID_STATE,
                f"Reward redemption is {ticket.status.value}, expected active",
            )

        activated_at = now or utcnow()

        async def _write(code: str) -> int:
            stmt = (
                update(RewardRedemption)
                .where(
                    RewardRedemption.id == ticket_id,
                    RewardRedemption.status == RedemptionStatus.ACTIVE,
                )
                .values(status=RedemptionStatus.ACTIVATED, code=code, activated_at=activated_at)
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            return result.rowcount

        _, updated = await self._codes.assign(REDEMPTION_CODE_SCOPE, _write)
        if updated != 1:
            await self._session.rollback()
            return Outcome.fail(FailureReason.INVALID_STATE, "Reward redemption is no longer active")

        await self._session.commit()
        ticket = await self.get_ticket(ticket_id)
        logger.info("Activated reward redemption", redemption_id=str(ticket_id))
        return Outcome.success(ticket)

    async def complete(
        self,
        code: str,
        staff_restaurant_id: UUID,
        *,
        now: datetime | None = None,
    ) -> Outcome[RewardRedemption]:
        """Staff-side claim of an activated ticket by its code."""

        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.code == code, RewardRedemption.code.is_not(None))
            .execution_options(populate_existing=True)
        )
        ticket = (await self._session.execute(stmt)).scalar_one_or_none()
        if ticket is None:
            return Outcome.fail(FailureReason.INVALID_CODE, "Invalid code")
        if ticket.restaurant_id != staff_restaurant_id:
            return Outcome.fail(FailureReason.FORBIDDEN, "Staff cannot access reward redemption")
        if ticket.status != RedemptionStatus.ACTIVATED:
            return Outcome.fail(FailureReason.INVALID_STATE, "Reward redemption is not activated")

        current = now or utcnow()
        if ticket.activated_at is None or current - ensure_utc(ticket.activated_at) > self._activation_window:
            await self.expire(ticket)
            return Outcome.fail(FailureReason.EXPIRED, "Reward redemption has expired")

        stmt_complete = (
            update(RewardRedemption)
            .where(
                RewardRedemption.id == ticket.id,
                RewardRedemption.status == RedemptionStatus.ACTIVATED,
                RewardRedemption.code == code,
            )
            .values(status=RedemptionStatus.COMPLETED, used_at=current, code=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt_complete)
        if result.rowcount != 1:
            await self._session.rollback()
            return Outcome.fail(FailureReason.INVALID_CODE, "Invalid code")

        await self._session.commit()
        completed = await self.get_ticket(ticket.id)
        logger.info(
            "Completed reward redemption",
            redemption_id=str(ticket.id),
            restaurant_id=str(staff_restaurant_id),
        )
        return Outcome.success(completed)

    async def expire(self, ticket: RewardRedemption) -> bool:
        """Force an activated ticket to ``expired``; a no-op in any other state."""

        stmt = (
            update(RewardRedemption)
            .where(
                RewardRedemption.id == ticket.id,
                RewardRedemption.status == RedemptionStatus.ACTIVATED,
            )
            .values(status=RedemptionStatus.EXPIRED, code=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        expired = result.rowcount == 1
        if expired:
            logger.info("Expired reward redemption", redemption_id=str(ticket.id))
        return expired


__all__ = ["REDEMPTION_CODE_SCOPE", "RedemptionStateMachine"]
