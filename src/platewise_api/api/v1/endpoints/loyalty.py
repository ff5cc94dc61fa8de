"""API endpoints for points balances and reward redemptions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.api.dependencies.identity import require_customer, require_staff_restaurant
from platewise_api.api.dependencies.outcomes import unwrap_outcome
from platewise_api.db.session import get_session
from platewise_api.models.loyalty import RewardPoint, RewardRedemption
from platewise_api.services.loyalty import PointsLedger, RedemptionStateMachine


router = APIRouter(prefix="/loyalty", tags=["loyalty"])


class PointsBalanceResponse(BaseModel):
    customerId: UUID
    restaurantId: UUID
    points: int
    updatedAt: Optional[datetime]


class PointsPageResponse(BaseModel):
    points: List[PointsBalanceResponse]
    page: int
    limit: int
    totalCount: int
    totalPages: int


class PointsAdjustRequest(BaseModel):
    customerId: UUID = Field(..., description="Customer whose balance is adjusted")
    change: int = Field(..., description="Positive to credit, negative to debit")


class RedemptionCreateRequest(BaseModel):
    restaurantId: UUID = Field(..., description="Restaurant the reward belongs to")
    rewardItemId: UUID = Field(..., description="Reward shop item to redeem")


class RedemptionCompleteRequest(BaseModel):
    code: str = Field(..., pattern=r"^\d{6}$", description="Claim code presented by the customer")


class RedemptionResponse(BaseModel):
    id: UUID
    customerId: UUID
    restaurantId: UUID
    rewardItem: dict[str, Any]
    status: str
    code: Optional[str]
    redeemedAt: datetime
    activatedAt: Optional[datetime]
    usedAt: Optional[datetime]


class RedemptionPageResponse(BaseModel):
    redemptions: List[RedemptionResponse]
    page: int
    limit: int
    totalCount: int
    totalPages: int


def _serialize_balance(balance: RewardPoint) -> PointsBalanceResponse:
    return PointsBalanceResponse(
        customerId=balance.customer_id,
        restaurantId=balance.restaurant_id,
        points=int(balance.points),
        updatedAt=balance.updated_at,
    )


def _serialize_redemption(ticket: RewardRedemption) -> RedemptionResponse:
    return RedemptionResponse(
        id=ticket.id,
        customerId=ticket.customer_id,
        restaurantId=ticket.restaurant_id,
        rewardItem=dict(ticket.reward_item_snapshot or {}),
        status=ticket.status.value,
        code=ticket.code,
        redeemedAt=ticket.redeemed_at,
        activatedAt=ticket.activated_at,
        usedAt=ticket.used_at,
    )


@router.get("/points", response_model=PointsPageResponse)
async def list_points(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> PointsPageResponse:
    result = await PointsLedger(db).list_balances(customer_id, page=page, limit=limit)
    return PointsPageResponse(
        points=[_serialize_balance(balance) for balance in result.items],
        page=result.page,
        limit=result.limit,
        totalCount=result.total_count,
        totalPages=result.total_pages,
    )


@router.get("/points/{restaurant_id}", response_model=Optional[PointsBalanceResponse])
async def get_points(
    restaurant_id: UUID,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> Optional[PointsBalanceResponse]:
    balance = await PointsLedger(db).get_balance(restaurant_id, customer_id)
    return _serialize_balance(balance) if balance else None


@router.post("/points/{restaurant_id}/adjust", response_model=PointsBalanceResponse)
async def adjust_points(
    restaurant_id: UUID,
    payload: PointsAdjustRequest,
    staff_restaurant_id: UUID = Depends(require_staff_restaurant),
    db: AsyncSession = Depends(get_session),
) -> PointsBalanceResponse:
    if staff_restaurant_id != restaurant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff cannot adjust this restaurant")
    ledger = PointsLedger(db)
    unwrap_outcome(await ledger.update_points(restaurant_id, payload.customerId, payload.change))
    balance = await ledger.get_balance(restaurant_id, payload.customerId)
    return _serialize_balance(balance)


@router.get("/redemptions", response_model=RedemptionPageResponse)
async def list_redemptions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> RedemptionPageResponse:
    result = await RedemptionStateMachine(db).list_redemptions(customer_id, page=page, limit=limit)
    return RedemptionPageResponse(
        redemptions=[_serialize_redemption(ticket) for ticket in result.items],
        page=result.page,
        limit=result.limit,
        totalCount=result.total_count,
        totalPages=result.total_pages,
    )


@router.post("/redemptions", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def create_redemption(
    payload: RedemptionCreateRequest,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    outcome = await RedemptionStateMachine(db).redeem(customer_id, payload.restaurantId, payload.rewardItemId)
    return _serialize_redemption(unwrap_outcome(outcome))


@router.post("/redemptions/complete", response_model=RedemptionResponse)
async def complete_redemption(
    payload: RedemptionCompleteRequest,
    staff_restaurant_id: UUID = Depends(require_staff_restaurant),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    outcome = await RedemptionStateMachine(db).complete(payload.code, staff_restaurant_id)
    return _serialize_redemption(unwrap_outcome(outcome))


@router.post("/redemptions/{redemption_id}/activate", response_model=RedemptionResponse)
async def activate_redemption(
    redemption_id: UUID,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    outcome = await RedemptionStateMachine(db).activate(redemption_id, customer_id)
    return _serialize_redemption(unwrap_outcome(outcome))
