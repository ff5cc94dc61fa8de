"""Preorder API endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.api.dependencies.identity import require_customer, require_staff_restaurant
from platewise_api.api.dependencies.outcomes import unwrap_outcome
from platewise_api.db.session import get_session
from platewise_api.models.order import Order, OrderStatusEnum
from platewise_api.services.orders import (
    OrderItemsPatch,
    OrderLineChange,
    OrderLineRequest,
    OrderStateMachine,
)


router = APIRouter(prefix="/orders", tags=["orders"])


class OrderLineCreate(BaseModel):
    """Requested menu item."""
    itemId: UUID = Field(..., description="Menu item ID")
    quantity: int = Field(1, ge=1, description="Item quantity")
    remarks: Optional[str] = Field(None, description="Kitchen remarks")


class OrderCreate(BaseModel):
    """Request model for creating preorders."""
    restaurantId: UUID = Field(..., description="Restaurant receiving the preorder")
    items: List[OrderLineCreate] = Field(..., min_length=1, description="Requested items")


class OrderLineEdit(BaseModel):
    """Change to a line already on the order; omitted fields keep their value."""
    itemId: UUID = Field(..., description="Menu item ID of the line to edit")
    quantity: Optional[int] = Field(None, ge=1, description="New quantity")
    remarks: Optional[str] = Field(None, description="New kitchen remarks")


class OrderItemsUpdate(BaseModel):
    """Line item edits, applied remove first, then update, then add."""
    add: List[OrderLineCreate] = Field(default_factory=list)
    update: List[OrderLineEdit] = Field(default_factory=list)
    remove: List[UUID] = Field(default_factory=list)


class OrderTableAssign(BaseModel):
    tableNumber: int = Field(..., ge=1, description="Table the party is seated at")


class OrderStatusUpdate(BaseModel):
    status: OrderStatusEnum


class OrderResponse(BaseModel):
    """Response model for preorders."""
    id: UUID
    restaurantId: UUID
    customerId: UUID
    type: str
    code: Optional[str]
    status: str
    tableNumber: Optional[int]
    items: List[Dict[str, Any]]
    total: Decimal
    createdAt: datetime
    updatedAt: Optional[datetime]


class OrderPageResponse(BaseModel):
    orders: List[OrderResponse]
    page: int
    limit: int
    totalCount: int
    totalPages: int


def _serialize_order(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        restaurantId=order.restaurant_id,
        customerId=order.customer_id,
        type=order.type.value,
        code=order.code,
        status=order.status.value,
        tableNumber=order.table_number,
        items=list(order.line_items or []),
        total=Decimal(order.total),
        createdAt=order.created_at,
        updatedAt=order.updated_at,
    )


def _to_line(line: OrderLineCreate) -> OrderLineRequest:
    return OrderLineRequest(item_id=line.itemId, quantity=line.quantity, remarks=line.remarks)


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    outcome = await OrderStateMachine(db).create(
        customer_id,
        payload.restaurantId,
        [_to_line(line) for line in payload.items],
    )
    return _serialize_order(unwrap_outcome(outcome))


@router.get("/", response_model=OrderPageResponse)
async def list_orders(
    restaurant_id: Optional[UUID] = Query(None, alias="restaurantId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> OrderPageResponse:
    result = await OrderStateMachine(db).list_for_customer(
        customer_id,
        restaurant_id=restaurant_id,
        page=page,
        limit=limit,
    )
    return OrderPageResponse(
        orders=[_serialize_order(order) for order in result.items],
        page=result.page,
        limit=result.limit,
        totalCount=result.total_count,
        totalPages=result.total_pages,
    )


@router.get("/code/{code}", response_model=OrderResponse)
async def get_order_by_code(
    code: str,
    staff_restaurant_id: UUID = Depends(require_staff_restaurant),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    outcome = await OrderStateMachine(db).find_by_code(code, staff_restaurant_id)
    return _serialize_order(unwrap_outcome(outcome))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    order = await OrderStateMachine(db).get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    if order.customer_id != customer_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Customer cannot access order")
    return _serialize_order(order)


@router.patch("/{order_id}/items", response_model=OrderResponse)
async def update_order_items(
    order_id: UUID,
    payload: OrderItemsUpdate,
    customer_id: UUID = Depends(require_customer),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    patch = OrderItemsPatch(
        add=[_to_line(line) for line in payload.add],
        update=[
            OrderLineChange(item_id=line.itemId, quantity=line.quantity, remarks=line.remarks)
            for line in payload.update
        ],
        remove=list(payload.remove),
    )
    outcome = await OrderStateMachine(db).patch_items(order_id, patch, customer_id=customer_id)
    return _serialize_order(unwrap_outcome(outcome))


@router.post("/{order_id}/table", response_model=OrderResponse)
async def assign_order_table(
    order_id: UUID,
    payload: OrderTableAssign,
    staff_restaurant_id: UUID = Depends(require_staff_restaurant),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    outcome = await OrderStateMachine(db).assign_table(
        order_id,
        payload.tableNumber,
        restaurant_id=staff_restaurant_id,
    )
    return _serialize_order(unwrap_outcome(outcome))


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    staff_restaurant_id: UUID = Depends(require_staff_restaurant),
    db: AsyncSession = Depends(get_session),
) -> OrderResponse:
    outcome = await OrderStateMachine(db).set_status(
        order_id,
        payload.status,
        restaurant_id=staff_restaurant_id,
    )
    return _serialize_order(unwrap_outcome(outcome))
