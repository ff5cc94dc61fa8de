"""Preorder ticket lifecycle: creation, table assignment, status and item edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.models.menu import MenuItem
from platewise_api.models.order import Order, OrderStatusEnum, OrderTypeEnum
from platewise_api.services.codes import CodeAllocator, CodeScope
from platewise_api.services.outcomes import FailureReason, Outcome, Page

_CENT = Decimal("0.01")


@dataclass(slots=True)
class OrderLineRequest:
    """Requested menu item and quantity."""

    item_id: UUID
    quantity: int
    remarks: str | None = None


@dataclass(slots=True)
class OrderLineChange:
    """Edit to a line already on the order; omitted fields are left as they are."""

    item_id: UUID
    quantity: int | None = None
    remarks: str | None = None


@dataclass(slots=True)
class OrderItemsPatch:
    """Line item edits applied in remove, update, add order."""

    add: list[OrderLineRequest] = field(default_factory=list)
    update: list[OrderLineChange] = field(default_factory=list)
    remove: list[UUID] = field(default_factory=list)


def order_code_scope(restaurant_id: UUID) -> CodeScope:
    return CodeScope(
        name=f"orders:{restaurant_id}",
        column=Order.code,
        criteria=(Order.restaurant_id == restaurant_id,),
    )


def compute_total(line_items: Iterable[dict[str, Any]]) -> Decimal:
    total = sum(
        (Decimal(str(line["price"])) * int(line["quantity"]) for line in line_items),
        Decimal("0"),
    )
    return total.quantize(_CENT)


def _snapshot(menu_item: MenuItem, quantity: int, remarks: str | None) -> dict[str, Any]:
    line: dict[str, Any] = {
        "item_id": str(menu_item.id),
        "name": menu_item.name,
        "price": str(Decimal(menu_item.price).quantize(_CENT)),
        "quantity": int(quantity),
    }
    if remarks:
        line["remarks"] = remarks
    return line


class OrderStateMachine:
    """Forward-only order transitions backed by conditional updates."""

    _ALLOWED_TRANSITIONS: dict[OrderStatusEnum, set[OrderStatusEnum]] = {
        OrderStatusEnum.PENDING: {
            OrderStatusEnum.PREPARING,
            OrderStatusEnum.READY,
            OrderStatusEnum.COMPLETED,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.PREPARING: {
            OrderStatusEnum.READY,
            OrderStatusEnum.COMPLETED,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.READY: {
            OrderStatusEnum.COMPLETED,
            OrderStatusEnum.CANCELLED,
        },
        OrderStatusEnum.COMPLETED: set(),
        OrderStatusEnum.CANCELLED: set(),
    }

    _TERMINAL = frozenset({OrderStatusEnum.COMPLETED, OrderStatusEnum.CANCELLED})

    def __init__(self, session: AsyncSession, *, code_allocator: CodeAllocator | None = None) -> None:
        self._session = session
        self._codes = code_allocator or CodeAllocator(session)

    @classmethod
    def can_transition(cls, current: OrderStatusEnum, target: OrderStatusEnum) -> bool:
        return target in cls._ALLOWED_TRANSITIONS.get(current, set())

    async def get_order(self, order_id: UUID) -> Order | None:
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_code(self, code: str, restaurant_id: UUID) -> Outcome[Order]:
        stmt = (
            select(Order)
            .where(Order.code == code, Order.restaurant_id == restaurant_id)
            .execution_options(populate_existing=True)
        )
        order = (await self._session.execute(stmt)).scalar_one_or_none()
        if order is None:
            return Outcome.fail(FailureReason.NOT_FOUND, "Order with given code not found")
        return Outcome.success(order)

    async def list_for_customer(
        self,
        customer_id: UUID,
        *,
        restaurant_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Order]:
        page = max(page, 1)
        limit = max(limit, 1)
        filters = [Order.customer_id == customer_id]
        if restaurant_id is not None:
            filters.append(Order.restaurant_id == restaurant_id)

        stmt = (
            select(Order)
            .where(*filters)
            .order_by(Order.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        count_stmt = select(func.count()).select_from(Order).where(*filters)
        items = (await self._session.execute(stmt)).scalars().all()
        total = int((await self._session.execute(count_stmt)).scalar_one())
        return Page(items=items, page=page, limit=limit, total_count=total)

    async def create(
        self,
        customer_id: UUID,
        restaurant_id: UUID,
        items: Sequence[OrderLineRequest],
    ) -> Outcome[Order]:
        """Snapshot menu prices, allocate a restaurant-scoped code and persist a pending order."""

        if not items:
            return Outcome.fail(FailureReason.INVALID_REQUEST, "Order must contain at least one item")
        if any(line.quantity < 1 for line in items):
            return Outcome.fail(FailureReason.INVALID_REQUEST, "Quantities must be at least 1")
        if len({line.item_id for line in items}) != len(items):
            return Outcome.fail(FailureReason.INVALID_REQUEST, "Duplicate items in order")

        menu = await self._load_menu(restaurant_id, [line.item_id for line in items])
        line_items: list[dict[str, Any]] = []
        for line in items:
            menu_item = menu.get(line.item_id)
            if menu_item is None:
                return Outcome.fail(FailureReason.NOT_FOUND, f"MenuItem not found: {line.item_id}")
            line_items.append(_snapshot(menu_item, line.quantity, line.remarks))
        total = compute_total(line_items)

        async def _write(code: str) -> Order:
            order = Order(
                restaurant_id=restaurant_id,
                customer_id=customer_id,
                type=OrderTypeEnum.PREORDER,
                code=code,
                line_items=line_items,
                total=total,
                status=OrderStatusEnum.PENDING,
            )
            self._session.add(order)
            await self._session.flush()
            return order

        _, order = await self._codes.assign(order_code_scope(restaurant_id), _write)
        await self._session.commit()
        logger.info(
            "Created preorder",
            order_id=str(order.id),
            restaurant_id=str(restaurant_id),
            customer_id=str(customer_id),
            total=str(total),
        )
        return Outcome.success(order)

    async def assign_table(
        self,
        order_id: UUID,
        table_number: int,
        *,
        restaurant_id: UUID | None = None,
    ) -> Outcome[Order]:
        """Seat the order; a pending order moves to preparing and drops its code."""

        order = await self.get_order(order_id)
        if order is None:
            return Outcome.fail(FailureReason.NOT_FOUND, "Order not found")
        if restaurant_id is not None and order.restaurant_id != restaurant_id:
            return Outcome.fail(FailureReason.FORBIDDEN, "Staff cannot access order")
        current = order.status
        if current in self._TERMINAL:
            return Outcome.fail(FailureReason.INVALID_STATE, f"Order is already {current.value}")

        values: dict[str, Any] = {"table_number": int(table_number)}
        if current == OrderStatusEnum.PENDING:
            values.update(status=OrderStatusEnum.PREPARING, code=None)

        if not await self._conditional_update(order_id, current, values):
            return Outcome.fail(FailureReason.INVALID_STATE, "Order changed concurrently")

        logger.info(
            "Assigned table to order",
            order_id=str(order_id),
            table_number=table_number,
            from_status=current.value,
        )
        return Outcome.success(await self.get_order(order_id))

    async def set_status(
        self,
        order_id: UUID,
        status: OrderStatusEnum | str,
        *,
        restaurant_id: UUID | None = None,
    ) -> Outcome[Order]:
        """Move the order forward; the code is cleared once it leaves pending."""

        try:
            target = OrderStatusEnum(status)
        except ValueError:
            return Outcome.fail(FailureReason.INVALID_REQUEST, f"Unknown order status: {status}")

        order = await self.get_order(order_id)
        if order is None:
            return Outcome.fail(FailureReason.NOT_FOUND, "Order not found")
        if restaurant_id is not None and order.restaurant_id != restaurant_id:
            return Outcome.fail(FailureReason.FORBIDDEN, "Staff cannot access order")

        current = order.status
        if not self.can_transition(current, target):
            return Outcome.fail(
                FailureReason.INVALID_STATE,
                f"Cannot transition order from {current.value} to {target.value}",
            )

        if not await self._conditional_update(order_id, current, {"status": target, "code": None}):
            return Outcome.fail(FailureReason.INVALID_STATE, "Order changed concurrently")

        logger.info(
            "Order status transitioned",
            order_id=str(order_id),
            from_status=current.value,
            to_status=target.value,
        )
        return Outcome.success(await self.get_order(order_id))

    async def patch_items(
        self,
        order_id: UUID,
        patch: OrderItemsPatch,
        *,
        customer_id: UUID | None = None,
    ) -> Outcome[Order]:
        """Apply remove/update/add edits by item id and recompute the total."""

        order = await self.get_order(order_id)
        if order is None:
            return Outcome.fail(FailureReason.NOT_FOUND, "Order not found")
        if customer_id is not None and order.customer_id != customer_id:
            return Outcome.fail(FailureReason.FORBIDDEN, "Customer cannot access order")
        current = order.status
        if current in self._TERMINAL:
            return Outcome.fail(FailureReason.INVALID_STATE, "Order cannot be modified")

        lines: dict[str, dict[str, Any]] = {
            str(line["item_id"]): dict(line) for line in (order.line_items or [])
        }

        for item_id in patch.remove:
            lines.pop(str(item_id), None)

        for change in patch.update:
            if change.quantity is not None and change.quantity < 1:
                return Outcome.fail(FailureReason.INVALID_REQUEST, "Quantities must be at least 1")
            entry = lines.get(str(change.item_id))
            if entry is None:
                return Outcome.fail(FailureReason.NOT_FOUND, f"Item not found in order: {change.item_id}")
            if change.quantity is not None:
                entry["quantity"] = int(change.quantity)
            if change.remarks is not None:
                entry["remarks"] = change.remarks

        if patch.add:
            menu = await self._load_menu(order.restaurant_id, [line.item_id for line in patch.add])
            for addition in patch.add:
                key = str(addition.item_id)
                if key in lines:
                    return Outcome.fail(FailureReason.INVALID_REQUEST, f"Item already exists in order: {key}")
                if addition.quantity < 1:
                    return Outcome.fail(FailureReason.INVALID_REQUEST, "Quantities must be at least 1")
                menu_item = menu.get(addition.item_id)
                if menu_item is None:
                    return Outcome.fail(FailureReason.NOT_FOUND, f"MenuItem not found: {key}")
                lines[key] = _snapshot(menu_item, addition.quantity, addition.remarks)

        new_items = list(lines.values())
        if not new_items:
            return Outcome.fail(FailureReason.INVALID_REQUEST, "Order must contain at least one item")
        new_total = compute_total(new_items)

        if not await self._conditional_update(order_id, current, {"line_items": new_items, "total": new_total}):
            return Outcome.fail(FailureReason.INVALID_STATE, "Order changed concurrently")

        logger.info(
            "Updated order items",
            order_id=str(order_id),
            items=len(new_items),
            total=str(new_total),
        )
        return Outcome.success(await self.get_order(order_id))

    async def _conditional_update(
        self,
        order_id: UUID,
        expected_status: OrderStatusEnum,
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            await self._session.rollback()
            return False
        await self._session.commit()
        return True

    async def _load_menu(self, restaurant_id: UUID, item_ids: Sequence[UUID]) -> dict[UUID, MenuItem]:
        if not item_ids:
            return {}
        stmt = select(MenuItem).where(
            MenuItem.id.in_(list(item_ids)),
            MenuItem.restaurant_id == restaurant_id,
            MenuItem.is_available.is_(True),
        )
        result = await self._session.execute(stmt)
        return {menu_item.id: menu_item for menu_item in result.scalars().all()}


__all__ = [
    "OrderItemsPatch",
    "OrderLineChange",
    "OrderLineRequest",
    "OrderStateMachine",
    "compute_total",
    "order_code_scope",
]
