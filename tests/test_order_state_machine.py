from decimal import Decimal
from uuid import uuid4

import pytest

from platewise_api.models.menu import MenuItem
from platewise_api.models.order import OrderStatusEnum
from platewise_api.services.orders import (
    OrderItemsPatch,
    OrderLineChange,
    OrderLineRequest,
    OrderStateMachine,
    compute_total,
)
from platewise_api.services.outcomes import FailureReason


async def _menu(session, restaurant_id=None):
    restaurant_id = restaurant_id or uuid4()
    noodles = MenuItem(restaurant_id=restaurant_id, name="Dan dan noodles", price=Decimal("12.50"))
    dumplings = MenuItem(restaurant_id=restaurant_id, name="Pork dumplings", price=Decimal("7.25"))
    tea = MenuItem(restaurant_id=restaurant_id, name="Jasmine tea", price=Decimal("3.00"))
    session.add_all([noodles, dumplings, tea])
    await session.commit()
    return restaurant_id, noodles, dumplings, tea


async def _pending_order(session):
    restaurant_id, noodles, dumplings, tea = await _menu(session)
    customer_id = uuid4()
    machine = OrderStateMachine(session)
    order = (
        await machine.create(
            customer_id,
            restaurant_id,
            [
                OrderLineRequest(item_id=noodles.id, quantity=2, remarks="extra chilli"),
                OrderLineRequest(item_id=dumplings.id, quantity=1),
            ],
        )
    ).unwrap()
    return machine, restaurant_id, customer_id, order, (noodles, dumplings, tea)


def test_compute_total_rounds_to_cents() -> None:
    lines = [
        {"price": "12.50", "quantity": 2},
        {"price": "0.333", "quantity": 3},
    ]
    assert compute_total(lines) == Decimal("26.00")


@pytest.mark.asyncio
async def test_create_snapshots_menu_and_allocates_code(session_factory) -> None:
    async with session_factory() as session:
        machine, restaurant_id, customer_id, order, (noodles, _, _) = await _pending_order(session)

        assert order.status == OrderStatusEnum.PENDING
        assert order.restaurant_id == restaurant_id
        assert order.customer_id == customer_id
        assert order.code is not None and len(order.code) == 6 and order.code.isdigit()
        assert Decimal(order.total) == Decimal("32.25")
        first = order.line_items[0]
        assert first["item_id"] == str(noodles.id)
        assert first["name"] == "Dan dan noodles"
        assert first["price"] == "12.50"
        assert first["remarks"] == "extra chilli"

        found = await machine.find_by_code(order.code, restaurant_id)
        assert found.ok and found.value.id == order.id

        elsewhere = await machine.find_by_code(order.code, uuid4())
        assert elsewhere.failure.reason == FailureReason.NOT_FOUND


@pytest.mark.asyncio
async def test_create_rejects_bad_requests(session_factory) -> None:
    async with session_factory() as session:
        restaurant_id, noodles, _, _ = await _menu(session)
        machine = OrderStateMachine(session)
        customer_id = uuid4()

        empty = await machine.create(customer_id, restaurant_id, [])
        assert empty.failure.reason == FailureReason.INVALID_REQUEST

        zero = await machine.create(customer_id, restaurant_id, [OrderLineRequest(item_id=noodles.id, quantity=0)])
        assert zero.failure.reason == FailureReason.INVALID_REQUEST

        unknown = await machine.create(customer_id, restaurant_id, [OrderLineRequest(item_id=uuid4(), quantity=1)])
        assert unknown.failure.reason == FailureReason.NOT_FOUND

        other_menu = await machine.create(customer_id, uuid4(), [OrderLineRequest(item_id=noodles.id, quantity=1)])
        assert other_menu.failure.reason == FailureReason.NOT_FOUND


@pytest.mark.asyncio
async def test_assign_table_moves_pending_to_preparing(session_factory) -> None:
    async with session_factory() as session:
        machine, restaurant_id, _, order, _ = await _pending_order(session)

        seated = (await machine.assign_table(order.id, 7, restaurant_id=restaurant_id)).unwrap()
        assert seated.table_number == 7
        assert seated.status == OrderStatusEnum.PREPARING
        assert seated.code is None

        moved = (await machine.assign_table(order.id, 9, restaurant_id=restaurant_id)).unwrap()
        assert moved.table_number == 9
        assert moved.status == OrderStatusEnum.PREPARING


@pytest.mark.asyncio
async def test_assign_table_checks_restaurant_and_terminal_state(session_factory) -> None:
    async with session_factory() as session:
        machine, restaurant_id, _, order, _ = await _pending_order(session)

        forbidden = await machine.assign_table(order.id, 3, restaurant_id=uuid4())
        assert forbidden.failure.reason == FailureReason.FORBIDDEN

        (await machine.set_status(order.id, OrderStatusEnum.CANCELLED)).unwrap()
        closed = await machine.assign_table(order.id, 3, restaurant_id=restaurant_id)
        assert closed.failure.reason == FailureReason.INVALID_STATE


@pytest.mark.asyncio
async def test_status_moves_forward_only(session_factory) -> None:
    async with session_factory() as session:
        machine, restaurant_id, _, order, _ = await _pending_order(session)

        ready = (await machine.set_status(order.id, "ready", restaurant_id=restaurant_id)).unwrap()
        assert ready.status == OrderStatusEnum.READY
        assert ready.code is None

        backward = await machine.set_status(order.id, OrderStatusEnum.PREPARING)
        assert backward.failure.reason == FailureReason.INVALID_STATE
        assert backward.status_code == 409

        same = await machine.set_status(order.id, OrderStatusEnum.READY)
        assert same.failure.reason == FailureReason.INVALID_STATE

        done = (await machine.set_status(order.id, OrderStatusEnum.COMPLETED)).unwrap()
        assert done.status == OrderStatusEnum.COMPLETED

        cancelled = await machine.set_status(order.id, OrderStatusEnum.CANCELLED)
        assert cancelled.failure.reason == FailureReason.INVALID_STATE


@pytest.mark.asyncio
async def test_status_rejects_unknown_value_and_foreign_staff(session_factory) -> None:
    async with session_factory() as session:
        machine, _, _, order, _ = await _pending_order(session)

        unknown = await machine.set_status(order.id, "served")
        assert unknown.failure.reason == FailureReason.INVALID_REQUEST

        forbidden = await machine.set_status(order.id, OrderStatusEnum.READY, restaurant_id=uuid4())
        assert forbidden.failure.reason == FailureReason.FORBIDDEN

        missing = await machine.set_status(uuid4(), OrderStatusEnum.READY)
        assert missing.failure.reason == FailureReason.NOT_FOUND


def test_transition_table() -> None:
    assert OrderStateMachine.can_transition(OrderStatusEnum.PENDING, OrderStatusEnum.CANCELLED)
    assert OrderStateMachine.can_transition(OrderStatusEnum.PREPARING, OrderStatusEnum.COMPLETED)
    assert not OrderStateMachine.can_transition(OrderStatusEnum.READY, OrderStatusEnum.PENDING)
    assert not OrderStateMachine.can_transition(OrderStatusEnum.CANCELLED, OrderStatusEnum.COMPLETED)


@pytest.mark.asyncio
async def test_patch_items_applies_remove_update_add(session_factory) -> None:
    async with session_factory() as session:
        machine, _, customer_id, order, (noodles, dumplings, tea) = await _pending_order(session)

        patch = OrderItemsPatch(
            remove=[dumplings.id],
            update=[OrderLineChange(item_id=noodles.id, quantity=1, remarks="mild")],
            add=[OrderLineRequest(item_id=tea.id, quantity=2)],
        )
        updated = (await machine.patch_items(order.id, patch, customer_id=customer_id)).unwrap()

        lines = {line["item_id"]: line for line in updated.line_items}
        assert set(lines) == {str(noodles.id), str(tea.id)}
        assert lines[str(noodles.id)]["quantity"] == 1
        assert lines[str(noodles.id)]["remarks"] == "mild"
        assert lines[str(tea.id)]["quantity"] == 2
        assert Decimal(updated.total) == Decimal("18.50")
        assert updated.code == order.code


@pytest.mark.asyncio
async def test_patch_items_remarks_only_keeps_quantity(session_factory) -> None:
    async with session_factory() as session:
        machine, _, customer_id, order, (noodles, _, _) = await _pending_order(session)

        patch = OrderItemsPatch(update=[OrderLineChange(item_id=noodles.id, remarks="no peanuts")])
        updated = (await machine.patch_items(order.id, patch, customer_id=customer_id)).unwrap()

        lines = {line["item_id"]: line for line in updated.line_items}
        assert lines[str(noodles.id)]["quantity"] == 2
        assert lines[str(noodles.id)]["remarks"] == "no peanuts"
        assert Decimal(updated.total) == Decimal("32.25")

        zero = await machine.patch_items(
            order.id, OrderItemsPatch(update=[OrderLineChange(item_id=noodles.id, quantity=0)])
        )
        assert zero.failure.reason == FailureReason.INVALID_REQUEST


@pytest.mark.asyncio
async def test_patch_items_rejections(session_factory) -> None:
    async with session_factory() as session:
        machine, _, customer_id, order, (noodles, dumplings, tea) = await _pending_order(session)

        duplicate = await machine.patch_items(
            order.id, OrderItemsPatch(add=[OrderLineRequest(item_id=noodles.id, quantity=1)])
        )
        assert duplicate.failure.reason == FailureReason.INVALID_REQUEST

        absent = await machine.patch_items(
            order.id, OrderItemsPatch(update=[OrderLineChange(item_id=tea.id, quantity=1)])
        )
        assert absent.failure.reason == FailureReason.NOT_FOUND

        off_menu = await machine.patch_items(
            order.id, OrderItemsPatch(add=[OrderLineRequest(item_id=uuid4(), quantity=1)])
        )
        assert off_menu.failure.reason == FailureReason.NOT_FOUND

        emptied = await machine.patch_items(order.id, OrderItemsPatch(remove=[noodles.id, dumplings.id]))
        assert emptied.failure.reason == FailureReason.INVALID_REQUEST

        stranger = await machine.patch_items(order.id, OrderItemsPatch(remove=[dumplings.id]), customer_id=uuid4())
        assert stranger.failure.reason == FailureReason.FORBIDDEN

        (await machine.set_status(order.id, OrderStatusEnum.COMPLETED)).unwrap()
        finished = await machine.patch_items(order.id, OrderItemsPatch(remove=[dumplings.id]), customer_id=customer_id)
        assert finished.failure.reason == FailureReason.INVALID_STATE

        unchanged = await machine.get_order(order.id)
        assert len(unchanged.line_items) == 2


@pytest.mark.asyncio
async def test_list_for_customer_filters_by_restaurant(session_factory) -> None:
    async with session_factory() as session:
        machine, restaurant_id, customer_id, order, (noodles, _, _) = await _pending_order(session)
        other_restaurant, other_noodles, _, _ = await _menu(session)
        (
            await machine.create(customer_id, other_restaurant, [OrderLineRequest(item_id=other_noodles.id, quantity=1)])
        ).unwrap()

        everything = await machine.list_for_customer(customer_id)
        assert everything.total_count == 2

        scoped = await machine.list_for_customer(customer_id, restaurant_id=restaurant_id)
        assert scoped.total_count == 1
        assert scoped.items[0].id == order.id
