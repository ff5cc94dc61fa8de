"""Preorder ticket services."""

from .state_machine import (  # noqa: F401
    OrderItemsPatch,
    OrderLineChange,
    OrderLineRequest,
    OrderStateMachine,
    compute_total,
    order_code_scope,
)
