"""Recurring job entrypoints for ticket expiry."""

from .expiry import delete_stale_orders, expire_stale_redemptions  # noqa: F401

__all__ = [
    "delete_stale_orders",
    "expire_stale_redemptions",
]
