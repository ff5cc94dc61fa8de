"""Scheduled sweeps that reap expired redemptions and abandoned preorders."""

# meta: job: ticket-expiry

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.core.clock import utcnow
from platewise_api.services.expiry import ExpirySweeper

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def _open_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


async def expire_stale_redemptions(*, session_factory: SessionFactory) -> Dict[str, Any]:
    """Expire activated redemptions older than the activation window."""

    session = await _open_session(session_factory)
    async with session as managed_session:
        now = utcnow()
        expired = await ExpirySweeper(managed_session).expire_stale_redemptions(now=now)
        await managed_session.commit()

    summary = {"expired_redemptions": expired, "swept_at": now.isoformat()}
    logger.bind(summary=summary).info("Redemption expiry sweep completed")
    return summary


async def delete_stale_orders(*, session_factory: SessionFactory) -> Dict[str, Any]:
    """Hard-delete preorders still pending past their time to live."""

    session = await _open_session(session_factory)
    async with session as managed_session:
        now = utcnow()
        deleted = await ExpirySweeper(managed_session).delete_stale_orders(now=now)
        await managed_session.commit()

    summary = {"deleted_orders": deleted, "swept_at": now.isoformat()}
    logger.bind(summary=summary).info("Pending order sweep completed")
    return summary
