from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.core.settings import settings
from platewise_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]
    scheduler: dict[str, object] | None = None


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        components["database"] = ComponentStatus(status="error", detail=str(exc))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    scheduler = getattr(request.app.state, "job_scheduler", None)
    scheduler_health: dict[str, object] | None = None
    if scheduler is not None:
        scheduler_health = scheduler.health()
    if settings.job_scheduler_enabled and scheduler is not None:
        running = bool(scheduler.is_running)
        components["expiry_scheduler"] = ComponentStatus(
            status="ready" if running else "starting",
            detail=None if running else "Expiry scheduler not running",
        )
        if not running and status != "error":
            status = "degraded"
    else:
        components["expiry_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Expiry scheduler disabled via settings",
        )

    return ReadinessPayload(status=status, components=components, scheduler=scheduler_health)
