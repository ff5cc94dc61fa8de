from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from platewise_api.core.settings import settings
from platewise_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import JobScheduler, default_schedule, load_job_definitions
from .services.outcomes import CodeAllocationError


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def _resolve_schedule_path() -> Path:
    schedule_path = Path(settings.job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


def build_job_scheduler() -> JobScheduler:
    """Create the expiry scheduler from the schedule file, or the built-in cadences."""

    job_scheduler = JobScheduler(session_factory=_session_factory, timezone=settings.scheduler_timezone)
    schedule_path = _resolve_schedule_path()
    try:
        config = load_job_definitions(schedule_path)
    except FileNotFoundError:
        logger.warning("Schedule file missing, using built-in cadences", schedule_path=str(schedule_path))
        config = default_schedule(settings.scheduler_timezone)
    job_scheduler.load(config)
    return job_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    job_scheduler = build_job_scheduler()
    app.state.job_scheduler = job_scheduler

    scheduler_enabled = settings.job_scheduler_enabled
    if scheduler_enabled:
        job_scheduler.start()
        logger.info("Expiry scheduler enabled", jobs=len(job_scheduler.jobs))
    else:
        logger.info(
            "Expiry scheduler disabled",
            reason="job_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if job_scheduler.is_running:
            await job_scheduler.stop()


async def _code_allocation_failed(request: Request, exc: CodeAllocationError) -> JSONResponse:
    logger.error("Claim code allocation exhausted", scope=exc.scope, attempts=exc.attempts, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"reason": "code_unavailable", "message": str(exc)}},
    )


def create_app() -> FastAPI:
    """Application factory for the Platewise API service."""
    configure_logging(
        service_name="platewise-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Platewise API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name="platewise-api",
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.add_exception_handler(CodeAllocationError, _code_allocation_failed)
    app.include_router(api_router)

    return app
