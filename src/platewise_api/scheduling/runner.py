"""Scheduler runtime for the ticket expiry sweeps."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from importlib import import_module
from types import ModuleType
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from .config import JobDefinition, ScheduleConfig
from .harness import JobHarness

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]
JobCallable = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class _Registration:
    definition: JobDefinition
    func: JobCallable


class JobScheduler:
    """Explicitly registered recurring jobs, each run through a :class:`JobHarness`."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        timezone: str = "UTC",
        harness: JobHarness | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._timezone = ZoneInfo(timezone)
        self._harness = harness or JobHarness()
        self._registrations: dict[str, _Registration] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running: bool = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def jobs(self) -> list[JobDefinition]:
        return [registration.definition for registration in self._registrations.values()]

    def register(self, definition: JobDefinition, func: JobCallable | None = None) -> None:
        """Register a job; the callable is imported from ``definition.task`` when omitted."""

        CronTrigger.from_crontab(definition.cron, timezone=self._timezone)
        resolved = func or self._resolve_callable(definition.task)
        if not inspect.iscoroutinefunction(resolved):
            raise TypeError(f"Task {definition.task} must be an async function")
        self._registrations[definition.id] = _Registration(definition=definition, func=resolved)
        if self._scheduler is not None:
            self._add_to_scheduler(self._scheduler, definition.id)
        logger.info(
            "Registered scheduled job",
            job_id=definition.id,
            task=definition.task,
            cron=definition.cron,
        )

    def load(self, config: ScheduleConfig) -> None:
        self._timezone = ZoneInfo(config.timezone)
        for definition in config.jobs:
            self.register(definition)

    def start(self) -> None:
        """Start the scheduler with registered jobs."""

        if self._is_running:
            return
        scheduler = AsyncIOScheduler(timezone=self._timezone)
        for job_id in self._registrations:
            self._add_to_scheduler(scheduler, job_id)
        scheduler.start()
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Job scheduler started", jobs=len(self._registrations))

    async def stop(self) -> None:
        """Stop the scheduler and release resources."""

        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Job scheduler stopped")

    async def run_job(self, job_id: str) -> Any | None:
        """Run one registered job immediately through the harness."""

        registration = self._registrations[job_id]
        return await self._wrap_callable(registration)()

    def _add_to_scheduler(self, scheduler: AsyncIOScheduler, job_id: str) -> None:
        registration = self._registrations[job_id]
        trigger = CronTrigger.from_crontab(registration.definition.cron, timezone=self._timezone)
        scheduler.add_job(
            self._wrap_callable(registration),
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _resolve_callable(self, task: str) -> JobCallable:
        module_name, _, attr = task.rpartition(".")
        if not module_name:
            raise ValueError(f"Invalid task path: {task}")
        module: ModuleType = import_module(module_name)
        func = getattr(module, attr, None)
        if func is None:
            raise AttributeError(f"Task {task} not found")
        return func

    def _wrap_callable(self, registration: _Registration) -> Callable[[], Awaitable[Any]]:
        definition = registration.definition

        async def _invoke() -> Any:
            return await registration.func(session_factory=self._session_factory, **definition.kwargs)

        async def _runner() -> Any | None:
            return await self._harness.run(definition.id, _invoke, retry=definition.retry)

        return _runner

    def health(self) -> dict[str, object]:
        """Return scheduler health metadata suitable for diagnostics."""

        sweep_metrics = self._harness.metrics
        jobs: list[dict[str, object]] = []
        for definition in self.jobs:
            stats = sweep_metrics.get(definition.id)
            jobs.append(
                {
                    "id": definition.id,
                    "task": definition.task,
                    "cron": definition.cron,
                    "max_attempts": definition.retry.max_attempts,
                    "metrics": stats.as_dict() if stats else None,
                }
            )

        return {
            "running": self._is_running,
            "configured_jobs": len(jobs),
            "totals": sweep_metrics.totals(),
            "jobs": jobs,
        }


__all__ = ["JobScheduler"]
