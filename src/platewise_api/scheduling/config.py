"""Configuration loader for recurring job schedules."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomllib


@dataclass(slots=True)
class RetryPolicy:
    """Attempt budget and backoff applied by the job harness."""

    max_attempts: int = 1
    base_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after ``attempt`` failed, jitter excluded."""

        delay = max(self.base_backoff_seconds, 0.0) * (max(self.backoff_multiplier, 1.0) ** (attempt - 1))
        if self.max_backoff_seconds:
            delay = min(delay, self.max_backoff_seconds)
        return max(delay, 0.0)


@dataclass(slots=True)
class JobDefinition:
    """Describe a scheduled job."""

    id: str
    task: str
    cron: str
    kwargs: dict[str, Any] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(slots=True)
class ScheduleConfig:
    """Root schedule configuration."""

    timezone: str
    jobs: list[JobDefinition]


def default_schedule(timezone: str = "UTC") -> ScheduleConfig:
    """Built-in cadences used when no schedule file is present."""

    return ScheduleConfig(
        timezone=timezone,
        jobs=[
            JobDefinition(
                id="expire-stale-redemptions",
                task="platewise_api.jobs.expiry.expire_stale_redemptions",
                cron="* * * * *",
            ),
            JobDefinition(
                id="delete-stale-orders",
                task="platewise_api.jobs.expiry.delete_stale_orders",
                cron="*/5 * * * *",
            ),
        ],
    )


def load_job_definitions(config_path: Path) -> ScheduleConfig:
    """Load job definitions from a TOML schedule file."""

    if not config_path.exists():
        raise FileNotFoundError(f"Schedule config not found: {config_path}")

    data = tomllib.loads(config_path.read_text())
    timezone = data.get("timezone", "UTC")
    job_entries = data.get("jobs", {})
    jobs: list[JobDefinition] = []
    for key, payload in job_entries.items():
        if not isinstance(payload, dict):
            continue
        job_id = payload.get("id") or key
        task = payload.get("task")
        cron = payload.get("cron")
        kwargs = payload.get("kwargs", {})
        if not isinstance(task, str) or not isinstance(cron, str):
            continue
        if not isinstance(kwargs, dict):
            kwargs = {}

        retry = RetryPolicy(
            max_attempts=max(int(payload.get("max_attempts", 1) or 1), 1),
            base_backoff_seconds=max(float(payload.get("base_backoff_seconds", 5.0) or 0), 0.0),
            backoff_multiplier=max(float(payload.get("backoff_multiplier", 2.0) or 1), 1.0),
            max_backoff_seconds=max(float(payload.get("max_backoff_seconds", 60.0) or 0), 0.0),
            jitter_seconds=max(float(payload.get("jitter_seconds", 1.0) or 0), 0.0),
        )
        jobs.append(JobDefinition(id=str(job_id), task=task, cron=cron, kwargs=kwargs, retry=retry))

    return ScheduleConfig(timezone=str(timezone), jobs=jobs)


__all__ = ["JobDefinition", "RetryPolicy", "ScheduleConfig", "default_schedule", "load_job_definitions"]
