"""Scheduling utilities for recurring ticket sweeps."""

from .config import JobDefinition, RetryPolicy, ScheduleConfig, default_schedule, load_job_definitions
from .harness import JobHarness
from .runner import JobScheduler

__all__ = [
    "JobDefinition",
    "JobHarness",
    "JobScheduler",
    "RetryPolicy",
    "ScheduleConfig",
    "default_schedule",
    "load_job_definitions",
]
