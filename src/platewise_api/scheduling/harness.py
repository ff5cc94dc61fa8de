"""Failure isolation for scheduled callbacks."""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Awaitable, Callable

from loguru import logger

from platewise_api.observability.scheduler import SweepMetrics, get_sweep_metrics

from .config import RetryPolicy


class JobHarness:
    """Run a job body so that its failure never reaches the scheduler or the process."""

    def __init__(
        self,
        *,
        metrics: SweepMetrics | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._metrics = metrics or get_sweep_metrics()
        self._sleep = sleep

    @property
    def metrics(self) -> SweepMetrics:
        return self._metrics

    async def run(
        self,
        name: str,
        fn: Callable[[], Awaitable[Any]],
        *,
        retry: RetryPolicy | None = None,
    ) -> Any | None:
        """Invoke ``fn``; return its result, or ``None`` once every attempt has failed."""

        policy = retry or RetryPolicy(max_attempts=1)
        max_attempts = max(policy.max_attempts, 1)

        self._metrics.started(name)
        logger.info("Scheduled job started", job_id=name)
        started_at = time.perf_counter()

        for attempt in range(1, max_attempts + 1):
            try:
                result = await fn()
            except Exception as exc:
                error_message = str(exc) or exc.__class__.__name__
                if attempt >= max_attempts:
                    runtime_seconds = time.perf_counter() - started_at
                    self._metrics.failed(name, runtime_seconds, error_message)
                    logger.exception(
                        "Scheduled job failed",
                        job_id=name,
                        attempts=attempt,
                        error=error_message,
                    )
                    return None

                delay = policy.delay_for(attempt)
                if policy.jitter_seconds:
                    delay += random.uniform(0, policy.jitter_seconds)
                self._metrics.retrying(name, error_message)
                logger.warning(
                    "Scheduled job retrying",
                    job_id=name,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=error_message,
                )
                if delay:
                    await self._sleep(delay)
                continue

            runtime_seconds = time.perf_counter() - started_at
            self._metrics.succeeded(name, runtime_seconds)
            logger.info(
                "Scheduled job completed",
                job_id=name,
                attempts=attempt,
                runtime_seconds=runtime_seconds,
            )
            return result

        return None


__all__ = ["JobHarness"]
