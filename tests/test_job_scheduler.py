from pathlib import Path

import pytest

from platewise_api.observability.scheduler import SweepMetrics, get_sweep_metrics
from platewise_api.scheduling import (
    JobDefinition,
    JobHarness,
    JobScheduler,
    RetryPolicy,
    default_schedule,
    load_job_definitions,
)
from platewise_api.jobs import expiry


def _no_backoff(max_attempts: int) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        base_backoff_seconds=0.0,
        backoff_multiplier=1.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_harness_swallows_failure_and_records_it() -> None:
    metrics = SweepMetrics()
    harness = JobHarness(metrics=metrics)

    async def failing() -> None:
        raise RuntimeError("database unavailable")

    assert await harness.run("sweep", failing) is None

    assert metrics.totals()["runs"] == 1
    assert metrics.totals()["failed"] == 1
    job = metrics.get("sweep")
    assert job.last_error == "database unavailable"
    assert job.last_error_at is not None


@pytest.mark.asyncio
async def test_harness_retries_with_backoff() -> None:
    metrics = SweepMetrics()
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    harness = JobHarness(metrics=metrics, sleep=fake_sleep)
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise RuntimeError("boom")
        return "done"

    policy = RetryPolicy(max_attempts=3, base_backoff_seconds=2.0, backoff_multiplier=2.0, jitter_seconds=0.0)
    assert await harness.run("flaky", flaky, retry=policy) == "done"

    assert attempts == 3
    assert delays == [2.0, 4.0]
    assert metrics.totals() == {"runs": 1, "succeeded": 1, "failed": 0, "retries": 2}
    stats = metrics.get("flaky")
    assert stats.last_error is None
    assert stats.consecutive_failures == 0
    assert stats.last_success_at is not None


def test_retry_policy_caps_backoff() -> None:
    policy = RetryPolicy(base_backoff_seconds=10.0, backoff_multiplier=3.0, max_backoff_seconds=60.0)
    assert policy.delay_for(1) == 10.0
    assert policy.delay_for(2) == 30.0
    assert policy.delay_for(3) == 60.0


@pytest.mark.asyncio
async def test_scheduler_runs_job_through_harness() -> None:
    calls: list[object] = []
    marker = object()

    async def sweep(*, session_factory, label: str) -> dict[str, str]:
        calls.append(session_factory)
        return {"label": label}

    scheduler = JobScheduler(session_factory=marker)
    scheduler.register(
        JobDefinition(id="sweep", task="tests.sweep", cron="* * * * *", kwargs={"label": "x"}, retry=_no_backoff(1)),
        sweep,
    )

    assert await scheduler.run_job("sweep") == {"label": "x"}
    assert calls == [marker]

    health = scheduler.health()
    assert health["running"] is False
    assert health["configured_jobs"] == 1
    assert health["jobs"][0]["metrics"]["runs"] == 1
    assert health["totals"]["succeeded"] == 1
    assert get_sweep_metrics().totals()["succeeded"] == 1


@pytest.mark.asyncio
async def test_health_reports_metrics_from_injected_harness() -> None:
    metrics = SweepMetrics()
    scheduler = JobScheduler(session_factory=lambda: None, harness=JobHarness(metrics=metrics))

    async def sweep(*, session_factory) -> int:
        return 3

    scheduler.register(JobDefinition(id="sweep", task="tests.sweep", cron="* * * * *", retry=_no_backoff(1)), sweep)
    assert await scheduler.run_job("sweep") == 3

    health = scheduler.health()
    job = health["jobs"][0]["metrics"]
    assert job["runs"] == 1
    assert job["succeeded"] == 1
    assert isinstance(job["last_success_at"], str)
    assert health["totals"]["runs"] == 1
    assert get_sweep_metrics().get("sweep") is None


@pytest.mark.asyncio
async def test_scheduler_contains_failing_job() -> None:
    async def broken(*, session_factory) -> None:
        raise RuntimeError("boom")

    scheduler = JobScheduler(session_factory=lambda: None)
    scheduler.register(JobDefinition(id="broken", task="tests.broken", cron="*/5 * * * *", retry=_no_backoff(2)), broken)

    assert await scheduler.run_job("broken") is None
    stats = get_sweep_metrics().get("broken")
    assert stats.consecutive_failures == 2
    assert stats.retries == 1
    assert stats.failed == 1
    assert stats.last_error == "boom"


def test_register_rejects_sync_callables_and_bad_cron() -> None:
    scheduler = JobScheduler(session_factory=lambda: None)

    def not_async(*, session_factory) -> None:
        return None

    with pytest.raises(TypeError):
        scheduler.register(JobDefinition(id="sync", task="tests.sync", cron="* * * * *"), not_async)

    async def fine(*, session_factory) -> None:
        return None

    with pytest.raises(ValueError):
        scheduler.register(JobDefinition(id="bad", task="tests.bad", cron="every minute"), fine)

    assert scheduler.jobs == []


def test_register_resolves_task_path() -> None:
    scheduler = JobScheduler(session_factory=lambda: None)
    scheduler.load(default_schedule())

    assert [job.id for job in scheduler.jobs] == ["expire-stale-redemptions", "delete-stale-orders"]
    assert scheduler._registrations["expire-stale-redemptions"].func is expiry.expire_stale_redemptions
    assert scheduler._registrations["delete-stale-orders"].func is expiry.delete_stale_orders


@pytest.mark.asyncio
async def test_scheduler_start_and_stop() -> None:
    scheduler = JobScheduler(session_factory=lambda: None)
    scheduler.load(default_schedule())

    scheduler.start()
    assert scheduler.is_running
    await scheduler.stop()
    assert not scheduler.is_running


def test_load_job_definitions_parses_retry_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "schedules.toml"
    config_path.write_text(
        """
timezone = "Europe/Amsterdam"

[jobs.expire-stale-redemptions]
task = "platewise_api.jobs.expiry.expire_stale_redemptions"
cron = "* * * * *"
max_attempts = 3
base_backoff_seconds = 1.5
jitter_seconds = 0

[jobs.broken]
cron = "* * * * *"
"""
    )

    config = load_job_definitions(config_path)

    assert config.timezone == "Europe/Amsterdam"
    assert len(config.jobs) == 1
    job = config.jobs[0]
    assert job.id == "expire-stale-redemptions"
    assert job.retry.max_attempts == 3
    assert job.retry.base_backoff_seconds == 1.5
    assert job.retry.jitter_seconds == 0.0


def test_load_job_definitions_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "absent.toml")


def test_bundled_schedule_matches_default_cadences() -> None:
    config_path = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"
    config = load_job_definitions(config_path)

    cadences = {job.id: job.cron for job in config.jobs}
    assert cadences == {job.id: job.cron for job in default_schedule().jobs}
