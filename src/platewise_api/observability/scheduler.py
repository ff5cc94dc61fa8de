"""Run counters for the expiry sweeps, reported through scheduler health."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from threading import Lock


@dataclass(slots=True)
class SweepStats:
    """Outcome history of one sweep since process start."""

    runs: int = 0
    succeeded: int = 0
    failed: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    runtime_seconds: float = 0.0
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None

    def as_dict(self) -> dict[str, object]:
        payload = asdict(self)
        for key in ("last_success_at", "last_error_at"):
            stamp = payload[key]
            payload[key] = stamp.isoformat() if stamp else None
        return payload


class SweepMetrics:
    """Thread-safe per-sweep counters; one instance is shared per harness."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._stats: dict[str, SweepStats] = {}

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()

    def _entry(self, name: str) -> SweepStats:
        return self._stats.setdefault(name, SweepStats())

    def started(self, name: str) -> None:
        with self._lock:
            self._entry(name).runs += 1

    def retrying(self, name: str, error: str) -> None:
        """An attempt failed and another one is scheduled."""

        with self._lock:
            stats = self._entry(name)
            stats.retries += 1
            stats.consecutive_failures += 1
            stats.last_error = error
            stats.last_error_at = datetime.now(timezone.utc)

    def succeeded(self, name: str, runtime_seconds: float) -> None:
        with self._lock:
            stats = self._entry(name)
            stats.succeeded += 1
            stats.runtime_seconds += runtime_seconds
            stats.consecutive_failures = 0
            stats.last_success_at = datetime.now(timezone.utc)
            stats.last_error = None
            stats.last_error_at = None

    def failed(self, name: str, runtime_seconds: float, error: str) -> None:
        """Every attempt of a run failed."""

        with self._lock:
            stats = self._entry(name)
            stats.failed += 1
            stats.consecutive_failures += 1
            stats.runtime_seconds += runtime_seconds
            stats.last_error = error
            stats.last_error_at = datetime.now(timezone.utc)

    def get(self, name: str) -> SweepStats | None:
        with self._lock:
            stats = self._stats.get(name)
            return replace(stats) if stats is not None else None

    def totals(self) -> dict[str, int]:
        with self._lock:
            values = list(self._stats.values())
            return {
                "runs": sum(stats.runs for stats in values),
                "succeeded": sum(stats.succeeded for stats in values),
                "failed": sum(stats.failed for stats in values),
                "retries": sum(stats.retries for stats in values),
            }


_SWEEP_METRICS = SweepMetrics()


def get_sweep_metrics() -> SweepMetrics:
    return _SWEEP_METRICS


__all__ = ["SweepMetrics", "SweepStats", "get_sweep_metrics"]
