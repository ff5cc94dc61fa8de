from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException

from platewise_api.services.outcomes import Outcome

T = TypeVar("T")


def unwrap_outcome(outcome: Outcome[T]) -> T:
    """Translate a business failure into the matching 4xx response."""

    if outcome.failure is not None:
        raise HTTPException(
            status_code=outcome.failure.status_code,
            detail={"reason": outcome.failure.reason.value, "message": outcome.failure.message},
        )
    return outcome.value  # type: ignore[return-value]
