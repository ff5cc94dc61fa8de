"""Typed results for expected business outcomes of the ticket services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from math import ceil
from typing import Generic, Sequence, TypeVar

T = TypeVar("T")


class FailureReason(str, Enum):
    """Expected, non-exceptional reasons an operation can be refused."""

    NOT_FOUND = "not_found"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_STATE = "invalid_state"
    INVALID_CODE = "invalid_code"
    FORBIDDEN = "forbidden"
    EXPIRED = "expired"
    INVALID_REQUEST = "invalid_request"


_STATUS_CODES: dict[FailureReason, int] = {
    FailureReason.NOT_FOUND: 404,
    FailureReason.OUT_OF_STOCK: 409,
    FailureReason.INSUFFICIENT_BALANCE: 400,
    FailureReason.INVALID_STATE: 409,
    FailureReason.INVALID_CODE: 400,
    FailureReason.FORBIDDEN: 403,
    FailureReason.EXPIRED: 410,
    FailureReason.INVALID_REQUEST: 400,
}


@dataclass(frozen=True, slots=True)
class Failure:
    reason: FailureReason
    message: str

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.reason]


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Either a value or a business failure, never both."""

    value: T | None = None
    failure: Failure | None = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> "Outcome[T]":
        return cls(failure=Failure(reason=reason, message=message))

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def status_code(self) -> int:
        return 200 if self.failure is None else self.failure.status_code

    def unwrap(self) -> T:
        if self.failure is not None:
            raise ValueError(f"Outcome failed: {self.failure.reason.value}: {self.failure.message}")
        return self.value  # type: ignore[return-value]


class CodeAllocationError(RuntimeError):
    """Raised when no unique claim code could be committed within the retry budget."""

    def __init__(self, scope: str, attempts: int) -> None:
        super().__init__(f"Unable to allocate a unique code for {scope} after {attempts} attempts")
        self.scope = scope
        self.attempts = attempts


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of a customer-facing listing."""

    items: Sequence[T]
    page: int
    limit: int
    total_count: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return ceil(self.total_count / self.limit)


__all__ = [
    "CodeAllocationError",
    "Failure",
    "FailureReason",
    "Outcome",
    "Page",
]
