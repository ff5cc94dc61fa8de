"""Short numeric claim codes with scoped uniqueness checks."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from platewise_api.core.settings import settings
from platewise_api.services.outcomes import CodeAllocationError

T = TypeVar("T")

CODE_LENGTH = 6
_CODE_FLOOR = 10 ** (CODE_LENGTH - 1)
_CODE_SPAN = 10**CODE_LENGTH - _CODE_FLOOR


def generate_code() -> str:
    """Draw a 6-digit code from the 900000 values 100000-999999."""

    return str(_CODE_FLOOR + secrets.randbelow(_CODE_SPAN))


@dataclass(slots=True)
class CodeScope:
    """Column plus filters delimiting the set of codes that must not collide."""

    name: str
    column: Any
    criteria: tuple[Any, ...] = field(default_factory=tuple)


class CodeAllocator:
    """Allocate codes that are unique among the live codes of a scope."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        max_attempts: int | None = None,
        generator: Callable[[], str] | None = None,
    ) -> None:
        self._session = session
        self._max_attempts = max(max_attempts or settings.code_allocation_max_attempts, 1)
        self._generate = generator or generate_code

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def is_taken(self, scope: CodeScope, code: str) -> bool:
        stmt = select(scope.column).where(scope.column == code, *scope.criteria).limit(1)
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def allocate(self, scope: CodeScope) -> str:
        """Return a code that no live record of the scope currently holds."""

        for _ in range(self._max_attempts):
            candidate = self._generate()
            if not await self.is_taken(scope, candidate):
                return candidate
            logger.debug("Claim code collision on lookup", scope=scope.name)
        raise CodeAllocationError(scope.name, self._max_attempts)

    async def assign(self, scope: CodeScope, write: Callable[[str], Awaitable[T]]) -> tuple[str, T]:
        """Allocate a code and persist it through ``write``.

        ``write`` must flush the code to the store so the unique index is
        checked. A unique violation rolls back the session transaction and the
        write is retried with a fresh code; lookups count against the same
        attempt budget.
        """

        attempts = 0
        while attempts < self._max_attempts:
            attempts += 1
            candidate = self._generate()
            if await self.is_taken(scope, candidate):
                logger.debug("Claim code collision on lookup", scope=scope.name, attempt=attempts)
                continue
            try:
                result = await write(candidate)
            except IntegrityError:
                await self._session.rollback()
                logger.warning(
                    "Claim code collided on write, retrying",
                    scope=scope.name,
                    attempt=attempts,
                )
                continue
            return candidate, result

        logger.error("Claim code allocation exhausted", scope=scope.name, attempts=attempts)
        raise CodeAllocationError(scope.name, attempts)


__all__ = ["CODE_LENGTH", "CodeAllocator", "CodeScope", "generate_code"]
