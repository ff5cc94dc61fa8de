"""Caller identity forwarded by the authentication gateway."""

from __future__ import annotations

from uuid import UUID

from fastapi import Header, HTTPException, status


def _parse_identifier(raw: str | None, *, missing_detail: str, invalid_detail: str) -> UUID:
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=missing_detail)
    try:
        return UUID(raw)
    except ValueError as error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=invalid_detail) from error


async def require_customer(customer_id: str | None = Header(None, alias="X-Customer-Id")) -> UUID:
    """Resolve the customer profile the request acts for."""

    return _parse_identifier(
        customer_id,
        missing_detail="Missing customer context",
        invalid_detail="Invalid customer identifier",
    )


async def require_staff_restaurant(
    staff_restaurant_id: str | None = Header(None, alias="X-Staff-Restaurant-Id"),
) -> UUID:
    """Resolve the restaurant a staff member is signed in to."""

    return _parse_identifier(
        staff_restaurant_id,
        missing_detail="Missing staff restaurant context",
        invalid_detail="Invalid restaurant identifier",
    )
