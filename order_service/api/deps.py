# order_service/api/deps.py
from datetime import datetime
from typing import Callable
from uuid import UUID

import structlog
from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.clock import utc_now
from order_service.core.errors import AuthenticationError, PersistenceError, storage_detail
from order_service.core.security import get_bearer_token, resolve_user_id
from order_service.db.base import get_db
from order_service.domain.checkout.numbering import generate_order_number


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_order_number_factory() -> Callable[[datetime], str]:
    return generate_order_number


async def get_current_user_id(
    request: Request,
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> UUID:
    token = get_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise AuthenticationError("Missing Bearer token")

    try:
        user_id = await resolve_user_id(db, token, clock())
    except SQLAlchemyError as exc:
        raise PersistenceError("Token lookup failed", detail=storage_detail(exc)) from exc
    if user_id is None:
        raise AuthenticationError("Invalid token")

    structlog.contextvars.bind_contextvars(user_id=str(user_id))
    return user_id
