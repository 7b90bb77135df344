# order_service/api/v1/routes_orders.py
from datetime import datetime
from typing import Callable
from fastapi import APIRouter, Depends, Request
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession


from order_service.api.deps import get_clock, get_current_user_id, get_order_number_factory
from order_service.core.errors import InvalidPayloadError
from order_service.db.base import get_db
from order_service.domain.checkout.schemas import ErrorOut, OrderCreatedOut
from order_service.domain.checkout.service import create_order


router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post(
    "",
    response_model=OrderCreatedOut,
    responses={code: {"model": ErrorOut} for code in (400, 401, 403, 409, 500)},
)
async def create_order_endpoint(
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    next_order_number: Callable[[datetime], str] = Depends(get_order_number_factory),
):
    try:
        body = await request.json()
    except ValueError:
        raise InvalidPayloadError("Invalid JSON body")

    created = await create_order(
        db,
        user_id,
        body,
        clock=clock,
        next_order_number=next_order_number,
    )
    return OrderCreatedOut(
        order_id=created.order_id,
        order_number=created.order_number,
        total_cents=created.total_cents,
        other_orders_total_cents=created.other_orders_total_cents,
    )
