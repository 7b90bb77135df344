
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from order_service.db.models.orders import Order
from order_service.db.models.order_lines import OrderLine

async def get_order_by_id(
    db: AsyncSession,
    order_id: UUID,
    include_deleted: bool = False,
) -> Optional[Order]:
    query = select(Order).where(Order.id == order_id)
    if not include_deleted:
        query = query.where(Order.deleted_at.is_(None))
    result = await db.execute(query)
    return result.scalar_one_or_none()

async def get_lines_for_order(
    db: AsyncSession,
    order_id: UUID
) -> List[OrderLine]:
    result = await db.execute(
        select(OrderLine).where(OrderLine.order_id == order_id)
    )
    return list(result.scalars().all())

async def insert_order(db: AsyncSession, order: Order) -> Order:
    db.add(order)
    await db.commit()
    await db.refresh(order)
    return order

async def insert_order_lines(db: AsyncSession, lines: List[OrderLine]) -> None:
    db.add_all(lines)
    await db.commit()

async def soft_delete_order(
    db: AsyncSession,
    order_id: UUID,
    deleted_at: datetime,
) -> bool:
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.deleted_at.is_(None))
        .values(deleted_at=deleted_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1

async def sum_other_order_totals(db: AsyncSession, order_id: UUID) -> int:
    """Sum ``total_cents`` over every active order except ``order_id``."""
    result = await db.execute(
        select(func.coalesce(func.sum(Order.total_cents), 0)).where(
            Order.id != order_id,
            Order.deleted_at.is_(None),
        )
    )
    return int(result.scalar())
