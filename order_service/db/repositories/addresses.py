# order_service/db/repositories/addresses.py
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from order_service.db.models.addresses import Address

async def get_address_for_user(
    db: AsyncSession,
    address_id: UUID,
    user_id: UUID,
) -> Optional[Address]:
    result = await db.execute(
        select(Address).where(Address.id == address_id, Address.user_id == user_id)
    )
    return result.scalar_one_or_none()
