
from typing import List, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from sqlalchemy.sql import select

from order_service.db.models.catalog import Product, ProductVariant

async def get_variants_by_ids(
    db: AsyncSession,
    variant_ids: Sequence[UUID],
) -> List[ProductVariant]:
    """Fetch the live variants among ``variant_ids`` with their product loaded.

    Soft-deleted variants, and variants of soft-deleted products, are left out.
    """
    result = await db.execute(
        select(ProductVariant)
        .join(ProductVariant.product)
        .options(joinedload(ProductVariant.product))
        .where(
            ProductVariant.id.in_(list(variant_ids)),
            ProductVariant.deleted_at.is_(None),
            Product.deleted_at.is_(None),
        )
    )
    return list(result.scalars().all())
