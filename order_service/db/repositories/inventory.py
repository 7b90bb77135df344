
from typing import Dict, List, NamedTuple, Sequence
from uuid import UUID
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from order_service.db.models.inventory import Inventory, InventoryMovement


class StockLevel(NamedTuple):
    on_hand: int
    reserved: int

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved


async def get_inventory_levels(
    db: AsyncSession,
    variant_ids: Sequence[UUID],
) -> Dict[UUID, StockLevel]:
    """Read the counters of every requested variant in one query.

    Variants without an inventory row are absent from the result.
    """
    if not variant_ids:
        return {}
    result = await db.execute(
        select(Inventory.variant_id, Inventory.on_hand, Inventory.reserved).where(
            Inventory.variant_id.in_(list(variant_ids))
        )
    )
    return {
        row.variant_id: StockLevel(row.on_hand, row.reserved)
        for row in result.all()
    }

async def compare_and_set_inventory(
    db: AsyncSession,
    variant_id: UUID,
    expected: StockLevel,
    target: StockLevel,
) -> bool:
    """Write ``target`` only if the row still holds ``expected``.

    Returns False when the row changed since it was read (or is gone).
    The write is committed before returning.
    """
    result = await db.execute(
        update(Inventory)
        .where(
            Inventory.variant_id == variant_id,
            Inventory.on_hand == expected.on_hand,
            Inventory.reserved == expected.reserved,
        )
        .values(
            on_hand=target.on_hand,
            reserved=target.reserved,
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1

async def insert_movements(
    db: AsyncSession,
    movements: List[InventoryMovement],
) -> None:
    db.add_all(movements)
    await db.commit()

async def get_movements_for_order(
    db: AsyncSession,
    order_id: UUID,
) -> List[InventoryMovement]:
    result = await db.execute(
        select(InventoryMovement)
        .where(InventoryMovement.related_order_id == order_id)
        .order_by(InventoryMovement.id)
    )
    return list(result.scalars().all())
