# order_service/domain/inventory/ledger.py
import enum
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.errors import storage_detail
from order_service.db.models.inventory import InventoryMovement, MovementReason
from order_service.db.models.orders import OrderStatus
from order_service.db.repositories import inventory as inventory_repo
from order_service.db.repositories.inventory import StockLevel

logger = structlog.get_logger(__name__)

MOVEMENT_SOURCE = "orders-create"


class InventoryMode(str, enum.Enum):
    RESERVE = "reserve"
    PURCHASE = "purchase"
    NONE = "none"


STATUS_MODES: Dict[str, InventoryMode] = {
    OrderStatus.PENDING.value: InventoryMode.RESERVE,
    OrderStatus.PLACED.value: InventoryMode.RESERVE,
    OrderStatus.PAID.value: InventoryMode.PURCHASE,
    OrderStatus.SHIPPED.value: InventoryMode.PURCHASE,
    OrderStatus.DELIVERED.value: InventoryMode.PURCHASE,
}

MOVEMENT_REASONS: Dict[InventoryMode, MovementReason] = {
    InventoryMode.RESERVE: MovementReason.RESERVE,
    InventoryMode.PURCHASE: MovementReason.PURCHASE,
}


def inventory_mode_for_status(status: str) -> InventoryMode:
    return STATUS_MODES.get(str(getattr(status, "value", status)), InventoryMode.NONE)


def movement_reason_for_mode(mode: InventoryMode) -> Optional[MovementReason]:
    return MOVEMENT_REASONS.get(mode)


@dataclass(frozen=True)
class StockRequest:
    variant_id: UUID
    quantity: int


@dataclass(frozen=True)
class AppliedAdjustment:
    """A counter change that has been committed for one variant."""

    variant_id: UUID
    quantity: int
    before: StockLevel
    after: StockLevel


class InventoryError(Exception):
    """Base ledger failure; ``applied`` lists the variants already written."""

    def __init__(self, message: str, applied: Optional[List[AppliedAdjustment]] = None):
        super().__init__(message)
        self.applied = list(applied or [])


class InventoryRowMissingError(InventoryError):
    pass


class InsufficientStockError(InventoryError):
    pass


class ConcurrentUpdateError(InventoryError):
    pass


def target_level(level: StockLevel, quantity: int, mode: InventoryMode) -> StockLevel:
    if mode is InventoryMode.RESERVE:
        return StockLevel(level.on_hand, level.reserved + quantity)
    if mode is InventoryMode.PURCHASE:
        return StockLevel(level.on_hand - quantity, level.reserved)
    return level


def reverted_level(level: StockLevel, quantity: int, mode: InventoryMode) -> StockLevel:
    if mode is InventoryMode.RESERVE:
        # Floored at zero: the reservation may already have been released elsewhere
        return StockLevel(level.on_hand, max(0, level.reserved - quantity))
    if mode is InventoryMode.PURCHASE:
        return StockLevel(level.on_hand + quantity, level.reserved)
    return level


def aggregate_requests(requests: Iterable[StockRequest]) -> List[StockRequest]:
    seen = set()
    aggregated = []
    for req in requests:
        if req.variant_id in seen:
            raise InventoryError(f"Variant {req.variant_id} requested more than once")
        seen.add(req.variant_id)
        aggregated.append(req)
    return aggregated


async def apply_inventory(
    db: AsyncSession,
    requests: Sequence[StockRequest],
    mode: InventoryMode,
) -> List[AppliedAdjustment]:
    """Reserve or purchase stock for every request, in the order given.

    Raises an ``InventoryError`` subclass on a missing row, insufficient
    stock or a concurrent change; the error's ``applied`` attribute holds
    the adjustments committed before the failure.
    """
    if mode is InventoryMode.NONE or not requests:
        return []

    requests = aggregate_requests(requests)
    try:
        levels = await inventory_repo.get_inventory_levels(
            db, [req.variant_id for req in requests]
        )
    except SQLAlchemyError as exc:
        await db.rollback()
        raise InventoryError(f"Inventory read failed: {storage_detail(exc)}") from exc

    missing = [str(req.variant_id) for req in requests if req.variant_id not in levels]
    if missing:
        raise InventoryRowMissingError(
            f"Inventory row missing for variant(s): {', '.join(missing)}"
        )

    applied: List[AppliedAdjustment] = []
    for req in requests:
        current = levels[req.variant_id]
        if current.available < req.quantity:
            raise InsufficientStockError(
                f"Insufficient stock for variant {req.variant_id}: "
                f"requested={req.quantity}, available={current.available}",
                applied,
            )

        target = target_level(current, req.quantity, mode)
        try:
            written = await inventory_repo.compare_and_set_inventory(
                db, req.variant_id, current, target
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            raise InventoryError(
                f"Inventory write failed for variant {req.variant_id}: {storage_detail(exc)}",
                applied,
            ) from exc

        if not written:
            raise ConcurrentUpdateError(
                f"Inventory for variant {req.variant_id} changed concurrently",
                applied,
            )

        applied.append(AppliedAdjustment(req.variant_id, req.quantity, current, target))
        logger.debug(
            "Inventory adjusted",
            variant_id=str(req.variant_id),
            mode=mode.value,
            on_hand=target.on_hand,
            reserved=target.reserved,
        )

    return applied


async def rollback_inventory(
    db: AsyncSession,
    applied: Sequence[AppliedAdjustment],
    mode: InventoryMode,
) -> int:
    """Undo ``applied`` adjustments. Best-effort; returns how many were restored."""
    restored = 0
    for adj in applied:
        try:
            levels = await inventory_repo.get_inventory_levels(db, [adj.variant_id])
            current = levels.get(adj.variant_id)
            if current is None:
                logger.error(
                    "Inventory rollback skipped, row missing",
                    variant_id=str(adj.variant_id),
                )
                continue

            reverted = reverted_level(current, adj.quantity, mode)
            if await inventory_repo.compare_and_set_inventory(
                db, adj.variant_id, current, reverted
            ):
                restored += 1
            else:
                logger.error(
                    "Inventory rollback lost a concurrent update",
                    variant_id=str(adj.variant_id),
                    quantity=adj.quantity,
                    mode=mode.value,
                )
        except SQLAlchemyError:
            logger.exception(
                "Inventory rollback failed",
                variant_id=str(adj.variant_id),
                quantity=adj.quantity,
                mode=mode.value,
            )
            await db.rollback()
    return restored


async def record_movements(
    db: AsyncSession,
    applied: Sequence[AppliedAdjustment],
    mode: InventoryMode,
    *,
    order_id: UUID,
    order_number: str,
    actor_user_id: UUID,
) -> List[InventoryMovement]:
    """Write one audit movement per applied adjustment.

    Errors propagate; the movement log is part of the same unit of work as
    the counter change it describes.
    """
    reason = movement_reason_for_mode(mode)
    if reason is None or not applied:
        return []

    movements = [
        InventoryMovement(
            variant_id=adj.variant_id,
            reason=reason,
            delta=-adj.quantity,
            related_order_id=order_id,
            actor_user_id=actor_user_id,
            movement_metadata={
                "source": MOVEMENT_SOURCE,
                "order_number": order_number,
            },
        )
        for adj in applied
    ]
    await inventory_repo.insert_movements(db, movements)
    return movements
