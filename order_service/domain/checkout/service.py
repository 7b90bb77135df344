# order_service/domain/checkout/service.py
import enum
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from order_service.core.clock import utc_now
from order_service.core.errors import (
    AccessDeniedError,
    AggregationError,
    InvalidPayloadError,
    InvalidReferenceError,
    PersistenceError,
    ServiceError,
    StockConflictError,
    storage_detail,
)
from order_service.db.models.addresses import Address
from order_service.db.models.catalog import ProductVariant
from order_service.db.models.order_lines import OrderLine
from order_service.db.models.orders import Order, OrderStatus
from order_service.db.repositories import addresses as address_repo
from order_service.db.repositories import catalog as catalog_repo
from order_service.db.repositories import orders as order_repo
from order_service.domain.inventory import ledger
from order_service.domain.inventory.ledger import (
    AppliedAdjustment,
    InventoryError,
    InventoryMode,
    StockRequest,
)
from .numbering import generate_order_number
from .pricing import PricedOrder, price_order
from .schemas import OrderCreate, OrderItem, normalize_order_payload

logger = structlog.get_logger(__name__)


class OrderCreationState(str, enum.Enum):
    VALIDATING = "validating"
    ADDRESSES_OK = "addresses_ok"
    VARIANTS_OK = "variants_ok"
    ORDER_PERSISTED = "order_persisted"
    LINES_PERSISTED = "lines_persisted"
    INVENTORY_APPLIED = "inventory_applied"
    MOVEMENTS_LOGGED = "movements_logged"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class OrderCreated:
    order_id: UUID
    order_number: str
    total_cents: int
    other_orders_total_cents: int


class CompensationStack:
    """Undo actions recorded while a flow progresses, run last-in first-out."""

    def __init__(self) -> None:
        self._actions: List[Tuple[str, Callable[[], Awaitable]]] = []

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._actions]

    def push(self, name: str, action: Callable[[], Awaitable]) -> None:
        self._actions.append((name, action))

    def clear(self) -> None:
        self._actions.clear()

    async def unwind(self) -> None:
        # Each action is best-effort; a failing one never stops the rest
        while self._actions:
            name, action = self._actions.pop()
            try:
                await action()
            except Exception:
                logger.exception("Compensation failed", step=name)
            else:
                logger.info("Compensation applied", step=name)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (TypeError, ValueError):
        return None


class OrderCreationFlow:
    def __init__(
        self,
        db: AsyncSession,
        user_id: UUID,
        *,
        clock: Callable[[], datetime] = utc_now,
        next_order_number: Callable[[datetime], str] = generate_order_number,
    ) -> None:
        self.db = db
        self.user_id = user_id
        self.clock = clock
        self.next_order_number = next_order_number
        self.state = OrderCreationState.VALIDATING
        self.compensations = CompensationStack()
        self.order: Optional[Order] = None

    def _advance(self, state: OrderCreationState) -> None:
        logger.debug("Order creation advanced", from_state=self.state.value, to_state=state.value)
        self.state = state

    async def run(self, body) -> OrderCreated:
        try:
            return await self._run(body)
        except Exception as exc:
            await self._abort(exc)
            raise

    async def _run(self, body) -> OrderCreated:
        payload = normalize_order_payload(body)

        shipping = await self._require_address(payload.shipping_address_id, "shipping_address_id")
        billing = await self._require_address(payload.billing_address_id, "billing_address_id")
        self._advance(OrderCreationState.ADDRESSES_OK)

        variants = await self._load_variants(payload.items)
        priced = price_order(
            payload.items,
            variants,
            currency=payload.currency,
            shipping_cents=payload.shipping_cents,
            tax_cents=payload.tax_cents,
            discount_cents=payload.discount_cents,
        )
        self._advance(OrderCreationState.VARIANTS_OK)

        order = await self._persist_order(payload, priced, shipping, billing)
        self._advance(OrderCreationState.ORDER_PERSISTED)

        await self._persist_lines(order, priced)
        self._advance(OrderCreationState.LINES_PERSISTED)

        mode = ledger.inventory_mode_for_status(payload.status)
        applied = await self._apply_inventory(priced, mode)
        self._advance(OrderCreationState.INVENTORY_APPLIED)

        await self._record_movements(order, applied, mode)
        self._advance(OrderCreationState.MOVEMENTS_LOGGED)

        # The order is complete; nothing after this point may undo it
        self.compensations.clear()

        other_total = await self._aggregate(order)
        self._advance(OrderCreationState.DONE)

        logger.info(
            "Order created",
            order_id=str(order.id),
            total_cents=order.total_cents,
            inventory_mode=mode.value,
            movements=len(applied),
        )
        return OrderCreated(
            order_id=order.id,
            order_number=order.order_number,
            total_cents=order.total_cents,
            other_orders_total_cents=other_total,
        )

    async def _abort(self, exc: Exception) -> None:
        failed_state = self.state
        try:
            await self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Session rollback failed")
        await self.compensations.unwind()
        self.state = OrderCreationState.ABORTED

        log = logger.warning if isinstance(exc, ServiceError) else logger.error
        log(
            "Order creation aborted",
            failed_state=failed_state.value,
            error=getattr(exc, "error", type(exc).__name__),
            detail=getattr(exc, "detail", None),
        )

    async def _require_address(self, address_id: str, field: str) -> Address:
        parsed = _parse_uuid(address_id)
        address = None
        if parsed is not None:
            try:
                address = await address_repo.get_address_for_user(self.db, parsed, self.user_id)
            except SQLAlchemyError as exc:
                raise PersistenceError("Address lookup failed", detail=storage_detail(exc)) from exc
        if address is None:
            raise AccessDeniedError(f"{field} not accessible for this user")
        return address

    async def _load_variants(self, items: Sequence[OrderItem]) -> List[ProductVariant]:
        variant_ids = [_parse_uuid(item.variant_id) for item in items]
        if any(variant_id is None for variant_id in variant_ids):
            raise InvalidReferenceError("One or more variant_id values are invalid")

        distinct_ids = set(variant_ids)
        if len(distinct_ids) != len(variant_ids):
            # Same UUID spelled differently (case, braces)
            raise InvalidPayloadError("items must not contain duplicate variant_id values")

        try:
            variants = await catalog_repo.get_variants_by_ids(self.db, list(distinct_ids))
        except SQLAlchemyError as exc:
            raise PersistenceError("Variant lookup failed", detail=storage_detail(exc)) from exc

        if len(variants) != len(distinct_ids):
            raise InvalidReferenceError("One or more variant_id values are invalid")
        return variants

    async def _persist_order(
        self,
        payload: OrderCreate,
        priced: PricedOrder,
        shipping: Address,
        billing: Address,
    ) -> Order:
        order_number = self.next_order_number(self.clock())
        structlog.contextvars.bind_contextvars(order_number=order_number)

        order = Order(
            order_number=order_number,
            user_id=self.user_id,
            shipping_address_id=shipping.id,
            billing_address_id=billing.id,
            status=OrderStatus(payload.status),
            currency=priced.currency,
            subtotal_cents=priced.subtotal_cents,
            shipping_cents=priced.shipping_cents,
            tax_cents=priced.tax_cents,
            discount_cents=priced.discount_cents,
            total_cents=priced.total_cents,
        )
        try:
            order = await order_repo.insert_order(self.db, order)
        except SQLAlchemyError as exc:
            raise PersistenceError.from_exc(
                "Order insert failed", exc, server_generated=("order_number",)
            ) from exc

        self.order = order
        self.compensations.push("soft_delete_order", partial(self._soft_delete_order, order.id))
        return order

    async def _persist_lines(self, order: Order, priced: PricedOrder) -> None:
        lines = [
            OrderLine(
                order_id=order.id,
                variant_id=line.variant_id,
                sku_snapshot=line.sku_snapshot,
                title_snapshot=line.title_snapshot,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_subtotal_cents=line.line_subtotal_cents,
                line_total_cents=line.line_total_cents,
            )
            for line in priced.lines
        ]
        try:
            await order_repo.insert_order_lines(self.db, lines)
        except SQLAlchemyError as exc:
            raise PersistenceError.from_exc("Order lines insert failed", exc) from exc

    async def _apply_inventory(
        self,
        priced: PricedOrder,
        mode: InventoryMode,
    ) -> List[AppliedAdjustment]:
        # Untracked variants never touch the ledger
        requests = [
            StockRequest(line.variant_id, line.quantity)
            for line in priced.lines
            if line.track_inventory
        ]
        try:
            applied = await ledger.apply_inventory(self.db, requests, mode)
        except InventoryError as exc:
            if exc.applied:
                self._push_inventory_rollback(exc.applied, mode)
            raise StockConflictError("Inventory update failed", detail=str(exc)) from exc

        if applied:
            self._push_inventory_rollback(applied, mode)
        return applied

    def _push_inventory_rollback(
        self,
        applied: Sequence[AppliedAdjustment],
        mode: InventoryMode,
    ) -> None:
        self.compensations.push(
            "rollback_inventory",
            partial(ledger.rollback_inventory, self.db, list(applied), mode),
        )

    async def _record_movements(
        self,
        order: Order,
        applied: Sequence[AppliedAdjustment],
        mode: InventoryMode,
    ) -> None:
        try:
            await ledger.record_movements(
                self.db,
                applied,
                mode,
                order_id=order.id,
                order_number=order.order_number,
                actor_user_id=self.user_id,
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Inventory movement insert failed", detail=storage_detail(exc)) from exc

    async def _aggregate(self, order: Order) -> int:
        try:
            return await order_repo.sum_other_order_totals(self.db, order.id)
        except SQLAlchemyError as exc:
            raise AggregationError(
                "Aggregation failed",
                detail=storage_detail(exc),
                order_id=str(order.id),
                order_number=order.order_number,
            ) from exc

    async def _soft_delete_order(self, order_id: UUID) -> None:
        if not await order_repo.soft_delete_order(self.db, order_id, self.clock()):
            logger.warning("Order already soft-deleted", order_id=str(order_id))


async def create_order(
    db: AsyncSession,
    user_id: UUID,
    body,
    *,
    clock: Callable[[], datetime] = utc_now,
    next_order_number: Callable[[datetime], str] = generate_order_number,
) -> OrderCreated:
    flow = OrderCreationFlow(db, user_id, clock=clock, next_order_number=next_order_number)
    return await flow.run(body)
