# order_service/domain/checkout/pricing.py
from dataclasses import dataclass
from typing import List, Sequence
from uuid import UUID

from order_service.core.errors import (
    CurrencyMismatchError,
    InvalidReferenceError,
    NegativeTotalError,
)
from order_service.db.models.catalog import ProductVariant
from .schemas import OrderItem


@dataclass(frozen=True)
class PricedLine:
    variant_id: UUID
    sku_snapshot: str
    title_snapshot: str
    quantity: int
    unit_price_cents: int
    line_subtotal_cents: int
    line_total_cents: int
    track_inventory: bool


@dataclass(frozen=True)
class PricedOrder:
    currency: str
    lines: List[PricedLine]
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int


def price_order(
    items: Sequence[OrderItem],
    variants: Sequence[ProductVariant],
    *,
    currency: str,
    shipping_cents: int = 0,
    tax_cents: int = 0,
    discount_cents: int = 0,
) -> PricedOrder:
    """Price ``items`` against the catalog ``variants`` they reference.

    Every variant must carry the order currency. Lines keep the order of
    ``items``; per-line tax and discount are not applied, so a line total
    equals its subtotal.
    """
    for variant in variants:
        if variant.currency != currency:
            raise CurrencyMismatchError(
                "Currency mismatch",
                detail=f"Variant {variant.sku} currency {variant.currency} != {currency}",
            )

    by_id = {variant.id: variant for variant in variants}

    lines = []
    for item in items:
        variant = by_id.get(UUID(item.variant_id))
        if variant is None:
            raise InvalidReferenceError("One or more variant_id values are invalid")
        line_subtotal = item.quantity * variant.price_cents
        lines.append(
            PricedLine(
                variant_id=variant.id,
                sku_snapshot=variant.sku,
                title_snapshot=variant.product.title,
                quantity=item.quantity,
                unit_price_cents=variant.price_cents,
                line_subtotal_cents=line_subtotal,
                line_total_cents=line_subtotal,
                track_inventory=bool(variant.track_inventory),
            )
        )

    subtotal = sum(line.line_subtotal_cents for line in lines)
    total = subtotal + shipping_cents + tax_cents - discount_cents
    if total < 0:
        raise NegativeTotalError("total_cents must not be negative")

    return PricedOrder(
        currency=currency,
        lines=lines,
        subtotal_cents=subtotal,
        shipping_cents=shipping_cents,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total,
    )
