# order_service/domain/checkout/schemas.py
from pydantic import BaseModel
from uuid import UUID
from typing import Any, List, Optional

from order_service.core.config import settings
from order_service.core.errors import InvalidPayloadError
from order_service.db.models.orders import OrderStatus

ORDER_STATUSES = [status.value for status in OrderStatus]

MONEY_FIELDS = ("shipping_cents", "tax_cents", "discount_cents")


class OrderItem(BaseModel):
    variant_id: str
    quantity: int

    class Config:
        frozen = True

class OrderCreate(BaseModel):
    shipping_address_id: str
    billing_address_id: str
    currency: str
    shipping_cents: int = 0
    tax_cents: int = 0
    discount_cents: int = 0
    status: str = OrderStatus.PLACED.value
    items: List[OrderItem]

    class Config:
        frozen = True

class OrderCreatedOut(BaseModel):
    order_id: UUID
    order_number: str
    total_cents: int
    other_orders_total_cents: int

class ErrorOut(BaseModel):
    error: str
    detail: Optional[str] = None


def _is_int(value: Any) -> bool:
    # bool is an int subclass; JSON true/false is not a quantity
    return isinstance(value, int) and not isinstance(value, bool)

def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def normalize_order_payload(body: Any) -> OrderCreate:
    """Validate an untyped order request body and fill in defaults.

    Fields are checked in a fixed order and the first violation is raised
    as ``InvalidPayloadError``.
    """
    if not isinstance(body, dict):
        raise InvalidPayloadError("Request body must be a JSON object")

    shipping_address_id = body.get("shipping_address_id")
    if not _is_non_empty_str(shipping_address_id):
        raise InvalidPayloadError("shipping_address_id is required")

    billing_address_id = body.get("billing_address_id")
    if billing_address_id is None:
        billing_address_id = shipping_address_id
    elif not _is_non_empty_str(billing_address_id):
        raise InvalidPayloadError("billing_address_id must be a non-empty string")

    currency = body.get("currency")
    if currency is None:
        currency = settings.DEFAULT_CURRENCY
    if not _is_non_empty_str(currency):
        raise InvalidPayloadError("currency must be a non-empty string")
    currency = currency.strip().upper()

    amounts = {}
    for field in MONEY_FIELDS:
        value = body.get(field)
        if value is None:
            value = 0
        if not _is_int(value) or value < 0:
            raise InvalidPayloadError(f"{field} must be a non-negative integer")
        amounts[field] = value

    status = body.get("status")
    if status is None:
        status = OrderStatus.PLACED.value
    if not isinstance(status, str) or status.strip().lower() not in ORDER_STATUSES:
        raise InvalidPayloadError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    status = status.strip().lower()

    items = body.get("items")
    if not isinstance(items, list) or len(items) < 1:
        raise InvalidPayloadError("items must be a non-empty list")

    normalized_items = []
    seen = set()
    for item in items:
        if not isinstance(item, dict) or not _is_non_empty_str(item.get("variant_id")):
            raise InvalidPayloadError("Each item must have variant_id")
        quantity = item.get("quantity")
        if not _is_int(quantity) or quantity <= 0:
            raise InvalidPayloadError("Each item.quantity must be a positive integer")
        variant_id = item["variant_id"].strip()
        if variant_id in seen:
            raise InvalidPayloadError("items must not contain duplicate variant_id values")
        seen.add(variant_id)
        normalized_items.append(OrderItem(variant_id=variant_id, quantity=quantity))

    return OrderCreate(
        shipping_address_id=shipping_address_id.strip(),
        billing_address_id=billing_address_id.strip(),
        currency=currency,
        status=status,
        items=normalized_items,
        **amounts,
    )
