import enum
from sqlalchemy import CheckConstraint, Column, Enum, Index, Integer, String, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from order_service.db.base import Base


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PLACED = "placed"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class Order(Base):
    __tablename__ = "orders"

    """Represents a customer order header.

    An order aggregates one or more order lines, captures the monetary
    components it was priced with (subtotal, shipping, tax, discount and the
    derived total) and references the shipping/billing addresses chosen by
    its owner. Orders are never hard-deleted by the write path; a non-null
    ``deleted_at`` hides the row from every active read path.
    """

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String, nullable=False, unique=True)
    user_id = Column(Uuid, nullable=False, index=True)

    shipping_address_id = Column(Uuid, nullable=True)
    billing_address_id = Column(Uuid, nullable=True)

    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    currency = Column(String, nullable=False)

    subtotal_cents = Column(Integer, nullable=False)
    shipping_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("subtotal_cents >= 0", name="ck_orders_subtotal_nonnegative"),
        CheckConstraint("shipping_cents >= 0", name="ck_orders_shipping_nonnegative"),
        CheckConstraint("tax_cents >= 0", name="ck_orders_tax_nonnegative"),
        CheckConstraint("discount_cents >= 0", name="ck_orders_discount_nonnegative"),
        CheckConstraint("total_cents >= 0", name="ck_orders_total_nonnegative"),
        Index("ix_orders_user_created", "user_id", "created_at"),
    )
