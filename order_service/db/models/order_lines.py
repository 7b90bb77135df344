from sqlalchemy import CheckConstraint, Column, Index, String, DateTime, Integer, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid

from order_service.db.base import Base


class OrderLine(Base):
    __tablename__ = "order_lines"

    """Represents a single variant line within an order.

    A line captures the SKU, product title and unit price at the time the
    order was placed, together with the quantity and line totals, so that
    reporting and auditing do not depend on the mutable catalog state.
    """

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=False, index=True)

    sku_snapshot = Column(String, nullable=False)
    title_snapshot = Column(String, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    line_subtotal_cents = Column(Integer, nullable=False)
    line_total_cents = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        CheckConstraint("unit_price_cents >= 0", name="ck_order_lines_unit_price_nonnegative"),
        Index("ux_order_lines_order_variant", "order_id", "variant_id", unique=True),
    )
