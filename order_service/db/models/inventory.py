import enum
from sqlalchemy import BigInteger, CheckConstraint, Column, Enum, ForeignKey, Index, Integer, DateTime, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from order_service.db.base import Base


class MovementReason(str, enum.Enum):
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    RESERVE = "reserve"
    RELEASE = "release"
    PURCHASE = "purchase"
    CANCEL = "cancel"


class Inventory(Base):
    __tablename__ = "inventory"

    """Represents the stock levels of a single variant.

    ``on_hand`` counts units physically available and ``reserved`` counts
    units promised to unfulfilled orders; ``on_hand - reserved`` is what can
    still be sold. Rows are only mutated through conditional writes that
    compare both counters with the values the writer last read.
    """

    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), primary_key=True)

    on_hand = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_inventory_on_hand_nonnegative"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved_nonnegative"),
        CheckConstraint("reserved <= on_hand", name="ck_inventory_reserved_not_more_than_on_hand"),
    )

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    """Append-only audit record of a signed change to a variant's stock.

    Each row names the variant, the reason, the order that caused it and
    the acting user, plus free-form metadata about the source of the change.
    """

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    variant_id = Column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)

    reason = Column(
        Enum(
            MovementReason,
            name="inventory_movement_reason",
            values_callable=lambda reasons: [r.value for r in reasons],
        ),
        nullable=False,
    )
    delta = Column(Integer, nullable=False)

    related_order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_user_id = Column(Uuid, nullable=True)

    movement_metadata = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_inventory_movements_variant_created", "variant_id", "created_at"),
    )
