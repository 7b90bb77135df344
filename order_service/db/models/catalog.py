# order_service/db/models/catalog.py
import enum
from sqlalchemy import Boolean, CheckConstraint, Column, Enum, ForeignKey, Integer, String, DateTime, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from order_service.db.base import Base


class ProductStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(
            ProductStatus,
            name="product_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=ProductStatus.ACTIVE,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    variants = relationship("ProductVariant", back_populates="product")


class ProductVariant(Base):
    __tablename__ = "product_variants"

    """Represents a sellable variant of a catalog product.

    Each row defines a SKU with its price in minor currency units, its
    currency and whether its stock is tracked by the inventory ledger.
    Orders copy the SKU, price and parent product title into their lines.
    """

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    sku = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=True)

    price_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)

    track_inventory = Column(Boolean, nullable=False, default=True)
    low_stock_threshold = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_product_variants_price_nonnegative"),
    )
