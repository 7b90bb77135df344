from sqlalchemy import Boolean, Column, String, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from order_service.db.base import Base


class Address(Base):
    __tablename__ = "addresses"

    """A postal address owned by a single user.

    Address CRUD lives outside this service; orders only look addresses up
    by id, scoped to the requesting user.
    """

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    name = Column(String, nullable=True)
    line1 = Column(String, nullable=False)
    line2 = Column(String, nullable=True)
    city = Column(String, nullable=False)
    region = Column(String, nullable=True)
    postal_code = Column(String, nullable=False)
    country = Column(String, nullable=False)
    phone = Column(String, nullable=True)

    is_default_shipping = Column(Boolean, nullable=False, default=False)
    is_default_billing = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
