from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from order_service.db.base import Base


class AccessToken(Base):
    __tablename__ = "access_tokens"

    """Bearer credentials issued by the identity provider.

    Only the SHA-256 digest of a token is stored. A token resolves to its
    user until it expires or is revoked.
    """

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token_hash = Column(String(64), nullable=False, unique=True)
    user_id = Column(Uuid, nullable=False, index=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
