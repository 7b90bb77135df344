import hashlib
import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from order_service.db.repositories.access_tokens import get_active_token

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    match = _BEARER_RE.match((authorization or "").strip())
    return match.group(1).strip() if match else None


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def resolve_user_id(db: AsyncSession, token: str, now: datetime) -> Optional[UUID]:
    """Map a bearer credential to the user it was issued for, or None."""
    access_token = await get_active_token(db, hash_token(token), now)
    return access_token.user_id if access_token else None
