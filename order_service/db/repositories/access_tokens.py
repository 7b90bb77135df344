
from datetime import datetime
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from order_service.db.models.access_tokens import AccessToken

async def get_active_token(
    db: AsyncSession,
    token_hash: str,
    now: datetime,
) -> Optional[AccessToken]:
    result = await db.execute(
        select(AccessToken).where(
            AccessToken.token_hash == token_hash,
            AccessToken.revoked_at.is_(None),
            or_(AccessToken.expires_at.is_(None), AccessToken.expires_at > now),
        )
    )
    return result.scalar_one_or_none()
