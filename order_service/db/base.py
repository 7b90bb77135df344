from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from order_service.core.config import settings

DB_URL = settings.DB_URL

engine = create_async_engine(DB_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def create_all():
    # Importing the models registers their tables on Base.metadata
    from order_service.db.models import (  # noqa: F401
        access_tokens,
        addresses,
        catalog,
        inventory,
        order_lines,
        orders,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
