"""Shared fixtures: a file-backed SQLite database per test and seed helpers."""

import itertools
import os

os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")

import uuid
from datetime import datetime, timezone
from typing import List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import select

from order_service.api.deps import get_clock, get_order_number_factory
from order_service.core.security import hash_token
from order_service.db.base import Base, get_db
from order_service.db.models.access_tokens import AccessToken
from order_service.db.models.addresses import Address
from order_service.db.models.catalog import Product, ProductVariant
from order_service.db.models.inventory import Inventory, InventoryMovement
from order_service.db.models.orders import Order, OrderStatus
from order_service.db.repositories.inventory import StockLevel
from order_service.main import app

FIXED_NOW = datetime(2026, 2, 12, 10, 0, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def order_numbers(prefix: str = "ORD-TEST"):
    counter = itertools.count(1)

    def next_order_number(now: datetime) -> str:
        return f"{prefix}-{next(counter):04d}"

    return next_order_number


class Store:
    """Seeds and inspects the test database through short-lived sessions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *objects):
        async with self.session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects[0] if len(objects) == 1 else objects

    async def user(self, token: str = "token-123", **token_fields) -> uuid.UUID:
        user_id = uuid.uuid4()
        await self.add(AccessToken(token_hash=hash_token(token), user_id=user_id, **token_fields))
        return user_id

    async def address(self, user_id: uuid.UUID) -> Address:
        return await self.add(
            Address(
                user_id=user_id,
                name="Customer One",
                line1="Main Street 1",
                city="Ljubljana",
                postal_code="1000",
                country="Slovenia",
            )
        )

    async def variant(
        self,
        sku: str,
        price_cents: int,
        *,
        currency: str = "EUR",
        track_inventory: bool = True,
        on_hand: Optional[int] = None,
        reserved: int = 0,
        deleted: bool = False,
    ) -> ProductVariant:
        product = Product(id=uuid.uuid4(), title=f"Product {sku}")
        variant = ProductVariant(
            id=uuid.uuid4(),
            product_id=product.id,
            sku=sku,
            price_cents=price_cents,
            currency=currency,
            track_inventory=track_inventory,
            deleted_at=FIXED_NOW if deleted else None,
        )
        objects = [product, variant]
        if on_hand is not None:
            objects.append(Inventory(variant_id=variant.id, on_hand=on_hand, reserved=reserved))
        await self.add(*objects)
        return variant

    async def order(
        self,
        user_id: uuid.UUID,
        total_cents: int,
        *,
        deleted: bool = False,
        order_number: Optional[str] = None,
    ) -> Order:
        return await self.add(
            Order(
                order_number=order_number or f"ORD-SEED-{uuid.uuid4().hex[:8]}",
                user_id=user_id,
                status=OrderStatus.PAID,
                currency="EUR",
                subtotal_cents=total_cents,
                total_cents=total_cents,
                deleted_at=FIXED_NOW if deleted else None,
            )
        )

    async def stock(self, variant_id: uuid.UUID) -> Optional[StockLevel]:
        async with self.session_factory() as session:
            row = await session.get(Inventory, variant_id)
            return StockLevel(row.on_hand, row.reserved) if row else None

    async def orders(self) -> List[Order]:
        async with self.session_factory() as session:
            result = await session.execute(select(Order).order_by(Order.created_at))
            return list(result.scalars().all())

    async def movements(self) -> List[InventoryMovement]:
        async with self.session_factory() as session:
            result = await session.execute(select(InventoryMovement).order_by(InventoryMovement.id))
            return list(result.scalars().all())


@pytest.fixture()
async def engine(tmp_path):
    # File-backed so concurrent sessions use separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def store(session_factory):
    return Store(session_factory)


@pytest.fixture()
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    numbers = order_numbers()
    app.dependency_overrides[get_order_number_factory] = lambda: numbers

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
