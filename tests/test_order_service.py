"""Order creation flow: compensation paths and concurrent stock contention."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import fixed_clock, order_numbers
from order_service.core.errors import (
    AggregationError,
    InvalidPayloadError,
    PersistenceError,
    StockConflictError,
)
from order_service.db.models.inventory import MovementReason
from order_service.db.models.orders import OrderStatus
from order_service.db.repositories import inventory as inventory_repo
from order_service.db.repositories import orders as order_repo
from order_service.db.repositories.inventory import StockLevel
from order_service.domain.checkout.service import (
    CompensationStack,
    OrderCreationFlow,
    OrderCreationState,
    create_order,
)


@pytest.fixture()
async def customer(store):
    user_id = await store.user()
    address = await store.address(user_id)
    return user_id, address


def _body(address, *items, **fields):
    body = {
        "shipping_address_id": str(address.id),
        "items": [{"variant_id": str(v.id), "quantity": q} for v, q in items],
    }
    body.update(fields)
    return body


def _flow(db, user_id):
    return OrderCreationFlow(db, user_id, clock=fixed_clock, next_order_number=order_numbers())


def _db_error(message):
    return OperationalError("INSERT", {}, Exception(message))


class TestHappyPath:
    async def test_reserve_scenario(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10, reserved=1)
        v2 = await store.variant("NOTE-A5", 300, track_inventory=False)
        flow = _flow(db, user_id)

        created = await flow.run(_body(address, (v1, 2), (v2, 1), status="placed"))

        assert flow.state is OrderCreationState.DONE
        assert created.order_number == "ORD-TEST-0001"
        assert created.total_cents == 500
        order = await order_repo.get_order_by_id(db, created.order_id)
        assert order.subtotal_cents == 500
        assert order.total_cents == created.total_cents
        assert order.status is OrderStatus.PLACED
        lines = await order_repo.get_lines_for_order(db, created.order_id)
        assert sorted((line.sku_snapshot, line.quantity, line.line_total_cents) for line in lines) == [
            ("MUG-350", 2, 200),
            ("NOTE-A5", 1, 300),
        ]
        assert await store.stock(v1.id) == StockLevel(10, 3)
        movements = await inventory_repo.get_movements_for_order(db, created.order_id)
        assert [(m.variant_id, m.delta, m.reason) for m in movements] == [
            (v1.id, -2, MovementReason.RESERVE)
        ]
        assert movements[0].movement_metadata["order_number"] == "ORD-TEST-0001"
        assert movements[0].actor_user_id == user_id

    async def test_paid_order_purchases_stock(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 1299, on_hand=10, reserved=1)

        await create_order(
            db, user_id, _body(address, (v1, 2), status="paid", shipping_cents=499),
            clock=fixed_clock, next_order_number=order_numbers(),
        )

        assert await store.stock(v1.id) == StockLevel(8, 1)
        assert [m.reason for m in await store.movements()] == [MovementReason.PURCHASE]

    async def test_cancelled_order_leaves_inventory_alone(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 1299, on_hand=1, reserved=1)

        created = await create_order(
            db, user_id, _body(address, (v1, 5), status="cancelled"),
            clock=fixed_clock, next_order_number=order_numbers(),
        )

        assert created.total_cents == 5 * 1299
        assert await store.stock(v1.id) == StockLevel(1, 1)
        assert await store.movements() == []

    async def test_untracked_variants_are_never_read(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("STICKERS-10", 499, track_inventory=False)

        async def fail(*args, **kwargs):
            raise AssertionError("untracked variant reached the ledger")

        monkeypatch.setattr(inventory_repo, "get_inventory_levels", fail)
        monkeypatch.setattr(inventory_repo, "compare_and_set_inventory", fail)

        created = await create_order(
            db, user_id, _body(address, (v1, 3)),
            clock=fixed_clock, next_order_number=order_numbers(),
        )

        assert created.total_cents == 3 * 499
        assert await store.movements() == []


class TestCompensation:
    async def test_insufficient_stock_soft_deletes_order(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=2, reserved=1)
        v2 = await store.variant("NOTE-A5", 300, track_inventory=False)
        flow = _flow(db, user_id)

        with pytest.raises(StockConflictError) as excinfo:
            await flow.run(_body(address, (v1, 2), (v2, 1)))

        assert excinfo.value.status_code == 409
        assert excinfo.value.error == "Inventory update failed"
        assert "Insufficient stock" in excinfo.value.detail
        assert flow.state is OrderCreationState.ABORTED
        assert await store.stock(v1.id) == StockLevel(2, 1)
        [order] = await store.orders()
        assert order.deleted_at is not None
        assert await order_repo.get_order_by_id(db, order.id) is None

    async def test_partial_apply_is_rolled_back(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10, reserved=1)
        v2 = await store.variant("NOTE-A5", 300, on_hand=1)

        with pytest.raises(StockConflictError):
            await _flow(db, user_id).run(_body(address, (v1, 2), (v2, 2)))

        assert await store.stock(v1.id) == StockLevel(10, 1)
        assert await store.stock(v2.id) == StockLevel(1, 0)
        assert await store.movements() == []

    async def test_line_insert_failure_soft_deletes_order(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10, reserved=1)

        async def fail(*args, **kwargs):
            raise _db_error("order lines insert failed")

        monkeypatch.setattr(order_repo, "insert_order_lines", fail)
        flow = _flow(db, user_id)

        with pytest.raises(PersistenceError) as excinfo:
            await flow.run(_body(address, (v1, 2)))

        assert excinfo.value.error == "Order lines insert failed"
        assert excinfo.value.status_code == 500
        assert flow.state is OrderCreationState.ABORTED
        [order] = await store.orders()
        assert order.deleted_at == fixed_clock().replace(tzinfo=None)
        assert await store.stock(v1.id) == StockLevel(10, 1)

    async def test_line_constraint_violation_is_a_client_error(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10)

        async def fail(*args, **kwargs):
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        monkeypatch.setattr(order_repo, "insert_order_lines", fail)

        with pytest.raises(PersistenceError) as excinfo:
            await _flow(db, user_id).run(_body(address, (v1, 1)))

        assert excinfo.value.status_code == 400

    async def test_movement_failure_restores_inventory(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10, reserved=1)
        v2 = await store.variant("NOTE-A5", 300, on_hand=5)

        async def fail(*args, **kwargs):
            raise _db_error("movement insert failed")

        monkeypatch.setattr(inventory_repo, "insert_movements", fail)
        flow = _flow(db, user_id)

        with pytest.raises(PersistenceError) as excinfo:
            await flow.run(_body(address, (v1, 3), (v2, 1)))

        assert excinfo.value.error == "Inventory movement insert failed"
        assert excinfo.value.detail == "movement insert failed"
        assert excinfo.value.status_code == 500
        assert await store.stock(v1.id) == StockLevel(10, 1)
        assert await store.stock(v2.id) == StockLevel(5, 0)
        [order] = await store.orders()
        assert order.deleted_at is not None

    async def test_compensation_failure_keeps_original_error(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=1)

        async def fail(*args, **kwargs):
            raise _db_error("soft delete failed")

        monkeypatch.setattr(order_repo, "soft_delete_order", fail)

        with pytest.raises(StockConflictError):
            await _flow(db, user_id).run(_body(address, (v1, 2)))

    async def test_aggregation_failure_keeps_the_order(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=10)

        async def fail(*args, **kwargs):
            raise _db_error("aggregation failed")

        monkeypatch.setattr(order_repo, "sum_other_order_totals", fail)

        with pytest.raises(AggregationError) as excinfo:
            await _flow(db, user_id).run(_body(address, (v1, 1)))

        assert excinfo.value.to_dict()["order_number"] == "ORD-TEST-0001"
        assert excinfo.value.detail == "aggregation failed"
        [order] = await store.orders()
        assert order.deleted_at is None
        assert await store.stock(v1.id) == StockLevel(10, 1)
        assert len(await store.movements()) == 1

    async def test_validation_failure_touches_nothing(self, db, store, customer):
        user_id, _ = customer
        flow = _flow(db, user_id)

        with pytest.raises(InvalidPayloadError):
            await flow.run({"items": []})

        assert flow.state is OrderCreationState.ABORTED
        assert await store.orders() == []


class TestConcurrency:
    async def test_racing_orders_cannot_oversubscribe(self, db, store, customer, monkeypatch):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=3)
        body = _body(address, (v1, 2))
        numbers = order_numbers()
        real_read = inventory_repo.get_inventory_levels
        winner = {}

        async def read_then_race(session, variant_ids):
            levels = await real_read(session, variant_ids)
            if not winner:
                # A second request runs to completion between this read and the write
                winner["pending"] = True
                async with store.session_factory() as other:
                    winner["order"] = await create_order(
                        other, user_id, body, clock=fixed_clock, next_order_number=numbers
                    )
            return levels

        monkeypatch.setattr(inventory_repo, "get_inventory_levels", read_then_race)

        with pytest.raises(StockConflictError) as excinfo:
            await create_order(db, user_id, body, clock=fixed_clock, next_order_number=numbers)

        assert "changed concurrently" in excinfo.value.detail
        assert await store.stock(v1.id) == StockLevel(3, 2)
        active = [order for order in await store.orders() if order.deleted_at is None]
        assert [order.id for order in active] == [winner["order"].order_id]
        movements = await store.movements()
        assert [(m.related_order_id, m.delta) for m in movements] == [(winner["order"].order_id, -2)]

    async def test_sequential_orders_for_last_units(self, db, store, customer):
        user_id, address = customer
        v1 = await store.variant("MUG-350", 100, on_hand=3)
        numbers = order_numbers()
        body = _body(address, (v1, 2))

        await create_order(db, user_id, body, clock=fixed_clock, next_order_number=numbers)
        with pytest.raises(StockConflictError):
            await create_order(db, user_id, body, clock=fixed_clock, next_order_number=numbers)

        assert await store.stock(v1.id) == StockLevel(3, 2)


class TestCompensationStack:
    async def test_unwinds_in_reverse_and_survives_failures(self):
        calls = []

        async def record(name):
            calls.append(name)

        async def explode():
            calls.append("explode")
            raise RuntimeError("boom")

        stack = CompensationStack()
        stack.push("first", lambda: record("first"))
        stack.push("explode", explode)
        stack.push("last", lambda: record("last"))

        await stack.unwind()

        assert calls == ["last", "explode", "first"]
        assert len(stack) == 0
