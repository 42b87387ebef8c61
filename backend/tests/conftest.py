"""
Pytest configuration and shared test fixtures.

Services are exercised against in-memory repositories and a fake session
that mimics commit, rollback and savepoint semantics over them, so the unit
of work behaviour can be asserted without a database.
"""

import copy
import os
import uuid
import time
from contextlib import asynccontextmanager
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Callable, Generator, Optional

os.environ.setdefault("APP_ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from backoffice.core.exceptions import NotificationError, StorageError
from backoffice.services.inventory.recipes import Requirement
from backoffice.services.orders.enums import OrderStatus
from tests.factories import make_item, make_order, utcnow


# ============================================================================
# Fake unit of work
# ============================================================================


class FakeStore:
    """In-memory store whose state can be snapshotted and restored."""

    state_fields: tuple[str, ...] = ()
    on_seed: Optional[Callable[[], None]] = None

    def snapshot(self) -> dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.state_fields}

    def restore(self, state: dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, copy.deepcopy(value))

    def _seeded(self) -> None:
        """Data added by a test before acting counts as already committed."""
        if self.on_seed is not None:
            self.on_seed()


class FakeSession:
    """
    Stand-in for ``AsyncSession``.

    ``commit`` makes the stores' current state durable, ``rollback`` returns
    to the last commit and ``begin_nested`` undoes its block on error.
    """

    def __init__(self, *stores: FakeStore):
        self.stores = list(stores)
        self.commits = 0
        self.rollbacks = 0
        self.fail_commit = False
        self._committed = self._snapshot()
        for store in self.stores:
            store.on_seed = self.mark_committed

    def mark_committed(self) -> None:
        self._committed = self._snapshot()

    def _snapshot(self) -> list[dict[str, Any]]:
        return [store.snapshot() for store in self.stores]

    def _restore(self, snapshot: list[dict[str, Any]]) -> None:
        for store, state in zip(self.stores, snapshot):
            store.restore(state)

    async def commit(self) -> None:
        if self.fail_commit:
            from sqlalchemy.exc import OperationalError

            raise OperationalError("COMMIT", {}, Exception("connection lost"))
        self.commits += 1
        self._committed = self._snapshot()

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._restore(self._committed)

    @asynccontextmanager
    async def begin_nested(self):
        savepoint = self._snapshot()
        try:
            yield self
        except Exception:
            self._restore(savepoint)
            raise


# ============================================================================
# In-memory repositories
# ============================================================================


class FakeInventoryRepository(FakeStore):
    state_fields = ("ingredients", "movements", "counts", "deductions", "notifications")

    def __init__(self) -> None:
        self.ingredients: dict[uuid.UUID, SimpleNamespace] = {}
        self.movements: list[SimpleNamespace] = []
        self.counts: dict[uuid.UUID, SimpleNamespace] = {}
        self.deductions: set[uuid.UUID] = set()
        self.notifications: list[SimpleNamespace] = []
        self.failing_ingredients: set[uuid.UUID] = set()

    def add_ingredient(
        self,
        name: str = "Flour",
        quantity: str = "10",
        min_threshold: str = "0",
        unit: str = "kg",
        is_active: bool = True,
    ) -> SimpleNamespace:
        ingredient = SimpleNamespace(
            id=uuid.uuid4(),
            name=name,
            unit=unit,
            category=None,
            current_quantity=Decimal(quantity),
            min_threshold=Decimal(min_threshold),
            cost_per_unit=Decimal("0"),
            is_active=is_active,
        )
        self.ingredients[ingredient.id] = ingredient
        self._seeded()
        return ingredient

    def quantity(self, ingredient_id: uuid.UUID) -> Decimal:
        return self.ingredients[ingredient_id].current_quantity

    async def get_ingredient(self, ingredient_id, for_update=False):
        return self.ingredients.get(ingredient_id)

    async def apply_stock_delta(self, ingredient_id, delta):
        if ingredient_id in self.failing_ingredients:
            raise StorageError("Failed to update ingredient quantity")
        ingredient = self.ingredients.get(ingredient_id)
        if ingredient is None:
            return None
        ingredient.current_quantity += delta
        return ingredient.current_quantity

    async def add_movement(self, **fields):
        movement = SimpleNamespace(id=uuid.uuid4(), created_at=utcnow(), **fields)
        self.movements.append(movement)
        return movement

    async def list_movements(self, ingredient_id, movement_type=None, skip=0, limit=50):
        matching = [
            m
            for m in reversed(self.movements)
            if m.ingredient_id == ingredient_id
            and (movement_type is None or m.movement_type == movement_type)
        ]
        return matching[skip : skip + limit]

    async def list_low_stock(self):
        low = [
            i
            for i in self.ingredients.values()
            if i.is_active and i.current_quantity <= i.min_threshold
        ]
        return sorted(low, key=lambda i: (i.current_quantity - i.min_threshold, i.name))

    async def add_count(self, **fields):
        count = SimpleNamespace(
            id=uuid.uuid4(),
            created_at=utcnow(),
            applied_at=None,
            applied_by=None,
            **fields,
        )
        self.counts[count.id] = count
        return count

    async def get_count(self, count_id, for_update=False):
        return self.counts.get(count_id)

    async def list_pending_counts(self, skip=0, limit=50):
        pending = [c for c in self.counts.values() if not c.applied]
        return pending[skip : skip + limit], len(pending)

    async def mark_count_applied(self, count_id, applied_by=None):
        count = self.counts.get(count_id)
        if count is None or count.applied:
            return False
        count.applied = True
        count.applied_at = utcnow()
        count.applied_by = applied_by
        return True

    async def claim_order_deduction(self, order_id):
        if order_id in self.deductions:
            return False
        self.deductions.add(order_id)
        return True

    async def add_low_stock_notifications(self, ingredients, channel):
        for ingredient in ingredients:
            self.notifications.append(
                SimpleNamespace(
                    ingredient_id=ingredient.id,
                    current_quantity=ingredient.current_quantity,
                    min_threshold=ingredient.min_threshold,
                    channel=channel,
                )
            )

    def movements_for(self, ingredient_id, movement_type=None):
        return [
            m
            for m in self.movements
            if m.ingredient_id == ingredient_id
            and (movement_type is None or m.movement_type == movement_type)
        ]


class FakeCourierRepository(FakeStore):
    state_fields = ("couriers",)

    def __init__(self) -> None:
        self.couriers: dict[uuid.UUID, SimpleNamespace] = {}

    def add_courier(
        self,
        name: str = "Bekzod",
        max_orders: int = 5,
        current_order_count: int = 0,
        is_available: bool = True,
        is_active: bool = True,
    ) -> SimpleNamespace:
        courier = SimpleNamespace(
            id=uuid.uuid4(),
            name=name,
            phone="+998901112233",
            vehicle_type="scooter",
            is_active=is_active,
            is_available=is_available,
            current_order_count=current_order_count,
            max_orders=max_orders,
        )
        self.couriers[courier.id] = courier
        self._seeded()
        return courier

    def load(self, courier_id: uuid.UUID) -> int:
        return self.couriers[courier_id].current_order_count

    async def get_courier(self, courier_id):
        return self.couriers.get(courier_id)

    async def list_available(self):
        available = [
            c
            for c in self.couriers.values()
            if c.is_active and c.is_available and c.current_order_count < c.max_orders
        ]
        return sorted(available, key=lambda c: (c.current_order_count, c.name))

    async def try_claim_slot(self, courier_id):
        courier = self.couriers.get(courier_id)
        if (
            courier is None
            or not courier.is_active
            or not courier.is_available
            or courier.current_order_count >= courier.max_orders
        ):
            return None
        courier.current_order_count += 1
        return courier.current_order_count

    async def release_slot(self, courier_id):
        courier = self.couriers.get(courier_id)
        if courier is None or courier.current_order_count <= 0:
            return None
        courier.current_order_count -= 1
        return courier.current_order_count


class FakeOrderRepository(FakeStore):
    state_fields = ("orders", "history")

    def __init__(self) -> None:
        self.orders: dict[uuid.UUID, SimpleNamespace] = {}
        self.history: list[SimpleNamespace] = []

    def add_order(
        self,
        items: Optional[list[tuple[Optional[uuid.UUID], int, str]]] = None,
        status: OrderStatus = OrderStatus.NEW,
        courier_id: Optional[uuid.UUID] = None,
    ) -> SimpleNamespace:
        """Store an order; ``items`` are ``(product_id, quantity, price)`` tuples."""
        order_items = [
            make_item(product_id=product_id, quantity=quantity, price=price)
            for product_id, quantity, price in (items or [(None, 1, "25000")])
        ]
        order = make_order(order_items, status=status, courier_id=courier_id)
        self.orders[order.id] = order
        self._seeded()
        return order

    async def create_order(self, draft):
        order = make_order(
            [
                make_item(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.price,
                )
                for item in draft.items
            ],
            user_fullname=draft.user_fullname,
            phone=draft.phone,
            address=draft.address,
            delivery_zone=draft.delivery_zone,
            payment_type=draft.payment_type,
            notes=draft.notes,
            total_price=draft.total_price,
        )
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id, include_items=True, include_history=False):
        return self.orders.get(order_id)

    async def get_order_for_update(self, order_id):
        return self.orders.get(order_id)

    async def add_status_history(self, order_id, old_status, new_status, changed_by):
        entry = SimpleNamespace(
            id=uuid.uuid4(),
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            created_at=utcnow(),
        )
        self.history.append(entry)
        self.orders[order_id].status_history.append(entry)
        return entry

    async def list_orders(self, status=None, skip=0, limit=20):
        matching = [o for o in self.orders.values() if status is None or o.status == status]
        matching.sort(key=lambda o: o.created_at, reverse=True)
        return matching[skip : skip + limit], len(matching)


class FakeRecipeResolver:
    """Recipes keyed by product id."""

    def __init__(self) -> None:
        self.recipes: dict[uuid.UUID, list] = {}

    def add_recipe(self, product_id: uuid.UUID, *requirements) -> None:
        self.recipes[product_id] = [
            Requirement(ingredient_id, Decimal(str(quantity)))
            for ingredient_id, quantity in requirements
        ]

    async def requirements_for(self, product_id):
        return self.recipes.get(product_id, [])

    async def requirements_for_many(self, product_ids):
        return {pid: self.recipes[pid] for pid in set(product_ids) if pid in self.recipes}


class RecordingChannel:
    """Notification channel that keeps what it was asked to send."""

    def __init__(self, name: str = "recording", fail: bool = False):
        self.name = name
        self.fail = fail
        self.messages: list[str] = []

    async def send(self, message: str) -> None:
        if self.fail:
            raise NotificationError("Channel unreachable")
        self.messages.append(message)


class FakeClock:
    """Stands in for ``time.time``; starts on a whole second so offsets stay exact."""

    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def inventory_repo() -> FakeInventoryRepository:
    return FakeInventoryRepository()


@pytest.fixture
def courier_repo() -> FakeCourierRepository:
    return FakeCourierRepository()


@pytest.fixture
def order_repo() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def recipes() -> FakeRecipeResolver:
    return FakeRecipeResolver()


@pytest.fixture
def session(
    inventory_repo: FakeInventoryRepository,
    courier_repo: FakeCourierRepository,
    order_repo: FakeOrderRepository,
) -> FakeSession:
    return FakeSession(inventory_repo, courier_repo, order_repo)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze wall-clock time; rate limit windows are read from ``time.time``."""
    fake = FakeClock(start=float(int(time.time())))
    monkeypatch.setattr(time, "time", fake)
    return fake


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def failing_channel() -> RecordingChannel:
    return RecordingChannel(name="broken", fail=True)


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Synchronous test client for the FastAPI application.

    Dependency overrides set by a test are cleared afterwards.
    """
    from backoffice.main import app

    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
