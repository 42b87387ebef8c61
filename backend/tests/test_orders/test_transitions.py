"""
Test suite for StatusTransitionEngine.

Tests cover legal and illegal transitions, the audit trail, role policies,
courier slot handling and the all-or-nothing delivery side effects.
"""

import uuid
from decimal import Decimal

import pytest

from backoffice.core.exceptions import (
    CourierAtCapacity,
    DeductionError,
    InvalidTransition,
    OrderNotFoundError,
    PermissionDeniedError,
)
from backoffice.services.couriers.tracker import CourierAssignmentTracker
from backoffice.services.inventory.deduction import DeductionService
from backoffice.services.inventory.enums import MovementType
from backoffice.services.inventory.ledger import IngredientLedger
from backoffice.services.orders.enums import (
    OrderStatus,
    StaffRole,
    get_allowed_order_transitions,
    role_may_transition,
    validate_order_status_transition,
)
from backoffice.services.orders.state_machine import StatusTransitionEngine


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def engine(session, inventory_repo, courier_repo, order_repo, recipes) -> StatusTransitionEngine:
    """Engine wired to the in-memory repositories."""
    ledger = IngredientLedger(session, inventory_repo)
    deduction = DeductionService(session, ledger=ledger, recipes=recipes, repository=inventory_repo)
    tracker = CourierAssignmentTracker(session, repository=courier_repo)
    return StatusTransitionEngine(
        session,
        deduction_service=deduction,
        courier_tracker=tracker,
        repository=order_repo,
    )


@pytest.fixture
def pizza(inventory_repo, recipes):
    """A product consuming 2 units of flour, with 10 units in stock."""
    flour = inventory_repo.add_ingredient("Flour", quantity="10")
    product_id = uuid.uuid4()
    recipes.add_recipe(product_id, (flour.id, "2"))
    return product_id, flour


# ============================================================================
# Transition Table Tests
# ============================================================================


class TestTransitionTable:
    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert get_allowed_order_transitions(terminal) == set()
        assert terminal.is_terminal()

    def test_any_non_terminal_status_may_move_anywhere_else(self):
        for current in OrderStatus:
            if current.is_terminal():
                continue
            assert get_allowed_order_transitions(current) == set(OrderStatus) - {current}

    def test_same_status_is_not_a_transition(self):
        assert not validate_order_status_transition(OrderStatus.COOKING, OrderStatus.COOKING)


class TestRolePolicy:
    @pytest.mark.parametrize("role", [StaffRole.ADMIN, StaffRole.MANAGER])
    def test_managers_may_do_anything(self, role):
        assert role_may_transition(role, OrderStatus.NEW, OrderStatus.DELIVERED)

    def test_cook_moves_orders_through_the_kitchen(self):
        assert role_may_transition(StaffRole.COOK, OrderStatus.NEW, OrderStatus.COOKING)
        assert role_may_transition(StaffRole.COOK, OrderStatus.COOKING, OrderStatus.READY)
        assert not role_may_transition(StaffRole.COOK, OrderStatus.READY, OrderStatus.DELIVERED)
        assert not role_may_transition(StaffRole.COOK, OrderStatus.NEW, OrderStatus.CANCELLED)

    def test_courier_takes_and_delivers(self):
        assert role_may_transition(StaffRole.COURIER, OrderStatus.READY, OrderStatus.ON_THE_WAY)
        assert role_may_transition(StaffRole.COURIER, OrderStatus.ON_THE_WAY, OrderStatus.DELIVERED)
        assert not role_may_transition(StaffRole.COURIER, OrderStatus.NEW, OrderStatus.COOKING)


# ============================================================================
# Transition Tests
# ============================================================================


class TestTransition:
    async def test_happy_path_records_history(self, engine, session, order_repo):
        order = order_repo.add_order()

        for target in (OrderStatus.COOKING, OrderStatus.READY, OrderStatus.ON_THE_WAY):
            await engine.transition(order.id, target, "staff-1")

        stored = order_repo.orders[order.id]
        assert stored.status == OrderStatus.ON_THE_WAY
        assert [(h.old_status, h.new_status) for h in order_repo.history] == [
            (OrderStatus.NEW, OrderStatus.COOKING),
            (OrderStatus.COOKING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.ON_THE_WAY),
        ]
        assert all(h.changed_by == "staff-1" for h in order_repo.history)
        assert session.commits == 3

    async def test_accepts_status_string(self, engine, order_repo):
        order = order_repo.add_order()

        updated = await engine.transition(order.id, "Cooking", "staff-1")

        assert updated.status == OrderStatus.COOKING

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    @pytest.mark.parametrize("target", list(OrderStatus))
    async def test_terminal_orders_never_change(self, engine, order_repo, terminal, target):
        order = order_repo.add_order(status=terminal)

        with pytest.raises(InvalidTransition):
            await engine.transition(order.id, target, "staff-1")

        assert order_repo.orders[order.id].status == terminal
        assert order_repo.history == []

    async def test_same_status_rejected(self, engine, order_repo):
        order = order_repo.add_order(status=OrderStatus.COOKING)

        with pytest.raises(InvalidTransition):
            await engine.transition(order.id, OrderStatus.COOKING, "staff-1")

        assert order_repo.history == []

    async def test_unknown_order(self, engine, session):
        with pytest.raises(OrderNotFoundError):
            await engine.transition(uuid.uuid4(), OrderStatus.COOKING, "staff-1")

        assert session.rollbacks == 1

    async def test_unauthorized_actor_rejected(self, engine, order_repo):
        order = order_repo.add_order()

        with pytest.raises(PermissionDeniedError):
            await engine.transition(order.id, OrderStatus.COOKING, "staff-1", authorized=False)

        assert order_repo.orders[order.id].status == OrderStatus.NEW

    async def test_policy_evaluated_against_current_status(self, engine, order_repo):
        order = order_repo.add_order(status=OrderStatus.READY)

        def cook_policy(current, target):
            return role_may_transition(StaffRole.COOK, current, target)

        with pytest.raises(PermissionDeniedError):
            await engine.transition(order.id, OrderStatus.COOKING, "cook-1", authorized=cook_policy)

        assert order_repo.history == []

    async def test_allowed_transitions_of_order(self, engine, order_repo):
        order = order_repo.add_order(status=OrderStatus.DELIVERED)

        assert engine.get_allowed_transitions(order) == set()


# ============================================================================
# Side Effect Tests
# ============================================================================


class TestDeliveredSideEffects:
    async def test_delivery_deducts_ingredients(self, engine, order_repo, inventory_repo, pizza):
        product_id, flour = pizza
        order = order_repo.add_order(items=[(product_id, 3, "60000")], status=OrderStatus.ON_THE_WAY)

        await engine.transition(order.id, OrderStatus.DELIVERED, "courier-1")

        assert inventory_repo.quantity(flour.id) == Decimal("4")
        movements = inventory_repo.movements_for(flour.id, MovementType.OUT)
        assert len(movements) == 1
        assert movements[0].quantity == Decimal("6")
        assert movements[0].order_id == order.id

    async def test_delivered_straight_from_new(self, engine, order_repo, inventory_repo, pizza):
        product_id, flour = pizza
        order = order_repo.add_order(items=[(product_id, 1, "60000")])

        await engine.transition(order.id, OrderStatus.DELIVERED, "manager-1")

        assert order_repo.orders[order.id].status == OrderStatus.DELIVERED
        assert inventory_repo.quantity(flour.id) == Decimal("8")

    async def test_failed_deduction_rolls_back_transition(
        self, engine, session, order_repo, inventory_repo, courier_repo, pizza
    ):
        product_id, flour = pizza
        inventory_repo.failing_ingredients.add(flour.id)
        courier = courier_repo.add_courier(current_order_count=1)
        order = order_repo.add_order(
            items=[(product_id, 3, "60000")],
            status=OrderStatus.ON_THE_WAY,
            courier_id=courier.id,
        )

        with pytest.raises(DeductionError):
            await engine.transition(order.id, OrderStatus.DELIVERED, "courier-1")

        assert order_repo.orders[order.id].status == OrderStatus.ON_THE_WAY
        assert order_repo.history == []
        assert inventory_repo.quantity(flour.id) == Decimal("10")
        assert inventory_repo.movements == []
        assert courier_repo.load(courier.id) == 1
        assert session.commits == 0

    async def test_delivery_releases_courier(self, engine, order_repo, courier_repo):
        courier = courier_repo.add_courier(current_order_count=2)
        order = order_repo.add_order(status=OrderStatus.ON_THE_WAY, courier_id=courier.id)

        await engine.transition(order.id, OrderStatus.DELIVERED, "courier-1")

        assert courier_repo.load(courier.id) == 1
        assert order_repo.orders[order.id].courier_id == courier.id

    async def test_cancellation_releases_courier_without_deduction(
        self, engine, order_repo, courier_repo, inventory_repo, pizza
    ):
        product_id, flour = pizza
        courier = courier_repo.add_courier(current_order_count=1)
        order = order_repo.add_order(
            items=[(product_id, 1, "60000")], status=OrderStatus.READY, courier_id=courier.id
        )

        await engine.transition(order.id, OrderStatus.CANCELLED, "manager-1")

        assert courier_repo.load(courier.id) == 0
        assert inventory_repo.quantity(flour.id) == Decimal("10")
        assert order.id not in inventory_repo.deductions


# ============================================================================
# Courier Assignment Tests
# ============================================================================


class TestAssignCourier:
    async def test_assigns_and_claims_slot(self, engine, session, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.READY)

        updated = await engine.assign_courier(order.id, courier.id, "manager-1")

        assert updated.courier_id == courier.id
        assert courier_repo.load(courier.id) == 1
        assert session.commits == 1

    async def test_reassignment_moves_slot(self, engine, order_repo, courier_repo):
        first = courier_repo.add_courier("Anvar")
        second = courier_repo.add_courier("Jasur")
        order = order_repo.add_order(status=OrderStatus.READY)
        await engine.assign_courier(order.id, first.id, "manager-1")

        await engine.assign_courier(order.id, second.id, "manager-1")

        assert courier_repo.load(first.id) == 0
        assert courier_repo.load(second.id) == 1

    async def test_same_courier_is_noop(self, engine, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.READY)
        await engine.assign_courier(order.id, courier.id, "manager-1")

        await engine.assign_courier(order.id, courier.id, "manager-1")

        assert courier_repo.load(courier.id) == 1

    async def test_full_courier_rejected(self, engine, order_repo, courier_repo):
        courier = courier_repo.add_courier(max_orders=1, current_order_count=1)
        order = order_repo.add_order(status=OrderStatus.READY)

        with pytest.raises(CourierAtCapacity):
            await engine.assign_courier(order.id, courier.id, "manager-1")

        assert order_repo.orders[order.id].courier_id is None

    async def test_failed_reassignment_keeps_previous_courier(
        self, engine, order_repo, courier_repo
    ):
        current = courier_repo.add_courier("Anvar")
        full = courier_repo.add_courier("Full", max_orders=1, current_order_count=1)
        order = order_repo.add_order(status=OrderStatus.READY)
        await engine.assign_courier(order.id, current.id, "manager-1")

        with pytest.raises(CourierAtCapacity):
            await engine.assign_courier(order.id, full.id, "manager-1")

        assert order_repo.orders[order.id].courier_id == current.id
        assert courier_repo.load(current.id) == 1

    async def test_terminal_order_cannot_be_assigned(self, engine, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.DELIVERED)

        with pytest.raises(InvalidTransition):
            await engine.assign_courier(order.id, courier.id, "manager-1")

        assert courier_repo.load(courier.id) == 0

    async def test_requires_authorization(self, engine, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.READY)

        with pytest.raises(PermissionDeniedError):
            await engine.assign_courier(order.id, courier.id, "cook-1", authorized=False)
