"""
Integration tests for the order API endpoints.

Services run against the in-memory repositories through FastAPI dependency
overrides; authentication uses real staff JWTs.
"""

import uuid
from decimal import Decimal

import pytest
from fastapi import status

from backoffice.api.v1.couriers import get_courier_repository
from backoffice.api.v1.orders import get_order_service, get_transition_engine
from backoffice.core.config import get_settings
from backoffice.services.couriers.tracker import CourierAssignmentTracker
from backoffice.services.inventory.deduction import DeductionService
from backoffice.services.inventory.ledger import IngredientLedger
from backoffice.services.orders.enums import OrderStatus
from backoffice.services.orders.service import OrderService
from backoffice.services.orders.state_machine import StatusTransitionEngine
from backoffice.services.rate_limit.limiter import InMemoryRateLimitStore, RateLimiter
from tests.factories import auth_header, valid_payload

ORDERS_URL = "/api/v1/orders"


@pytest.fixture
def client(
    test_client, session, order_repo, courier_repo, inventory_repo, recipes, clock, channel
):
    """Test client whose order endpoints use the in-memory repositories."""
    limiter = RateLimiter(InMemoryRateLimitStore(), limit=5, window_seconds=60)
    service = OrderService(session, rate_limiter=limiter, notifier=channel, repository=order_repo)
    ledger = IngredientLedger(session, inventory_repo)
    engine = StatusTransitionEngine(
        session,
        deduction_service=DeductionService(
            session, ledger=ledger, recipes=recipes, repository=inventory_repo
        ),
        courier_tracker=CourierAssignmentTracker(session, repository=courier_repo),
        repository=order_repo,
    )

    app = test_client.app
    app.dependency_overrides[get_order_service] = lambda: service
    app.dependency_overrides[get_transition_engine] = lambda: engine
    app.dependency_overrides[get_courier_repository] = lambda: courier_repo
    return test_client


# ============================================================================
# Public Intake
# ============================================================================


class TestCreateOrder:
    def test_accepts_valid_order(self, client, order_repo):
        response = client.post(ORDERS_URL, json=valid_payload())

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        order_id = uuid.UUID(body["order_id"])
        assert order_repo.orders[order_id].total_price == Decimal("55000")

    def test_notifies_staff_after_response(self, client, channel):
        response = client.post(ORDERS_URL, json=valid_payload())

        assert response.status_code == status.HTTP_200_OK
        assert len(channel.messages) == 1
        assert "Total: 55 000 sum" in channel.messages[0]

    def test_lists_every_validation_error(self, client, order_repo):
        response = client.post(
            ORDERS_URL, json=valid_payload(phone="12345", address="short")
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {
            "success": False,
            "errors": [
                "Phone number must be in the format +998XXXXXXXXX",
                "Address must be between 10 and 500 characters",
            ],
        }
        assert order_repo.orders == {}

    def test_malformed_json(self, client):
        response = client.post(
            ORDERS_URL,
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["errors"] == ["Request body must be valid JSON"]

    def test_sixth_order_from_same_client_is_rate_limited(self, client, order_repo, clock):
        for _ in range(5):
            assert client.post(ORDERS_URL, json=valid_payload()).status_code == 200

        response = client.post(ORDERS_URL, json=valid_payload())

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.headers["Retry-After"] == "60"
        assert response.json()["success"] is False
        assert "Too many orders" in response.json()["error"]
        assert len(order_repo.orders) == 5

        clock.advance(61)
        assert client.post(ORDERS_URL, json=valid_payload()).status_code == 200

    def test_forwarded_for_is_ignored_without_trusted_proxy(self, client, order_repo, clock):
        responses = [
            client.post(
                ORDERS_URL,
                json=valid_payload(),
                headers={"X-Forwarded-For": f"10.0.0.{i}"},
            )
            for i in range(10)
        ]

        assert [r.status_code for r in responses] == [200] * 5 + [429] * 5
        assert len(order_repo.orders) == 5

    def test_trusted_proxy_hop_identifies_client(self, client, order_repo, clock, monkeypatch):
        monkeypatch.setattr(get_settings(), "trusted_proxy_count", 1)

        spoofed = [
            client.post(
                ORDERS_URL,
                json=valid_payload(),
                headers={"X-Forwarded-For": f"10.0.0.{i}, 203.0.113.7"},
            )
            for i in range(6)
        ]
        other = client.post(
            ORDERS_URL, json=valid_payload(), headers={"X-Forwarded-For": "198.51.100.1"}
        )

        assert [r.status_code for r in spoofed] == [200] * 5 + [429]
        assert other.status_code == status.HTTP_200_OK

    def test_storage_failure_is_opaque(self, client, session):
        session.fail_commit = True

        response = client.post(ORDERS_URL, json=valid_payload())

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("Failed to create order. Reference: ")
        assert response.headers["X-Request-ID"] in body["error"]


# ============================================================================
# Staff Endpoints
# ============================================================================


class TestStaffOrders:
    def test_requires_token(self, client):
        assert client.get(ORDERS_URL).status_code == status.HTTP_401_UNAUTHORIZED

    def test_rejects_bad_token(self, client):
        response = client.get(ORDERS_URL, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_list_orders(self, client, order_repo):
        order_repo.add_order(status=OrderStatus.NEW)
        cooking = order_repo.add_order(status=OrderStatus.COOKING)

        response = client.get(ORDERS_URL, params={"status": "cooking"}, headers=auth_header("cook"))

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == str(cooking.id)

    def test_get_order_with_history(self, client, order_repo):
        order = order_repo.add_order()
        client.post(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "cooking"},
            headers=auth_header("cook", "cook-7"),
        )

        response = client.get(f"{ORDERS_URL}/{order.id}", headers=auth_header())

        assert response.status_code == status.HTTP_200_OK
        history = response.json()["status_history"]
        assert history[0]["old_status"] == "new"
        assert history[0]["new_status"] == "cooking"
        assert history[0]["changed_by"] == "cook-7"

    def test_get_unknown_order(self, client):
        response = client.get(f"{ORDERS_URL}/{uuid.uuid4()}", headers=auth_header())

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "ORDER_NOT_FOUND"


class TestStatusChanges:
    def test_manager_delivers_and_stock_is_deducted(
        self, client, order_repo, inventory_repo, recipes
    ):
        flour = inventory_repo.add_ingredient(quantity="10")
        product_id = uuid.uuid4()
        recipes.add_recipe(product_id, (flour.id, "2"))
        order = order_repo.add_order(items=[(product_id, 3, "10000")], status=OrderStatus.ON_THE_WAY)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "delivered"},
            headers=auth_header("manager"),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "delivered"
        assert inventory_repo.quantity(flour.id) == Decimal("4")

    def test_cook_cannot_deliver(self, client, order_repo):
        order = order_repo.add_order(status=OrderStatus.READY)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "delivered"},
            headers=auth_header("cook"),
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "PERMISSION_DENIED"
        assert order_repo.orders[order.id].status == OrderStatus.READY

    def test_terminal_order_conflict(self, client, order_repo):
        order = order_repo.add_order(status=OrderStatus.CANCELLED)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "cooking"},
            headers=auth_header(),
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "INVALID_TRANSITION"

    def test_unknown_status_value(self, client, order_repo):
        order = order_repo.add_order()

        response = client.post(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "teleported"},
            headers=auth_header(),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestCourierAssignment:
    def test_manager_assigns_courier(self, client, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.READY)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/courier",
            json={"courier_id": str(courier.id)},
            headers=auth_header("manager"),
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["courier_id"] == str(courier.id)
        assert courier_repo.load(courier.id) == 1

    def test_courier_at_capacity(self, client, order_repo, courier_repo):
        courier = courier_repo.add_courier(max_orders=1, current_order_count=1)
        order = order_repo.add_order(status=OrderStatus.READY)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/courier",
            json={"courier_id": str(courier.id)},
            headers=auth_header("manager"),
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "COURIER_AT_CAPACITY"

    def test_cook_cannot_assign(self, client, order_repo, courier_repo):
        courier = courier_repo.add_courier()
        order = order_repo.add_order(status=OrderStatus.READY)

        response = client.post(
            f"{ORDERS_URL}/{order.id}/courier",
            json={"courier_id": str(courier.id)},
            headers=auth_header("cook"),
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_available_couriers(self, client, courier_repo):
        free = courier_repo.add_courier("Jasur")
        courier_repo.add_courier("Full", max_orders=1, current_order_count=1)

        response = client.get("/api/v1/couriers/available", headers=auth_header())

        assert response.status_code == status.HTTP_200_OK
        assert [c["id"] for c in response.json()] == [str(free.id)]
