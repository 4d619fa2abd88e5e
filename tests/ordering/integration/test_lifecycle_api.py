"""Integration tests for the order lifecycle API endpoints via TestClient."""

import inspect

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api.routes import courier_router, order_router
from ordering.order.order import Order
from protean import current_domain


@pytest.fixture()
def client():
    from ordering.domain import ordering

    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request, call_next):
        with ordering.domain_context():
            return await call_next(request)

    app.include_router(order_router)
    app.include_router(courier_router)
    return TestClient(app)


def _reload(order):
    return current_domain.repository_for(Order).get(order.id)


class TestStatusEndpoint:
    def test_change_status(self, client, place_order):
        order = place_order()
        response = client.put(f"/orders/{order.id}/status", json={"status": "packed"})
        assert response.status_code == 200
        assert response.json() == {"ok": True, "status": "packed", "transition": "DirectUpdate"}

    def test_denied_transition_is_conflict(self, client, place_order):
        order = place_order(status="delivered")
        response = client.put(f"/orders/{order.id}/status", json={"status": "cancelled"})
        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"

    def test_unknown_status_is_unprocessable(self, client, place_order):
        order = place_order()
        response = client.put(f"/orders/{order.id}/status", json={"status": "teleported"})
        assert response.status_code == 422

    def test_ledger_failure_is_bad_gateway(self, client, place_order, ledger):
        order = place_order(status="packed")
        ledger.configure(should_succeed=False)
        response = client.put(f"/orders/{order.id}/status", json={"status": "cancelled"})
        assert response.status_code == 502
        assert response.json()["message"] == "Insufficient stock"

    def test_missing_order(self, client):
        response = client.put("/orders/nope/status", json={"status": "packed"})
        assert response.status_code == 404


class TestEditEndpoints:
    def test_submit_and_list_edits(self, client, place_order):
        order = place_order()

        response = client.post(
            f"/orders/{order.id}/edits",
            json={
                "expected_edit_version": 1,
                "reason": "Customer changed address",
                "address": "Flat 3, DHA Phase 5",
                "edited_by": "ops@example.com",
                "actor_timezone": "Asia/Karachi",
            },
            headers={"User-Agent": "console/1.0"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["new_edit_version"] == 2
        assert body["totals"]["total"] == 1200.0

        history = client.get(f"/orders/{order.id}/edits").json()
        assert history["order_id"] == str(order.id)
        [entry] = history["edits"]
        assert entry["user_agent"] == "console/1.0"
        assert entry["diff"]["address"]["to"] == "Flat 3, DHA Phase 5"

    def test_stale_version_is_conflict(self, client, place_order):
        order = place_order()
        response = client.post(
            f"/orders/{order.id}/edits",
            json={"expected_edit_version": 5, "reason": "late edit", "city": "Karachi"},
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "CONCURRENCY_ERROR"

    def test_lines_patch(self, client, place_order):
        order = place_order()
        line = order.lines[0]
        response = client.post(
            f"/orders/{order.id}/edits",
            json={
                "expected_edit_version": 1,
                "reason": "add a second item",
                "lines": [
                    {"id": str(line.id), "variant_id": str(line.variant_id), "qty": 2},
                    {"variant_id": "var-002", "qty": 1, "unit_price": 300},
                ],
            },
        )
        assert response.status_code == 200
        assert response.json()["totals"]["subtotal"] == 1300.0
        assert len(_reload(order).lines) == 2

    def test_history_for_missing_order(self, client):
        assert client.get("/orders/nope/edits").status_code == 404


class TestCourierEndpoints:
    def test_assign_then_book(self, client, place_order, leopards):
        order = place_order()

        assigned = client.put(f"/orders/{order.id}/courier", json={"courier_id": str(leopards.id)})
        assert assigned.status_code == 200

        booked = client.post(f"/orders/{order.id}/courier/booking")
        assert booked.status_code == 200
        tracking_number = booked.json()["tracking_number"]

        again = client.post(f"/orders/{order.id}/courier/booking")
        assert again.status_code == 409
        assert again.json()["tracking_number"] == tracking_number

    def test_missing_city_mapping(self, client, place_order, leopards):
        order = place_order(courier_id=leopards.id, city="Multan")
        response = client.post(f"/orders/{order.id}/courier/booking")
        assert response.status_code == 409
        assert "Multan" in response.json()["message"]

    def test_import_cities(self, client, leopards):
        response = client.post(f"/couriers/{leopards.id}/city-mappings/import")
        assert response.status_code == 200
        assert response.json()["data"] == {"count": 2}


class TestLeopardsWebhook:
    def test_rejects_bad_secret(self, client):
        response = client.post(
            "/couriers/leopards/webhook",
            json={"track_number": "LE1", "status": "Delivered"},
            headers={"X-Leopards-Secret": "wrong"},
        )
        assert response.status_code == 401

    def test_single_item(self, client, place_order):
        order = place_order(status="shipped", courier_tracking_number="LE0000000010")

        response = client.post(
            "/couriers/leopards/webhook",
            json={"track_number": "LE0000000010", "status": "Delivered"},
            headers={"X-Leopards-Secret": "fake-secret"},
        )

        assert response.status_code == 200
        [item] = response.json()["results"]
        assert item["ok"] is True
        assert item["tracking_number"] == "LE0000000010"
        assert _reload(order).status == "delivered"

    def test_data_envelope_with_mixed_items(self, client, place_order):
        place_order(status="shipped", courier_tracking_number="LE0000000011")

        response = client.post(
            "/couriers/leopards/webhook",
            json={
                "data": [
                    {"cn_number": "LE0000000011", "booked_packet_status": "Return In Transit"},
                    {"tracking_number": "LE-UNKNOWN", "status": "Delivered"},
                    {"status": "Delivered"},
                ]
            },
            headers={"X-Leopards-Secret": "fake-secret"},
        )

        results = response.json()["results"]
        assert [item["ok"] for item in results] == [True, False, False]
        assert results[1]["error_code"] == "NOT_FOUND"
        assert results[2]["message"] == "Missing tracking number"


class TestRouteExecution:
    def test_lifecycle_routes_run_in_the_threadpool(self):
        routes = [
            route
            for route in order_router.routes + courier_router.routes
            if route.path != "/couriers/leopards/webhook"
        ]

        assert len(routes) == 6
        assert not any(inspect.iscoroutinefunction(route.endpoint) for route in routes)
