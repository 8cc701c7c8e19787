"""
End-to-end tests through the HTTP routers: status codes, error bodies and
role gates.
"""

from rest_api.models import Order, Staff
from shared.config.constants import OrderStatus, Roles
from tests.conftest import auth_headers_for

FRIES = {"item_name": "Fries", "unit_price_cents": 500, "quantity": 1}


def create_takeaway(client, headers) -> dict:
    response = client.post(
        "/api/orders/upsert",
        json={"channel": "TAKEAWAY", "items": [FRIES]},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestOrdersApi:
    """Order endpoints."""

    def test_create_and_fetch(self, client, cashier_headers):
        created = create_takeaway(client, cashier_headers)

        response = client.get(f"/api/orders/{created['id']}", headers=cashier_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == OrderStatus.ACTIVE
        assert body["total_cents"] == 500
        assert body["takeaway"]["token_number"] == "T-1"

    def test_settle_replay_is_conflict(self, client, db_session, cashier_headers):
        order = create_takeaway(client, cashier_headers)
        url = f"/api/orders/{order['id']}/settle"

        first = client.post(url, json={"amount_cents": 1000, "method": "CASH"}, headers=cashier_headers)
        replay = client.post(url, json={"amount_cents": 1000, "method": "CASH"}, headers=cashier_headers)

        assert first.status_code == 200
        assert first.json()["status"] == OrderStatus.CLOSED
        assert replay.status_code == 409
        detail = replay.json()["detail"]
        assert detail["kind"] == "ALREADY_SETTLED"
        assert detail["category"] == "conflict"
        assert detail["context"]["order_id"] == order["id"]

    def test_underpayment_is_bad_request(self, client, cashier_headers):
        order = create_takeaway(client, cashier_headers)

        response = client.post(
            f"/api/orders/{order['id']}/settle", json={"amount_cents": 100}, headers=cashier_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "VALIDATION_ERROR"

    def test_kitchen_cannot_settle(self, client, cashier_headers, kitchen_headers):
        order = create_takeaway(client, cashier_headers)

        response = client.post(
            f"/api/orders/{order['id']}/settle", json={"amount_cents": 500}, headers=kitchen_headers
        )

        assert response.status_code == 403

    def test_void_requires_manager(self, client, db_session, waiter_headers, manager_headers):
        order = create_takeaway(client, waiter_headers)
        url = f"/api/orders/{order['id']}/void"

        denied = client.post(url, json={"reason": "Wrong ticket"}, headers=waiter_headers)
        allowed = client.post(url, json={"reason": "Wrong ticket"}, headers=manager_headers)

        assert denied.status_code == 403
        assert denied.json()["detail"]["kind"] == "UNAUTHORIZED"
        assert allowed.status_code == 200
        assert allowed.json()["status"] == OrderStatus.VOIDED

    def test_unknown_order_is_not_found(self, client, cashier_headers):
        response = client.get("/api/orders/4040", headers=cashier_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["kind"] == "ORDER_NOT_FOUND"

    def test_other_restaurant_sees_not_found(self, client, db_session, cashier_headers, other_restaurant):
        outsider = Staff(restaurant_id=other_restaurant.id, name="Outsider", role=Roles.MANAGER)
        db_session.add(outsider)
        db_session.commit()
        order = create_takeaway(client, cashier_headers)

        response = client.get(f"/api/orders/{order['id']}", headers=auth_headers_for(outsider))

        assert response.status_code == 404

    def test_delete_order(self, client, db_session, cashier_headers, manager_headers):
        order = create_takeaway(client, cashier_headers)

        response = client.delete(f"/api/orders/{order['id']}", headers=manager_headers)

        assert response.status_code == 204
        assert db_session.get(Order, order["id"]) is None

    def test_unsupported_channel(self, client, cashier_headers):
        response = client.post(
            "/api/orders/upsert",
            json={"channel": "DRIVE_THRU", "items": [FRIES]},
            headers=cashier_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["kind"] == "UNSUPPORTED_CHANNEL"


class TestFloorApi:
    """Walk-in seating over HTTP."""

    def test_seat_and_conflict(self, client, waiter_headers, floor):
        table_id = floor["T-2"].id

        seated = client.post(
            "/api/floor/seat", json={"guest_count": 3, "table_id": table_id}, headers=waiter_headers
        )
        conflict = client.post(
            "/api/floor/seat", json={"guest_count": 2, "table_id": table_id}, headers=waiter_headers
        )

        assert seated.status_code == 200
        assert seated.json()["table"]["status"] == "OCCUPIED"
        assert conflict.status_code == 409
        assert conflict.json()["detail"]["kind"] == "TABLE_UNAVAILABLE"

    def test_over_capacity_is_policy_error(self, client, waiter_headers, floor):
        response = client.post(
            "/api/floor/seat",
            json={"guest_count": 5, "table_id": floor["T-1"].id},
            headers=waiter_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "CAPACITY_EXCEEDED"

    def test_layout(self, client, waiter_headers, floor):
        response = client.get("/api/floor/layout", headers=waiter_headers)

        assert response.status_code == 200
        names = [t["name"] for section in response.json()["sections"] for t in section["tables"]]
        assert sorted(names) == ["P-1", "P-2", "T-1", "T-2"]


class TestRiderApi:
    """Delivery cash flow through the rider endpoints."""

    def test_delivery_settlement_flow(self, client, cashier_headers, rider):
        opened = client.post(
            "/api/riders/shifts/open",
            json={"rider_id": rider.id, "opening_float_cents": 1000},
            headers=cashier_headers,
        )
        assert opened.status_code == 200

        order = client.post(
            "/api/orders/upsert",
            json={
                "channel": "DELIVERY",
                "customer_phone": "555-0199",
                "delivery_address": "12 Elm Street",
                "items": [{"item_name": "Pizza", "unit_price_cents": 1500}],
            },
            headers=cashier_headers,
        ).json()
        assigned = client.post(
            f"/api/orders/{order['id']}/assign-driver",
            json={"driver_id": rider.id},
            headers=cashier_headers,
        )
        delivered = client.post(f"/api/orders/{order['id']}/mark-delivered", headers=cashier_headers)
        assert assigned.status_code == 200
        assert delivered.json()["status"] == OrderStatus.DELIVERED

        pending = client.get(f"/api/riders/{rider.id}/pending-settlement", headers=cashier_headers)
        assert pending.json()["expected_cash_cents"] == 2500

        body = {"amount_received_cents": 1500, "order_ids": [order["id"]], "settlement_id": "S-9"}
        settled = client.post(f"/api/riders/{rider.id}/settle", json=body, headers=cashier_headers)
        replay = client.post(f"/api/riders/{rider.id}/settle", json=body, headers=cashier_headers)

        assert settled.status_code == 200
        assert settled.json()["difference_cents"] == 0
        assert replay.status_code == 409

        reconcile = client.get(f"/api/riders/{rider.id}/reconcile", headers=cashier_headers)
        assert reconcile.json()["in_sync"] is True

    def test_second_open_shift_conflicts(self, client, cashier_headers, rider):
        body = {"rider_id": rider.id}

        client.post("/api/riders/shifts/open", json=body, headers=cashier_headers)
        response = client.post("/api/riders/shifts/open", json=body, headers=cashier_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "SHIFT_ALREADY_OPEN"


class TestAccountingApi:

    def test_payout_and_balance(self, client, cashier_headers, manager_headers):
        payout = client.post(
            "/api/accounting/payouts",
            json={"amount_cents": 300, "category": "Ice"},
            headers=cashier_headers,
        )
        balance = client.get("/api/accounting/balance?account=EXPENSE", headers=manager_headers)

        assert payout.status_code == 200
        assert balance.json()["balance_cents"] == 300

    def test_zero_payout_rejected_by_schema(self, client, cashier_headers):
        response = client.post(
            "/api/accounting/payouts",
            json={"amount_cents": 0, "category": "Ice"},
            headers=cashier_headers,
        )

        assert response.status_code == 422

    def test_ledger_requires_management(self, client, cashier_headers):
        assert client.get("/api/accounting/ledger", headers=cashier_headers).status_code == 403


class TestHttpSurface:
    """Authentication and middleware behaviour."""

    def test_missing_token(self, client):
        response = client.get("/api/orders/1")

        assert response.status_code == 401
        assert response.json()["detail"] == "Missing Authorization header"

    def test_garbage_token(self, client):
        response = client.get("/api/orders/1", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_non_json_body_rejected(self, client, cashier_headers):
        response = client.post(
            "/api/orders/upsert",
            content="channel=TAKEAWAY",
            headers={**cashier_headers, "Content-Type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 415

    def test_security_headers(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "term-7-abc"})

        assert response.headers["X-Request-ID"] == "term-7-abc"

    def test_request_id_generated_when_absent(self, client):
        response = client.get("/api/health")

        assert response.headers["X-Request-ID"]
