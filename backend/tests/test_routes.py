# Overview: Pytest coverage for the HTTP API; status codes, cookies and admin authorization.

from datetime import timedelta

from conftest import NEXT_MONDAY, NOW, TUESDAY, admin_headers, checkout_payload, make_config_payload
from orderdesk.services import reservation_service

COOKIE = "order_session"


def _reserve(client, day=NEXT_MONDAY, slot_id="morning"):
    return client.post("/api/delivery/reserve", json={"date": day.isoformat(), "mode": "DELIVERY", "slot_id": slot_id})


class TestDeliveryRoutes:
    def test_slots(self, client, delivery_config, frozen_clock):
        response = client.get(f"/api/delivery/slots?start={TUESDAY.isoformat()}&days=3")

        assert response.status_code == 200
        body = response.get_json()
        assert body["mode"] == "DELIVERY"
        assert body["config_version"] == delivery_config.version
        assert [d["date"] for d in body["days"]] == ["2026-10-20", "2026-10-21", "2026-10-22"]
        assert body["days"][0]["slots"][0]["available"] == 10

    def test_slots_default_to_today(self, client, delivery_config, frozen_clock):
        body = client.get("/api/delivery/slots?days=1").get_json()

        assert body["days"][0]["date"] == "2026-10-19"
        assert body["days"][0]["reason"] == "Cutoff passed"

    def test_slots_without_config(self, client, db_session):
        response = client.get("/api/delivery/slots")

        assert response.status_code == 503
        assert response.get_json()["code"] == "CONFIG_MISSING"

    def test_slots_bad_params(self, client, delivery_config):
        assert client.get("/api/delivery/slots?mode=drone").status_code == 400
        assert client.get("/api/delivery/slots?days=99").status_code == 400
        assert client.get("/api/delivery/slots?start=tomorrow").status_code == 400

    def test_reserve_sets_cookie_and_switches(self, client, delivery_config, frozen_clock):
        first = _reserve(client)

        assert first.status_code == 200
        assert first.get_json()["reservation"]["reservation_status"] == "HELD"
        cookie = client.get_cookie(COOKIE)
        assert cookie is not None
        assert cookie.value.startswith(first.get_json()["reservation"]["order_id"] + ".")

        second = _reserve(client, TUESDAY, "afternoon")

        reservation = second.get_json()["reservation"]
        assert reservation["order_id"] == first.get_json()["reservation"]["order_id"]
        assert reservation["switched_from"]["slot_id"] == "morning"

    def test_full_slot_answers_409(self, client, db_session, frozen_clock):
        from orderdesk.services import delivery_config_service

        delivery_config_service.save_delivery_config(make_config_payload(morning_capacity=0))

        response = _reserve(client)

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "SLOT_FULL"
        assert body["error"] == "This time slot is no longer available, please choose another time"

    def test_slots_give_back_lapsed_holds(self, client, delivery_config, frozen_clock, monkeypatch):
        _reserve(client)
        url = f"/api/delivery/slots?start={NEXT_MONDAY.isoformat()}&days=1"
        assert client.get(url).get_json()["days"][0]["slots"][0]["available"] == 9

        monkeypatch.setattr(reservation_service, "aware_utcnow", lambda: NOW + timedelta(minutes=30))

        assert client.get(url).get_json()["days"][0]["slots"][0]["available"] == 10

    def test_release(self, client, delivery_config, frozen_clock):
        _reserve(client)

        response = client.post("/api/delivery/release")

        assert response.status_code == 200
        assert response.get_json()["reservation"]["reservation_status"] == "RELEASED"

    def test_release_without_session(self, client, delivery_config):
        response = client.post("/api/delivery/release")

        assert response.status_code == 401

    def test_reserve_requires_json(self, client, delivery_config):
        response = client.post("/api/delivery/reserve", data="not json", content_type="text/plain")

        assert response.status_code == 400


class TestCartAndCheckoutRoutes:
    def test_cart_init_reuses_binding(self, client, db_session):
        first = client.post("/api/cart/init").get_json()
        second = client.post("/api/cart/init").get_json()

        assert first["is_new"] is True
        assert second["is_new"] is False
        assert second["order_id"] == first["order_id"]

    def test_checkout_then_reentry(self, client, delivery_config, catalog, frozen_clock):
        client.post("/api/cart/init")

        created = client.post("/api/order/checkout", json=checkout_payload())
        again = client.post("/api/order/checkout", json=checkout_payload())

        assert created.status_code == 201
        assert again.status_code == 200
        assert again.get_json()["order"]["no_op"] is True
        assert again.get_json()["order"]["order_id"] == created.get_json()["order"]["order_id"]

    def test_checkout_without_cookie_sets_one(self, client, delivery_config, catalog, frozen_clock):
        response = client.post("/api/order/checkout", json=checkout_payload())

        assert response.status_code == 201
        order_id = response.get_json()["order"]["order_id"]
        assert client.get_cookie(COOKIE).value.startswith(order_id + ".")

    def test_checkout_validation_error(self, client, delivery_config, catalog, frozen_clock):
        payload = checkout_payload(items=[
            {"type": "PRODUCT", "product_id": "ghost", "variant_key": "300ml", "quantity": 1},
        ])

        response = client.post("/api/order/checkout", json=payload)

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"


class TestAdminRoutes:
    def test_requires_token(self, client, db_session):
        assert client.get("/api/admin/orders").status_code == 401
        assert client.get(
            "/api/admin/orders", headers={"Authorization": "Bearer wrong"}
        ).status_code == 401

    def test_order_workflow(self, client, delivery_config, catalog, frozen_clock):
        order_id = client.post("/api/order/checkout", json=checkout_payload()).get_json()["order"]["order_id"]
        headers = {**admin_headers(), "X-Actor": "maria"}

        listed = client.get("/api/admin/orders?status=CONFIRMED", headers=headers).get_json()
        assert listed["total"] == 1

        paid = client.post(f"/api/admin/orders/{order_id}/mark-paid", json={"method": "pix"}, headers=headers)
        assert paid.status_code == 200
        assert paid.get_json()["order"]["payment_status"] == "PAID"

        backwards = client.post(f"/api/admin/orders/{order_id}/status", json={"status": "CONFIRMED"}, headers=headers)
        assert backwards.status_code == 409

        canceled = client.post(f"/api/admin/orders/{order_id}/cancel", json={"reason": "test"}, headers=headers)
        assert canceled.get_json()["order"]["status"] == "CANCELED"

        detail = client.get(f"/api/admin/orders/{order_id}", headers=headers).get_json()
        assert detail["events"][0]["event_type"] == "order.canceled"
        assert detail["events"][0]["actor"] == "maria"

    def test_missing_order(self, client, db_session):
        response = client.get("/api/admin/orders/nope", headers=admin_headers())

        assert response.status_code == 404

    def test_bulk_and_points(self, client, delivery_config, catalog, frozen_clock):
        order_id = client.post("/api/order/checkout", json=checkout_payload()).get_json()["order"]["order_id"]

        bulk = client.post(
            "/api/admin/orders/bulk",
            json={"action": "status", "status": "IN_PRODUCTION", "order_ids": [order_id, "nope"]},
            headers=admin_headers(),
        ).get_json()
        assert bulk["succeeded_count"] == 1
        assert bulk["failed_count"] == 1

        points = client.post(
            "/api/admin/customers/points", json={"phones": ["69999990001"], "delta": 3}, headers=admin_headers()
        ).get_json()
        assert points["succeeded"] == ["69999990001"]

        subscribed = client.post(
            "/api/admin/customers/69999990001/subscription", json={"is_subscriber": True}, headers=admin_headers()
        )
        assert subscribed.status_code == 200
        assert subscribed.get_json()["customer"]["is_subscriber"] is True
        assert subscribed.get_json()["customer"]["eco_points"] == 3

    def test_schedule_config_and_overrides(self, client, db_session, frozen_clock):
        saved = client.put("/api/admin/schedule/config", json=make_config_payload(), headers=admin_headers())
        assert saved.status_code == 200
        assert saved.get_json()["config"]["timezone"] == "America/Porto_Velho"

        patched = client.patch(
            f"/api/admin/schedule/days/{TUESDAY.isoformat()}/delivery",
            json={"override_closed": True},
            headers=admin_headers(),
        )
        assert patched.status_code == 200
        assert patched.get_json()["day"]["reason"] == "Closed by override"

        bad = client.patch(
            f"/api/admin/schedule/days/{TUESDAY.isoformat()}/delivery",
            json={"slots.morning.booked": 0},
            headers=admin_headers(),
        )
        assert bad.status_code == 400

        overview = client.get(
            f"/api/admin/schedule?start={TUESDAY.isoformat()}&days=2", headers=admin_headers()
        ).get_json()
        assert overview["days"][0]["availability"]["open"] is False

    def test_inventory_adjust(self, client, catalog):
        created = client.post(
            "/api/admin/inventory/adjust",
            json={"product_id": "orange-juice", "variant_key": "300ml", "type": "IN", "quantity": 5},
            headers=admin_headers(),
        )
        assert created.status_code == 201
        assert created.get_json()["variant"]["stock_qty"] == 15

        movements = client.get(
            "/api/admin/inventory/movements?product_id=orange-juice", headers=admin_headers()
        ).get_json()["movements"]
        assert len(movements) == 1


class TestHealth:
    def test_degraded_without_config(self, client, db_session):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json()["status"] == "degraded"

    def test_healthy(self, client, delivery_config):
        body = client.get("/health").get_json()

        assert body["status"] == "healthy"
        assert body["checks"]["schedule"]["details"]["config_version"] == delivery_config.version
