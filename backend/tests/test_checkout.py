# Overview: Pytest coverage for checkout; atomic confirmation, idempotent re-entry and customer aggregates.

import pytest
from conftest import NEXT_MONDAY, NOW, TUESDAY, checkout_payload
from orderdesk.extensions import db
from orderdesk.models import Customer, DayCounter, Order, ProductVariant
from orderdesk.services import checkout_service, reservation_service, schedule_admin_service
from orderdesk.services.errors import SlotFullError, UnauthorizedError, ValidationError
from orderdesk.services.order_binding_service import OrderBinding, mint_binding

PHONE = "69999990001"


def _checkout(payload, binding):
    return checkout_service.checkout(payload, binding, now=NOW)


def _counter(day, mode="DELIVERY"):
    return db.session.get(DayCounter, DayCounter.make_key(day, mode))


class TestCheckoutConfirmation:
    def test_confirms_order_with_priced_items(self, delivery_config, catalog, binding):
        result = _checkout(checkout_payload(), binding)

        assert result.no_op is False
        assert result.status == "CONFIRMED"
        assert result.order_id == binding.order_id
        assert result.pricing == {
            "subtotal_cents": 2400,
            "shipping_cents": 0,
            "discount_cents": 0,
            "total_cents": 2400,
        }
        assert result.schedule["date"] == NEXT_MONDAY.isoformat()
        assert result.schedule["reservation_status"] == "HELD"

        order = db.session.get(Order, binding.order_id)
        assert order.customer_phone == PHONE
        assert order.items[0]["unit_price_cents"] == 1200
        assert order.confirmed_at is not None
        assert _counter(NEXT_MONDAY).slots["morning"]["booked"] == 1

    def test_client_sent_discount_is_ignored(self, delivery_config, catalog, binding):
        result = _checkout(checkout_payload(discount_cents=10**9), binding)

        assert result.pricing["discount_cents"] == 0
        assert result.pricing["total_cents"] == 2400
        assert db.session.get(Order, binding.order_id).total_cents == 2400

    def test_unknown_product_writes_nothing(self, delivery_config, catalog, binding):
        payload = checkout_payload(items=[
            {"type": "PRODUCT", "product_id": "ghost-juice", "variant_key": "500ml", "quantity": 1},
        ])

        with pytest.raises(ValidationError) as exc:
            _checkout(payload, binding)

        assert exc.value.details["items"][0]["product_id"] == "ghost-juice"
        assert db.session.query(Order).count() == 0
        assert db.session.query(Customer).count() == 0
        assert db.session.query(DayCounter).count() == 0

    def test_inactive_product_rejected(self, delivery_config, catalog, binding):
        payload = checkout_payload(items=[
            {"type": "PRODUCT", "product_id": "retired-juice", "variant_key": "300ml", "quantity": 1},
        ])

        with pytest.raises(ValidationError):
            _checkout(payload, binding)

    def test_pack_and_bundle_lines(self, delivery_config, catalog, binding):
        payload = checkout_payload(items=[
            {"type": "PACK", "variant_key": "300ml", "quantity": 2,
             "items": [{"product_id": "orange-juice", "quantity": 1}, {"product_id": "green-detox", "quantity": 2}]},
            {"type": "BUNDLE", "bundle_id": "weekly-kit", "quantity": 1},
        ])

        result = _checkout(payload, binding)

        assert result.pricing["subtotal_cents"] == 1600 + 4000 + 5000
        order = db.session.get(Order, binding.order_id)
        assert [(i["product_id"], i["quantity"], i["source"]) for i in order.items] == [
            ("orange-juice", 2, "PACK"),
            ("green-detox", 4, "PACK"),
            ("weekly-kit", 1, "BUNDLE"),
        ]

    def test_untagged_line_rejected(self, delivery_config, catalog, binding):
        payload = checkout_payload(items=[{"product_id": "orange-juice", "variant_key": "500ml", "quantity": 1}])

        with pytest.raises(ValidationError):
            _checkout(payload, binding)

    def test_delivery_requires_address(self, delivery_config, catalog, binding):
        payload = checkout_payload()
        payload["customer"]["address"] = ""

        with pytest.raises(ValidationError):
            _checkout(payload, binding)

    def test_pickup_without_address(self, delivery_config, catalog, binding):
        payload = checkout_payload(schedule={"date": TUESDAY.isoformat(), "slot_id": "afternoon"})
        payload["customer"] = {"name": "Joao", "phone": "69 98888-0002", "delivery_method": "pickup"}

        result = _checkout(payload, binding)

        order = db.session.get(Order, result.order_id)
        assert order.delivery_mode == "PICKUP"
        assert _counter(TUESDAY, "PICKUP").daily_booked == 1
        assert _counter(TUESDAY, "DELIVERY") is None

    def test_checkout_without_schedule(self, delivery_config, catalog, binding):
        result = _checkout(checkout_payload(schedule=None), binding)

        assert result.schedule["date"] is None
        assert db.session.query(DayCounter).count() == 0

    def test_checkout_does_not_touch_stock(self, delivery_config, catalog, binding):
        _checkout(checkout_payload(), binding)

        variant = db.session.query(ProductVariant).filter_by(product_id="orange-juice", variant_key="500ml").one()
        assert variant.stock_qty == 10

    def test_full_slot_writes_nothing(self, delivery_config, catalog, binding):
        schedule_admin_service.apply_day_override(
            NEXT_MONDAY.isoformat(), "DELIVERY", {"slots": {"morning": {"capacity": 0}}}, now=NOW
        )

        with pytest.raises(SlotFullError):
            _checkout(checkout_payload(), binding)

        assert db.session.get(Order, binding.order_id) is None
        assert db.session.query(Customer).count() == 0

    def test_mints_binding_when_none_presented(self, delivery_config, catalog):
        result = _checkout(checkout_payload(), None)

        assert result.binding is not None
        assert result.binding.order_id == result.order_id
        assert "token" not in result.to_dict()


class TestCheckoutReentry:
    def test_second_submit_is_noop(self, delivery_config, catalog, binding):
        first = _checkout(checkout_payload(), binding)
        second = _checkout(checkout_payload(), binding)

        assert second.no_op is True
        assert second.order_id == first.order_id
        assert second.pricing["total_cents"] == 2400
        assert db.session.query(Order).count() == 1
        assert db.session.get(Customer, PHONE).order_count == 1
        assert _counter(NEXT_MONDAY).daily_booked == 1

    def test_idempotency_key_returns_existing_order(self, delivery_config, catalog, binding):
        first = _checkout(checkout_payload(idempotency_key="abc-123"), binding)
        second = _checkout(checkout_payload(idempotency_key="abc-123"), binding)

        assert second.no_op is True
        assert second.order_id == first.order_id
        assert db.session.query(Order).count() == 1

    def test_idempotency_key_from_other_session_is_unauthorized(self, delivery_config, catalog, binding):
        _checkout(checkout_payload(idempotency_key="abc-123"), binding)

        with pytest.raises(UnauthorizedError):
            _checkout(checkout_payload(idempotency_key="abc-123"), mint_binding())

        assert db.session.query(Order).count() == 1

    def test_wrong_token_is_unauthorized(self, delivery_config, catalog, binding):
        reservation_service.reserve_slot(binding, NEXT_MONDAY.isoformat(), "DELIVERY", "morning", now=NOW)
        intruder = OrderBinding(order_id=binding.order_id, token="guessed")

        with pytest.raises(UnauthorizedError):
            _checkout(checkout_payload(), intruder)

        assert db.session.get(Order, binding.order_id).status == "NEW"

    def test_checkout_keeps_reserved_slot(self, delivery_config, catalog, binding):
        reservation_service.reserve_slot(binding, NEXT_MONDAY.isoformat(), "DELIVERY", "morning", now=NOW)

        _checkout(checkout_payload(), binding)

        assert _counter(NEXT_MONDAY).daily_booked == 1

    def test_checkout_switches_reserved_slot(self, delivery_config, catalog, binding):
        reservation_service.reserve_slot(binding, NEXT_MONDAY.isoformat(), "DELIVERY", "morning", now=NOW)

        _checkout(checkout_payload(schedule={"date": TUESDAY.isoformat(), "slot_id": "afternoon"}), binding)

        assert _counter(NEXT_MONDAY).daily_booked == 0
        assert _counter(TUESDAY).slots["afternoon"]["booked"] == 1


class TestCustomerAggregate:
    def test_aggregates_accumulate(self, delivery_config, catalog):
        _checkout(checkout_payload(schedule=None), mint_binding())
        _checkout(checkout_payload(schedule=None), mint_binding())

        customer = db.session.get(Customer, PHONE)
        assert customer.order_count == 2
        assert customer.lifetime_value_cents == 4800
        assert len(customer.addresses) == 1
        assert customer.last_order_at is not None

    def test_address_history_is_capped_most_recent_first(self, app, delivery_config, catalog):
        limit = app.config["CUSTOMER_ADDRESS_HISTORY_LIMIT"]
        for i in range(limit + 2):
            payload = checkout_payload(schedule=None)
            payload["customer"]["address"] = f"Rua Numero {i}"
            _checkout(payload, mint_binding())

        addresses = db.session.get(Customer, PHONE).addresses
        assert len(addresses) == limit
        assert addresses[0]["address"] == f"Rua Numero {limit + 1}"

    def test_short_phone_rejected(self, delivery_config, catalog, binding):
        payload = checkout_payload()
        payload["customer"]["phone"] = "123"

        with pytest.raises(ValidationError):
            _checkout(payload, binding)
