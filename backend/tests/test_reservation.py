# Overview: Pytest coverage for slot reservation; capacity enforcement, switching and release.

from datetime import datetime, timedelta

import pytest
from conftest import NEXT_MONDAY, NOW, SUNDAY, TUESDAY, checkout_payload, make_config_payload
from orderdesk.extensions import db
from orderdesk.models import DayCounter, Order
from orderdesk.services import (
    checkout_service,
    delivery_config_service,
    ledger_service,
    reservation_service,
    schedule_admin_service,
)
from orderdesk.services.errors import (
    OrderStateError,
    SlotClosedError,
    SlotFullError,
    UnauthorizedError,
    ValidationError,
)
from orderdesk.services.order_binding_service import OrderBinding, mint_binding


def _counter(day, mode="DELIVERY"):
    return db.session.get(DayCounter, DayCounter.make_key(day, mode))


def _reserve(binding, day, slot_id="morning", mode="DELIVERY"):
    return reservation_service.reserve_slot(binding, day.isoformat(), mode, slot_id, now=NOW)


class TestReserveSlot:
    def test_first_reservation_creates_draft_and_counter(self, delivery_config, binding):
        result = _reserve(binding, NEXT_MONDAY)

        assert result.order_id == binding.order_id
        assert result.reservation_status == "HELD"
        assert result.slot_label == "Morning"
        assert result.switched_from is None

        order = db.session.get(Order, binding.order_id)
        assert order.status == "NEW"
        assert order.schedule_date == NEXT_MONDAY

        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 1
        assert counter.slots["morning"]["booked"] == 1

    def test_eleventh_reservation_is_full(self, delivery_config):
        for _ in range(10):
            _reserve(mint_binding(), NEXT_MONDAY)

        with pytest.raises(SlotFullError) as exc:
            _reserve(mint_binding(), NEXT_MONDAY)

        assert exc.value.details["reason"] == "Slot is full"
        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 10
        assert counter.slots["morning"]["booked"] == 10

    def test_daily_capacity_caps_across_slots(self, db_session):
        delivery_config_service.save_delivery_config(make_config_payload(daily_capacity=2))
        _reserve(mint_binding(), NEXT_MONDAY, "morning")
        _reserve(mint_binding(), NEXT_MONDAY, "afternoon")

        with pytest.raises(SlotFullError) as exc:
            _reserve(mint_binding(), NEXT_MONDAY, "afternoon")

        assert exc.value.details["reason"] == "Day is full"

    def test_same_hold_twice_is_noop(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)
        _reserve(binding, NEXT_MONDAY)

        assert _counter(NEXT_MONDAY).daily_booked == 1
        events = ledger_service.list_ledger_events(order_id=binding.order_id)
        assert [e.event_type for e in events] == ["reservation.held"]

    def test_closed_day_writes_nothing(self, delivery_config, binding):
        with pytest.raises(SlotClosedError) as exc:
            _reserve(binding, SUNDAY)

        assert exc.value.details["reason"] == "Closed weekday"
        assert _counter(SUNDAY) is None
        assert db.session.get(Order, binding.order_id) is None

    def test_unknown_slot_is_closed(self, delivery_config, binding):
        with pytest.raises(SlotClosedError) as exc:
            _reserve(binding, NEXT_MONDAY, "midnight")

        assert exc.value.details["reason"] == "Unknown slot"

    def test_disabled_mode_is_closed(self, db_session, binding):
        delivery_config_service.save_delivery_config(make_config_payload(pickup_enabled=False))

        with pytest.raises(SlotClosedError):
            _reserve(binding, NEXT_MONDAY, mode="PICKUP")

    def test_admin_disabled_slot_is_closed(self, delivery_config, binding):
        schedule_admin_service.apply_day_override(
            NEXT_MONDAY.isoformat(), "DELIVERY", {"slots": {"morning": {"enabled": False}}}, now=NOW
        )

        with pytest.raises(SlotClosedError) as exc:
            _reserve(binding, NEXT_MONDAY)

        assert exc.value.details["reason"] == "Slot is not available"

    def test_invalid_date_rejected(self, delivery_config, binding):
        with pytest.raises(ValidationError):
            reservation_service.reserve_slot(binding, "26/10/2026", "DELIVERY", "morning", now=NOW)

    def test_wrong_token_is_unauthorized(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)
        intruder = OrderBinding(order_id=binding.order_id, token="not-the-token")

        with pytest.raises(UnauthorizedError):
            _reserve(intruder, TUESDAY)

        assert _counter(NEXT_MONDAY).daily_booked == 1
        assert _counter(TUESDAY) is None

    def test_finalized_order_cannot_reserve(self, delivery_config, binding, db_session):
        _reserve(binding, NEXT_MONDAY)
        order = db_session.get(Order, binding.order_id)
        order.status = "CONFIRMED"
        db_session.commit()

        with pytest.raises(OrderStateError):
            _reserve(binding, TUESDAY)


class TestSwitchSlot:
    def test_switch_moves_capacity(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY, "morning")
        result = _reserve(binding, TUESDAY, "afternoon")

        assert result.switched_from == {
            "date": NEXT_MONDAY.isoformat(),
            "mode": "DELIVERY",
            "slot_id": "morning",
        }
        monday = _counter(NEXT_MONDAY)
        assert monday.daily_booked == 0
        assert monday.slots["morning"]["booked"] == 0
        tuesday = _counter(TUESDAY)
        assert tuesday.daily_booked == 1
        assert tuesday.slots["afternoon"]["booked"] == 1

    def test_same_day_switch_sees_freed_capacity(self, delivery_config, binding):
        schedule_admin_service.apply_day_override(
            NEXT_MONDAY.isoformat(), "DELIVERY", {"override_daily_capacity": 1}, now=NOW
        )
        _reserve(binding, NEXT_MONDAY, "morning")

        result = _reserve(binding, NEXT_MONDAY, "afternoon")

        assert result.slot_id == "afternoon"
        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 1
        assert counter.slots["morning"]["booked"] == 0
        assert counter.slots["afternoon"]["booked"] == 1

    def test_failed_switch_keeps_old_hold(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY, "morning")
        schedule_admin_service.apply_day_override(
            TUESDAY.isoformat(), "DELIVERY", {"slots": {"morning": {"capacity": 0}}}, now=NOW
        )

        with pytest.raises(SlotFullError):
            _reserve(binding, TUESDAY, "morning")

        order = db.session.get(Order, binding.order_id)
        assert order.reservation_status == "HELD"
        assert order.schedule_date == NEXT_MONDAY
        assert _counter(NEXT_MONDAY).slots["morning"]["booked"] == 1
        assert _counter(TUESDAY).daily_booked == 0

    def test_switch_is_recorded_in_ledger(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY, "morning")
        _reserve(binding, TUESDAY, "morning")

        events = ledger_service.list_ledger_events(order_id=binding.order_id)
        assert [e.event_type for e in events] == ["reservation.switched", "reservation.held"]


class TestReleaseSlot:
    def test_release_frees_capacity(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)

        result = reservation_service.release_slot(binding)

        assert result.reservation_status == "RELEASED"
        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 0
        assert counter.slots["morning"]["booked"] == 0

    def test_release_twice_is_noop(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)
        reservation_service.release_slot(binding)
        reservation_service.release_slot(binding)

        assert _counter(NEXT_MONDAY).daily_booked == 0
        events = ledger_service.list_ledger_events(order_id=binding.order_id, event_type="reservation.released")
        assert len(events) == 1

    def test_release_without_order(self, delivery_config, binding):
        from orderdesk.services.errors import NotFoundError

        with pytest.raises(NotFoundError):
            reservation_service.release_slot(binding)

    def test_counter_never_goes_negative(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)
        schedule_admin_service.apply_day_override(
            NEXT_MONDAY.isoformat(), "DELIVERY",
            {"daily_booked": 0, "slots": {"morning": {"booked": 0}}}, now=NOW,
        )

        reservation_service.release_slot(binding)

        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 0
        assert counter.slots["morning"]["booked"] == 0


class TestHoldExpiry:
    def test_hold_records_expiry(self, delivery_config, binding):
        result = _reserve(binding, NEXT_MONDAY)

        order = db.session.get(Order, binding.order_id)
        assert order.reservation_expires_at == datetime(2026, 10, 19, 13, 15)
        assert result.reservation_status == "HELD"

    def test_expired_hold_frees_capacity(self, db_session):
        delivery_config_service.save_delivery_config(make_config_payload(morning_capacity=1))
        first = mint_binding()
        second = mint_binding()
        _reserve(first, NEXT_MONDAY)

        with pytest.raises(SlotFullError):
            _reserve(second, NEXT_MONDAY)

        later = NOW + timedelta(minutes=16)
        result = reservation_service.reserve_slot(second, NEXT_MONDAY.isoformat(), "DELIVERY", "morning", now=later)

        assert result.reservation_status == "HELD"
        assert db.session.get(Order, first.order_id).reservation_status == "RELEASED"
        assert db.session.get(Order, first.order_id).reservation_expires_at is None
        counter = _counter(NEXT_MONDAY)
        assert counter.daily_booked == 1
        assert counter.slots["morning"]["booked"] == 1
        events = ledger_service.list_ledger_events(event_type="reservation.expired")
        assert [e.order_id for e in events] == [first.order_id]

    def test_unexpired_hold_is_kept(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)

        assert reservation_service.release_expired_holds(NOW + timedelta(minutes=10)) == 0
        assert reservation_service.release_expired_holds(NOW + timedelta(minutes=15)) == 1
        assert _counter(NEXT_MONDAY).daily_booked == 0

    def test_reserving_again_extends_the_hold(self, delivery_config, binding):
        _reserve(binding, NEXT_MONDAY)
        later = NOW + timedelta(minutes=10)
        reservation_service.reserve_slot(binding, NEXT_MONDAY.isoformat(), "DELIVERY", "morning", now=later)

        assert reservation_service.release_expired_holds(NOW + timedelta(minutes=20)) == 0
        assert db.session.get(Order, binding.order_id).reservation_expires_at == datetime(2026, 10, 19, 13, 25)
        assert _counter(NEXT_MONDAY).daily_booked == 1

    def test_confirmed_order_never_lapses(self, delivery_config, catalog, binding):
        _reserve(binding, NEXT_MONDAY)
        checkout_service.checkout(checkout_payload(), binding, now=NOW)

        assert db.session.get(Order, binding.order_id).reservation_expires_at is None
        assert reservation_service.release_expired_holds(NOW + timedelta(days=1)) == 0
        assert _counter(NEXT_MONDAY).daily_booked == 1
