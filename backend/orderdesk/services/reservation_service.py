# Overview: Service-layer operations for slot reservation; books and releases day counter capacity.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import DayCounter, Order
from orderdesk.time_utils import aware_utcnow, ensure_aware, parse_iso_date, to_naive_utc, utcnow
from .availability_service import DayAvailability, SlotAvailability, resolve_counter_row
from .concurrency import lock_for_update, run_transaction
from .delivery_config_service import DeliveryConfig, load_delivery_config, normalize_mode
from .errors import (
    NotFoundError,
    OrderStateError,
    SlotClosedError,
    SlotFullError,
    UnauthorizedError,
    ValidationError,
)
from .ledger_service import append_ledger_event
from .order_binding_service import OrderBinding, binding_matches, hash_token, short_id_for

"""
Reservation Invariants (authoritative)

- A booking is decided by resolve_counter_row() on the counter read INSIDE the
  transaction, i.e. the same resolution the availability read path uses.
- Check order: day closed / unknown slot -> SlotClosedError,
  daily full / slot full -> SlotFullError, slot disabled -> SlotClosedError.
  Nothing is written on any of these.
- A successful booking increments daily_booked and slots[slot_id].booked by
  exactly 1 and marks the order's reservation HELD.
- A switch releases the old hold before booking the new one, inside the same
  transaction, so a same-day switch sees the capacity it just freed and a
  failed switch leaves the old hold untouched (rollback).
- Counters never go below zero.
- Only NEW (draft) orders reserve/release through the customer path.
- A draft hold lapses RESERVATION_HOLD_MINUTES after it was last taken.
  Lapsed holds are given back lazily (before availability reads and
  reservations) one order per transaction; confirmed orders never lapse.
"""

HELD = "HELD"
RELEASED = "RELEASED"


@dataclass(frozen=True)
class ReservationResult:
    order_id: str
    short_id: str
    mode: str
    date: date | None
    slot_id: str | None
    slot_label: str | None
    reservation_status: str | None
    switched_from: dict | None = None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "short_id": self.short_id,
            "mode": self.mode,
            "date": self.date.isoformat() if self.date else None,
            "slot_id": self.slot_id,
            "slot_label": self.slot_label,
            "reservation_status": self.reservation_status,
            "switched_from": self.switched_from,
        }


def _as_count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def get_counter_for_update(day: date, mode: str) -> DayCounter | None:
    q = db.session.query(DayCounter).filter_by(key=DayCounter.make_key(day, mode))
    return lock_for_update(q).first()


def new_counter(day: date, mode: str) -> DayCounter:
    row = DayCounter(
        key=DayCounter.make_key(day, mode),
        date=day,
        mode=mode,
        daily_booked=0,
        slots={},
    )
    db.session.add(row)
    return row


def check_bookable(view: DayAvailability, slot_id: str) -> SlotAvailability:
    details = {"date": view.date.isoformat(), "mode": view.mode, "slot_id": slot_id}
    if not view.open:
        raise SlotClosedError(SlotClosedError.user_message, details={**details, "reason": view.reason})

    slot = view.slot(slot_id)
    if slot is None:
        raise SlotClosedError(SlotClosedError.user_message, details={**details, "reason": "Unknown slot"})

    if view.daily_booked >= view.daily_capacity:
        raise SlotFullError(SlotFullError.user_message, details={**details, "reason": "Day is full"})
    if slot.booked >= slot.capacity:
        raise SlotFullError(SlotFullError.user_message, details={**details, "reason": "Slot is full"})
    if not slot.enabled:
        raise SlotClosedError(SlotClosedError.user_message, details={**details, "reason": "Slot is not available"})
    return slot


def book_on_counter(row: DayCounter, slot_id: str) -> None:
    slots = {k: dict(v) for k, v in (row.slots or {}).items()}
    entry = slots.get(slot_id, {})
    entry["booked"] = _as_count(entry.get("booked")) + 1
    slots[slot_id] = entry
    row.slots = slots
    row.daily_booked = _as_count(row.daily_booked) + 1


def release_on_counter(row: DayCounter, slot_id: str) -> None:
    slots = {k: dict(v) if isinstance(v, dict) else {} for k, v in (row.slots or {}).items()}
    entry = slots.get(slot_id, {})
    entry["booked"] = max(0, _as_count(entry.get("booked")) - 1)
    slots[slot_id] = entry
    row.slots = slots
    row.daily_booked = max(0, _as_count(row.daily_booked) - 1)


def hold_expiry(now: datetime) -> datetime:
    minutes = current_app.config.get("RESERVATION_HOLD_MINUTES", 15)
    return to_naive_utc(now) + timedelta(minutes=minutes)


def release_order_hold(order: Order) -> dict | None:
    """
    Give back the order's HELD slot. Returns the released schedule, or None
    when nothing was held. Caller owns the transaction.
    """
    if order.reservation_status != HELD or order.schedule_date is None or not order.schedule_slot_id:
        return None

    released = {
        "date": order.schedule_date.isoformat(),
        "mode": order.delivery_mode,
        "slot_id": order.schedule_slot_id,
    }
    row = get_counter_for_update(order.schedule_date, order.delivery_mode)
    if row is not None:
        release_on_counter(row, order.schedule_slot_id)
    order.reservation_status = RELEASED
    order.reservation_expires_at = None
    return released


def hold_slot(
    order: Order,
    config: DeliveryConfig,
    day: date,
    mode: str,
    slot_id: str,
    now: datetime,
    *,
    actor: str | None = None,
) -> ReservationResult:
    """
    Book (day, mode, slot_id) for order, switching away from any existing hold.
    Caller owns the transaction. Keeping the slot already held is a no-op.
    """
    if (
        order.reservation_status == HELD
        and order.schedule_date == day
        and order.delivery_mode == mode
        and order.schedule_slot_id == slot_id
    ):
        order.reservation_expires_at = hold_expiry(now)
        return _result(order)

    switched_from = release_order_hold(order)

    row = get_counter_for_update(day, mode)
    view = resolve_counter_row(config, mode, day, row, now)
    slot = check_bookable(view, slot_id)

    if row is None:
        row = new_counter(day, mode)
    book_on_counter(row, slot_id)

    order.delivery_mode = mode
    order.schedule_date = day
    order.schedule_slot_id = slot_id
    order.schedule_slot_label = slot.label
    order.reservation_status = HELD
    order.reserved_at = utcnow()
    order.reservation_expires_at = hold_expiry(now)

    append_ledger_event(
        event_type="reservation.switched" if switched_from else "reservation.held",
        entity_type="day_counter",
        entity_id=row.key,
        order_id=order.id,
        actor=actor,
        payload={"slot_id": slot_id, "switched_from": switched_from},
    )
    return _result(order, switched_from)


def _result(order: Order, switched_from: dict | None = None) -> ReservationResult:
    return ReservationResult(
        order_id=order.id,
        short_id=order.short_id,
        mode=order.delivery_mode,
        date=order.schedule_date,
        slot_id=order.schedule_slot_id,
        slot_label=order.schedule_slot_label,
        reservation_status=order.reservation_status,
        switched_from=switched_from,
    )


def new_draft_order(binding: OrderBinding, mode: str) -> Order:
    order = Order(
        id=binding.order_id,
        short_id=short_id_for(binding.order_id),
        status="NEW",
        items=[],
        pricing={},
        total_cents=0,
        customer={},
        delivery_mode=mode,
        token_hash=hash_token(binding.token),
    )
    db.session.add(order)
    return order


def get_draft_for_update(binding: OrderBinding) -> Order | None:
    """Locked read of the bound order. Raises on a token mismatch or a non-draft order."""
    order = lock_for_update(db.session.query(Order).filter_by(id=binding.order_id)).first()
    if order is None:
        return None
    if not binding_matches(order, binding):
        raise UnauthorizedError("Order session does not match this order")
    if order.status != "NEW":
        raise OrderStateError(
            "Order is already finalized; its schedule cannot be changed here",
            details={"order_id": order.id, "status": order.status},
        )
    return order


def reserve_slot(
    binding: OrderBinding,
    day,
    mode: str,
    slot_id: str,
    *,
    now: datetime | None = None,
) -> ReservationResult:
    """
    Hold a slot for the draft order bound to this browser.

    Creates the draft order on first use. Raises SlotClosedError /
    SlotFullError when the slot cannot be booked after a fresh read.
    """
    mode = normalize_mode(mode)
    try:
        day = parse_iso_date(day)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")
    slot_id = str(slot_id or "").strip()
    if not slot_id:
        raise ValidationError("slot_id is required")
    now = ensure_aware(now or aware_utcnow())
    release_expired_holds(now)

    def _op():
        config = load_delivery_config()
        if not config.mode_enabled(mode):
            raise SlotClosedError(
                SlotClosedError.user_message,
                details={"mode": mode, "reason": "Mode not available"},
            )
        order = get_draft_for_update(binding)
        if order is None:
            order = new_draft_order(binding, mode)
        return hold_slot(order, config, day, mode, slot_id, now)

    try:
        result = run_transaction(_op, label="reserve_slot")
    except (SlotFullError, SlotClosedError) as e:
        current_app.logger.info(
            "Reservation rejected for order %s on %s %s/%s: %s",
            binding.order_id, day.isoformat(), mode, slot_id, e.details.get("reason"),
        )
        raise

    current_app.logger.info(
        "Order %s holds %s %s/%s", result.order_id, day.isoformat(), mode, slot_id
    )
    return result


def release_slot(binding: OrderBinding) -> ReservationResult:
    """Release the draft order's held slot. Releasing with nothing held is a no-op."""

    def _op():
        order = get_draft_for_update(binding)
        if order is None:
            raise NotFoundError("Order not found")
        released = release_order_hold(order)
        if released:
            append_ledger_event(
                event_type="reservation.released",
                entity_type="day_counter",
                entity_id=DayCounter.make_key(order.schedule_date, order.delivery_mode),
                order_id=order.id,
                payload=released,
            )
        return _result(order)

    return run_transaction(_op, label="release_slot")


def release_expired_holds(now: datetime | None = None) -> int:
    """
    Give back every draft hold whose expiry has passed.

    Each order is released in its own transaction and re-checked under lock,
    so a draft that was re-reserved or checked out meanwhile is left alone.
    Returns the number of holds released.
    """
    cutoff = to_naive_utc(now or aware_utcnow())
    expired_ids = [
        row.id
        for row in db.session.query(Order.id).filter(
            Order.status == "NEW",
            Order.reservation_status == HELD,
            Order.reservation_expires_at.isnot(None),
            Order.reservation_expires_at <= cutoff,
        )
    ]

    released = 0
    for order_id in expired_ids:

        def _op(order_id=order_id):
            order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
            if (
                order is None
                or order.status != "NEW"
                or order.reservation_expires_at is None
                or order.reservation_expires_at > cutoff
            ):
                return None
            schedule = release_order_hold(order)
            if schedule:
                append_ledger_event(
                    event_type="reservation.expired",
                    entity_type="day_counter",
                    entity_id=DayCounter.make_key(order.schedule_date, order.delivery_mode),
                    order_id=order.id,
                    payload=schedule,
                )
            return schedule

        if run_transaction(_op, label="release_expired_hold"):
            released += 1

    if released:
        current_app.logger.info("Released %d expired slot holds", released)
    return released
