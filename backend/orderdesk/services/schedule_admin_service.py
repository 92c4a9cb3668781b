# Overview: Administrative schedule edits; typed per-date/per-slot override patches on day counters.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import DayCounter, Order
from orderdesk.time_utils import aware_utcnow, ensure_aware, parse_iso_date
from .availability_service import DayAvailability, parse_num_days, resolve_counter_row, today_in_zone
from .concurrency import run_transaction
from .delivery_config_service import WeekdayTemplate, load_delivery_config, normalize_mode
from .errors import ValidationError
from .ledger_service import append_ledger_event
from .reservation_service import HELD, get_counter_for_update, new_counter

"""
Day Override Invariants (authoritative)

- Overrides are applied through DayOverridePatch only; unknown keys are
  rejected, so no arbitrary path can be written into a counter.
- Only fields present in the request change. An explicit null clears an
  override (falls back to the template).
- Slot ids must exist in the weekday template for that date and mode.
- booked / daily_booked are corrective values: they are set, not added.
"""

DAY_FIELDS = ("override_closed", "override_daily_capacity", "daily_booked", "slots")
SLOT_FIELDS = ("capacity", "enabled", "label", "booked")


def _opt_bool(value: Any, name: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise ValidationError(f"{name} must be true, false or null")


def _opt_count(value: Any, name: str, *, nullable: bool = True) -> int | None:
    if value is None and nullable:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


@dataclass(frozen=True)
class SlotOverridePatch:
    slot_id: str
    capacity: int | None = None
    enabled: bool | None = None
    label: str | None = None
    booked: int | None = None
    fields_set: frozenset = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {k: getattr(self, k) for k in SLOT_FIELDS if k in self.fields_set}


@dataclass(frozen=True)
class DayOverridePatch:
    override_closed: bool | None = None
    override_daily_capacity: int | None = None
    daily_booked: int | None = None
    slots: tuple[SlotOverridePatch, ...] = ()
    fields_set: frozenset = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        body = {k: getattr(self, k) for k in DAY_FIELDS[:3] if k in self.fields_set}
        if self.slots:
            body["slots"] = {s.slot_id: s.to_dict() for s in self.slots}
        return body


def _parse_slot_patch(slot_id: str, raw: Any, template: WeekdayTemplate) -> SlotOverridePatch:
    where = f"slots.{slot_id}"
    if template.slot(slot_id) is None:
        raise ValidationError(f"Unknown slot id for this weekday: {slot_id}")
    if not isinstance(raw, dict) or not raw:
        raise ValidationError(f"{where} must be a non-empty object")
    unknown = [k for k in raw if k not in SLOT_FIELDS]
    if unknown:
        raise ValidationError(f"{where} has unknown fields: {', '.join(unknown)}")

    label = raw.get("label")
    if label is not None and (not isinstance(label, str) or not label.strip()):
        raise ValidationError(f"{where}.label must be a non-empty string or null")

    return SlotOverridePatch(
        slot_id=slot_id,
        capacity=_opt_count(raw.get("capacity"), f"{where}.capacity"),
        enabled=_opt_bool(raw.get("enabled"), f"{where}.enabled"),
        label=label.strip() if label else None,
        booked=_opt_count(raw.get("booked"), f"{where}.booked", nullable="booked" not in raw),
        fields_set=frozenset(raw),
    )


def parse_day_override_patch(payload: Any, template: WeekdayTemplate | None) -> DayOverridePatch:
    if not isinstance(payload, dict) or not payload:
        raise ValidationError("Patch must be a non-empty object")
    unknown = [k for k in payload if k not in DAY_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

    slots: tuple[SlotOverridePatch, ...] = ()
    if "slots" in payload:
        raw_slots = payload["slots"]
        if not isinstance(raw_slots, dict):
            raise ValidationError("slots must be an object keyed by slot id")
        if template is None:
            raise ValidationError("No weekday template for this date")
        slots = tuple(_parse_slot_patch(sid, raw, template) for sid, raw in raw_slots.items())

    return DayOverridePatch(
        override_closed=_opt_bool(payload.get("override_closed"), "override_closed"),
        override_daily_capacity=_opt_count(payload.get("override_daily_capacity"), "override_daily_capacity"),
        daily_booked=_opt_count(
            payload.get("daily_booked"), "daily_booked", nullable="daily_booked" not in payload
        ),
        slots=slots,
        fields_set=frozenset(k for k in payload if k != "slots"),
    )


def _apply_patch(row: DayCounter, patch: DayOverridePatch) -> None:
    if "override_closed" in patch.fields_set:
        row.override_closed = patch.override_closed
    if "override_daily_capacity" in patch.fields_set:
        row.override_daily_capacity = patch.override_daily_capacity
    if "daily_booked" in patch.fields_set:
        row.daily_booked = patch.daily_booked

    if patch.slots:
        slots = {k: dict(v) for k, v in (row.slots or {}).items() if isinstance(v, dict)}
        for sp in patch.slots:
            entry = slots.get(sp.slot_id, {})
            if "capacity" in sp.fields_set:
                entry["capacity_snapshot"] = sp.capacity
            if "enabled" in sp.fields_set:
                entry["enabled_snapshot"] = sp.enabled
            if "label" in sp.fields_set:
                entry["label_snapshot"] = sp.label
            if "booked" in sp.fields_set:
                entry["booked"] = sp.booked
            slots[sp.slot_id] = entry
        row.slots = slots


def _parse_day(value) -> date:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")


def apply_day_override(
    day,
    mode: str,
    payload: Any,
    *,
    actor: str | None = None,
    now: datetime | None = None,
) -> DayAvailability:
    """Apply a typed override patch to the (date, mode) counter. Returns the resolved day."""
    day = _parse_day(day)
    mode = normalize_mode(mode)
    now = ensure_aware(now or aware_utcnow())

    def _op():
        config = load_delivery_config()
        patch = parse_day_override_patch(payload, config.template_for(mode, day))

        row = get_counter_for_update(day, mode)
        if row is None:
            row = new_counter(day, mode)
        _apply_patch(row, patch)
        db.session.flush()

        append_ledger_event(
            event_type="schedule.day_override",
            entity_type="day_counter",
            entity_id=row.key,
            actor=actor,
            payload=patch.to_dict(),
        )
        return resolve_counter_row(config, mode, day, row, now)

    view = run_transaction(_op, label="apply_day_override")
    current_app.logger.info("Day override applied to %s %s", day.isoformat(), mode)
    return view


def get_schedule_overview(
    start,
    num_days,
    mode: str,
    *,
    now: datetime | None = None,
) -> list[dict]:
    """
    Admin view: resolved availability plus the raw counter and the held
    orders for each day.
    """
    mode = normalize_mode(mode)
    num_days = parse_num_days(num_days)
    now = ensure_aware(now or aware_utcnow())
    config = load_delivery_config()
    start = _parse_day(start) if start else today_in_zone(config, now)
    end = start + timedelta(days=num_days - 1)

    counters = {
        row.date: row
        for row in db.session.query(DayCounter)
        .filter(DayCounter.mode == mode, DayCounter.date >= start, DayCounter.date <= end)
        .all()
    }
    held: dict[date, list[Order]] = {}
    for order in (
        db.session.query(Order)
        .filter(
            Order.delivery_mode == mode,
            Order.reservation_status == HELD,
            Order.schedule_date >= start,
            Order.schedule_date <= end,
        )
        .order_by(Order.schedule_date, Order.schedule_slot_id)
        .all()
    ):
        held.setdefault(order.schedule_date, []).append(order)

    overview = []
    for i in range(num_days):
        d = start + timedelta(days=i)
        row = counters.get(d)
        overview.append({
            "availability": resolve_counter_row(config, mode, d, row, now).to_dict(),
            "counter": row.to_dict() if row is not None else None,
            "orders": [
                {
                    "id": o.id,
                    "short_id": o.short_id,
                    "status": o.status,
                    "slot_id": o.schedule_slot_id,
                    "customer_name": (o.customer or {}).get("name"),
                }
                for o in held.get(d, [])
            ],
        })
    return overview
