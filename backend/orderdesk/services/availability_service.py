# Overview: Availability resolver; merges weekly templates, day counters and overrides into a day/slot view.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import DayCounter
from orderdesk.time_utils import aware_utcnow, ensure_aware
from .delivery_config_service import (
    CUTOFF_DAY_BEFORE_AT,
    CUTOFF_HOURS_BEFORE_SLOT_START,
    DeliveryConfig,
    load_delivery_config,
    normalize_mode,
)
from .errors import ValidationError

"""
Availability Resolution Invariants (authoritative)

Per (date, mode), in this order:
1. No weekday template               -> closed "No weekday template"
2. template.open is False            -> closed "Closed weekday"
3. Blackouts (same priority):
     date in closed_dates            -> closed "Closed date"
     date > today + max_advance_days -> closed "Beyond booking window"
     DAY_BEFORE_AT deadline passed   -> closed "Cutoff passed"
4. counter.override_closed set       -> replaces 2-3 and waives time-of-day cutoffs
5. date < today                      -> closed "Past date" (cannot be overridden)
6. open and daily_booked >= daily_capacity -> stays open, reason "Full"

- "today" and all cutoffs are evaluated in the configured timezone.
- resolve_day() is pure. The reservation transaction calls exactly the same
  function on the counter it read, so a booking can never succeed against a
  state the read path would show as closed or full.
- A malformed counter degrades that single day to closed
  ("Invalid schedule data"); the rest of the range still resolves.
"""

MAX_RANGE_DAYS = 62

REASON_NO_TEMPLATE = "No weekday template"
REASON_CLOSED_WEEKDAY = "Closed weekday"
REASON_CLOSED_DATE = "Closed date"
REASON_BEYOND_WINDOW = "Beyond booking window"
REASON_CUTOFF = "Cutoff passed"
REASON_OVERRIDE_CLOSED = "Closed by override"
REASON_PAST = "Past date"
REASON_FULL = "Full"
REASON_INVALID = "Invalid schedule data"


@dataclass(frozen=True)
class SlotAvailability:
    id: str
    label: str
    start: str
    end: str
    capacity: int
    booked: int
    available: int
    enabled: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "start": self.start,
            "end": self.end,
            "capacity": self.capacity,
            "booked": self.booked,
            "available": self.available,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class DayAvailability:
    date: date
    mode: str
    open: bool
    reason: str | None
    daily_capacity: int
    daily_booked: int
    slots: tuple[SlotAvailability, ...] = ()

    @property
    def is_full(self) -> bool:
        return self.daily_booked >= self.daily_capacity

    def slot(self, slot_id: str) -> SlotAvailability | None:
        for s in self.slots:
            if s.id == slot_id:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "mode": self.mode,
            "open": self.open,
            "reason": self.reason,
            "daily_capacity": self.daily_capacity,
            "daily_booked": self.daily_booked,
            "slots": [s.to_dict() for s in self.slots],
        }


def _optional_int(value, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class SlotCounter:
    booked: int = 0
    capacity_snapshot: int | None = None
    enabled_snapshot: bool | None = None
    label_snapshot: str | None = None


@dataclass(frozen=True)
class CounterSnapshot:
    """Validated, immutable view of a DayCounter row."""
    daily_booked: int = 0
    slots: dict[str, SlotCounter] = field(default_factory=dict)
    override_closed: bool | None = None
    override_daily_capacity: int | None = None

    @classmethod
    def from_row(cls, row: DayCounter) -> "CounterSnapshot":
        """Raises ValueError when the stored counter does not have the expected shape."""
        raw_slots = row.slots or {}
        if not isinstance(raw_slots, dict):
            raise ValueError("slots must be an object")

        slots = {}
        for slot_id, entry in raw_slots.items():
            if not isinstance(entry, dict):
                raise ValueError(f"slot {slot_id!r} must be an object")
            enabled = entry.get("enabled_snapshot")
            if enabled is not None and not isinstance(enabled, bool):
                raise ValueError(f"slot {slot_id!r} enabled_snapshot must be a boolean")
            slots[slot_id] = SlotCounter(
                booked=_optional_int(entry.get("booked"), f"{slot_id}.booked") or 0,
                capacity_snapshot=_optional_int(entry.get("capacity_snapshot"), f"{slot_id}.capacity_snapshot"),
                enabled_snapshot=enabled,
                label_snapshot=entry.get("label_snapshot"),
            )

        return cls(
            daily_booked=_optional_int(row.daily_booked, "daily_booked") or 0,
            slots=slots,
            override_closed=row.override_closed,
            override_daily_capacity=_optional_int(row.override_daily_capacity, "override_daily_capacity"),
        )


def today_in_zone(config: DeliveryConfig, now: datetime) -> date:
    return ensure_aware(now).astimezone(config.zone).date()


def _blackout_reason(config: DeliveryConfig, day: date, now: datetime) -> str | None:
    today = today_in_zone(config, now)
    if day in config.closed_dates:
        return REASON_CLOSED_DATE
    if day > today + timedelta(days=config.max_advance_days):
        return REASON_BEYOND_WINDOW

    policy = config.cutoff_policy
    if policy.type == CUTOFF_DAY_BEFORE_AT and policy.day_before_at is not None:
        deadline = datetime.combine(day - timedelta(days=1), policy.day_before_at, tzinfo=config.zone)
        if ensure_aware(now) >= deadline:
            return REASON_CUTOFF
    return None


def _slot_cutoff_passed(config: DeliveryConfig, day: date, slot_start, now: datetime) -> bool:
    policy = config.cutoff_policy
    if policy.type != CUTOFF_HOURS_BEFORE_SLOT_START:
        return False
    starts_at = datetime.combine(day, slot_start, tzinfo=config.zone)
    return ensure_aware(now) >= starts_at - timedelta(hours=policy.hours_before_slot or 0)


def resolve_day(
    config: DeliveryConfig,
    mode: str,
    day: date,
    counter: CounterSnapshot | None,
    now: datetime,
) -> DayAvailability:
    """Resolve one (date, mode). Pure: no reads, no writes, no logging."""
    counter = counter or CounterSnapshot()
    today = today_in_zone(config, now)

    template = config.template_for(mode, day)
    if template is None:
        return DayAvailability(
            date=day,
            mode=mode,
            open=False,
            reason=REASON_PAST if day < today else REASON_NO_TEMPLATE,
            daily_capacity=0,
            daily_booked=counter.daily_booked,
        )

    is_open = template.open
    reason = None if is_open else REASON_CLOSED_WEEKDAY

    blackout = _blackout_reason(config, day, now)
    if blackout:
        is_open = False
        reason = blackout

    reopened = False
    if counter.override_closed is not None:
        is_open = not counter.override_closed
        reason = None if is_open else REASON_OVERRIDE_CLOSED
        reopened = is_open

    if counter.override_daily_capacity is not None:
        daily_capacity = counter.override_daily_capacity
    else:
        daily_capacity = template.effective_capacity

    slots = []
    for slot in template.slots:
        sc = counter.slots.get(slot.id) or SlotCounter()
        capacity = sc.capacity_snapshot if sc.capacity_snapshot is not None else slot.capacity
        available = max(0, capacity - sc.booked)
        base_enabled = sc.enabled_snapshot if sc.enabled_snapshot is not None else slot.enabled
        cutoff = not reopened and _slot_cutoff_passed(config, day, slot.start, now)
        slots.append(
            SlotAvailability(
                id=slot.id,
                label=sc.label_snapshot or slot.label,
                start=slot.start.strftime("%H:%M"),
                end=slot.end.strftime("%H:%M"),
                capacity=capacity,
                booked=sc.booked,
                available=available,
                enabled=bool(base_enabled) and available > 0 and not cutoff,
            )
        )

    if is_open and counter.daily_booked >= daily_capacity:
        reason = REASON_FULL

    if day < today:
        is_open = False
        reason = REASON_PAST

    return DayAvailability(
        date=day,
        mode=mode,
        open=is_open,
        reason=reason,
        daily_capacity=daily_capacity,
        daily_booked=counter.daily_booked,
        slots=tuple(slots),
    )


def degraded_day(day: date, mode: str) -> DayAvailability:
    return DayAvailability(
        date=day, mode=mode, open=False, reason=REASON_INVALID, daily_capacity=0, daily_booked=0,
    )


def resolve_counter_row(
    config: DeliveryConfig,
    mode: str,
    day: date,
    row: DayCounter | None,
    now: datetime,
) -> DayAvailability:
    """resolve_day() on a stored row; a malformed row yields a closed day instead of an error."""
    try:
        snapshot = CounterSnapshot.from_row(row) if row is not None else None
        return resolve_day(config, mode, day, snapshot, now)
    except (ValueError, TypeError, AttributeError) as exc:
        current_app.logger.warning(
            "Degrading %s %s to closed: malformed day counter (%s)", day.isoformat(), mode, exc
        )
        return degraded_day(day, mode)


def resolve_range(
    config: DeliveryConfig,
    mode: str,
    start: date,
    num_days: int,
    counters: dict[date, DayCounter],
    now: datetime,
) -> list[DayAvailability]:
    if not config.mode_enabled(mode):
        return []
    days = [start + timedelta(days=i) for i in range(num_days)]
    return [resolve_counter_row(config, mode, d, counters.get(d), now) for d in days]


def parse_num_days(value, default: int = 14) -> int:
    if value is None or value == "":
        return default
    try:
        num_days = int(value)
    except (TypeError, ValueError):
        raise ValidationError("days must be an integer")
    if num_days < 1 or num_days > MAX_RANGE_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_RANGE_DAYS}")
    return num_days


def get_availability(
    start: date | None,
    num_days: int,
    mode: str,
    *,
    now: datetime | None = None,
    config: DeliveryConfig | None = None,
) -> list[DayAvailability]:
    """
    Availability view for [start, start + num_days).

    start defaults to today in the configured timezone. Raises
    ConfigMissingError when no configuration exists and ValidationError on an
    unknown mode or out-of-range num_days. A disabled mode yields [].
    """
    mode = normalize_mode(mode)
    num_days = parse_num_days(num_days)
    now = ensure_aware(now or aware_utcnow())
    config = config or load_delivery_config()

    if start is None:
        start = today_in_zone(config, now)
    if not config.mode_enabled(mode):
        return []

    end = start + timedelta(days=num_days - 1)
    rows = (
        db.session.query(DayCounter)
        .filter(DayCounter.mode == mode, DayCounter.date >= start, DayCounter.date <= end)
        .all()
    )
    counters = {row.date: row for row in rows}
    return resolve_range(config, mode, start, num_days, counters, now)
