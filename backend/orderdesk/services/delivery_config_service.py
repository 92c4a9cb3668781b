# Overview: Delivery configuration value objects plus load/save against the singleton row.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app

from ..extensions import db
from ..models import DeliverySettings
from orderdesk.time_utils import parse_iso_date
from .concurrency import run_transaction
from .errors import ConfigMissingError, ValidationError
from .ledger_service import append_ledger_event

"""
Delivery configuration (authoritative)

- One DeliverySettings row (id=1). Callers never read it directly: they call
  load_delivery_config() once per operation and pass the resulting immutable
  DeliveryConfig into the resolver / transaction engine.
- Every mode carries a template for every weekday mon..sun, even when closed.
- Weekday keys follow ISO Monday-first ordering: WEEKDAY_KEYS[date.weekday()].
- Slot ids are unique within a template.
"""

SETTINGS_ROW_ID = 1

MODE_DELIVERY = "DELIVERY"
MODE_PICKUP = "PICKUP"
MODES = (MODE_DELIVERY, MODE_PICKUP)

WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

CUTOFF_DAY_BEFORE_AT = "DAY_BEFORE_AT"
CUTOFF_HOURS_BEFORE_SLOT_START = "HOURS_BEFORE_SLOT_START"
CUTOFF_TYPES = (CUTOFF_DAY_BEFORE_AT, CUTOFF_HOURS_BEFORE_SLOT_START)

MAX_ADVANCE_DAYS_LIMIT = 365


def weekday_key(day: date) -> str:
    return WEEKDAY_KEYS[day.weekday()]


@dataclass(frozen=True)
class SlotConfig:
    id: str
    label: str
    start: time
    end: time
    capacity: int
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "start": self.start.strftime("%H:%M"),
            "end": self.end.strftime("%H:%M"),
            "capacity": self.capacity,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class WeekdayTemplate:
    open: bool
    daily_capacity: int
    slots: tuple[SlotConfig, ...] = ()

    @property
    def effective_capacity(self) -> int:
        return self.daily_capacity if self.open else 0

    def slot(self, slot_id: str) -> SlotConfig | None:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None

    def to_dict(self) -> dict:
        return {
            "open": self.open,
            "daily_capacity": self.daily_capacity,
            "slots": [s.to_dict() for s in self.slots],
        }


@dataclass(frozen=True)
class ModeConfig:
    enabled: bool
    weekday_templates: dict[str, WeekdayTemplate]

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "weekday_templates": {k: self.weekday_templates[k].to_dict() for k in WEEKDAY_KEYS},
        }


@dataclass(frozen=True)
class CutoffPolicy:
    type: str
    day_before_at: time | None = None
    hours_before_slot: int | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "day_before_at": self.day_before_at.strftime("%H:%M") if self.day_before_at else None,
            "hours_before_slot": self.hours_before_slot,
        }


@dataclass(frozen=True)
class DeliveryConfig:
    timezone: str
    max_advance_days: int
    cutoff_policy: CutoffPolicy
    modes: dict[str, ModeConfig]
    closed_dates: frozenset[date] = field(default_factory=frozenset)
    notes_for_customer: str | None = None
    version: int = 0

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def mode_enabled(self, mode: str) -> bool:
        mode_cfg = self.modes.get(mode)
        return bool(mode_cfg and mode_cfg.enabled)

    def template_for(self, mode: str, day: date) -> WeekdayTemplate | None:
        mode_cfg = self.modes.get(mode)
        if mode_cfg is None:
            return None
        return mode_cfg.weekday_templates.get(weekday_key(day))

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "timezone": self.timezone,
            "max_advance_days": self.max_advance_days,
            "cutoff_policy": self.cutoff_policy.to_dict(),
            "modes": {m: self.modes[m].to_dict() for m in MODES if m in self.modes},
            "closed_dates": sorted(d.isoformat() for d in self.closed_dates),
            "notes_for_customer": self.notes_for_customer,
        }


def normalize_mode(value: Any) -> str:
    mode = str(value or "").strip().upper()
    if mode not in MODES:
        raise ValidationError(f"mode must be one of {', '.join(MODES)}")
    return mode


def _parse_time(value: Any, field_name: str) -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a HH:MM string")
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field_name} must be a HH:MM string")


def _parse_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    if value < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    return value


def _parse_slot(raw: Any, where: str) -> SlotConfig:
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")
    slot_id = str(raw.get("id") or "").strip()
    if not slot_id:
        raise ValidationError(f"{where}.id is required")
    start = _parse_time(raw.get("start"), f"{where}.start")
    end = _parse_time(raw.get("end"), f"{where}.end")
    if end <= start:
        raise ValidationError(f"{where}.end must be after start")
    return SlotConfig(
        id=slot_id,
        label=str(raw.get("label") or f"{start:%H:%M} - {end:%H:%M}"),
        start=start,
        end=end,
        capacity=_parse_non_negative_int(raw.get("capacity", 0), f"{where}.capacity"),
        enabled=bool(raw.get("enabled", True)),
    )


def _parse_template(raw: Any, where: str) -> WeekdayTemplate:
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")
    raw_slots = raw.get("slots") or []
    if not isinstance(raw_slots, list):
        raise ValidationError(f"{where}.slots must be a list")
    slots = tuple(_parse_slot(s, f"{where}.slots[{i}]") for i, s in enumerate(raw_slots))
    ids = [s.id for s in slots]
    if len(ids) != len(set(ids)):
        raise ValidationError(f"{where}.slots has duplicate slot ids")
    return WeekdayTemplate(
        open=bool(raw.get("open", False)),
        daily_capacity=_parse_non_negative_int(raw.get("daily_capacity", 0), f"{where}.daily_capacity"),
        slots=slots,
    )


def _parse_modes(raw_modes: Any) -> dict[str, ModeConfig]:
    if not isinstance(raw_modes, dict):
        raise ValidationError("modes must be an object")
    modes: dict[str, ModeConfig] = {}
    for mode in MODES:
        raw_mode = raw_modes.get(mode)
        if raw_mode is None:
            raise ValidationError(f"modes.{mode} is required")
        if not isinstance(raw_mode, dict):
            raise ValidationError(f"modes.{mode} must be an object")
        raw_templates = raw_mode.get("weekday_templates") or {}
        if not isinstance(raw_templates, dict):
            raise ValidationError(f"modes.{mode}.weekday_templates must be an object")
        missing = [k for k in WEEKDAY_KEYS if k not in raw_templates]
        if missing:
            raise ValidationError(
                f"modes.{mode}.weekday_templates is missing weekdays: {', '.join(missing)}"
            )
        unknown = [k for k in raw_templates if k not in WEEKDAY_KEYS]
        if unknown:
            raise ValidationError(f"modes.{mode}.weekday_templates has unknown keys: {', '.join(unknown)}")
        modes[mode] = ModeConfig(
            enabled=bool(raw_mode.get("enabled", False)),
            weekday_templates={
                k: _parse_template(raw_templates[k], f"modes.{mode}.weekday_templates.{k}")
                for k in WEEKDAY_KEYS
            },
        )
    return modes


def _parse_cutoff(raw: Any) -> CutoffPolicy:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("cutoff_policy must be an object")
    cutoff_type = str(raw.get("type") or CUTOFF_DAY_BEFORE_AT).upper()
    if cutoff_type not in CUTOFF_TYPES:
        raise ValidationError(f"cutoff_policy.type must be one of {', '.join(CUTOFF_TYPES)}")
    if cutoff_type == CUTOFF_DAY_BEFORE_AT:
        raw_at = raw.get("day_before_at")
        return CutoffPolicy(
            type=cutoff_type,
            day_before_at=_parse_time(raw_at, "cutoff_policy.day_before_at") if raw_at else None,
        )
    return CutoffPolicy(
        type=cutoff_type,
        hours_before_slot=_parse_non_negative_int(
            raw.get("hours_before_slot", 0), "cutoff_policy.hours_before_slot"
        ),
    )


def _parse_closed_dates(raw: Any) -> frozenset[date]:
    if raw is None:
        return frozenset()
    if not isinstance(raw, list):
        raise ValidationError("closed_dates must be a list of YYYY-MM-DD strings")
    days = set()
    for value in raw:
        try:
            days.add(parse_iso_date(value))
        except ValueError:
            raise ValidationError(f"closed_dates contains an invalid date: {value!r}")
    return frozenset(days)


def _check_timezone(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("timezone is required")
    try:
        ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")
    return name.strip()


def parse_delivery_config(payload: Any, *, version: int = 0) -> DeliveryConfig:
    """Validate a raw config document and build the immutable value."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    max_advance = payload.get("max_advance_days", 14)
    max_advance = _parse_non_negative_int(max_advance, "max_advance_days")
    if max_advance > MAX_ADVANCE_DAYS_LIMIT:
        raise ValidationError(f"max_advance_days cannot exceed {MAX_ADVANCE_DAYS_LIMIT}")

    return DeliveryConfig(
        timezone=_check_timezone(payload.get("timezone", "America/Porto_Velho")),
        max_advance_days=max_advance,
        cutoff_policy=_parse_cutoff(payload.get("cutoff_policy")),
        modes=_parse_modes(payload.get("modes")),
        closed_dates=_parse_closed_dates(payload.get("closed_dates")),
        notes_for_customer=payload.get("notes_for_customer"),
        version=version,
    )


def config_from_row(row: DeliverySettings) -> DeliveryConfig:
    return parse_delivery_config(row.to_dict(), version=row.version_id)


def load_delivery_config() -> DeliveryConfig:
    """
    Load the current configuration.

    Raises ConfigMissingError when no configuration has been saved; the whole
    scheduling surface is unavailable rather than guessing defaults.
    """
    row = db.session.get(DeliverySettings, SETTINGS_ROW_ID)
    if row is None:
        raise ConfigMissingError("Delivery configuration has not been set up")
    return config_from_row(row)


def save_delivery_config(payload: Any, *, actor: str | None = None) -> DeliveryConfig:
    """Validate and persist a full configuration document. Bumps the version."""
    config = parse_delivery_config(payload)
    doc = config.to_dict()

    def _op():
        row = db.session.get(DeliverySettings, SETTINGS_ROW_ID)
        if row is None:
            row = DeliverySettings(id=SETTINGS_ROW_ID)
            db.session.add(row)

        row.timezone = doc["timezone"]
        row.max_advance_days = doc["max_advance_days"]
        row.cutoff_type = doc["cutoff_policy"]["type"]
        row.cutoff_day_before_at = doc["cutoff_policy"]["day_before_at"]
        row.cutoff_hours_before_slot = doc["cutoff_policy"]["hours_before_slot"]
        row.modes = doc["modes"]
        row.closed_dates = doc["closed_dates"]
        row.notes_for_customer = doc["notes_for_customer"]
        db.session.flush()

        append_ledger_event(
            event_type="schedule.config_saved",
            entity_type="delivery_settings",
            entity_id=str(SETTINGS_ROW_ID),
            actor=actor,
            payload={"version": row.version_id},
        )
        return config_from_row(row)

    saved = run_transaction(_op, label="save_delivery_config")
    current_app.logger.info("Delivery config saved (version %s)", saved.version)
    return saved


def default_config_payload() -> dict:
    """Starter configuration used by `flask schedule seed-config`."""
    slots = [
        {"id": "morning", "label": "Morning (09h - 12h)", "start": "09:00", "end": "12:00", "capacity": 8, "enabled": True},
        {"id": "afternoon", "label": "Afternoon (13h - 17h)", "start": "13:00", "end": "17:00", "capacity": 10, "enabled": True},
        {"id": "evening", "label": "Evening (18h - 20h)", "start": "18:00", "end": "20:00", "capacity": 5, "enabled": True},
    ]
    open_day = {"open": True, "daily_capacity": 20, "slots": slots}
    closed_day = {"open": False, "daily_capacity": 0, "slots": slots}
    templates = {k: (closed_day if k == "sun" else open_day) for k in WEEKDAY_KEYS}
    return {
        "timezone": "America/Porto_Velho",
        "max_advance_days": 14,
        "cutoff_policy": {"type": CUTOFF_DAY_BEFORE_AT, "day_before_at": "16:00"},
        "modes": {
            MODE_DELIVERY: {"enabled": True, "weekday_templates": templates},
            MODE_PICKUP: {"enabled": True, "weekday_templates": templates},
        },
        "closed_dates": [],
        "notes_for_customer": None,
    }
