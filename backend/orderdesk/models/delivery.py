from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class DeliverySettings(db.Model):
    """
    Singleton delivery configuration (weekly templates, cutoff policy, closed dates).

    The row is parsed into an immutable DeliveryConfig value by
    delivery_config_service before any scheduling decision is made; nothing
    reads these columns directly.

    VERSIONING: version_id is the optimistic-lock column and doubles as the
    public config version. Every save increments it.
    """
    __tablename__ = "delivery_settings"

    id = db.Column(db.Integer, primary_key=True)

    timezone = db.Column(db.String(64), nullable=False, default="America/Porto_Velho")
    max_advance_days = db.Column(db.Integer, nullable=False, default=14)

    # DAY_BEFORE_AT | HOURS_BEFORE_SLOT_START
    cutoff_type = db.Column(db.String(32), nullable=False, default="DAY_BEFORE_AT")
    cutoff_day_before_at = db.Column(db.String(5), nullable=True)  # "HH:MM"
    cutoff_hours_before_slot = db.Column(db.Integer, nullable=True)

    # {"DELIVERY": {"enabled": bool, "weekday_templates": {"mon": {...}, ...}}, "PICKUP": {...}}
    modes = db.Column(db.JSON, nullable=False, default=dict)
    closed_dates = db.Column(db.JSON, nullable=False, default=list)
    notes_for_customer = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DeliverySettings id={self.id} version={self.version_id}>"

    def to_dict(self) -> dict:
        return {
            "version": self.version_id,
            "timezone": self.timezone,
            "max_advance_days": self.max_advance_days,
            "cutoff_policy": {
                "type": self.cutoff_type,
                "day_before_at": self.cutoff_day_before_at,
                "hours_before_slot": self.cutoff_hours_before_slot,
            },
            "modes": self.modes,
            "closed_dates": list(self.closed_dates or []),
            "notes_for_customer": self.notes_for_customer,
            "updated_at": to_utc_z(self.updated_at),
        }


class DayCounter(db.Model):
    """
    Mutable booking counters and per-date overrides for one (date, mode).

    KEY: "{YYYY-MM-DD}_{MODE}", created lazily on the first booking or
    override. Rows are never deleted.

    slots JSON shape:
        {slot_id: {"booked": int, "capacity_snapshot": int | None,
                   "enabled_snapshot": bool | None, "label_snapshot": str | None}}

    JSON columns are always reassigned (never mutated in place) so the change
    is flushed and version_id is bumped.
    """
    __tablename__ = "day_counters"
    __table_args__ = (
        db.Index("ix_day_counters_mode_date", "mode", "date"),
    )

    key = db.Column(db.String(32), primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    mode = db.Column(db.String(16), nullable=False)

    daily_booked = db.Column(db.Integer, nullable=False, default=0)
    slots = db.Column(db.JSON, nullable=False, default=dict)

    override_closed = db.Column(db.Boolean, nullable=True)
    override_daily_capacity = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @staticmethod
    def make_key(day, mode: str) -> str:
        return f"{day.isoformat()}_{mode}"

    def __repr__(self) -> str:
        return f"<DayCounter key={self.key!r} daily_booked={self.daily_booked}>"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "date": self.date.isoformat(),
            "mode": self.mode,
            "daily_booked": self.daily_booked,
            "slots": self.slots or {},
            "override_closed": self.override_closed,
            "override_daily_capacity": self.override_daily_capacity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
