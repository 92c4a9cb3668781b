from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class Order(db.Model):
    """
    Order document.

    LIFECYCLE:
        NEW -> CONFIRMED -> PAID -> IN_PRODUCTION -> OUT_FOR_DELIVERY -> DELIVERED
        CANCELED is reachable from any non-terminal status.

    NEW orders are drafts bound to a browser session (token_hash). They only
    exist once a slot has been reserved or checkout has run.

    items/pricing/customer are snapshots taken at checkout and are not
    recomputed from the catalog afterwards.

    stock_debited is the guard for inventory effects: mark-paid sets it,
    cancellation credits stock back only when it is set.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_schedule", "delivery_mode", "schedule_date", "schedule_slot_id"),
        db.Index("ix_orders_hold_expiry", "reservation_status", "reservation_expires_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    short_id = db.Column(db.String(16), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, default="NEW", index=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    pricing = db.Column(db.JSON, nullable=False, default=dict)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_phone = db.Column(db.String(32), nullable=True, index=True)
    customer = db.Column(db.JSON, nullable=False, default=dict)

    # DELIVERY | PICKUP
    delivery_mode = db.Column(db.String(16), nullable=False, default="DELIVERY")
    schedule_date = db.Column(db.Date, nullable=True)
    schedule_slot_id = db.Column(db.String(64), nullable=True)
    schedule_slot_label = db.Column(db.String(128), nullable=True)
    # HELD | RELEASED | None
    reservation_status = db.Column(db.String(16), nullable=True)
    reserved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Draft holds lapse at this instant (naive UTC); cleared once the order is confirmed
    reservation_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    bottles_to_return = db.Column(db.Integer, nullable=False, default=0)
    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    # sha256 of the session token; never the token itself
    token_hash = db.Column(db.String(64), nullable=True)
    token_revoked = db.Column(db.Boolean, nullable=False, default=False)

    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)
    payment_method = db.Column(db.String(32), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_debited = db.Column(db.Boolean, nullable=False, default=False)

    eco_points_awarded = db.Column(db.Boolean, nullable=False, default=False)
    eco_points_earned = db.Column(db.Integer, nullable=False, default=0)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_by = db.Column(db.String(64), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    last_status_update_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id!r} status={self.status}>"

    def schedule_dict(self) -> dict:
        return {
            "date": self.schedule_date.isoformat() if self.schedule_date else None,
            "slot_id": self.schedule_slot_id,
            "slot_label": self.schedule_slot_label,
            "reservation_status": self.reservation_status,
            "expires_at": to_utc_z(self.reservation_expires_at),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "short_id": self.short_id,
            "status": self.status,
            "items": self.items or [],
            "pricing": self.pricing or {},
            "total_cents": self.total_cents,
            "customer": self.customer or {},
            "delivery_mode": self.delivery_mode,
            "schedule": self.schedule_dict(),
            "notes": self.notes,
            "bottles_to_return": self.bottles_to_return,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "paid_at": to_utc_z(self.paid_at),
            "stock_debited": self.stock_debited,
            "eco_points_earned": self.eco_points_earned,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "canceled_at": to_utc_z(self.canceled_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
