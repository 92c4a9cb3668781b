from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer aggregate keyed by normalized phone number (digits only).

    Denormalized aggregates (order_count, lifetime_value_cents) are updated
    in the same transaction as the order write that changes them.

    HOT ROW: frequent repeat customers serialize on this row. Accepted.
    """
    __tablename__ = "customers"

    phone = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    order_count = db.Column(db.Integer, nullable=False, default=0)
    lifetime_value_cents = db.Column(db.Integer, nullable=False, default=0)
    eco_points = db.Column(db.Integer, nullable=False, default=0)
    is_subscriber = db.Column(db.Boolean, nullable=False, default=False)

    # Most recent first, capped by CUSTOMER_ADDRESS_HISTORY_LIMIT
    addresses = db.Column(db.JSON, nullable=False, default=list)
    last_order_at = db.Column(db.DateTime(timezone=True), nullable=True)

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
        return f"<Customer phone={self.phone!r} orders={self.order_count}>"

    def to_dict(self) -> dict:
        return {
            "phone": self.phone,
            "name": self.name,
            "email": self.email,
            "order_count": self.order_count,
            "lifetime_value_cents": self.lifetime_value_cents,
            "eco_points": self.eco_points,
            "is_subscriber": self.is_subscriber,
            "addresses": self.addresses or [],
            "last_order_at": to_utc_z(self.last_order_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
