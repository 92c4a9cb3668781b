from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog entry.

    KIND:
    - PRODUCT: sellable item with per-variant stock (e.g. "300ml", "500ml")
    - BUNDLE: combo priced as a unit; a single "default" variant, no stock tracking
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_kind_active", "kind", "is_active"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default="PRODUCT")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "ProductVariant",
        backref=db.backref("product", lazy=True),
        lazy=True,
        order_by="ProductVariant.variant_key",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def tracks_stock(self) -> bool:
        return self.kind == "PRODUCT"

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "is_active": self.is_active,
            "variants": [v.to_dict() for v in self.variants],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """
    Priced size/variant of a product; carries the stock counter.

    stock_qty is derived state: it only changes in the same transaction as an
    InventoryMovement row recording the delta.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "variant_key", name="uq_product_variants_product_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    variant_key = db.Column(db.String(32), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    stock_qty = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductVariant product_id={self.product_id!r} key={self.variant_key!r} stock={self.stock_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_key": self.variant_key,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "stock_qty": self.stock_qty,
            "version_id": self.version_id,
        }


class InventoryMovement(db.Model):
    """
    Append-only stock ledger.

    TYPES:
    - IN: stock credited (receiving, cancellation reversal)
    - OUT: stock debited (payment confirmation, manual removal)
    - ADJUST: absolute correction; quantity is the new level
    - RESERVE / RELEASE: soft holds (not produced by the current order flow)

    quantity_delta is the signed effect on stock_qty, so the net effect of any
    subset of movements is SUM(quantity_delta).
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_variant", "product_id", "variant_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False)
    variant_key = db.Column(db.String(32), nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement id={self.id} product_id={self.product_id!r} "
            f"type={self.type} delta={self.quantity_delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_key": self.variant_key,
            "type": self.type,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }
