# Overview: Catalog snapshot loader; resolves product/bundle ids to price and stock metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Product, ProductVariant
from .concurrency import lock_for_update

BUNDLE_VARIANT_KEY = "default"


@dataclass(frozen=True)
class CatalogVariant:
    variant_key: str
    price_cents: int
    active: bool
    stock_qty: int

    def to_dict(self) -> dict:
        return {
            "price_cents": self.price_cents,
            "active": self.active,
            "stock_qty": self.stock_qty,
        }


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    name: str
    kind: str
    active: bool
    variants: dict[str, CatalogVariant] = field(default_factory=dict)

    @property
    def tracks_stock(self) -> bool:
        return self.kind == "PRODUCT"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "active": self.active,
            "variants": {k: v.to_dict() for k, v in self.variants.items()},
        }


def load_catalog_snapshot(product_ids: Iterable[str]) -> dict[str, CatalogProduct]:
    """
    Read-only snapshot of the requested catalog entries, keyed by id.

    Missing ids are omitted; callers treat omission as an unresolvable line.
    Taken before the checkout transaction starts: prices are not re-read
    inside it.
    """
    ids = sorted({str(pid) for pid in product_ids if pid})
    if not ids:
        return {}

    rows = (
        db.session.query(Product)
        .options(selectinload(Product.variants))
        .filter(Product.id.in_(ids))
        .all()
    )
    return {p.id: _snapshot(p) for p in rows}


def _snapshot(product: Product) -> CatalogProduct:
    return CatalogProduct(
        id=product.id,
        name=product.name,
        kind=product.kind,
        active=bool(product.is_active),
        variants={
            v.variant_key: CatalogVariant(
                variant_key=v.variant_key,
                price_cents=v.price_cents,
                active=bool(v.is_active),
                stock_qty=v.stock_qty or 0,
            )
            for v in product.variants
        },
    )


def get_variant_for_update(product_id: str, variant_key: str) -> ProductVariant | None:
    q = db.session.query(ProductVariant).filter_by(product_id=product_id, variant_key=variant_key)
    return lock_for_update(q).first()


def seed_catalog(entries: list[dict]) -> int:
    """
    Insert catalog entries that do not exist yet. Existing products are left
    untouched. Returns the number of products created. Caller commits.
    """
    created = 0
    for entry in entries:
        if db.session.get(Product, entry["id"]) is not None:
            continue
        product = Product(
            id=entry["id"],
            name=entry["name"],
            kind=entry.get("kind", "PRODUCT"),
            is_active=entry.get("is_active", True),
        )
        db.session.add(product)
        for key, variant in entry.get("variants", {}).items():
            db.session.add(
                ProductVariant(
                    product_id=product.id,
                    variant_key=key,
                    price_cents=variant["price_cents"],
                    is_active=variant.get("is_active", True),
                    stock_qty=variant.get("stock_qty", 0),
                )
            )
        created += 1
    db.session.flush()
    return created


SAMPLE_CATALOG = [
    {
        "id": "orange-juice",
        "name": "Orange Juice",
        "kind": "PRODUCT",
        "variants": {
            "300ml": {"price_cents": 800, "stock_qty": 40},
            "500ml": {"price_cents": 1200, "stock_qty": 40},
            "1l": {"price_cents": 2000, "stock_qty": 20},
        },
    },
    {
        "id": "green-detox",
        "name": "Green Detox",
        "kind": "PRODUCT",
        "variants": {
            "300ml": {"price_cents": 1000, "stock_qty": 30},
            "500ml": {"price_cents": 1500, "stock_qty": 30},
        },
    },
    {
        "id": "coconut-water",
        "name": "Coconut Water",
        "kind": "PRODUCT",
        "variants": {
            "300ml": {"price_cents": 700, "stock_qty": 50},
            "500ml": {"price_cents": 1100, "stock_qty": 50},
        },
    },
    {
        "id": "weekly-detox-kit",
        "name": "Weekly Detox Kit",
        "kind": "BUNDLE",
        "variants": {
            BUNDLE_VARIANT_KEY: {"price_cents": 9900, "stock_qty": 0},
        },
    },
]
