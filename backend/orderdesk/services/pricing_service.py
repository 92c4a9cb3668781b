# Overview: Pricing calculator; resolves cart lines against a catalog snapshot into item snapshots and totals.

from __future__ import annotations

from dataclasses import dataclass, field

from .cart_schemas import CartLine, flatten_lines
from .catalog_service import CatalogProduct

"""
Pricing Invariants (authoritative)

- All money is integer cents.
- line_total = unit_price_cents * quantity; subtotal = sum(line_total).
- total = max(0, subtotal + shipping - discount).
- Pure: operates on a pre-transaction catalog snapshot and never reads the DB.
- Every unresolvable line (unknown id, inactive product, unknown or inactive
  variant) is reported; a result with errors must not be persisted.
"""


@dataclass(frozen=True)
class PricedItem:
    product_id: str
    name: str
    kind: str
    variant_key: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    source: str

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "kind": self.kind,
            "variant_key": self.variant_key,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "source": self.source,
        }


@dataclass(frozen=True)
class OrderPricing:
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


@dataclass
class CalculationResult:
    items: list[PricedItem] = field(default_factory=list)
    pricing: OrderPricing | None = None
    errors: list[dict] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and self.pricing is not None


def calculate_order(
    lines: list[CartLine] | tuple[CartLine, ...],
    catalog: dict[str, CatalogProduct],
    *,
    shipping_cents: int = 0,
    discount_cents: int = 0,
) -> CalculationResult:
    result = CalculationResult()

    for ref in flatten_lines(list(lines)):
        product = catalog.get(ref.product_id)
        if product is None or not product.active:
            result.errors.append({"product_id": ref.product_id, "error": "Product not found or inactive"})
            continue
        variant = product.variants.get(ref.variant_key)
        if variant is None or not variant.active:
            result.errors.append({
                "product_id": ref.product_id,
                "variant_key": ref.variant_key,
                "error": "Variant not found or inactive",
            })
            continue

        result.items.append(
            PricedItem(
                product_id=product.id,
                name=product.name,
                kind=product.kind,
                variant_key=ref.variant_key,
                quantity=ref.quantity,
                unit_price_cents=variant.price_cents,
                line_total_cents=variant.price_cents * ref.quantity,
                source=ref.source,
            )
        )

    if result.errors:
        return result

    subtotal = sum(item.line_total_cents for item in result.items)
    result.pricing = OrderPricing(
        subtotal_cents=subtotal,
        shipping_cents=shipping_cents,
        discount_cents=discount_cents,
        total_cents=max(0, subtotal + shipping_cents - discount_cents),
    )
    return result
