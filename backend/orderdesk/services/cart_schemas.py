# Overview: Boundary schemas for checkout payloads; tagged cart lines, customer info and schedule selection.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Union

from orderdesk.time_utils import parse_iso_date
from .catalog_service import BUNDLE_VARIANT_KEY
from .delivery_config_service import MODE_DELIVERY, MODE_PICKUP, normalize_mode
from .errors import ValidationError

"""
Cart Line Invariants (authoritative)

- Every line carries an explicit "type" tag: PRODUCT | PACK | BUNDLE.
  The tag is resolved here, once; nothing downstream inspects line shape.
- Quantities are positive integers.
- PACK lines expand to component PRODUCT lines (quantity = component x pack).
- BUNDLE lines always price the "default" variant.
"""

LINE_PRODUCT = "PRODUCT"
LINE_PACK = "PACK"
LINE_BUNDLE = "BUNDLE"
LINE_TYPES = (LINE_PRODUCT, LINE_PACK, LINE_BUNDLE)

MAX_LINES = 100
MAX_LINE_QUANTITY = 999
MIN_ADDRESS_LENGTH = 5

DELIVERY_METHODS = {"delivery": MODE_DELIVERY, "pickup": MODE_PICKUP}


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_quantity(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        else:
            raise ValidationError(f"{where}.quantity must be a positive integer")
    if value < 1 or value > MAX_LINE_QUANTITY:
        raise ValidationError(f"{where}.quantity must be between 1 and {MAX_LINE_QUANTITY}")
    return value


@dataclass(frozen=True)
class ProductLine:
    product_id: str
    variant_key: str
    quantity: int
    type: str = LINE_PRODUCT


@dataclass(frozen=True)
class PackComponent:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class PackLine:
    variant_key: str
    quantity: int
    items: tuple[PackComponent, ...]
    type: str = LINE_PACK

    def expand(self) -> list[ProductLine]:
        return [
            ProductLine(
                product_id=c.product_id,
                variant_key=self.variant_key,
                quantity=c.quantity * self.quantity,
            )
            for c in self.items
        ]


@dataclass(frozen=True)
class BundleLine:
    bundle_id: str
    quantity: int
    type: str = LINE_BUNDLE


CartLine = Union[ProductLine, PackLine, BundleLine]


@dataclass(frozen=True)
class PricedLineRef:
    """A resolvable (product, variant, quantity) reference, flattened from any tagged line."""
    product_id: str
    variant_key: str
    quantity: int
    source: str


def parse_cart_line(raw: Any, index: int) -> CartLine:
    where = f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")

    tag = str(raw.get("type") or "").strip().upper()
    if tag not in LINE_TYPES:
        raise ValidationError(
            f"{where}.type must be one of {', '.join(LINE_TYPES)}",
            details={"index": index, "type": raw.get("type")},
        )

    quantity = _to_quantity(raw.get("quantity"), where)

    if tag == LINE_PRODUCT:
        product_id = _to_text(raw.get("product_id"))
        variant_key = _to_text(raw.get("variant_key"))
        if not product_id:
            raise ValidationError(f"{where}.product_id is required")
        if not variant_key:
            raise ValidationError(f"{where}.variant_key is required")
        return ProductLine(product_id=product_id, variant_key=variant_key, quantity=quantity)

    if tag == LINE_PACK:
        variant_key = _to_text(raw.get("variant_key"))
        if not variant_key:
            raise ValidationError(f"{where}.variant_key is required")
        raw_items = raw.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise ValidationError(f"{where}.items must be a non-empty list")
        components = []
        for j, comp in enumerate(raw_items):
            if not isinstance(comp, dict):
                raise ValidationError(f"{where}.items[{j}] must be an object")
            product_id = _to_text(comp.get("product_id"))
            if not product_id:
                raise ValidationError(f"{where}.items[{j}].product_id is required")
            components.append(
                PackComponent(product_id=product_id, quantity=_to_quantity(comp.get("quantity"), f"{where}.items[{j}]"))
            )
        return PackLine(variant_key=variant_key, quantity=quantity, items=tuple(components))

    bundle_id = _to_text(raw.get("bundle_id"))
    if not bundle_id:
        raise ValidationError(f"{where}.bundle_id is required")
    return BundleLine(bundle_id=bundle_id, quantity=quantity)


def parse_cart_lines(raw_items: Any) -> list[CartLine]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_LINES:
        raise ValidationError(f"A cart cannot have more than {MAX_LINES} lines")
    return [parse_cart_line(raw, i) for i, raw in enumerate(raw_items)]


def flatten_lines(lines: list[CartLine]) -> list[PricedLineRef]:
    refs: list[PricedLineRef] = []
    for line in lines:
        if isinstance(line, ProductLine):
            refs.append(PricedLineRef(line.product_id, line.variant_key, line.quantity, LINE_PRODUCT))
        elif isinstance(line, PackLine):
            for comp in line.expand():
                refs.append(PricedLineRef(comp.product_id, comp.variant_key, comp.quantity, LINE_PACK))
        else:
            refs.append(PricedLineRef(line.bundle_id, BUNDLE_VARIANT_KEY, line.quantity, LINE_BUNDLE))
    return refs


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    phone: str
    email: str | None
    delivery_method: str
    address: str | None
    address_number: str | None = None
    complement: str | None = None
    neighborhood: str | None = None

    @property
    def mode(self) -> str:
        return DELIVERY_METHODS[self.delivery_method]

    def address_entry(self) -> dict | None:
        if not self.address:
            return None
        return {
            "address": self.address,
            "number": self.address_number,
            "complement": self.complement,
            "neighborhood": self.neighborhood,
        }

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "delivery_method": self.delivery_method,
            "address": self.address,
            "address_number": self.address_number,
            "complement": self.complement,
            "neighborhood": self.neighborhood,
        }


def parse_customer(raw: Any) -> CustomerInfo:
    if not isinstance(raw, dict):
        raise ValidationError("customer is required")

    name = _to_text(raw.get("name"))
    phone = _to_text(raw.get("phone"))
    if not name:
        raise ValidationError("customer.name is required")
    if not phone:
        raise ValidationError("customer.phone is required")

    method = (_to_text(raw.get("delivery_method")) or "delivery").lower()
    if method not in DELIVERY_METHODS:
        raise ValidationError("customer.delivery_method must be 'delivery' or 'pickup'")

    address = _to_text(raw.get("address"))
    if method == "delivery" and (not address or len(address) < MIN_ADDRESS_LENGTH):
        raise ValidationError(
            f"customer.address is required for delivery (at least {MIN_ADDRESS_LENGTH} characters)"
        )

    return CustomerInfo(
        name=name[:128],
        phone=phone,
        email=_to_text(raw.get("email")),
        delivery_method=method,
        address=address,
        address_number=_to_text(raw.get("address_number")),
        complement=_to_text(raw.get("complement")),
        neighborhood=_to_text(raw.get("neighborhood")),
    )


@dataclass(frozen=True)
class ScheduleSelection:
    date: date
    mode: str
    slot_id: str


def parse_schedule(raw: Any, default_mode: str) -> ScheduleSelection | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("schedule must be an object")
    if not raw.get("date") and not raw.get("slot_id"):
        return None
    try:
        day = parse_iso_date(raw.get("date"))
    except ValueError:
        raise ValidationError("schedule.date must be YYYY-MM-DD")
    slot_id = _to_text(raw.get("slot_id"))
    if not slot_id:
        raise ValidationError("schedule.slot_id is required")
    mode = normalize_mode(raw.get("mode") or default_mode)
    if mode != default_mode:
        raise ValidationError("schedule.mode does not match customer.delivery_method")
    return ScheduleSelection(date=day, mode=mode, slot_id=slot_id)


@dataclass(frozen=True)
class CheckoutRequest:
    lines: tuple[CartLine, ...]
    customer: CustomerInfo
    schedule: ScheduleSelection | None
    notes: str | None
    bottles_to_return: int
    idempotency_key: str | None


def parse_checkout_payload(payload: Any) -> CheckoutRequest:
    """Validate the whole checkout body. Raises ValidationError on the first problem."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    lines = parse_cart_lines(payload.get("items"))
    customer = parse_customer(payload.get("customer"))
    schedule = parse_schedule(payload.get("schedule"), customer.mode)

    bottles = payload.get("bottles_to_return", 0) or 0
    if isinstance(bottles, bool) or not isinstance(bottles, int) or bottles < 0:
        raise ValidationError("bottles_to_return must be a non-negative integer")

    idempotency_key = _to_text(payload.get("idempotency_key"))
    if idempotency_key and len(idempotency_key) > 128:
        raise ValidationError("idempotency_key is too long")

    notes = _to_text(payload.get("notes"))

    return CheckoutRequest(
        lines=tuple(lines),
        customer=customer,
        schedule=schedule,
        notes=notes[:2000] if notes else None,
        bottles_to_return=bottles,
        idempotency_key=idempotency_key,
    )
