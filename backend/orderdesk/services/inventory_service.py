# Overview: Service-layer operations for inventory; stock debits/credits with an append-only movement ledger.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryMovement, Order, ProductVariant
from .catalog_service import get_variant_for_update
from .concurrency import run_transaction
from .errors import InsufficientStockError, NotFoundError, ValidationError
from .ledger_service import append_ledger_event
"""
Inventory Invariants (authoritative)

Inventory model:
- ProductVariant.stock_qty is the live level; every change to it is written in
  the same DB transaction as exactly one InventoryMovement row.
- InventoryMovement.quantity_delta is the signed effect on stock_qty, so the
  net effect of any set of movements is SUM(quantity_delta).
- Only PRODUCT variants track stock. Bundle lines never move inventory.

Order effects:
- Stock is debited when an order is marked paid (OUT, negative delta).
- Cancelling a debited order credits back exactly the order's net debit (IN,
  positive delta), so the order's movements always net to zero afterwards.
- stock_debited on the order is the guard that makes both sides run once.

Business invariants:
- stock_qty never goes negative; a shortfall raises InsufficientStockError
  and nothing is written.
"""

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
ADMIN_MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST)


def stock_lines_for_items(items: list[dict] | None) -> dict[tuple[str, str], int]:
    """Aggregate stock-tracked quantities per (product_id, variant_key) from an order item snapshot."""
    needs: dict[tuple[str, str], int] = {}
    for item in items or []:
        if item.get("kind", "PRODUCT") != "PRODUCT":
            continue
        key = (item["product_id"], item["variant_key"])
        needs[key] = needs.get(key, 0) + int(item["quantity"])
    return needs


def _movement(
    variant: ProductVariant | None,
    product_id: str,
    variant_key: str,
    movement_type: str,
    quantity: int,
    delta: int,
    reason: str | None,
    order_id: str | None = None,
) -> InventoryMovement:
    if variant is not None:
        variant.stock_qty = (variant.stock_qty or 0) + delta
    mv = InventoryMovement(
        product_id=product_id,
        variant_key=variant_key,
        type=movement_type,
        quantity=quantity,
        quantity_delta=delta,
        reason=reason[:255] if reason else reason,
        order_id=order_id,
    )
    db.session.add(mv)
    return mv


def debit_for_order(order: Order) -> list[InventoryMovement]:
    """
    Debit stock for every stock-tracked line of the order.
    Caller owns the transaction; all reads happen before any write.
    """
    needs = stock_lines_for_items(order.items)

    variants = {}
    shortages = []
    for (product_id, variant_key), qty in sorted(needs.items()):
        variant = get_variant_for_update(product_id, variant_key)
        available = variant.stock_qty if variant is not None else 0
        if available < qty:
            shortages.append({
                "product_id": product_id,
                "variant_key": variant_key,
                "requested": qty,
                "available": available,
            })
        variants[(product_id, variant_key)] = variant

    if shortages:
        raise InsufficientStockError(
            "Insufficient stock to confirm payment",
            details={"order_id": order.id, "shortages": shortages},
        )

    return [
        _movement(
            variants[key], key[0], key[1], MOVEMENT_OUT, qty, -qty,
            f"Order {order.short_id} paid", order.id,
        )
        for key, qty in sorted(needs.items())
    ]


def net_movement_for_order(order_id: str) -> dict[tuple[str, str], int]:
    rows = (
        db.session.query(
            InventoryMovement.product_id,
            InventoryMovement.variant_key,
            func.coalesce(func.sum(InventoryMovement.quantity_delta), 0),
        )
        .filter(InventoryMovement.order_id == order_id)
        .group_by(InventoryMovement.product_id, InventoryMovement.variant_key)
        .all()
    )
    return {(pid, vk): int(total) for pid, vk, total in rows}


def credit_for_order(order: Order, reason: str | None) -> list[InventoryMovement]:
    """
    Reverse the order's net debit. Caller owns the transaction.
    """
    outstanding = {k: -v for k, v in net_movement_for_order(order.id).items() if v < 0}

    locked = {key: get_variant_for_update(*key) for key in sorted(outstanding)}

    movements = []
    for key, qty in sorted(outstanding.items()):
        variant = locked[key]
        if variant is None:
            current_app.logger.warning(
                "Crediting order %s: variant %s/%s no longer exists", order.id, key[0], key[1]
            )
        movements.append(
            _movement(variant, key[0], key[1], MOVEMENT_IN, qty, qty, f"Cancellation: {reason or 'no reason'}", order.id)
        )
    return movements


@dataclass(frozen=True)
class StockAdjustment:
    variant: ProductVariant
    movement: InventoryMovement

    def to_dict(self) -> dict:
        return {"variant": self.variant.to_dict(), "movement": self.movement.to_dict()}


def adjust_stock(
    product_id: str,
    variant_key: str,
    movement_type: str,
    quantity,
    reason: str | None = None,
    *,
    actor: str | None = None,
) -> StockAdjustment:
    """
    Manual stock change.

    IN adds quantity, OUT removes it (never below zero), ADJUST sets the level
    to quantity. Each writes one movement carrying the signed delta.
    """
    movement_type = str(movement_type or "").strip().upper()
    if movement_type not in ADMIN_MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of {', '.join(ADMIN_MOVEMENT_TYPES)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")
    if movement_type != MOVEMENT_ADJUST and quantity == 0:
        raise ValidationError("quantity must be positive")

    def _op():
        variant = get_variant_for_update(product_id, variant_key)
        if variant is None:
            raise NotFoundError(
                "Product variant not found",
                details={"product_id": product_id, "variant_key": variant_key},
            )
        if not variant.product.tracks_stock:
            raise ValidationError("This product does not track stock")

        current = variant.stock_qty or 0
        if movement_type == MOVEMENT_IN:
            delta = quantity
        elif movement_type == MOVEMENT_OUT:
            if current < quantity:
                raise InsufficientStockError(
                    "Insufficient stock",
                    details={"requested": quantity, "available": current},
                )
            delta = -quantity
        else:
            delta = quantity - current

        mv = _movement(variant, product_id, variant_key, movement_type, quantity, delta, reason)
        db.session.flush()
        append_ledger_event(
            event_type="inventory.adjusted",
            entity_type="product_variant",
            entity_id=f"{product_id}:{variant_key}",
            actor=actor,
            note=reason,
            payload={"type": movement_type, "quantity": quantity, "delta": delta, "movement_id": mv.id},
        )
        return StockAdjustment(variant=variant, movement=mv)

    result = run_transaction(_op, label="adjust_stock")
    current_app.logger.info(
        "Stock %s %s/%s qty=%s", movement_type, product_id, variant_key, quantity
    )
    return result


def list_movements(
    *,
    product_id: str | None = None,
    order_id: str | None = None,
    limit: int = 200,
) -> list[InventoryMovement]:
    q = db.session.query(InventoryMovement)
    if product_id:
        q = q.filter(InventoryMovement.product_id == product_id)
    if order_id:
        q = q.filter(InventoryMovement.order_id == order_id)
    return q.order_by(InventoryMovement.id.desc()).limit(max(1, min(limit, 1000))).all()
