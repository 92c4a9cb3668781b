# Overview: Service-layer operations for checkout; prices the cart and confirms the order in one transaction.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import Order
from orderdesk.time_utils import aware_utcnow, ensure_aware, utcnow
from .cart_schemas import flatten_lines, parse_checkout_payload
from .catalog_service import load_catalog_snapshot
from .concurrency import lock_for_update, run_transaction
from .customer_service import normalize_phone, upsert_customer_for_order
from .delivery_config_service import load_delivery_config
from .errors import SlotClosedError, UnauthorizedError, ValidationError
from .ledger_service import append_ledger_event
from .order_binding_service import OrderBinding, binding_matches, mint_binding
from .pricing_service import calculate_order
from .reservation_service import HELD, hold_slot, new_draft_order

"""
Checkout Invariants (authoritative)

Outside the transaction (may fail freely, nothing written yet):
- payload validation, catalog snapshot, pricing. Any unresolvable line is a
  ValidationError.

Inside ONE transaction (run_transaction, re-runnable):
1. idempotency_key already used            -> no-op, return that order
   (only to the session bound to it, else UnauthorizedError)
2. bound order exists, token hash differs  -> UnauthorizedError
3. bound order already past NEW            -> no-op, return it unchanged
4. customer aggregate upsert
5. schedule reconcile: same hold -> keep; new selection -> book/switch;
   no selection -> keep whatever is held
6. order write, status CONFIRMED

- A failure at any step leaves no order, customer or counter change behind.
- Checkout never touches stock; that happens at mark-paid.
- When no binding was presented, a fresh one is minted before the
  transaction and handed back so the boundary can set the cookie.
"""


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    short_id: str
    status: str
    pricing: dict
    schedule: dict
    no_op: bool
    binding: OrderBinding | None = None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "short_id": self.short_id,
            "status": self.status,
            "pricing": self.pricing,
            "schedule": self.schedule,
            "no_op": self.no_op,
        }


def _result(order: Order, *, no_op: bool) -> CheckoutResult:
    return CheckoutResult(
        order_id=order.id,
        short_id=order.short_id,
        status=order.status,
        pricing=dict(order.pricing or {}),
        schedule=order.schedule_dict(),
        no_op=no_op,
    )


def checkout(
    payload: Any,
    binding: OrderBinding | None,
    *,
    now: datetime | None = None,
) -> CheckoutResult:
    req = parse_checkout_payload(payload)
    phone = normalize_phone(req.customer.phone)
    now = ensure_aware(now or aware_utcnow())

    refs = flatten_lines(list(req.lines))
    catalog = load_catalog_snapshot(ref.product_id for ref in refs)
    shipping = current_app.config.get("DELIVERY_FEE_CENTS", 0) if req.customer.delivery_method == "delivery" else 0
    # Prices come from the catalog only; client-sent amounts are never trusted.
    calc = calculate_order(req.lines, catalog, shipping_cents=shipping)
    if not calc.is_valid:
        current_app.logger.info("Checkout rejected: unresolvable cart lines %s", calc.errors)
        raise ValidationError("Some cart items are unavailable", details={"items": calc.errors})

    pricing = calc.pricing
    items = [item.to_dict() for item in calc.items]
    minted = mint_binding() if binding is None else None
    bound = binding or minted

    def _op():
        if req.idempotency_key:
            existing = db.session.query(Order).filter_by(idempotency_key=req.idempotency_key).first()
            if existing is not None:
                if not binding_matches(existing, bound):
                    raise UnauthorizedError("Order session does not match this order")
                return _result(existing, no_op=True)

        order = lock_for_update(db.session.query(Order).filter_by(id=bound.order_id)).first()
        if order is not None:
            if not binding_matches(order, bound):
                raise UnauthorizedError("Order session does not match this order")
            if order.status != "NEW":
                return _result(order, no_op=True)
        else:
            order = new_draft_order(bound, req.customer.mode)

        upsert_customer_for_order(req.customer, pricing.total_cents, utcnow())

        if req.schedule is not None:
            config = load_delivery_config()
            if not config.mode_enabled(req.schedule.mode):
                raise SlotClosedError(
                    SlotClosedError.user_message,
                    details={"mode": req.schedule.mode, "reason": "Mode not available"},
                )
            hold_slot(order, config, req.schedule.date, req.schedule.mode, req.schedule.slot_id, now)
        elif order.reservation_status != HELD:
            order.delivery_mode = req.customer.mode

        order.items = items
        order.pricing = pricing.to_dict()
        order.total_cents = pricing.total_cents
        order.customer_phone = phone
        order.customer = {**req.customer.to_dict(), "phone": phone}
        order.notes = req.notes
        order.bottles_to_return = req.bottles_to_return
        order.idempotency_key = req.idempotency_key
        order.status = "CONFIRMED"
        order.confirmed_at = utcnow()
        # a confirmed order keeps its slot for good
        order.reservation_expires_at = None
        db.session.flush()

        append_ledger_event(
            event_type="order.confirmed",
            entity_type="order",
            entity_id=order.id,
            order_id=order.id,
            payload={"total_cents": pricing.total_cents, "customer_phone": phone},
        )
        return _result(order, no_op=False)

    result = run_transaction(_op, label="checkout")

    if result.no_op:
        current_app.logger.info("Checkout for order %s was a no-op (already %s)", result.order_id, result.status)
        return result

    current_app.logger.info(
        "Order %s confirmed, total %s cents", result.order_id, result.pricing.get("total_cents")
    )
    if minted is not None and result.order_id == minted.order_id:
        return replace(result, binding=minted)
    return result
