# Overview: Service-layer operations for orders; payment, cancellation and status lifecycle transactions.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, Order
from orderdesk.time_utils import utcnow
from .bulk import BulkResult, run_bulk
from .concurrency import lock_for_update, run_transaction
from .errors import NotFoundError, OrderStateError, ValidationError
from .inventory_service import credit_for_order, debit_for_order
from .ledger_service import append_ledger_event
from .reservation_service import release_order_hold

"""
Order Lifecycle Invariants (authoritative)

Status ladder (forward only):
    NEW -> CONFIRMED -> PAID -> IN_PRODUCTION -> OUT_FOR_DELIVERY -> DELIVERED
CANCELED is reachable from every status except DELIVERED, only via cancel_order().

mark_paid:
- NEW or CANCELED orders cannot be paid.
- Idempotent: an order already paid is returned unchanged, stock untouched.
- Stock is debited (OUT movements) in the same transaction that sets
  payment_status=PAID and stock_debited=True.

cancel_order:
- Idempotent: cancelling a CANCELED order is a no-op.
- If stock_debited, the order's net debit is credited back (IN movements) in
  the same transaction as the status flip. Otherwise it is a pure status flip.
- A HELD reservation is released in the same transaction.

Eco points:
- Awarded once, on reaching DELIVERED: total_cents // ECO_POINTS_CENTS_PER_POINT.

Bulk operations run one transaction per order and report partial success.
"""

STATUS_NEW = "NEW"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_PAID = "PAID"
STATUS_IN_PRODUCTION = "IN_PRODUCTION"
STATUS_OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
STATUS_DELIVERED = "DELIVERED"
STATUS_CANCELED = "CANCELED"

STATUS_LADDER = (
    STATUS_NEW,
    STATUS_CONFIRMED,
    STATUS_PAID,
    STATUS_IN_PRODUCTION,
    STATUS_OUT_FOR_DELIVERY,
    STATUS_DELIVERED,
)
STATUS_RANK = {s: i for i, s in enumerate(STATUS_LADDER)}
ALL_STATUSES = STATUS_LADDER + (STATUS_CANCELED,)

PAYMENT_UNPAID = "UNPAID"
PAYMENT_PAID = "PAID"

BULK_ACTIONS = ("mark_paid", "cancel", "status")


@dataclass(frozen=True)
class OrderMutation:
    order: Order
    changed: bool

    def to_dict(self) -> dict:
        return {"order": self.order.to_dict(), "changed": self.changed}


def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    schedule_date=None,
    delivery_mode: str | None = None,
    customer_phone: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Newest first. Returns (page, total matching)."""
    q = db.session.query(Order)
    if status:
        status = status.upper()
        if status not in ALL_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ALL_STATUSES)}")
        q = q.filter(Order.status == status)
    if schedule_date is not None:
        q = q.filter(Order.schedule_date == schedule_date)
    if delivery_mode:
        q = q.filter(Order.delivery_mode == delivery_mode.upper())
    if customer_phone:
        q = q.filter(Order.customer_phone == customer_phone)

    total = q.count()
    limit = max(1, min(limit, 500))
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset(max(0, offset)).limit(limit).all()
    return rows, total


def _get_for_update(order_id: str) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def _apply_paid(order: Order, method: str | None, actor: str | None) -> bool:
    """Caller owns the transaction. Returns False when the order was already paid."""
    if order.status == STATUS_CANCELED:
        raise OrderStateError("Canceled orders cannot be paid", details={"order_id": order.id})
    if order.status == STATUS_NEW:
        raise OrderStateError("Order has not been checked out yet", details={"order_id": order.id})
    if order.payment_status == PAYMENT_PAID or order.stock_debited:
        return False

    debit_for_order(order)

    order.stock_debited = True
    order.payment_status = PAYMENT_PAID
    order.payment_method = method or order.payment_method
    order.paid_at = utcnow()
    order.last_status_update_by = actor
    if order.status == STATUS_CONFIRMED:
        order.status = STATUS_PAID

    append_ledger_event(
        event_type="order.paid",
        entity_type="order",
        entity_id=order.id,
        order_id=order.id,
        actor=actor,
        payload={"method": order.payment_method, "total_cents": order.total_cents},
    )
    return True


def mark_paid(order_id: str, method: str | None = None, *, actor: str | None = None) -> OrderMutation:
    """
    Confirm payment and debit stock. Re-invoking on a paid order is a no-op.

    Raises InsufficientStockError when any stock-tracked line is short;
    nothing is written in that case.
    """

    def _op():
        order = _get_for_update(order_id)
        return OrderMutation(order=order, changed=_apply_paid(order, method, actor))

    result = run_transaction(_op, label="mark_paid")
    if result.changed:
        current_app.logger.info("Order %s marked paid (%s)", order_id, method or "unspecified")
    return result


def cancel_order(order_id: str, reason: str | None = None, *, actor: str | None = None) -> OrderMutation:
    """Cancel, crediting stock back if it was debited and releasing any held slot."""

    def _op():
        order = _get_for_update(order_id)
        if order.status == STATUS_CANCELED:
            return OrderMutation(order=order, changed=False)
        if order.status == STATUS_DELIVERED:
            raise OrderStateError("Delivered orders cannot be canceled", details={"order_id": order.id})

        credited = []
        if order.stock_debited:
            credited = credit_for_order(order, reason)
            order.stock_debited = False
        released = release_order_hold(order)

        previous = order.status
        order.status = STATUS_CANCELED
        order.canceled_at = utcnow()
        order.canceled_by = actor
        order.cancel_reason = reason[:255] if reason else None
        order.last_status_update_by = actor

        append_ledger_event(
            event_type="order.canceled",
            entity_type="order",
            entity_id=order.id,
            order_id=order.id,
            actor=actor,
            note=reason,
            payload={
                "previous_status": previous,
                "stock_credited": len(credited),
                "released": released,
            },
        )
        return OrderMutation(order=order, changed=True)

    result = run_transaction(_op, label="cancel_order")
    if result.changed:
        current_app.logger.info("Order %s canceled: %s", order_id, reason or "no reason")
    return result


def _award_eco_points(order: Order, actor: str | None) -> None:
    if order.eco_points_awarded or not order.customer_phone:
        return
    per_point = current_app.config.get("ECO_POINTS_CENTS_PER_POINT", 1000)
    points = (order.total_cents or 0) // per_point
    if points <= 0:
        return
    customer = lock_for_update(db.session.query(Customer).filter_by(phone=order.customer_phone)).first()
    if customer is None:
        return

    customer.eco_points = (customer.eco_points or 0) + points
    order.eco_points_awarded = True
    order.eco_points_earned = points
    append_ledger_event(
        event_type="customer.points_adjusted",
        entity_type="customer",
        entity_id=customer.phone,
        order_id=order.id,
        actor=actor,
        payload={"delta": points, "balance": customer.eco_points, "reason": "delivered"},
    )


def update_status(order_id: str, status: str, *, actor: str | None = None, method: str | None = None) -> OrderMutation:
    """
    Move an order forward along the status ladder.

    PAID goes through the mark-paid path; CANCELED is rejected (use
    cancel_order). Setting the current status again is a no-op.
    """
    status = str(status or "").strip().upper()
    if status == STATUS_CANCELED:
        raise ValidationError("Use the cancel operation to cancel an order")
    if status not in STATUS_RANK:
        raise ValidationError(f"status must be one of {', '.join(STATUS_LADDER)}")
    if status == STATUS_PAID:
        return mark_paid(order_id, method, actor=actor)

    def _op():
        order = _get_for_update(order_id)
        if order.status == STATUS_CANCELED:
            raise OrderStateError("Order is canceled", details={"order_id": order.id})
        if order.status == status:
            return OrderMutation(order=order, changed=False)
        if STATUS_RANK[status] < STATUS_RANK[order.status]:
            raise OrderStateError(
                f"Cannot move order from {order.status} back to {status}",
                details={"order_id": order.id, "from": order.status, "to": status},
            )
        if order.status == STATUS_NEW:
            raise OrderStateError("Order has not been checked out yet", details={"order_id": order.id})

        previous = order.status
        order.status = status
        order.last_status_update_by = actor
        if status == STATUS_DELIVERED:
            _award_eco_points(order, actor)

        append_ledger_event(
            event_type="order.status_changed",
            entity_type="order",
            entity_id=order.id,
            order_id=order.id,
            actor=actor,
            payload={"from": previous, "to": status},
        )
        return OrderMutation(order=order, changed=True)

    result = run_transaction(_op, label="update_status")
    if result.changed:
        current_app.logger.info("Order %s status -> %s", order_id, status)
    return result


def bulk_update_orders(
    action: str,
    order_ids: list[str],
    *,
    status: str | None = None,
    method: str | None = None,
    reason: str | None = None,
    actor: str | None = None,
) -> BulkResult:
    """One transaction per order; failures are reported, never rolled across orders."""
    if action not in BULK_ACTIONS:
        raise ValidationError(f"action must be one of {', '.join(BULK_ACTIONS)}")
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError("order_ids must be a non-empty list")
    if action == "status" and not status:
        raise ValidationError("status is required for the status action")

    if action == "mark_paid":
        def fn(oid):
            return mark_paid(oid, method, actor=actor)
    elif action == "cancel":
        def fn(oid):
            return cancel_order(oid, reason, actor=actor)
    else:
        def fn(oid):
            return update_status(oid, status, actor=actor, method=method)

    result = run_bulk(action, [str(oid) for oid in order_ids], fn)
    current_app.logger.info(
        "Bulk %s on %d orders: %d succeeded, %d failed",
        action, len(order_ids), result.succeeded_count, result.failed_count,
    )
    return result
