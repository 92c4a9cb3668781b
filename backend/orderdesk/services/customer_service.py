# Overview: Service-layer operations for customers; lifetime aggregates, address history and eco points.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Customer
from .bulk import BulkResult, run_bulk
from .cart_schemas import CustomerInfo
from .concurrency import lock_for_update, run_transaction
from .errors import NotFoundError, ValidationError
from .ledger_service import append_ledger_event

"""
Customer Aggregate Invariants (authoritative)

- Keyed by the digits of the phone number.
- order_count / lifetime_value_cents change only in the same transaction as
  the order confirmation that causes them.
- addresses: most recent first, no duplicates, capped at
  CUSTOMER_ADDRESS_HISTORY_LIMIT.
- eco_points never go negative.
"""

MIN_PHONE_DIGITS = 8


def normalize_phone(phone: str | None) -> str:
    digits = "".join(c for c in str(phone or "") if c.isdigit())
    if len(digits) < MIN_PHONE_DIGITS:
        raise ValidationError(f"phone must have at least {MIN_PHONE_DIGITS} digits")
    return digits[:32]


def _address_key(entry: dict) -> tuple:
    return tuple(
        (str(entry.get(k) or "")).strip().lower()
        for k in ("address", "number", "complement", "neighborhood")
    )


def push_address(history: list | None, entry: dict | None, limit: int) -> list:
    """Return a new history list with entry moved/added to the front."""
    history = [a for a in (history or []) if isinstance(a, dict)]
    if entry is None:
        return history[:limit]
    key = _address_key(entry)
    return ([entry] + [a for a in history if _address_key(a) != key])[:limit]


def get_customer_for_update(phone: str) -> Customer | None:
    return lock_for_update(db.session.query(Customer).filter_by(phone=phone)).first()


def upsert_customer_for_order(info: CustomerInfo, total_cents: int, now: datetime) -> Customer:
    """
    Create or update the customer aggregate for a confirmed order.
    Caller owns the transaction.
    """
    phone = normalize_phone(info.phone)
    limit = current_app.config.get("CUSTOMER_ADDRESS_HISTORY_LIMIT", 5)
    customer = get_customer_for_update(phone)

    if customer is None:
        customer = Customer(
            phone=phone,
            name=info.name,
            email=info.email,
            order_count=1,
            lifetime_value_cents=total_cents,
            eco_points=0,
            is_subscriber=False,
            addresses=push_address([], info.address_entry(), limit),
            last_order_at=now,
        )
        db.session.add(customer)
        return customer

    customer.name = info.name
    if info.email:
        customer.email = info.email
    customer.order_count = (customer.order_count or 0) + 1
    customer.lifetime_value_cents = (customer.lifetime_value_cents or 0) + total_cents
    customer.addresses = push_address(customer.addresses, info.address_entry(), limit)
    customer.last_order_at = now
    return customer


def add_eco_points(phone: str, delta: int, *, order_id: str | None = None, actor: str | None = None) -> Customer:
    """Caller owns the transaction."""
    customer = get_customer_for_update(phone)
    if customer is None:
        raise NotFoundError("Customer not found", details={"phone": phone})
    new_balance = (customer.eco_points or 0) + delta
    if new_balance < 0:
        raise ValidationError(
            "Eco points cannot go below zero",
            details={"phone": phone, "balance": customer.eco_points, "delta": delta},
        )
    customer.eco_points = new_balance
    append_ledger_event(
        event_type="customer.points_adjusted",
        entity_type="customer",
        entity_id=phone,
        order_id=order_id,
        actor=actor,
        payload={"delta": delta, "balance": new_balance},
    )
    return customer


def get_customer(phone: str) -> Customer:
    customer = db.session.get(Customer, normalize_phone(phone))
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def bulk_adjust_eco_points(phones: list[str], delta: int, *, actor: str | None = None) -> BulkResult:
    """Adjust eco points customer by customer; each adjustment commits on its own."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    if not isinstance(phones, list) or not phones:
        raise ValidationError("phones must be a non-empty list")

    def _adjust(raw_phone: str):
        phone = normalize_phone(raw_phone)
        return run_transaction(
            lambda: add_eco_points(phone, delta, actor=actor),
            label="adjust_eco_points",
        )

    result = run_bulk("adjust_eco_points", [str(p) for p in phones], _adjust)
    current_app.logger.info(
        "Eco points bulk adjust %+d: %d succeeded, %d failed",
        delta, result.succeeded_count, result.failed_count,
    )
    return result


def set_subscription(phone: str, is_subscriber, *, actor: str | None = None) -> Customer:
    """Turn the subscriber flag on or off for an existing customer."""
    if not isinstance(is_subscriber, bool):
        raise ValidationError("is_subscriber must be a boolean")
    phone = normalize_phone(phone)

    def _op():
        customer = get_customer_for_update(phone)
        if customer is None:
            raise NotFoundError("Customer not found", details={"phone": phone})
        if customer.is_subscriber == is_subscriber:
            return customer
        customer.is_subscriber = is_subscriber
        append_ledger_event(
            event_type="customer.subscription_changed",
            entity_type="customer",
            entity_id=phone,
            actor=actor,
            payload={"is_subscriber": is_subscriber},
        )
        return customer

    customer = run_transaction(_op, label="set_subscription")
    current_app.logger.info("Customer %s subscription set to %s", phone, is_subscriber)
    return customer
