# Overview: Service-layer operations for order binding; ties a browser session to a draft order.

"""
Order Binding Service

WHY: Customers are anonymous until checkout. A draft order (and the slot it
holds) must stay tied to the browser that created it, without letting anyone
who guesses an order id take it over.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes, base64url)
- Only sha256("{pepper}:{token}") is stored on the order, never the token
- Constant-time comparison on verification
- Binding travels as one cookie value: "{order_id}.{token}"

The cookie itself is set/read by the HTTP boundary (routes); nothing here
touches the request.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Order

SHORT_ID_LENGTH = 8


@dataclass(frozen=True)
class OrderBinding:
    """Plaintext binding presented by (or about to be issued to) a browser."""
    order_id: str
    token: str

    @property
    def short_id(self) -> str:
        return short_id_for(self.order_id)


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Peppered SHA-256 of a token, hex-encoded, for storage on the order."""
    pepper = current_app.config.get("ORDER_TOKEN_PEPPER", "")
    return hashlib.sha256(f"{pepper}:{token}".encode("utf-8")).hexdigest()


def verify_token(token: str | None, token_hash: str | None) -> bool:
    if not token or not token_hash:
        return False
    return hmac.compare_digest(hash_token(token), token_hash)


def new_order_id() -> str:
    return uuid.uuid4().hex


def _is_order_id(value: str) -> bool:
    return len(value) == 32 and all(c in "0123456789abcdef" for c in value)


def short_id_for(order_id: str) -> str:
    return order_id[:SHORT_ID_LENGTH].upper()


def mint_binding() -> OrderBinding:
    return OrderBinding(order_id=new_order_id(), token=generate_token())


def format_binding_cookie(binding: OrderBinding) -> str:
    return f"{binding.order_id}.{binding.token}"


def parse_binding_cookie(value: str | None) -> OrderBinding | None:
    """
    Parse "{order_id}.{token}". Returns None for anything malformed.

    The order id is a hex uuid and never contains '.', while the base64url
    token never does either, so a single split is unambiguous.
    """
    if not value or not isinstance(value, str):
        return None
    order_id, sep, token = value.strip().partition(".")
    if not sep or not order_id or not token or "." in token:
        return None
    if len(token) > 128 or not _is_order_id(order_id):
        return None
    return OrderBinding(order_id=order_id, token=token)


def binding_matches(order: Order, binding: OrderBinding) -> bool:
    return not order.token_revoked and verify_token(binding.token, order.token_hash)


def init_cart_binding(binding: OrderBinding | None) -> tuple[OrderBinding, bool]:
    """
    Reuse a presented binding while it still points at a NEW draft this
    browser owns (or at no order yet); otherwise mint a fresh one.

    Returns (binding, is_new). Read-only: draft orders are created lazily by
    the first reservation or by checkout.
    """
    if binding is not None:
        order = db.session.get(Order, binding.order_id)
        if order is None:
            return binding, False
        if order.status == "NEW" and binding_matches(order, binding):
            return binding, False
    return mint_binding(), True
