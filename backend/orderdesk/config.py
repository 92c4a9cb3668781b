# backend/orderdesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///orderdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Order binding (browser session -> draft order)
    ORDER_TOKEN_PEPPER = os.environ.get("ORDER_TOKEN_PEPPER", "dev-pepper-do-not-use-in-prod")
    ORDER_COOKIE_NAME = os.environ.get("ORDER_COOKIE_NAME", "order_session")
    ORDER_COOKIE_MAX_AGE = int(os.environ.get("ORDER_COOKIE_MAX_AGE", str(60 * 60 * 24 * 30)))
    ORDER_COOKIE_SECURE = os.environ.get("ORDER_COOKIE_SECURE", "false").lower() == "true"

    # Minutes a draft order keeps its slot before the hold lapses
    RESERVATION_HOLD_MINUTES = int(os.environ.get("RESERVATION_HOLD_MINUTES", "15"))

    # Admin API bearer token; admin routes reject every request while unset
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")

    # Transaction runner
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "5"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.05"))

    # Business rules
    CUSTOMER_ADDRESS_HISTORY_LIMIT = int(os.environ.get("CUSTOMER_ADDRESS_HISTORY_LIMIT", "5"))
    ECO_POINTS_CENTS_PER_POINT = int(os.environ.get("ECO_POINTS_CENTS_PER_POINT", "1000"))
    DELIVERY_FEE_CENTS = int(os.environ.get("DELIVERY_FEE_CENTS", "0"))
    AVAILABILITY_DEFAULT_DAYS = int(os.environ.get("AVAILABILITY_DEFAULT_DAYS", "14"))
