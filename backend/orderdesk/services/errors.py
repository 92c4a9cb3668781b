# Overview: Error taxonomy shared by the scheduling and order services.

from __future__ import annotations


class OrderDeskError(Exception):
    """Base for expected, caller-visible failures."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(OrderDeskError, ValueError):
    """400-level input problem. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(OrderDeskError):
    """Session token does not match the order it claims."""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(OrderDeskError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(OrderDeskError):
    """409-level business rule conflict."""

    status_code = 409
    code = "CONFLICT"


class SlotUnavailableError(ConflictError):
    """The chosen slot cannot take another booking. Shown to customers as sold out."""

    code = "SLOT_UNAVAILABLE"
    user_message = "This time slot is no longer available, please choose another time"


class SlotFullError(SlotUnavailableError):
    code = "SLOT_FULL"


class SlotClosedError(SlotUnavailableError):
    code = "SLOT_CLOSED"


class OrderStateError(ConflictError):
    """Requested transition is not allowed from the order's current status."""

    code = "INVALID_ORDER_STATE"


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"


class TransactionConflictError(OrderDeskError):
    """Retries exhausted on concurrent writers. Safe to retry the whole request."""

    status_code = 503
    code = "TRANSACTION_CONFLICT"


class ConfigMissingError(OrderDeskError):
    """No delivery configuration exists; scheduling is unavailable."""

    status_code = 503
    code = "CONFIG_MISSING"
