# Overview: Per-entity bulk execution; one transaction per entity, partial success reported.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from flask import current_app

from .errors import OrderDeskError


@dataclass
class BulkResult:
    action: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "succeeded_count": self.succeeded_count,
            "failed_count": self.failed_count,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


def run_bulk(action: str, keys: Iterable[str], fn: Callable[[str], object]) -> BulkResult:
    """
    Call fn(key) for every key. fn runs its own transaction, so one entity
    failing never rolls back another.

    Expected business errors are collected per entity; anything else is
    logged and collected as an internal error so the remaining keys still run.
    """
    result = BulkResult(action=action)
    seen = set()
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        try:
            fn(key)
            result.succeeded.append(key)
        except OrderDeskError as e:
            result.failed.append({"id": key, "error": e.message, "code": e.code})
        except Exception:
            current_app.logger.exception("Bulk %s failed for %s", action, key)
            result.failed.append({"id": key, "error": "Internal server error", "code": "INTERNAL_ERROR"})
    return result
