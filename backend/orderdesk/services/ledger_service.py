# Overview: Service-layer operations for ledger; append-only audit trail of domain events.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record,
  so a rolled-back or retried transaction leaves no stray events.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: str,
    order_id: str | None = None,
    actor: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    """
    ev = LedgerEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        order_id=order_id,
        actor=actor,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    order_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    """Newest first."""
    q = db.session.query(LedgerEvent)
    if order_id:
        q = q.filter(LedgerEvent.order_id == order_id)
    if entity_type:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(LedgerEvent.entity_id == str(entity_id))
    if event_type:
        q = q.filter(LedgerEvent.event_type == event_type)
    return q.order_by(LedgerEvent.id.desc()).limit(max(1, min(limit, 500))).all()
