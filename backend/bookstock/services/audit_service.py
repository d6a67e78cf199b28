# Overview: Append-only movement audit trail.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import MovementEvent
"""
Movement audit invariants

- Append-only; events are never updated or deleted by the application.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back change leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


EVENT_MOVEMENT_CREATED = "movement.created"
EVENT_MOVEMENT_CONFIRMED = "movement.confirmed"
EVENT_MOVEMENT_CLAIMED = "movement.claimed"


def append_movement_event(
    *,
    movement_id: int,
    event_type: str,
    location_id: int,
    actor_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> MovementEvent:
    """Append one audit event to the current transaction (flush, no commit)."""
    ev = MovementEvent(
        movement_id=movement_id,
        event_type=event_type,
        location_id=location_id,
        actor_id=actor_id,
        note=note,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at  # otherwise the db default applies
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_movement_events(movement_id: int) -> list[MovementEvent]:
    return (
        db.session.query(MovementEvent)
        .filter_by(movement_id=movement_id)
        .order_by(MovementEvent.occurred_at.asc(), MovementEvent.id.asc())
        .all()
    )
