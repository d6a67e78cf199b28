# backend/bookstock/services/movement_ledger.py
"""
Movement ledger store: durable movement headers and items.

Every write here is one transaction that commits or leaves nothing behind:
- create_movement: number + header + items + audit event
- update_status: conditional status change + audit fields + audit event
  (+ caller-supplied effects, e.g. crediting the destination's stock)

Storage failures are rolled back and surfaced as LedgerWriteError. Callers
outside the service layer never see raw SQLAlchemy exceptions.
"""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Sequence

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Movement, MovementItem
from ..money import format_money
from ..models.movements import (
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_STATUS_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED,
)
from .audit_service import (
    append_movement_event,
    EVENT_MOVEMENT_CREATED,
    EVENT_MOVEMENT_CONFIRMED,
    EVENT_MOVEMENT_CLAIMED,
)
from .reconciliation_service import ReconciledItem
from .sequence_service import next_movement_number


_STATUS_EVENTS = {
    MOVEMENT_STATUS_CONFIRMED: EVENT_MOVEMENT_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED: EVENT_MOVEMENT_CLAIMED,
}

# Lock contention (SQLite "database is locked", deadlocks) is retried; every
# other storage error fails the write at once.
WRITE_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 0.1


class LedgerWriteError(Exception):
    """Raised when a ledger write fails; the transaction was rolled back."""
    pass


def _write_with_retry(op, description: str):
    """
    Run one ledger write unit, redoing it from scratch on lock contention.

    The session is rolled back between attempts, so `op` must rebuild all of
    its work (movement number included) on every call.
    """
    for attempt in range(1, WRITE_ATTEMPTS + 1):
        try:
            return op()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == WRITE_ATTEMPTS:
                raise
            current_app.logger.warning(
                "Retrying %s after %s (attempt %d of %d)",
                description,
                exc.__class__.__name__,
                attempt,
                WRITE_ATTEMPTS,
            )
            time.sleep(RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1)))


class UpdateResult(enum.Enum):
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class MovementHeader:
    source_location_id: int
    destination_location_id: int
    recipient_name: str
    total_amount: Decimal
    created_by: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class MovementFilters:
    as_source: int | None = None
    as_destination: int | None = None
    # Either side (dashboard view of one location)
    involving: int | None = None
    status: str | None = None
    limit: int | None = None
    offset: int = 0


@dataclass(frozen=True)
class MovementSummary:
    """Listing row: header plus item aggregates (no item bodies)."""
    movement: Movement
    item_count: int
    total_quantity: int
    items_total: Decimal

    def to_dict(self) -> dict:
        return {
            **self.movement.to_dict(),
            "item_count": self.item_count,
            "total_quantity": self.total_quantity,
            "items_total": format_money(self.items_total),
        }


def create_movement(
    header: MovementHeader,
    items: Sequence[ReconciledItem],
    *,
    number_prefix: str = "MOV",
    occurred_at: Optional[datetime] = None,
) -> Movement:
    """
    Persist a movement and its items atomically.

    Args:
        header: Movement header (total already reconciled)
        items: Reconciled items (at least one)
        number_prefix: Movement number prefix
        occurred_at: Business time of the creation audit event

    Returns:
        Movement: The committed movement

    Raises:
        LedgerWriteError: If anything fails; nothing is persisted
    """
    if not items:
        raise LedgerWriteError("Cannot persist a movement without items")

    def _op():
        movement_number = next_movement_number(
            location_id=header.source_location_id,
            prefix=number_prefix,
        )

        movement = Movement(
            movement_number=movement_number,
            source_location_id=header.source_location_id,
            destination_location_id=header.destination_location_id,
            created_by=header.created_by,
            recipient_name=header.recipient_name,
            total_amount=header.total_amount,
            status=MOVEMENT_STATUS_PENDING,
            notes=header.notes,
        )
        for item in items:
            movement.items.append(
                MovementItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    notes=item.notes,
                )
            )

        db.session.add(movement)
        db.session.flush()  # Get ID

        append_movement_event(
            movement_id=movement.id,
            event_type=EVENT_MOVEMENT_CREATED,
            location_id=header.source_location_id,
            actor_id=header.created_by,
            occurred_at=occurred_at,
            note=f"{movement_number} to location {header.destination_location_id}",
        )

        db.session.commit()
        return movement

    try:
        return _write_with_retry(_op, f"create movement from location {header.source_location_id}")
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise LedgerWriteError(f"Failed to persist movement: {exc.__class__.__name__}") from exc
    except Exception:
        db.session.rollback()
        raise


def get_movement(movement_id: int) -> Movement | None:
    return db.session.get(Movement, movement_id)


def list_movements(filters: MovementFilters) -> list[MovementSummary]:
    """
    List movement headers with item aggregates, most recent first.
    """
    aggregates = (
        db.session.query(
            MovementItem.movement_id.label("movement_id"),
            func.count(MovementItem.id).label("item_count"),
            func.coalesce(func.sum(MovementItem.quantity), 0).label("total_quantity"),
            func.coalesce(func.sum(MovementItem.total_price), 0).label("items_total"),
        )
        .group_by(MovementItem.movement_id)
        .subquery()
    )

    query = (
        db.session.query(
            Movement,
            aggregates.c.item_count,
            aggregates.c.total_quantity,
            aggregates.c.items_total,
        )
        .outerjoin(aggregates, aggregates.c.movement_id == Movement.id)
    )

    if filters.as_source is not None:
        query = query.filter(Movement.source_location_id == filters.as_source)
    if filters.as_destination is not None:
        query = query.filter(Movement.destination_location_id == filters.as_destination)
    if filters.involving is not None:
        query = query.filter(
            or_(
                Movement.source_location_id == filters.involving,
                Movement.destination_location_id == filters.involving,
            )
        )
    if filters.status is not None:
        query = query.filter(Movement.status == filters.status)

    query = query.order_by(Movement.created_at.desc(), Movement.id.desc())
    if filters.offset:
        query = query.offset(filters.offset)
    if filters.limit is not None:
        query = query.limit(filters.limit)

    return [
        MovementSummary(
            movement=movement,
            item_count=int(item_count or 0),
            total_quantity=int(total_quantity or 0),
            items_total=Decimal(str(items_total or 0)),
        )
        for movement, item_count, total_quantity, items_total in query.all()
    ]


def update_status(
    movement_id: int,
    *,
    expected_status: str,
    new_status: str,
    actor_id: int | None,
    location_id: int,
    timestamp: datetime,
    claim_message: str | None = None,
    on_applied: Callable[[Movement], None] | None = None,
) -> UpdateResult:
    """
    Compare-and-swap status change.

    The UPDATE only matches while the stored status is still `expected_status`,
    so of two racing transitions exactly one sees rowcount == 1.

    Args:
        movement_id: Movement ID
        expected_status: Status the caller observed (normally pending)
        new_status: confirmed or claimed
        actor_id: Acting user (opaque id)
        location_id: Acting location, recorded on the audit event
        timestamp: confirmed_at / claimed_at value
        claim_message: Required by callers for claimed
        on_applied: Extra work for the same transaction, called with the
            refreshed movement after the status changed

    Returns:
        UpdateResult: UPDATED, NOT_FOUND or CONFLICT

    Raises:
        LedgerWriteError: If the write fails; nothing is persisted
    """
    if new_status not in _STATUS_EVENTS:
        raise LedgerWriteError(f"Unsupported target status {new_status!r}")

    values = {"status": new_status, "updated_at": timestamp}
    if new_status == MOVEMENT_STATUS_CONFIRMED:
        values.update(confirmed_at=timestamp, confirmed_by=actor_id)
    else:
        values.update(claimed_at=timestamp, claimed_by=actor_id, claim_message=claim_message)

    def _op() -> UpdateResult:
        stmt = (
            update(Movement)
            .where(Movement.id == movement_id, Movement.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)

        if result.rowcount != 1:
            db.session.rollback()
            exists = db.session.query(Movement.id).filter_by(id=movement_id).first()
            return UpdateResult.CONFLICT if exists else UpdateResult.NOT_FOUND

        movement = db.session.get(Movement, movement_id, populate_existing=True)

        if on_applied is not None:
            on_applied(movement)

        append_movement_event(
            movement_id=movement_id,
            event_type=_STATUS_EVENTS[new_status],
            location_id=location_id,
            actor_id=actor_id,
            occurred_at=timestamp,
            note=claim_message,
        )

        db.session.commit()
        return UpdateResult.UPDATED

    try:
        return _write_with_retry(_op, f"{new_status} movement {movement_id}")
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise LedgerWriteError(f"Failed to update movement {movement_id}: {exc.__class__.__name__}") from exc
    except Exception:
        db.session.rollback()
        raise


def all_movements() -> list[Movement]:
    """Every movement with its items, oldest first (full ledger scans)."""
    return (
        db.session.query(Movement)
        .options(selectinload(Movement.items))
        .order_by(Movement.id.asc())
        .all()
    )
