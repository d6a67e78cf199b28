# backend/bookstock/services/movement_service.py
"""
Inter-stock movement service.

WHY: Move goods and their value from a source location (usually the depot)
to a destination location (a library branch). The destination, and only the
destination, closes the movement by confirming receipt or by filing a claim.

LIFECYCLE:
1. pending: Movement created with its items (source side)
2. confirmed: Destination confirmed receipt; goods credited to its stock
3. claimed: Destination reported a discrepancy (resolved outside the system)

This module is the only entry point routes and CLI commands use for
movements. It composes the location registry, the reconciliation engine, the
state machine and the ledger store, and translates their errors into the
taxonomy in bookstock.validation. Location and actor identity always arrive
as explicit arguments.
"""
from __future__ import annotations

import functools
from collections.abc import Mapping
from typing import Any, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Movement
from ..models.movements import MOVEMENT_STATUSES, MOVEMENT_STATUS_PENDING
from ..money import format_money
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    Unauthorized,
    NotFound,
    AlreadyFinalized,
    Conflict,
    PersistenceError,
    coerce_int,
    optional_text,
)
from . import catalog_service, location_service, movement_ledger, reconciliation_service, transfer_state
from .audit_service import list_movement_events
from .location_service import LocationError
from .movement_ledger import LedgerWriteError, MovementFilters, MovementHeader, UpdateResult
from .reconciliation_service import EmptyItemSet, InvalidItem
from .sequence_service import SequenceError


ROLE_SOURCE = "source"
ROLE_DESTINATION = "destination"
ROLE_ANY = "any"
ROLES = (ROLE_SOURCE, ROLE_DESTINATION, ROLE_ANY)

RECIPIENT_NAME_MAX_LENGTH = 255


def _storage_guard(func):
    """
    Storage failures on any path (reads included) become PersistenceError.

    The session is rolled back first, so the whole call is safe to retry.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Storage failure in %s: %s", func.__name__, exc.__class__.__name__)
            raise PersistenceError("Storage unavailable, retry later", {"operation": func.__name__.lstrip("_")}) from exc
    return wrapper


def _resolve(ref: Any, field: str) -> int:
    try:
        return location_service.resolve_location_id(ref)
    except LocationError as exc:
        raise ValidationError(str(exc), {"field": field})


def _requesting_location_id(ref: Any) -> int:
    """
    Identity asserted by the caller for confirm/claim.

    An integer id is compared as-is (an unknown id simply fails the guard);
    a code must resolve exactly through the location registry.
    """
    if isinstance(ref, int) and not isinstance(ref, bool):
        return ref
    if ref is None or (isinstance(ref, str) and not ref.strip()):
        raise ValidationError(
            "Requesting location is required for security validation",
            {"field": "requesting_location"},
        )
    return _resolve(ref, "requesting_location")


def _prefill_unit_prices(items: Sequence[Any]) -> list[Any]:
    """
    Fill missing unit prices from the catalog.

    Lines that already carry a unit_price are left untouched; the catalog is
    never consulted again after creation.
    """
    prepared = []
    for index, raw in enumerate(items):
        if not isinstance(raw, Mapping) or raw.get("unit_price") is not None:
            prepared.append(raw)
            continue

        try:
            product = catalog_service.get_product(coerce_int(raw.get("product_id"), "product_id"))
        except ValueError:
            # Malformed id; reconciliation reports it with the item index
            prepared.append(raw)
            continue
        suggested = catalog_service.suggested_unit_price(product) if product else None
        if suggested is None:
            raise ValidationError(
                f"Item {index}: unit_price is required (no catalog price available)",
                {"item_index": index, "field": "unit_price"},
            )
        prepared.append({**raw, "unit_price": suggested})
    return prepared


def _page_bounds(limit: int | None, page: int | None) -> tuple[int, int]:
    default_size = current_app.config.get("MOVEMENTS_PAGE_SIZE", 25)
    max_size = current_app.config.get("MOVEMENTS_MAX_PAGE_SIZE", 100)

    size = default_size if limit is None else limit
    if size <= 0:
        raise ValidationError("limit must be positive", {"field": "limit"})
    size = min(size, max_size)

    page = 1 if page is None else page
    if page <= 0:
        raise ValidationError("page must be positive", {"field": "page"})

    return size, (page - 1) * size


def _reconciliation_block(movement: Movement) -> dict:
    mismatch = reconciliation_service.check_totals(
        movement.total_amount,
        (item.total_price for item in movement.items),
    )
    if mismatch is None:
        return {"status": "ok"}

    current_app.logger.warning(
        "Reconciliation mismatch on movement %s (%s): declared=%s computed=%s",
        movement.id,
        movement.movement_number,
        format_money(mismatch.declared_total),
        format_money(mismatch.computed_total),
    )
    return mismatch.to_dict()


@_storage_guard
def create_movement(
    source: Any,
    destination: Any,
    recipient_name: str | None,
    notes: str | None,
    items: Sequence[Any] | None,
    actor_id: int | None = None,
) -> dict:
    """
    Create a pending movement with its items, atomically.

    Args:
        source: Source location (id or code)
        destination: Destination location (id or code)
        recipient_name: Person receiving the goods
        notes: Optional free text
        items: [{product_id, quantity, unit_price?, notes?}, ...]
        actor_id: Creating user (opaque id)

    Returns:
        dict: {movement_id, movement_number, total_amount}

    Raises:
        ValidationError: Bad locations, recipient or items
        PersistenceError: Storage failure (nothing written)
    """
    source_id = _resolve(source, "source")
    destination_id = _resolve(destination, "destination")
    if source_id == destination_id:
        raise ValidationError(
            "Cannot transfer to the same location",
            {"source_location_id": source_id, "destination_location_id": destination_id},
        )

    recipient = optional_text(recipient_name, "recipient_name", max_length=RECIPIENT_NAME_MAX_LENGTH)
    if not recipient:
        raise ValidationError("recipient_name is required", {"field": "recipient_name"})

    if items is None:
        items = []
    if not isinstance(items, (list, tuple)):
        raise ValidationError("items must be a list", {"field": "items"})

    try:
        reconciled = reconciliation_service.reconcile_items(_prefill_unit_prices(items))
    except EmptyItemSet as exc:
        raise ValidationError(str(exc), {"field": "items"})
    except InvalidItem as exc:
        raise ValidationError(str(exc), {"item_index": exc.index, "field": exc.field})

    products = catalog_service.get_products(item.product_id for item in reconciled.items)
    missing = sorted({item.product_id for item in reconciled.items} - set(products))
    if missing:
        raise ValidationError(
            f"Unknown product(s): {', '.join(str(product_id) for product_id in missing)}",
            {"product_ids": missing},
        )

    header = MovementHeader(
        source_location_id=source_id,
        destination_location_id=destination_id,
        recipient_name=recipient,
        total_amount=reconciled.total_amount,
        created_by=actor_id,
        notes=optional_text(notes, "notes"),
    )

    try:
        movement = movement_ledger.create_movement(
            header,
            reconciled.items,
            number_prefix=current_app.config.get("MOVEMENT_NUMBER_PREFIX", "MOV"),
            occurred_at=utcnow(),
        )
    except (LedgerWriteError, SequenceError) as exc:
        current_app.logger.error("Failed to persist movement from location %s: %s", source_id, exc)
        raise PersistenceError("Failed to create movement")

    current_app.logger.info(
        "Movement %s created: location %s -> %s, %d item(s), total %s, actor %s",
        movement.movement_number,
        source_id,
        destination_id,
        len(reconciled.items),
        format_money(reconciled.total_amount),
        actor_id,
    )

    return {
        "movement_id": movement.id,
        "movement_number": movement.movement_number,
        "total_amount": format_money(movement.total_amount),
    }


@_storage_guard
def get_movement(movement_id: int) -> Movement:
    movement = movement_ledger.get_movement(movement_id)
    if not movement:
        raise NotFound(f"Movement {movement_id} not found", {"movement_id": movement_id})
    return movement


@_storage_guard
def get_movement_summary(movement_id: int) -> dict:
    """
    Movement with items, location names and a reconciliation block.

    Raises:
        NotFound: If the movement does not exist
    """
    movement = get_movement(movement_id)
    summary = movement.to_dict(include_items=True)
    if current_app.config.get("RECONCILE_ON_READ", True):
        summary["reconciliation"] = _reconciliation_block(movement)
    return summary


@_storage_guard
def get_movement_events(movement_id: int) -> list[dict]:
    get_movement(movement_id)
    return [event.to_dict() for event in list_movement_events(movement_id)]


@_storage_guard
def list_movements(
    *,
    location: Any = None,
    role: str = ROLE_ANY,
    status: str | None = None,
    limit: int | None = None,
    page: int | None = None,
) -> list[dict]:
    """
    List movement headers with item aggregates, most recent first.

    Args:
        location: Optional location (id or code) to scope the list
        role: source (sent), destination (expected) or any (both)
        status: Optional status filter
        limit: Page size (config default, capped)
        page: 1-based page number
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", {"field": "role"})
    if status is not None and status not in MOVEMENT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(MOVEMENT_STATUSES)}",
            {"field": "status"},
        )

    size, offset = _page_bounds(limit, page)

    location_id = _resolve(location, "location") if location is not None else None
    filters = MovementFilters(
        as_source=location_id if role == ROLE_SOURCE else None,
        as_destination=location_id if role == ROLE_DESTINATION else None,
        involving=location_id if role == ROLE_ANY else None,
        status=status,
        limit=size,
        offset=offset,
    )

    check = current_app.config.get("RECONCILE_ON_READ", True)
    rows = []
    for summary in movement_ledger.list_movements(filters):
        row = summary.to_dict()
        if check:
            mismatch = reconciliation_service.check_totals(
                summary.movement.total_amount,
                [summary.items_total],
            )
            row["reconciled"] = mismatch is None
            if mismatch is not None:
                current_app.logger.warning(
                    "Reconciliation mismatch on movement %s (%s): declared=%s computed=%s",
                    summary.movement.id,
                    summary.movement.movement_number,
                    format_money(mismatch.declared_total),
                    format_money(mismatch.computed_total),
                )
        rows.append(row)
    return rows


@_storage_guard
def list_pending(location: Any, role: str = ROLE_DESTINATION, **paging) -> list[dict]:
    """Pending movements a location sent (source) or is expecting (destination)."""
    if location is None:
        raise ValidationError("location is required", {"field": "location"})
    if role not in (ROLE_SOURCE, ROLE_DESTINATION):
        raise ValidationError(
            f"role must be one of: {ROLE_SOURCE}, {ROLE_DESTINATION}",
            {"field": "role"},
        )
    return list_movements(location=location, role=role, status=MOVEMENT_STATUS_PENDING, **paging)


@_storage_guard
def _transition(
    movement_id: int,
    action: str,
    requesting_location: Any,
    actor_id: int | None,
    claim_message: str | None = None,
) -> Movement:
    movement = get_movement(movement_id)
    requesting_id = _requesting_location_id(requesting_location)

    try:
        transition = transfer_state.plan_transition(movement, action, requesting_id, claim_message)
    except transfer_state.UnknownAction as exc:
        raise ValidationError(str(exc), {"field": "action"})
    except transfer_state.NotDestination as exc:
        current_app.logger.warning(
            "Refused %s on movement %s: location %s is not the destination %s (actor %s)",
            action,
            movement.movement_number,
            exc.requesting_location_id,
            exc.destination_location_id,
            actor_id,
        )
        raise Unauthorized(
            str(exc),
            {
                "movement_id": movement.id,
                "requesting_location_id": exc.requesting_location_id,
                "destination_location_id": exc.destination_location_id,
            },
        )
    except transfer_state.Finalized as exc:
        raise AlreadyFinalized(str(exc), {"movement_id": movement.id, "status": exc.status})
    except transfer_state.ClaimMessageRequired as exc:
        raise ValidationError(str(exc), {"field": "claim_message"})

    on_applied = None
    if transition.action == transfer_state.ACTION_CONFIRM:
        on_applied = catalog_service.receive_movement_items

    try:
        result = movement_ledger.update_status(
            movement.id,
            expected_status=transition.from_status,
            new_status=transition.to_status,
            actor_id=actor_id,
            location_id=requesting_id,
            timestamp=utcnow(),
            claim_message=transition.claim_message,
            on_applied=on_applied,
        )
    except LedgerWriteError as exc:
        current_app.logger.error("Failed to %s movement %s: %s", action, movement_id, exc)
        raise PersistenceError(f"Failed to {action} movement")

    if result is UpdateResult.NOT_FOUND:
        raise NotFound(f"Movement {movement_id} not found", {"movement_id": movement_id})
    if result is UpdateResult.CONFLICT:
        current = movement_ledger.get_movement(movement_id)
        current_status = current.status if current else None
        current_app.logger.warning(
            "Lost %s race on movement %s: status is now %s",
            action,
            movement_id,
            current_status,
        )
        raise Conflict(
            "Movement was modified concurrently",
            {"movement_id": movement_id, "status": current_status},
        )

    updated = get_movement(movement_id)
    current_app.logger.info(
        "Movement %s %s by location %s (actor %s)",
        updated.movement_number,
        updated.status,
        requesting_id,
        actor_id,
    )
    return updated


def confirm_movement(movement_id: int, requesting_location: Any, actor_id: int | None = None) -> Movement:
    """
    Confirm receipt (destination only). Credits the destination's stock.

    Raises:
        NotFound, Unauthorized, AlreadyFinalized, Conflict, PersistenceError
    """
    return _transition(movement_id, transfer_state.ACTION_CONFIRM, requesting_location, actor_id)


def claim_movement(
    movement_id: int,
    requesting_location: Any,
    claim_message: str | None,
    actor_id: int | None = None,
) -> Movement:
    """
    File a claim on receipt (destination only). Requires a message.

    Raises:
        NotFound, Unauthorized, AlreadyFinalized, ValidationError, Conflict,
        PersistenceError
    """
    return _transition(movement_id, transfer_state.ACTION_CLAIM, requesting_location, actor_id, claim_message)


def apply_action(
    movement_id: int,
    action: str | None,
    requesting_location: Any,
    actor_id: int | None = None,
    claim_message: str | None = None,
) -> Movement:
    """Single-entry form: action is "confirm" or "claim"."""
    if action not in transfer_state.ACTIONS:
        raise ValidationError(
            f"Invalid action. Must be one of: {', '.join(transfer_state.ACTIONS)}",
            {"field": "action"},
        )
    return _transition(movement_id, action, requesting_location, actor_id, claim_message)


@_storage_guard
def find_reconciliation_mismatches() -> list[dict]:
    """Scan every movement; used by `flask movements reconcile`."""
    mismatches = []
    for movement in movement_ledger.all_movements():
        mismatch = reconciliation_service.check_totals(
            movement.total_amount,
            (item.total_price for item in movement.items),
        )
        if mismatch is not None:
            mismatches.append({
                "movement_id": movement.id,
                "movement_number": movement.movement_number,
                **mismatch.to_dict(),
            })
    return mismatches
