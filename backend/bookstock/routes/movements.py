# Overview: Flask API routes for inter-stock movements; parses input and returns JSON responses.

"""
Movement API routes.

Every confirm/claim request names the location it acts for
(`requesting_location`: id or code). The service compares it with the
movement's destination; nothing is read from ambient session state.

Errors are returned as {"error", "code", "details"} with the status of the
MovementError subclass (400, 403, 404, 409, 503).
"""
from flask import Blueprint, current_app, jsonify, request

from ..services import movement_service
from ..validation import MovementError, optional_int


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _error(exc: MovementError):
    return jsonify(exc.to_dict()), exc.status_code


def _internal_error():
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500


def _paging_args() -> dict:
    return {
        "limit": optional_int(request.args.get("limit"), "limit"),
        "page": optional_int(request.args.get("page"), "page"),
    }


def _location_arg():
    """Query-string location: digits are an id, anything else a code."""
    value = request.args.get("location")
    if value is None or not value.strip():
        return None
    value = value.strip()
    return int(value) if value.isascii() and value.isdigit() else value


@movements_bp.post("")
def create_movement():
    """
    Create a movement with its items.

    Request body:
    {
        "source": int | str,
        "destination": int | str,
        "recipient_name": str,
        "notes": str (optional),
        "actor_id": int (optional),
        "items": [{"product_id": int, "quantity": int, "unit_price": number (optional), "notes": str (optional)}]
    }

    Returns:
        201: {movement_id, movement_number, total_amount}
        400: Invalid request
        503: Storage failure (safe to retry)
    """
    data = request.get_json(silent=True) or {}

    try:
        result = movement_service.create_movement(
            source=data.get("source", data.get("from_stock_id")),
            destination=data.get("destination", data.get("to_stock_id")),
            recipient_name=data.get("recipient_name"),
            notes=data.get("notes"),
            items=data.get("items"),
            actor_id=optional_int(data.get("actor_id"), "actor_id"),
        )
        return jsonify(result), 201

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create movement")
        return _internal_error()


@movements_bp.get("")
def list_movements():
    """
    List movements with optional filters.

    Query parameters:
        location: Location id or code
        role: source | destination | any (default any)
        status: pending | confirmed | claimed
        limit: Page size (default 25, max 100)
        page: 1-based page

    Returns:
        200: List of movements with item aggregates
    """
    try:
        movements = movement_service.list_movements(
            location=_location_arg(),
            role=request.args.get("role", movement_service.ROLE_ANY),
            status=request.args.get("status") or None,
            **_paging_args(),
        )
        return jsonify(movements), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return _internal_error()


@movements_bp.get("/pending")
def list_pending_movements():
    """
    Pending movements for one location.

    Query parameters:
        location: Location id or code (required)
        role: destination (expected, default) | source (sent)
    """
    try:
        movements = movement_service.list_pending(
            _location_arg(),
            role=request.args.get("role", movement_service.ROLE_DESTINATION),
            **_paging_args(),
        )
        return jsonify(movements), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list pending movements")
        return _internal_error()


@movements_bp.get("/<int:movement_id>")
def get_movement(movement_id: int):
    """
    Movement with items and reconciliation status.

    Returns:
        200: Movement summary
        404: Movement not found
    """
    try:
        summary = movement_service.get_movement_summary(movement_id)
        return jsonify(summary), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load movement")
        return _internal_error()


@movements_bp.get("/<int:movement_id>/events")
def get_movement_events(movement_id: int):
    try:
        events = movement_service.get_movement_events(movement_id)
        return jsonify(events), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load movement events")
        return _internal_error()


@movements_bp.post("/<int:movement_id>/confirm")
def confirm_movement(movement_id: int):
    """
    Confirm receipt (destination only).

    Request body:
    {
        "requesting_location": int | str,
        "actor_id": int (optional)
    }

    Returns:
        200: Movement confirmed
        400: Missing or unknown requesting location
        403: Requesting location is not the destination
        404: Movement not found
        409: Already confirmed/claimed, or lost a concurrent update
    """
    data = request.get_json(silent=True) or {}

    try:
        movement = movement_service.confirm_movement(
            movement_id,
            requesting_location=data.get("requesting_location"),
            actor_id=optional_int(data.get("actor_id"), "actor_id"),
        )
        return jsonify(movement.to_dict(include_items=True)), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to confirm movement")
        return _internal_error()


@movements_bp.post("/<int:movement_id>/claim")
def claim_movement(movement_id: int):
    """
    File a claim on receipt (destination only).

    Request body:
    {
        "requesting_location": int | str,
        "claim_message": str,
        "actor_id": int (optional)
    }

    Returns:
        200: Movement claimed
        400: Missing claim message or requesting location
        403: Requesting location is not the destination
        404: Movement not found
        409: Already confirmed/claimed, or lost a concurrent update
    """
    data = request.get_json(silent=True) or {}

    try:
        movement = movement_service.claim_movement(
            movement_id,
            requesting_location=data.get("requesting_location"),
            claim_message=data.get("claim_message"),
            actor_id=optional_int(data.get("actor_id"), "actor_id"),
        )
        return jsonify(movement.to_dict(include_items=True)), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to claim movement")
        return _internal_error()


@movements_bp.put("/<int:movement_id>")
def update_movement(movement_id: int):
    """
    Confirm or claim through one endpoint.

    Request body:
    {
        "action": "confirm" | "claim",
        "requesting_location": int | str,
        "claim_message": str (claim only),
        "actor_id": int (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        movement = movement_service.apply_action(
            movement_id,
            action=data.get("action"),
            requesting_location=data.get("requesting_location", data.get("requesting_stock_id")),
            actor_id=optional_int(data.get("actor_id"), "actor_id"),
            claim_message=data.get("claim_message"),
        )
        return jsonify(movement.to_dict(include_items=True)), 200

    except MovementError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update movement")
        return _internal_error()
