from __future__ import annotations

from typing import Any


class MovementError(Exception):
    """
    Base for every error the movement service reports.

    Each subclass carries a stable machine-readable `code` and the HTTP status
    routes respond with. `details` is a small JSON-safe dict.
    """
    code = "MOVEMENT_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(MovementError):
    """400-level input problem. Caller-fixable, never retried automatically."""
    code = "VALIDATION_ERROR"
    status_code = 400


class Unauthorized(MovementError):
    """Requesting location is not the movement's destination."""
    code = "UNAUTHORIZED_LOCATION"
    status_code = 403


class NotFound(MovementError):
    code = "NOT_FOUND"
    status_code = 404


class AlreadyFinalized(MovementError):
    """
    Movement is already confirmed or claimed.

    On a retry this usually means the first attempt went through.
    """
    code = "ALREADY_FINALIZED"
    status_code = 409


class Conflict(MovementError):
    """Lost the conditional status update to a concurrent transition."""
    code = "CONFLICT"
    status_code = 409


class PersistenceError(MovementError):
    """Storage failure. Nothing was written; the whole call is safe to retry."""
    code = "PERSISTENCE_ERROR"
    status_code = 503


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for client input.

    Rejects bools, floats, decimals in strings and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValueError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValueError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError(f"{field} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValueError(f"{field} must be an integer, not a decimal")
    raise ValueError(f"{field} must be an integer")


def optional_int(value: Any, field: str) -> int | None:
    """coerce_int, but None and "" pass through as None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return coerce_int(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc), {"field": field})


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    """Trim free text; blank becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", {"field": field})
    stripped = value.strip()
    if not stripped:
        return None
    if max_length is not None and len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", {"field": field})
    return stripped
