# Overview: Location registry; the single place a client location reference becomes a location id.

from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StockLocation, StockLevel
from ..models.locations import LOCATION_KINDS, LOCATION_KIND_DEPOT, LOCATION_KIND_LIBRARY


# Default deployment: two library branches and the wholesale depot (name, code, kind)
DEFAULT_LOCATIONS = (
    ("Librairie Al Ouloum", "al-ouloum", LOCATION_KIND_LIBRARY),
    ("Librairie La Renaissance", "renaissance", LOCATION_KIND_LIBRARY),
    ("Gros", "gros", LOCATION_KIND_DEPOT),
)


class LocationError(Exception):
    """Raised when a location reference cannot be resolved or created."""
    pass


def resolve_location(ref: Any) -> StockLocation:
    """
    Resolve a client-supplied location reference.

    RULES (exact, 1:1):
    - int -> StockLocation.id
    - str -> StockLocation.code, exact match (no trimming of inner text, no
      case folding, and no numeric fallback: "3" is a code, not id 3)
    - anything else is rejected

    Raises:
        LocationError: If the reference is missing, malformed or unknown
    """
    if ref is None or isinstance(ref, bool):
        raise LocationError("Location reference is required")

    if isinstance(ref, int):
        location = db.session.get(StockLocation, ref)
        if not location:
            raise LocationError(f"Location {ref} not found")
        return location

    if isinstance(ref, str):
        code = ref.strip()
        if not code:
            raise LocationError("Location reference is required")
        location = db.session.query(StockLocation).filter_by(code=code).first()
        if not location:
            raise LocationError(f"Location '{code}' not found")
        return location

    raise LocationError("Location reference must be an id or a code")


def resolve_location_id(ref: Any) -> int:
    return resolve_location(ref).id


def get_location(location_id: int) -> StockLocation | None:
    return db.session.get(StockLocation, location_id)


def list_locations() -> list[StockLocation]:
    return db.session.query(StockLocation).order_by(StockLocation.name.asc()).all()


def create_location(name: str, code: str, kind: str = LOCATION_KIND_LIBRARY) -> StockLocation:
    if not name or not name.strip():
        raise LocationError("Location name is required")
    if not code or not code.strip():
        raise LocationError("Location code is required")
    if kind not in LOCATION_KINDS:
        raise LocationError(f"Location kind must be one of: {', '.join(LOCATION_KINDS)}")

    location = StockLocation(name=name.strip(), code=code.strip(), kind=kind)
    db.session.add(location)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise LocationError(f"Location name or code already in use: {name!r} / {code!r}")
    return location


def seed_default_locations() -> list[StockLocation]:
    """
    Ensure the default locations exist. Idempotent (matched by code).

    Returns:
        list[StockLocation]: The locations that were created by this call
    """
    created = []
    for name, code, kind in DEFAULT_LOCATIONS:
        if db.session.query(StockLocation).filter_by(code=code).first():
            continue
        location = StockLocation(name=name, code=code, kind=kind)
        db.session.add(location)
        created.append(location)
    db.session.commit()
    return created


def get_stock_levels(location_id: int) -> list[StockLevel]:
    return (
        db.session.query(StockLevel)
        .filter_by(location_id=location_id)
        .order_by(StockLevel.product_id.asc())
        .all()
    )
