# backend/bookstock/services/reconciliation_service.py
"""
Amount reconciliation for movements.

A movement's declared total must equal the sum of its item totals. This module
is the only place those totals are computed; it never touches the database.

- reconcile_items(): creation time, derives item totals and the movement total
- check_totals(): read time, compares a stored total with the stored item
  totals and reports a mismatch instead of correcting it
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from bookstock.money import format_money, parse_money, quantize_money
from bookstock.validation import coerce_int


# Column capacity: unit_price Numeric(10, 2), quantity a sane upper bound
MAX_UNIT_PRICE = Decimal("99999999.99")
MAX_QUANTITY = 1_000_000

ZERO = Decimal("0.00")


class ReconciliationError(Exception):
    """Raised when a proposed item list cannot be reconciled."""
    pass


class EmptyItemSet(ReconciliationError):
    def __init__(self):
        super().__init__("A movement requires at least one item")


class InvalidItem(ReconciliationError):
    def __init__(self, index: int, field: str, message: str):
        super().__init__(f"Item {index}: {message}")
        self.index = index
        self.field = field


@dataclass(frozen=True)
class ReconciledItem:
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: str | None = None


@dataclass(frozen=True)
class ReconciledItems:
    items: tuple[ReconciledItem, ...]
    total_amount: Decimal


@dataclass(frozen=True)
class ReconciliationMismatch:
    """Stored total disagrees with the stored item totals."""
    declared_total: Decimal
    computed_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.declared_total - self.computed_total

    def to_dict(self) -> dict:
        return {
            "status": "mismatch",
            "declared_total": format_money(self.declared_total),
            "computed_total": format_money(self.computed_total),
            "difference": format_money(self.difference),
        }


def _reconcile_one(index: int, raw: Mapping[str, Any]) -> ReconciledItem:
    if not isinstance(raw, Mapping):
        raise InvalidItem(index, "item", "must be an object")

    if raw.get("product_id") is None:
        raise InvalidItem(index, "product_id", "product_id is required")
    try:
        product_id = coerce_int(raw.get("product_id"), "product_id")
    except ValueError as exc:
        raise InvalidItem(index, "product_id", str(exc))

    try:
        quantity = coerce_int(raw.get("quantity"), "quantity")
    except ValueError as exc:
        raise InvalidItem(index, "quantity", str(exc))
    if quantity <= 0:
        raise InvalidItem(index, "quantity", "quantity must be positive")
    if quantity > MAX_QUANTITY:
        raise InvalidItem(index, "quantity", f"quantity must not exceed {MAX_QUANTITY}")

    try:
        unit_price = quantize_money(parse_money(raw.get("unit_price")))
    except ValueError as exc:
        raise InvalidItem(index, "unit_price", f"unit_price: {exc}")
    if unit_price < 0:
        raise InvalidItem(index, "unit_price", "unit_price must not be negative")
    if unit_price > MAX_UNIT_PRICE:
        raise InvalidItem(index, "unit_price", f"unit_price must not exceed {MAX_UNIT_PRICE}")

    notes = raw.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise InvalidItem(index, "notes", "notes must be a string")

    return ReconciledItem(
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        total_price=quantize_money(unit_price * quantity),
        notes=(notes.strip() or None) if notes else None,
    )


def reconcile_items(items: Sequence[Mapping[str, Any]]) -> ReconciledItems:
    """
    Compute item totals and the movement total.

    Args:
        items: [{product_id, quantity, unit_price, notes?}, ...]

    Returns:
        ReconciledItems: items with total_price, plus total_amount

    Raises:
        EmptyItemSet: If items is empty
        InvalidItem: On the first item with a bad product id, quantity or price
    """
    if not items:
        raise EmptyItemSet()

    reconciled = tuple(_reconcile_one(index, raw) for index, raw in enumerate(items))
    total = sum((item.total_price for item in reconciled), ZERO)

    return ReconciledItems(items=reconciled, total_amount=quantize_money(total))


def check_totals(declared_total: Decimal, item_totals: Iterable[Decimal]) -> ReconciliationMismatch | None:
    """
    Read-time consistency check.

    Returns None when the stored total equals the sum of stored item totals
    (to the cent), otherwise a ReconciliationMismatch for the caller to report.
    """
    declared = quantize_money(Decimal(declared_total if declared_total is not None else ZERO))
    computed = quantize_money(sum((Decimal(total) for total in item_totals), ZERO))
    if declared == computed:
        return None
    return ReconciliationMismatch(declared_total=declared, computed_total=computed)
