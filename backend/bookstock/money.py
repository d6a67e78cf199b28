from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents using standard currency rounding (half up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any) -> Decimal:
    """
    Coerce a client-supplied amount to Decimal.

    - Accepts Decimal, int, float and numeric strings ("18", "18.5", "18.00")
    - Rejects bool, NaN and Infinity
    - Floats go through str() so 18.1 stays 18.1 and not 18.0999...
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("amount must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("amount must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValueError("amount must be a number")
    else:
        raise ValueError("amount must be a number")

    if not result.is_finite():
        raise ValueError("amount must be a finite number")
    return result


def format_money(value: Optional[Decimal]) -> Optional[str]:
    """Serialize an amount as a fixed 2-decimal string ("90.00")."""
    if value is None:
        return None
    return format(quantize_money(Decimal(value)), "f")
