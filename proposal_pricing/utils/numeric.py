"""
Numeric helpers for form-entered money values.

Amounts typed into the proposal form are never rejected: anything that is
not a finite, non-negative number becomes 0.0 so the form stays renderable.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from proposal_pricing.exceptions import InvalidNumericInput

logger = logging.getLogger(__name__)


def parse_amount(value: Any) -> float:
    """Strictly parse a money amount. Raises InvalidNumericInput."""
    if isinstance(value, bool):
        raise InvalidNumericInput(f"Boolean is not an amount: {value!r}")
    if value is None:
        raise InvalidNumericInput("Missing amount")
    if isinstance(value, str):
        cleaned = value.strip().replace("$", "").replace(",", "")
        if not cleaned:
            raise InvalidNumericInput("Empty amount")
        value = cleaned
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidNumericInput(f"Not a number: {value!r}") from e
    if not math.isfinite(number):
        raise InvalidNumericInput(f"Not a finite number: {value!r}")
    if number < 0:
        raise InvalidNumericInput(f"Negative amount: {number}")
    return number


def coerce_amount(value: Any) -> float:
    """Parse a money amount, coercing invalid input to zero."""
    try:
        return parse_amount(value)
    except InvalidNumericInput as e:
        logger.warning(f"Coercing invalid amount to 0: {e}")
        return 0.0


def round_cents(value: float) -> float:
    return round(value, 2)


def money_equal(a: float, b: float, tolerance: float = 0.01) -> bool:
    """True when two amounts agree within the tolerance (one cent by default)."""
    return abs(a - b) <= tolerance + 1e-9


def discount_percent(amount: float, subtotal: float) -> float:
    """Discount as a percentage of the subtotal. A positive discount on a zero subtotal is 100%."""
    if subtotal <= 0:
        return 100.0 if amount > 0 else 0.0
    return amount * 100 / subtotal
