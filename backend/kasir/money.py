# Overview: Currency rounding helpers shared by the cart, settlement and return paths.

from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float | int) -> int:
    """
    Round to whole currency units, halves away from zero.

    Python's round() uses banker's rounding (round(2.5) == 2); receipts must
    round 2.5 up to 3.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_up_to_unit(value: int, unit: int) -> int:
    """Smallest multiple of ``unit`` that is >= ``value``."""
    if unit <= 0:
        raise ValueError("unit must be positive")
    return int(math.ceil(value / unit) * unit)


def line_total(effective_price: float, quantity: int) -> int:
    """Per-line rounded total: round(effectivePrice x quantity)."""
    return round_half_up(effective_price * quantity)
