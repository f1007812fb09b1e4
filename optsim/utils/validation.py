from __future__ import annotations

import math
from typing import Any

from optsim.utils.exceptions import ValidationError
from optsim.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_QUANTITY = 1


def parse_quantity(raw: Any, strict: bool = False, default: int = DEFAULT_QUANTITY) -> int:
    """Parse a lot count from user input.

    Missing, non-numeric or non-positive input falls back to ``default``
    unless ``strict`` is set, in which case ValidationError is raised.
    """
    try:
        if isinstance(raw, bool):
            raise TypeError("bool is not a quantity")
        value = int(float(raw)) if isinstance(raw, (str, float)) else int(raw)
    except (TypeError, ValueError, OverflowError):
        value = None

    if value is None or value < 1:
        if strict:
            raise ValidationError(f"Invalid quantity: {raw!r}", field="quantity")
        logger.info("input_defaulted", field="quantity", raw=repr(raw), default=default)
        return default
    return value


def parse_price(raw: Any, fallback: float, strict: bool = False) -> float:
    """Parse a premium from user input, falling back to the last quote."""
    try:
        if isinstance(raw, bool):
            raise TypeError("bool is not a price")
        value = float(raw)
    except (TypeError, ValueError):
        value = None

    if value is None or not math.isfinite(value) or value <= 0:
        if strict:
            raise ValidationError(f"Invalid price: {raw!r}", field="price")
        logger.info("input_defaulted", field="price", raw=repr(raw), default=fallback)
        return fallback
    return value


def parse_strike(raw: Any) -> float:
    """Strikes have no sensible default: anything but a finite positive number raises."""
    try:
        if isinstance(raw, bool):
            raise TypeError("bool is not a strike")
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid strike: {raw!r}", field="strike")

    if not math.isfinite(value) or value <= 0:
        raise ValidationError(f"Invalid strike: {raw!r}", field="strike")
    return value
