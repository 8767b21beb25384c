# legcast/utils/numeric.py
from __future__ import annotations

import math
from typing import Optional


def coerce_float(value) -> Optional[float]:
    """
    Best-effort float conversion that returns None when the value cannot be parsed
    or is not finite.
    """
    if value is None or value == "":
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    num = float(value)
    return num if math.isfinite(num) else None


def round_or_none(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(float(value), digits)


__all__ = ["coerce_float", "finite_or_none", "round_or_none"]
