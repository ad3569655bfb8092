import math
import sys
from typing import Any, Iterable

EPSILON = 1e-9
FLOAT_MAX = sys.float_info.max


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def clamp01(value: Any) -> float:
    if not is_finite_number(value):
        return 0.0
    return clamp(float(value))


def is_finite_number(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(float(value))


def as_number(value: Any, fallback: float) -> float:
    """Return ``value`` as a float when it is a finite real number, else ``fallback``."""
    if is_finite_number(value):
        return float(value)
    return fallback


def finite_or_zero(value: Any) -> float:
    return as_number(value, 0.0)


def safe_div(numerator: float, denominator: float) -> float:
    return numerator / max(EPSILON, denominator)


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def max_finite(values: Iterable[Any]) -> float:
    best = None
    for value in values:
        if not is_finite_number(value):
            continue
        number = float(value)
        if best is None or number > best:
            best = number
    return best if best is not None else 0.0


def saturate(value: float) -> float:
    """Map overflow to the largest finite float of the same sign; NaN becomes 0."""
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        return FLOAT_MAX if value > 0 else -FLOAT_MAX
    return value
