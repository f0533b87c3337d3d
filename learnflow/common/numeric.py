"""
Numeric helpers shared by the analytics code.
"""

import math
from typing import Iterable


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up: ``round_half_up(2.5) == 3``, unlike ``round``."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def mean(values: Iterable[float]) -> float:
    """Arithmetic mean; 0 for an empty input."""
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)
