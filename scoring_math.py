from __future__ import annotations

import math
import statistics
from typing import Iterable, Sequence

Breakpoints = Sequence[Sequence[float]]


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round2(value: float) -> float:
    return round(value, 2)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def mean(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return statistics.fmean(values)


def pstdev(values: Iterable[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    values = list(values)
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def interpolate(value: float, breakpoints: Breakpoints) -> float:
    """Piecewise-linear mapping of ``value`` through ``(input, output)`` pairs.

    Pairs are sorted ascending by input before bracketing, so tables written
    high-to-low (e.g. an inverted concentration table) map the same way as
    their ascending form. When several pairs share an input, a value landing
    exactly on it takes the output of the last of them. Output is clamped to
    [0, 100]; an empty table scores 0.
    """
    if not breakpoints:
        return 0.0
    points = sorted(((float(x), float(y)) for x, y in breakpoints), key=lambda pair: pair[0])

    if value < points[0][0]:
        return clamp(points[0][1])
    if value >= points[-1][0]:
        return clamp(points[-1][1])

    # Half-open segments; zero-width ones never match.
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        if x0 <= value < x1:
            t = (value - x0) / (x1 - x0)
            return clamp(y0 + t * (y1 - y0))

    # Only reachable for NaN input.
    return clamp(points[-1][1])
