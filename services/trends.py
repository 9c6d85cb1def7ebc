"""Trend arithmetic shared by the per-sensor aggregator and the report engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from app.schemas import TrendDirection

STABLE_THRESHOLD_PERCENT = 5.0


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity (40.5 -> 41, -2.5 -> -2)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class TrendEstimate:
    direction: TrendDirection
    change_rate: float
    change: float = 0.0


STABLE = TrendEstimate(direction=TrendDirection.stable, change_rate=0.0)


def classify(change: float, baseline: float) -> TrendEstimate:
    """Turn an absolute change against a baseline into a direction and percent rate.

    A zero baseline has no defined rate: the rate is reported as 0.0 and the
    direction follows the sign of ``change``.
    """
    if baseline == 0:
        if change > 0:
            direction = TrendDirection.increasing
        elif change < 0:
            direction = TrendDirection.decreasing
        else:
            direction = TrendDirection.stable
        return TrendEstimate(direction=direction, change_rate=0.0, change=change)

    rate = change / baseline * 100
    if abs(rate) < STABLE_THRESHOLD_PERCENT:
        direction = TrendDirection.stable
    elif rate > 0:
        direction = TrendDirection.increasing
    else:
        direction = TrendDirection.decreasing
    return TrendEstimate(direction=direction, change_rate=round(rate, 2), change=change)


def endpoint_trend(values: Sequence[float]) -> TrendEstimate:
    """Compare the last value of a chronological window with the first."""
    if len(values) < 2:
        return STABLE
    return classify(values[-1] - values[0], values[0])


def half_split_trend(values: Sequence[float]) -> TrendEstimate:
    """Compare the mean of the second half of a series with the first half."""
    if len(values) < 2:
        return STABLE
    middle = len(values) // 2
    first = values[:middle]
    second = values[middle:]
    first_avg = sum(first) / len(first)
    second_avg = sum(second) / len(second)
    return classify(second_avg - first_avg, first_avg)


def linear_projection(last: float, change: float, factor: float = 0.5) -> int:
    """Naive next-value guess: the last value plus a fraction of the window change."""
    return round_half_up(last + change * factor)
