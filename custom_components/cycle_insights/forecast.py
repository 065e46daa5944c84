"""Interval statistics, forward projection and lateness for logged entries."""
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from statistics import mean, pstdev

from .const import (
    ALERT_LATE,
    FORECAST_COUNT,
    LATE_GRACE_DAYS,
    LONG_RANGE_BASE,
    LONG_RANGE_FLOOR,
    LONG_RANGE_STEP,
    LONG_RANGE_VARIABILITY_WEIGHT,
    NEAR_TERM_BASE,
    NEAR_TERM_COUNT,
    NEAR_TERM_FLOOR,
    NEAR_TERM_STEP,
    NEAR_TERM_VARIABILITY_WEIGHT,
    PERIOD_LENGTH_DAYS,
    SMALL_SAMPLE_PENALTY,
    SMALL_SAMPLE_SIZE,
)
from .helpers import Alert, CycleEntry, PredictedCycle, round_half_up

LATE_MESSAGE = (
    "Your period is {days_late} days late. Consider taking a pregnancy test "
    "or consulting your healthcare provider."
)


class InvalidIntervalError(ValueError):
    """Two entries fall on the same day or out of order after sorting."""

    def __init__(self, previous: dt.date, current: dt.date) -> None:
        super().__init__(
            f"Non-positive gap between {previous.isoformat()} and {current.isoformat()}"
        )
        self.previous = previous
        self.current = current


@dataclass(frozen=True)
class CycleStats:
    mean_interval: float
    variability: float
    anchor_date: dt.date
    sample_size: int


def _day_gaps(dates: list[dt.date]) -> list[int]:
    gaps = []
    for i in range(1, len(dates)):
        gap = (dates[i] - dates[i - 1]).days
        if gap <= 0:
            raise InvalidIntervalError(dates[i - 1], dates[i])
        gaps.append(gap)
    return gaps


def analyze_intervals(entries: list[CycleEntry]) -> CycleStats | None:
    """Return interval statistics, or None when fewer than two entries exist.

    Entries may arrive in any order. Raises InvalidIntervalError when two
    sorted dates are not strictly increasing.
    """
    if len(entries) < 2:
        return None
    dates = sorted(e.date for e in entries)
    gaps = _day_gaps(dates)
    avg = float(mean(gaps))
    return CycleStats(
        mean_interval=avg,
        # population stddev around the same mean
        variability=float(pstdev(gaps, mu=avg)),
        anchor_date=dates[-1],
        sample_size=len(entries),
    )


def _confidence(index: int, stats: CycleStats) -> int:
    if index <= NEAR_TERM_COUNT:
        penalty = SMALL_SAMPLE_PENALTY if stats.sample_size < SMALL_SAMPLE_SIZE else 0
        raw = max(
            NEAR_TERM_FLOOR,
            NEAR_TERM_BASE
            - NEAR_TERM_STEP * index
            - NEAR_TERM_VARIABILITY_WEIGHT * stats.variability
            - penalty,
        )
    else:
        raw = max(
            LONG_RANGE_FLOOR,
            LONG_RANGE_BASE
            - LONG_RANGE_STEP * index
            - LONG_RANGE_VARIABILITY_WEIGHT * stats.variability,
        )
    # No upper clamp: the tier formulas decide the ceiling.
    return round_half_up(raw)


def forecast_cycles(
    user_id: str, stats: CycleStats, generated_at: dt.datetime
) -> list[PredictedCycle]:
    """Project FORECAST_COUNT windows forward from the anchor date, index ascending."""
    predictions = []
    for i in range(1, FORECAST_COUNT + 1):
        start = stats.anchor_date + dt.timedelta(
            days=round_half_up(stats.mean_interval * i)
        )
        predictions.append(
            PredictedCycle(
                user_id=user_id,
                index=i,
                start=start,
                end=start + dt.timedelta(days=PERIOD_LENGTH_DAYS),
                confidence=_confidence(i, stats),
                generated_at=generated_at,
            )
        )
    return predictions


def detect_lateness(anchor_date: dt.date, mean_interval: float, today: dt.date) -> int | None:
    """Return days late, or None when today is within the expected window."""
    if isinstance(today, dt.datetime):
        today = today.date()
    days_since = (today - anchor_date).days
    if days_since > mean_interval + LATE_GRACE_DAYS:
        return days_since - math.floor(mean_interval)
    return None


def late_alert(user_id: str, days_late: int, created_at: dt.datetime) -> Alert:
    return Alert(
        user_id=user_id,
        kind=ALERT_LATE,
        message=LATE_MESSAGE.format(days_late=days_late),
        created_at=created_at,
    )
