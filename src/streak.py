"""Consecutive-day logging streak.

A streak is the run of calendar days (local date, not 24h windows) with
at least one reading, ending at the most recent logged day. Full
recomputation from the reading set is the reference algorithm;
``advance`` is the incremental shortcut used after a single insert.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from src.models import Reading, StreakData


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def compute_streak(readings: Iterable[Reading]) -> StreakData:
    """Recompute streak data from the complete reading set.

    Args:
        readings: Readings in any order

    Returns:
        Streak ending at the most recent logged day (freshness not applied)
    """
    unique_dates = sorted({reading.calendar_date for reading in readings})
    if not unique_dates:
        return StreakData()

    current = 1
    best = 1
    for previous, current_date in zip(unique_dates, unique_dates[1:]):
        if (current_date - previous).days == 1:
            current += 1
            best = max(best, current)
        else:
            current = 1

    return StreakData(
        current_streak=current,
        best_streak=best,
        last_reading_date=unique_dates[-1],
    )


def advance(streak: StreakData, reading_date: date | datetime) -> StreakData:
    """Update streak data for one newly inserted reading.

    Same-day and backdated readings leave the streak unchanged; callers
    that need exact results after backdated inserts use ``compute_streak``.

    Args:
        streak: Streak before the insert
        reading_date: Timestamp or date of the new reading

    Returns:
        New streak data (the input is not modified)
    """
    new_date = _as_date(reading_date)

    if streak.last_reading_date is None:
        return StreakData(current_streak=1, best_streak=max(1, streak.best_streak),
                          last_reading_date=new_date)

    days_diff = (new_date - streak.last_reading_date).days
    if days_diff <= 0:
        # Same day or backdated
        return StreakData(streak.current_streak, streak.best_streak, streak.last_reading_date)
    if days_diff == 1:
        current = streak.current_streak + 1
        return StreakData(current, max(streak.best_streak, current), new_date)
    return StreakData(1, streak.best_streak, new_date)


def apply_freshness(streak: StreakData, today: date | datetime | None = None) -> StreakData:
    """Report the current streak as broken once a full day has been missed.

    Args:
        streak: Stored streak data
        today: Reference date (defaults to the local date)

    Returns:
        Copy with ``current_streak`` zeroed when the last logged day is
        more than one day before today; ``best_streak`` is never changed
    """
    today = _as_date(today) if today is not None else date.today()
    if streak.last_reading_date and (today - streak.last_reading_date).days > 1:
        return StreakData(0, streak.best_streak, streak.last_reading_date)
    return StreakData(streak.current_streak, streak.best_streak, streak.last_reading_date)
