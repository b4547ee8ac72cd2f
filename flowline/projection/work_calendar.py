"""
Working-day calendar.

Weekend handling for the completion projector and the monthly-goal daily
capacity used in the scheduling summary.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

import pandas as pd
from dateutil.relativedelta import relativedelta

from ..models_common import ShiftConfig

logger = logging.getLogger(__name__)

SATURDAY = 5
SUNDAY = 6


def is_working_day(day: Union[date, datetime], shift: ShiftConfig) -> bool:
    """Weekdays always work; weekends only when the shift says so."""
    weekday = day.weekday()
    if weekday == SATURDAY:
        return shift.work_saturday
    if weekday == SUNDAY:
        return shift.work_sunday
    return True


def start_of_next_day(moment: datetime, day_start_hour: int = 0) -> datetime:
    nxt = (moment + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return nxt + timedelta(hours=day_start_hour)


@dataclass
class CalendarWalk:
    """Result of advancing a cursor through working time."""
    end: datetime
    minutes_left: float = 0.0
    iterations: int = 0
    safety_bound_tripped: bool = False


def advance_working_minutes(
    start: datetime,
    minutes: float,
    shift: ShiftConfig,
    day_start_hour: int = 0,
    max_iterations: int = 365 * 24,
) -> CalendarWalk:
    """
    Advance `start` by `minutes` of working time.

    Each iteration consumes at most what is left of the current calendar day;
    a non-working day moves the cursor to the next day's start-of-day.
    """
    cursor = start
    minutes_left = float(minutes)
    iterations = 0

    while minutes_left > 0 and iterations < max_iterations:
        iterations += 1

        if not is_working_day(cursor, shift):
            cursor = start_of_next_day(cursor, day_start_hour)
            continue

        midnight = start_of_next_day(cursor)
        available = (midnight - cursor).total_seconds() / 60.0

        if minutes_left <= available:
            cursor = cursor + timedelta(minutes=minutes_left)
            minutes_left = 0.0
        else:
            cursor = midnight
            minutes_left -= available

    tripped = minutes_left > 0
    if tripped:
        logger.warning(
            f"Calendar walk stopped after {iterations} iterations with "
            f"{minutes_left:.0f} min left; check step durations and working days"
        )

    return CalendarWalk(
        end=cursor,
        minutes_left=max(0.0, minutes_left),
        iterations=iterations,
        safety_bound_tripped=tripped,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# MONTHLY GOAL
# ═══════════════════════════════════════════════════════════════════════════════

def working_days_in_month(reference: Union[date, datetime], shift: ShiftConfig) -> int:
    """Number of working days in the month containing `reference`."""
    first = date(reference.year, reference.month, 1)
    last = first + relativedelta(months=1, days=-1)
    days = pd.date_range(first, last, freq="D")
    return int(sum(1 for d in days if is_working_day(d, shift)))


def daily_capacity_from_monthly_goal(
    monthly_target: Optional[int],
    shift: ShiftConfig,
    today: Optional[Union[date, datetime]] = None,
) -> Optional[int]:
    """
    Orders per day needed to hit the monthly target.

    None when there is no positive target or the month has no working day.
    """
    if not monthly_target or monthly_target <= 0:
        return None

    today = today or datetime.now()
    working_days = working_days_in_month(today, shift)
    if working_days == 0:
        return None

    return int(math.ceil(monthly_target / working_days))
