"""
Completion projection (ECD) and the working-day calendar.
"""

from .completion_projector import (
    CompletionEstimate,
    StartReason,
    estimate,
    project,
    project_many,
    remaining_minutes,
)

from .work_calendar import (
    CalendarWalk,
    advance_working_minutes,
    daily_capacity_from_monthly_goal,
    is_working_day,
    working_days_in_month,
)

__all__ = [
    # Projector
    "CompletionEstimate", "StartReason", "estimate", "project", "project_many",
    "remaining_minutes",
    # Calendar
    "CalendarWalk", "advance_working_minutes", "daily_capacity_from_monthly_goal",
    "is_working_day", "working_days_in_month",
]
