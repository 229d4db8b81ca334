"""Pure assignment engine: validation, warnings, ranking and commits for rota weeks."""

from .assignment import apply_assignment, calculate_warnings, validate_assignment
from .constants import MAX_WEEKLY_HOURS, NEAR_LIMIT_THRESHOLD
from .models import (
    AssignmentFailure,
    AssignmentOutcome,
    AssignmentSuccess,
    AssignmentValidation,
    AssignmentWarning,
    Rejection,
    ScheduledDay,
    ShiftSlot,
    StaffMember,
    WeekSchedule,
)
from .overlap import has_overlapping_assignment, is_overlapping
from .suggestions import get_suggested_staff
from .time_utils import shift_duration_hours, to_minutes
from .weekly_hours import calculate_weekly_hours

__all__ = [
    "AssignmentFailure",
    "AssignmentOutcome",
    "AssignmentSuccess",
    "AssignmentValidation",
    "AssignmentWarning",
    "MAX_WEEKLY_HOURS",
    "NEAR_LIMIT_THRESHOLD",
    "Rejection",
    "ScheduledDay",
    "ShiftSlot",
    "StaffMember",
    "WeekSchedule",
    "apply_assignment",
    "calculate_warnings",
    "calculate_weekly_hours",
    "get_suggested_staff",
    "has_overlapping_assignment",
    "is_overlapping",
    "shift_duration_hours",
    "to_minutes",
    "validate_assignment",
]
