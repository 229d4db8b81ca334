"""Validate, warn, commit: the three steps of placing staff on a shift.

``validate_assignment`` covers hard constraints only and ``calculate_warnings``
covers soft ones; ``apply_assignment`` is the state transition and performs
no validation of its own. Callers run them in that order and persist the
committed week themselves.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence

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
)
from .overlap import has_overlapping_assignment
from .time_utils import shift_duration_hours


def validate_assignment(staff: StaffMember, shift: ShiftSlot, day: ScheduledDay) -> AssignmentValidation:
    """Check whether ``staff`` may be placed on ``shift``.

    Checks run in a fixed order and stop at the first failure: role, capacity,
    duplicate, same-day overlap. Weekly hours are not considered and nothing
    outside ``day`` is inspected.
    """
    if staff.role != shift.role_required:
        return AssignmentValidation.reject(Rejection.ROLE_MISMATCH)
    if len(shift.assigned_staff_ids) >= shift.quantity_required:
        return AssignmentValidation.reject(Rejection.SLOT_FULL)
    if staff.id in shift.assigned_staff_ids:
        return AssignmentValidation.reject(Rejection.ALREADY_ASSIGNED)
    if has_overlapping_assignment(staff.id, shift, day):
        return AssignmentValidation.reject(Rejection.OVERLAPPING_SHIFT)
    return AssignmentValidation.ok()


def calculate_warnings(
    shift: ShiftSlot,
    current_hours: float,
    *,
    max_weekly_hours: float = MAX_WEEKLY_HOURS,
    near_limit_threshold: float = NEAR_LIMIT_THRESHOLD,
) -> List[AssignmentWarning]:
    """Soft warnings for adding ``shift`` to someone already on ``current_hours``.

    Only the most severe warning is returned. Overnight shifts count in full.
    """
    if not shift.has_times:
        return []
    projected = current_hours + shift_duration_hours(shift.start_time, shift.end_time)
    if projected > max_weekly_hours:
        return [AssignmentWarning.EXCEEDS_WEEKLY_HOURS]
    if projected >= max_weekly_hours * near_limit_threshold:
        return [AssignmentWarning.NEAR_WEEKLY_LIMIT]
    return []


def apply_assignment(
    staff_id: str,
    template_reference_id: str,
    all_days: Sequence[ScheduledDay],
) -> AssignmentOutcome:
    """Append ``staff_id`` to the first shift matching ``template_reference_id``.

    Only the path from the week down to the matched shift is rebuilt; every
    other day and shift in the result is the same object as in ``all_days``.
    """
    days = tuple(all_days or ())
    for day_index, day in enumerate(days):
        for shift_index, shift in enumerate(day.shifts):
            if shift.template_reference_id != template_reference_id:
                continue
            updated_shift = replace(shift, assigned_staff_ids=shift.assigned_staff_ids + (staff_id,))
            updated_day = replace(
                day,
                shifts=day.shifts[:shift_index] + (updated_shift,) + day.shifts[shift_index + 1:],
            )
            updated_days = days[:day_index] + (updated_day,) + days[day_index + 1:]
            return AssignmentSuccess(updated_days=updated_days)
    return AssignmentFailure(reason=Rejection.SHIFT_NOT_FOUND)
