from __future__ import annotations

from typing import List, Sequence

from .models import ScheduledDay, ShiftSlot, StaffMember
from .overlap import has_overlapping_assignment
from .weekly_hours import calculate_weekly_hours


def get_suggested_staff(
    shift: ShiftSlot,
    day_of_week: int,
    all_days: Sequence[ScheduledDay],
    staff_roster: Sequence[StaffMember],
) -> List[StaffMember]:
    """Eligible staff for ``shift``, least-scheduled first.

    Filters on role, on the shift's current roster and on overlapping work
    the same day, then orders by current weekly hours. Ties keep roster order.
    """
    candidates = [staff for staff in staff_roster or () if staff.role == shift.role_required]
    candidates = [staff for staff in candidates if staff.id not in shift.assigned_staff_ids]

    day = next((d for d in all_days or () if d.day_of_week == day_of_week), None)
    if day is not None:
        candidates = [staff for staff in candidates if not has_overlapping_assignment(staff.id, shift, day)]

    hours = calculate_weekly_hours(all_days)
    return sorted(candidates, key=lambda staff: hours.get(staff.id, 0))
