from __future__ import annotations

from .models import ScheduledDay, ShiftSlot
from .time_utils import to_minutes


def is_overlapping(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open overlap test on two HH:MM windows.

    Back-to-back windows (one ends when the other starts) do not overlap.
    Windows crossing midnight are compared as raw minutes.
    """
    a_start = to_minutes(start_a)
    a_end = to_minutes(end_a)
    b_start = to_minutes(start_b)
    b_end = to_minutes(end_b)
    return a_start < b_end and b_start < a_end


def has_overlapping_assignment(staff_id: str, shift: ShiftSlot, day: ScheduledDay) -> bool:
    """True when ``staff_id`` already works another shift of ``day`` that overlaps ``shift``.

    The target itself is skipped by template reference, and shifts missing a
    start or end time never count as overlapping.
    """
    for other in day.shifts:
        if other.template_reference_id == shift.template_reference_id:
            continue
        if staff_id not in other.assigned_staff_ids:
            continue
        if not other.has_times or not shift.has_times:
            continue
        if is_overlapping(other.start_time, other.end_time, shift.start_time, shift.end_time):
            return True
    return False
