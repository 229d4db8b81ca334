from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable

from .models import ScheduledDay
from .time_utils import to_minutes


def calculate_weekly_hours(days: Iterable[ScheduledDay]) -> Dict[str, float]:
    """Total assigned hours per staff id, rounded to two decimals.

    Durations here are raw ``end - start``: a shift whose end is not after
    its start (including overnight shifts) contributes nothing.
    """
    staff_hours: Dict[str, float] = defaultdict(float)
    for day in days or ():
        for shift in day.shifts or ():
            if not shift.start_time or not shift.end_time:
                continue
            duration_minutes = to_minutes(shift.end_time) - to_minutes(shift.start_time)
            if duration_minutes <= 0:
                continue
            duration_hours = duration_minutes / 60
            for staff_id in shift.assigned_staff_ids or ():
                staff_hours[staff_id] += duration_hours
    return {staff_id: round(hours, 2) for staff_id, hours in staff_hours.items()}
