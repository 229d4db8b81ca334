"""Mapping between stored templates/rotas and the engine's week values.

Templates and rotas arrive as the dicts produced by ``database.template_to_dict``
and ``database.rota_to_dict``. Ids cross into the engine as strings.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from scheduling import ScheduledDay, ShiftSlot, WeekSchedule, shift_duration_hours

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def day_name(day_of_week: int) -> str:
    if isinstance(day_of_week, int) and 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return f"Day {day_of_week}"


def _slot_from_template_shift(shift: Dict[str, Any], assigned: Sequence[str] = ()) -> ShiftSlot:
    reference = str(shift["id"])
    return ShiftSlot(
        id=reference,
        template_reference_id=reference,
        start_time=shift.get("start_time"),
        end_time=shift.get("end_time"),
        role_required=shift.get("role_required"),
        quantity_required=int(shift.get("quantity_required") or 0),
        assigned_staff_ids=tuple(assigned),
    )


def build_days_from_template(template: Dict[str, Any]) -> WeekSchedule:
    """Fresh draft: every template shift with an empty roster."""
    return tuple(
        ScheduledDay(
            day_of_week=int(day["day_of_week"]),
            shifts=tuple(_slot_from_template_shift(shift) for shift in day.get("shifts") or []),
        )
        for day in template.get("days") or []
    )


def build_days_from_rota(template: Dict[str, Any], rota: Dict[str, Any]) -> WeekSchedule:
    """Template shifts with rosters filled from the rota's assignment pairs.

    Pairs are matched on (day, template shift id) and keep their stored order;
    pairs pointing at shifts the template no longer has are dropped.
    """
    rosters: Dict[Tuple[int, str], List[str]] = defaultdict(list)
    for day in rota.get("days") or []:
        day_of_week = int(day["day_of_week"])
        for pair in day.get("assignments") or []:
            rosters[(day_of_week, str(pair["shift_template_id"]))].append(str(pair["staff_id"]))
    days = []
    for day in template.get("days") or []:
        day_of_week = int(day["day_of_week"])
        days.append(
            ScheduledDay(
                day_of_week=day_of_week,
                shifts=tuple(
                    _slot_from_template_shift(shift, rosters.get((day_of_week, str(shift["id"])), ()))
                    for shift in day.get("shifts") or []
                ),
            )
        )
    return tuple(days)


def days_to_assignments(days: Iterable[ScheduledDay]) -> List[Dict[str, Any]]:
    """Flatten engine days back into the stored per-day assignment pairs."""
    payload = []
    for day in days:
        pairs = [
            {"staff_id": staff_id, "shift_template_id": shift.template_reference_id}
            for shift in day.shifts
            for staff_id in shift.assigned_staff_ids
        ]
        payload.append({"day_of_week": day.day_of_week, "assignments": pairs})
    return payload


def find_shift(
    days: Iterable[ScheduledDay], template_reference_id: str
) -> Tuple[Optional[ScheduledDay], Optional[ShiftSlot]]:
    for day in days:
        for shift in day.shifts:
            if shift.template_reference_id == template_reference_id:
                return day, shift
    return None, None


def days_payload(days: Iterable[ScheduledDay]) -> List[Dict[str, Any]]:
    return [
        {
            "day_of_week": day.day_of_week,
            "day_name": day_name(day.day_of_week),
            "shifts": [
                {
                    "id": shift.id,
                    "shift_template_id": shift.template_reference_id,
                    "start_time": shift.start_time,
                    "end_time": shift.end_time,
                    "role_required": shift.role_required,
                    "quantity_required": shift.quantity_required,
                    "assigned_staff_ids": list(shift.assigned_staff_ids),
                    "open_slots": shift.open_slots,
                }
                for shift in day.shifts
            ],
        }
        for day in days
    ]


def group_shifts_by_day(shifts: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group one staff member's shifts per day for the "my rota" view."""
    by_day: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    for shift in shifts:
        enriched = dict(shift)
        if shift.get("start_time") and shift.get("end_time"):
            enriched["duration_hours"] = shift_duration_hours(shift["start_time"], shift["end_time"])
        else:
            enriched["duration_hours"] = 0.0
        by_day[int(shift["day_of_week"])].append(enriched)
    groups = []
    for day_of_week in sorted(by_day):
        day_shifts = sorted(by_day[day_of_week], key=lambda item: item.get("start_time") or "")
        groups.append(
            {
                "day_of_week": day_of_week,
                "day_name": day_name(day_of_week),
                "shifts": day_shifts,
                "total_hours": sum(item["duration_hours"] for item in day_shifts),
            }
        )
    return groups
