from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from database import get_rota, get_template, list_staff, rota_to_dict, template_to_dict
from policy import load_active_policy, weekly_hours_limits
from rota_days import build_days_from_rota, day_name
from scheduling import (
    MAX_WEEKLY_HOURS,
    NEAR_LIMIT_THRESHOLD,
    ScheduledDay,
    ShiftSlot,
    StaffMember,
    calculate_weekly_hours,
    is_overlapping,
)


def validate_rota(session, rota_id: int) -> Dict[str, Any]:
    """Return validation findings for a stored rota."""
    rota = rota_to_dict(get_rota(session, rota_id))
    template = template_to_dict(get_template(session, rota["template_id"]))
    days = build_days_from_rota(template, rota)
    staff_by_id = {
        str(member.id): StaffMember(id=str(member.id), name=member.name, role=member.role)
        for member in list_staff(session)
    }
    max_hours, near_ratio = weekly_hours_limits(load_active_policy(session))
    report = validate_rota_days(
        days,
        staff_by_id,
        max_weekly_hours=max_hours,
        near_limit_threshold=near_ratio,
    )
    report["rota_id"] = rota["id"]
    report["week_start"] = rota["week_start"]
    report["status"] = rota["status"]
    return report


def validate_rota_days(
    days: Sequence[ScheduledDay],
    staff_by_id: Mapping[str, StaffMember],
    *,
    max_weekly_hours: float = MAX_WEEKLY_HOURS,
    near_limit_threshold: float = NEAR_LIMIT_THRESHOLD,
) -> Dict[str, Any]:
    """Re-check a whole week the way the assignment flow checks one placement.

    Stored rotas can drift (staff deleted, template edited, manual payloads),
    so every hard rule is reported rather than assumed.
    """
    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    for day in days:
        for shift in day.shifts:
            issues.extend(_roster_issues(day, shift, staff_by_id))
            warnings.extend(_understaffed_warnings(day, shift))
        issues.extend(_overlap_issues(day, staff_by_id))
    warnings.extend(_weekly_hours_warnings(days, staff_by_id, max_weekly_hours, near_limit_threshold))
    checks = _build_validation_checklist(issues, warnings)
    return {"checks": checks, "issues": issues, "warnings": warnings}


def _shift_label(day: ScheduledDay, shift: ShiftSlot) -> str:
    window = f"{shift.start_time}-{shift.end_time}" if shift.has_times else "unscheduled"
    return f"{day_name(day.day_of_week)} {shift.role_required} {window}"


def _staff_label(staff_id: str, staff_by_id: Mapping[str, StaffMember]) -> str:
    staff = staff_by_id.get(staff_id)
    return staff.name if staff else f"Staff {staff_id}"


def _roster_issues(
    day: ScheduledDay, shift: ShiftSlot, staff_by_id: Mapping[str, StaffMember]
) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    base = {"day_of_week": day.day_of_week, "shift_template_id": shift.template_reference_id, "severity": "error"}
    seen: set[str] = set()
    for staff_id in shift.assigned_staff_ids:
        if staff_id in seen:
            issues.append(
                {
                    **base,
                    "type": "duplicate",
                    "staff_id": staff_id,
                    "message": f"{_staff_label(staff_id, staff_by_id)} is assigned twice to {_shift_label(day, shift)}.",
                }
            )
            continue
        seen.add(staff_id)
        staff = staff_by_id.get(staff_id)
        if staff is None:
            issues.append(
                {
                    **base,
                    "type": "unknown_staff",
                    "staff_id": staff_id,
                    "message": f"Unknown staff id {staff_id} on {_shift_label(day, shift)}.",
                }
            )
        elif staff.role != shift.role_required:
            issues.append(
                {
                    **base,
                    "type": "role",
                    "staff_id": staff_id,
                    "message": f"{staff.name} ({staff.role}) cannot cover {_shift_label(day, shift)}.",
                }
            )
    if len(shift.assigned_staff_ids) > shift.quantity_required:
        issues.append(
            {
                **base,
                "type": "capacity",
                "message": (
                    f"{_shift_label(day, shift)} has {len(shift.assigned_staff_ids)} staff "
                    f"for {shift.quantity_required} slots."
                ),
            }
        )
    return issues


def _understaffed_warnings(day: ScheduledDay, shift: ShiftSlot) -> List[Dict[str, Any]]:
    if not shift.open_slots:
        return []
    return [
        {
            "type": "understaffed",
            "severity": "warning",
            "day_of_week": day.day_of_week,
            "shift_template_id": shift.template_reference_id,
            "open_slots": shift.open_slots,
            "message": f"{_shift_label(day, shift)} needs {shift.open_slots} more.",
        }
    ]


def _overlap_issues(day: ScheduledDay, staff_by_id: Mapping[str, StaffMember]) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    timed = [shift for shift in day.shifts if shift.has_times]
    for index, first in enumerate(timed):
        for second in timed[index + 1:]:
            if first.template_reference_id == second.template_reference_id:
                continue
            if not is_overlapping(first.start_time, first.end_time, second.start_time, second.end_time):
                continue
            shared = [staff_id for staff_id in dict.fromkeys(first.assigned_staff_ids) if staff_id in second.assigned_staff_ids]
            for staff_id in shared:
                issues.append(
                    {
                        "type": "overlap",
                        "severity": "error",
                        "day_of_week": day.day_of_week,
                        "staff_id": staff_id,
                        "shift_template_ids": [first.template_reference_id, second.template_reference_id],
                        "message": (
                            f"{_staff_label(staff_id, staff_by_id)} works overlapping shifts "
                            f"{_shift_label(day, first)} and {second.start_time}-{second.end_time}."
                        ),
                    }
                )
    return issues


def _weekly_hours_warnings(
    days: Sequence[ScheduledDay],
    staff_by_id: Mapping[str, StaffMember],
    max_weekly_hours: float,
    near_limit_threshold: float,
) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    near_limit = max_weekly_hours * near_limit_threshold
    for staff_id, hours in sorted(calculate_weekly_hours(days).items()):
        if hours > max_weekly_hours:
            kind = "exceeds"
            message = f"{_staff_label(staff_id, staff_by_id)} is scheduled {hours:.2f}h (limit {max_weekly_hours:g}h)."
        elif hours >= near_limit:
            kind = "near_limit"
            message = f"{_staff_label(staff_id, staff_by_id)} is close to the weekly limit at {hours:.2f}h."
        else:
            continue
        warnings.append(
            {
                "type": "weekly_hours",
                "kind": kind,
                "severity": "warning",
                "staff_id": staff_id,
                "hours": hours,
                "limit": max_weekly_hours,
                "message": message,
            }
        )
    return warnings


def _build_validation_checklist(
    issues: List[Dict[str, Any]],
    warnings: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Concise checklist entries: ``status`` is ok|fail|warn."""
    checks: List[Dict[str, Any]] = []

    def summarize(items: List[Dict[str, Any]], *, limit: int = 5) -> str:
        parts = [str(entry.get("message") or "").strip() for entry in items[:limit]]
        parts = [part for part in parts if part]
        if len(items) > limit:
            parts.append(f"+{len(items) - limit} more")
        return "; ".join(parts)

    def add_check(label: str, items: List[Dict[str, Any]], *, failing: str = "fail", details: Optional[str] = None) -> None:
        checks.append(
            {
                "label": label,
                "status": failing if items else "ok",
                "details": (details if details is not None else summarize(items)) if items else "",
            }
        )

    def of_type(source: List[Dict[str, Any]], *types: str) -> List[Dict[str, Any]]:
        return [entry for entry in source if entry.get("type") in types]

    add_check("All assigned staff exist?", of_type(issues, "unknown_staff"))
    add_check("Roles match shift requirements?", of_type(issues, "role"))
    add_check("No duplicate or over-capacity rosters?", of_type(issues, "duplicate", "capacity"))
    add_check("No overlapping shifts per person?", of_type(issues, "overlap"))
    add_check("Every shift fully staffed?", of_type(warnings, "understaffed"), failing="warn")
    add_check("Weekly hours within limit?", of_type(warnings, "weekly_hours"), failing="warn")
    return checks
