"""Rota editing on top of the assignment engine.

Loads a stored rota into engine values, runs validate -> warn -> commit and
writes the committed week back. The engine itself never touches the session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from database import (
    Rota,
    RecordNotFoundError,
    get_rota,
    get_staff,
    get_template,
    list_staff,
    record_audit_log,
    rota_to_dict,
    save_rota_days,
    template_to_dict,
)
from policy import load_active_policy, weekly_hours_limits
from rota_days import build_days_from_rota, days_payload, days_to_assignments, find_shift
from scheduling import (
    StaffMember,
    WeekSchedule,
    apply_assignment,
    calculate_warnings,
    calculate_weekly_hours,
    get_suggested_staff,
    validate_assignment,
)

logger = logging.getLogger("rota.service")

__all__ = [
    "assign_staff_to_shift",
    "days_payload",
    "load_rota_days",
    "suggest_staff_for_shift",
]


def _staff_member(row) -> StaffMember:
    return StaffMember(id=str(row.id), name=row.name, role=row.role)


def load_rota_days(session, rota_id: int) -> Tuple[Rota, Dict[str, Any], WeekSchedule]:
    rota = get_rota(session, rota_id)
    try:
        template = template_to_dict(get_template(session, rota.template_id))
    except RecordNotFoundError as exc:
        raise RecordNotFoundError(
            f"Template {rota.template_id} used by rota {rota_id} no longer exists."
        ) from exc
    return rota, template, build_days_from_rota(template, rota_to_dict(rota))


def assign_staff_to_shift(
    session,
    rota_id: int,
    staff_id: Any,
    shift_template_id: Any,
    *,
    actor: str = "system",
) -> Dict[str, Any]:
    """Place one staff member on one template shift of a stored rota.

    Hard-constraint failures come back as ``rejection``; warnings never block
    the save. Returns the committed days and weekly hours either way.
    """
    rota, _template, days = load_rota_days(session, rota_id)
    try:
        staff_key = int(str(staff_id).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"staff_id must be an integer id, got '{staff_id}'.") from exc
    staff = _staff_member(get_staff(session, staff_key))
    reference = str(shift_template_id)

    result: Dict[str, Any] = {
        "rota_id": rota.id,
        "staff_id": staff.id,
        "shift_template_id": reference,
        "assigned": False,
        "rejection": None,
        "warnings": [],
    }

    day, shift = find_shift(days, reference)
    if shift is None:
        outcome = apply_assignment(staff.id, reference, days)
        result["rejection"] = outcome.reason.value
    else:
        validation = validate_assignment(staff, shift, day)
        if not validation.valid:
            result["rejection"] = validation.rejection.value
        else:
            max_hours, near_ratio = weekly_hours_limits(load_active_policy(session))
            current_hours = calculate_weekly_hours(days).get(staff.id, 0)
            warnings = calculate_warnings(
                shift,
                current_hours,
                max_weekly_hours=max_hours,
                near_limit_threshold=near_ratio,
            )
            outcome = apply_assignment(staff.id, reference, days)
            if outcome.success:
                days = outcome.updated_days
                save_rota_days(session, rota, days_to_assignments(days))
                result["assigned"] = True
                result["warnings"] = [warning.value for warning in warnings]
                record_audit_log(
                    session,
                    actor,
                    "assign_staff",
                    target_id=rota.id,
                    payload={
                        "staff_id": staff.id,
                        "shift_template_id": reference,
                        "warnings": result["warnings"],
                    },
                )
                logger.info(
                    "Assigned staff %s to shift %s on rota %s%s",
                    staff.id,
                    reference,
                    rota.id,
                    f" ({', '.join(result['warnings'])})" if result["warnings"] else "",
                )
            else:
                result["rejection"] = outcome.reason.value

    if result["rejection"]:
        logger.info(
            "Rejected staff %s for shift %s on rota %s: %s",
            staff.id,
            reference,
            rota.id,
            result["rejection"],
        )
    result["weekly_hours"] = calculate_weekly_hours(days)
    result["days"] = days_payload(days)
    return result


def suggest_staff_for_shift(session, rota_id: int, shift_template_id: Any) -> List[Dict[str, Any]]:
    """Ranked candidates for a shift with their current weekly hours."""
    _rota, _template, days = load_rota_days(session, rota_id)
    reference = str(shift_template_id)
    day, shift = find_shift(days, reference)
    if shift is None:
        raise RecordNotFoundError(f"Shift {reference} is not part of rota {rota_id}.")
    roster = [_staff_member(row) for row in list_staff(session)]
    hours = calculate_weekly_hours(days)
    return [
        {
            "id": int(member.id),
            "name": member.name,
            "role": member.role,
            "weekly_hours": hours.get(member.id, 0),
        }
        for member in get_suggested_staff(shift, day.day_of_week, days, roster)
    ]
