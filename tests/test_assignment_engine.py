from __future__ import annotations

import math
import sys
from pathlib import Path
from typing import Sequence

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from scheduling import (  # noqa: E402
    AssignmentFailure,
    AssignmentSuccess,
    AssignmentWarning,
    Rejection,
    ScheduledDay,
    ShiftSlot,
    StaffMember,
    apply_assignment,
    calculate_warnings,
    calculate_weekly_hours,
    get_suggested_staff,
    is_overlapping,
    shift_duration_hours,
    to_minutes,
    validate_assignment,
)

SALES = "Sales Assistant"
MANAGER = "Manager"


def _shift(
    ref: str,
    start: str | None = "09:00",
    end: str | None = "17:00",
    *,
    role: str = SALES,
    quantity: int = 1,
    assigned: Sequence[str] = (),
) -> ShiftSlot:
    return ShiftSlot(
        id=f"slot-{ref}",
        template_reference_id=ref,
        start_time=start,
        end_time=end,
        role_required=role,
        quantity_required=quantity,
        assigned_staff_ids=tuple(assigned),
    )


def _staff(staff_id: str, role: str = SALES) -> StaffMember:
    return StaffMember(id=staff_id, name=f"Staff {staff_id}", role=role)


# ---------------------------------------------------------------------------
# Time arithmetic and overlap
# ---------------------------------------------------------------------------


def test_to_minutes_parses_hours_and_minutes() -> None:
    assert to_minutes("00:00") == 0
    assert to_minutes("09:30") == 570
    assert to_minutes("23:59") == 1439


def test_to_minutes_malformed_input_yields_nan() -> None:
    assert math.isnan(to_minutes("nine:30"))
    assert math.isnan(to_minutes("0930"))


def test_shift_duration_handles_same_day_and_overnight() -> None:
    assert shift_duration_hours("09:00", "17:00") == 8
    assert shift_duration_hours("09:00", "13:30") == 4.5
    assert shift_duration_hours("22:00", "06:00") == 8


def test_back_to_back_windows_do_not_overlap() -> None:
    assert is_overlapping("09:00", "13:00", "13:00", "17:00") is False
    assert is_overlapping("13:00", "17:00", "09:00", "13:00") is False


def test_partial_and_contained_windows_overlap() -> None:
    assert is_overlapping("10:00", "14:00", "13:00", "17:00") is True
    assert is_overlapping("09:00", "17:00", "12:00", "13:00") is True


def test_overnight_windows_are_compared_as_raw_minutes() -> None:
    # 22:00-06:00 runs backwards in raw minutes, so it never overlaps 05:00-07:00.
    assert is_overlapping("22:00", "06:00", "05:00", "07:00") is False


# ---------------------------------------------------------------------------
# Weekly hours
# ---------------------------------------------------------------------------


def test_weekly_hours_sums_assigned_shifts() -> None:
    days = (
        ScheduledDay(1, (_shift("a", assigned=["s1"]),)),
        ScheduledDay(2, (_shift("b", assigned=["s1", "s2"]),)),
    )
    hours = calculate_weekly_hours(days)
    assert hours["s1"] == 16.0
    assert hours["s2"] == 8.0
    assert "s3" not in hours
    assert hours.get("s3", 0) == 0


def test_weekly_hours_empty_schedule() -> None:
    assert calculate_weekly_hours(()) == {}
    assert calculate_weekly_hours((ScheduledDay(0, ()),)) == {}


def test_weekly_hours_rounds_to_two_decimals() -> None:
    days = (ScheduledDay(1, (_shift("a", "09:00", "09:20", assigned=["s1"]),)),)
    assert calculate_weekly_hours(days) == {"s1": 0.33}


def test_weekly_hours_skips_overnight_and_untimed_shifts() -> None:
    days = (
        ScheduledDay(
            5,
            (
                _shift("night", "22:00", "06:00", assigned=["s1"]),
                _shift("untimed", None, None, assigned=["s1"]),
                _shift("empty", "", "", assigned=["s1"]),
            ),
        ),
    )
    assert calculate_weekly_hours(days) == {}


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


def test_validate_accepts_open_matching_shift() -> None:
    shift = _shift("a")
    day = ScheduledDay(1, (shift,))
    result = validate_assignment(_staff("s1"), shift, day)
    assert result.valid is True
    assert result.rejection is None


def test_role_mismatch_is_checked_before_everything_else() -> None:
    shift = _shift("a", role=MANAGER, quantity=1, assigned=["s1", "s1"])
    day = ScheduledDay(1, (shift,))
    result = validate_assignment(_staff("s1", SALES), shift, day)
    assert result.valid is False
    assert result.rejection is Rejection.ROLE_MISMATCH


def test_capacity_is_checked_before_duplicate() -> None:
    shift = _shift("a", quantity=1, assigned=["s1"])
    day = ScheduledDay(1, (shift,))
    assert validate_assignment(_staff("s1"), shift, day).rejection is Rejection.SLOT_FULL


def test_duplicate_assignment_rejected() -> None:
    shift = _shift("a", quantity=3, assigned=["s1"])
    day = ScheduledDay(1, (shift,))
    assert validate_assignment(_staff("s1"), shift, day).rejection is Rejection.ALREADY_ASSIGNED


def test_validate_is_idempotent() -> None:
    shift = _shift("a", quantity=1, assigned=["s2"])
    day = ScheduledDay(1, (shift,))
    first = validate_assignment(_staff("s1"), shift, day)
    second = validate_assignment(_staff("s1"), shift, day)
    assert first == second


def test_second_slot_then_slot_full() -> None:
    shift = _shift("a", quantity=2, assigned=["s1"])
    days = (ScheduledDay(1, (shift,)),)
    assert validate_assignment(_staff("s2"), shift, days[0]).valid is True

    outcome = apply_assignment("s2", "a", days)
    assert outcome.success
    updated_day = outcome.updated_days[0]
    updated_shift = updated_day.shifts[0]
    assert updated_shift.assigned_staff_ids == ("s1", "s2")

    third = validate_assignment(_staff("s3"), updated_shift, updated_day)
    assert third.rejection is Rejection.SLOT_FULL


def test_adjacent_shift_same_day_is_allowed() -> None:
    morning = _shift("am", "09:00", "13:00", assigned=["s1"])
    afternoon = _shift("pm", "13:00", "17:00")
    day = ScheduledDay(1, (morning, afternoon))
    assert validate_assignment(_staff("s1"), afternoon, day).valid is True


def test_overlapping_shift_same_day_is_rejected() -> None:
    morning = _shift("am", "10:00", "14:00", assigned=["s1"])
    afternoon = _shift("pm", "13:00", "17:00")
    day = ScheduledDay(1, (morning, afternoon))
    assert validate_assignment(_staff("s1"), afternoon, day).rejection is Rejection.OVERLAPPING_SHIFT


def test_overlap_ignores_untimed_shifts_and_other_staff() -> None:
    untimed = _shift("x", None, None, assigned=["s1"])
    other_staff = _shift("y", "10:00", "14:00", assigned=["s2"])
    target = _shift("pm", "13:00", "17:00", quantity=2)
    day = ScheduledDay(1, (untimed, other_staff, target))
    assert validate_assignment(_staff("s1"), target, day).valid is True


def test_validate_only_looks_at_the_supplied_day() -> None:
    monday = ScheduledDay(1, (_shift("mon", "09:00", "17:00", assigned=["s1"]),))
    target = _shift("tue", "09:00", "17:00")
    tuesday = ScheduledDay(2, (target,))
    assert monday.shifts[0].assigned_staff_ids == ("s1",)
    assert validate_assignment(_staff("s1"), target, tuesday).valid is True


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "current_hours, expected",
    [
        (28, [AssignmentWarning.NEAR_WEEKLY_LIMIT]),
        (33, [AssignmentWarning.EXCEEDS_WEEKLY_HOURS]),
        (20, []),
        (32, [AssignmentWarning.NEAR_WEEKLY_LIMIT]),
        (27.9, []),
    ],
)
def test_weekly_hour_warning_thresholds(current_hours: float, expected) -> None:
    shift = _shift("a", "09:00", "17:00")
    assert calculate_warnings(shift, current_hours) == expected


def test_projected_forty_hours_is_near_limit_not_excess() -> None:
    shift = _shift("a", "09:00", "17:00")
    assert calculate_warnings(shift, 32) == [AssignmentWarning.NEAR_WEEKLY_LIMIT]
    assert calculate_warnings(shift, 31.5) == [AssignmentWarning.NEAR_WEEKLY_LIMIT]
    four_hour = _shift("b", "09:00", "13:00")
    assert calculate_warnings(four_hour, 36) == [AssignmentWarning.NEAR_WEEKLY_LIMIT]


def test_warning_counts_overnight_shift_in_full() -> None:
    night = _shift("night", "22:00", "06:00")
    assert calculate_warnings(night, 30) == [AssignmentWarning.NEAR_WEEKLY_LIMIT]


def test_warning_needs_both_times() -> None:
    assert calculate_warnings(_shift("a", None, "17:00"), 39) == []
    assert calculate_warnings(_shift("a", "09:00", ""), 39) == []


def test_warning_limits_can_be_overridden() -> None:
    shift = _shift("a", "09:00", "17:00")
    assert calculate_warnings(shift, 20, max_weekly_hours=24) == [AssignmentWarning.EXCEEDS_WEEKLY_HOURS]
    assert calculate_warnings(shift, 20, near_limit_threshold=0.5) == [AssignmentWarning.NEAR_WEEKLY_LIMIT]


# ---------------------------------------------------------------------------
# Committer
# ---------------------------------------------------------------------------


def test_commit_appends_once_and_shares_untouched_nodes() -> None:
    target = _shift("a", quantity=3, assigned=["s2", "s1"])
    sibling = _shift("b", "13:00", "17:00", assigned=["s9"])
    monday = ScheduledDay(1, (target, sibling))
    tuesday = ScheduledDay(2, (_shift("c"),))
    days = (monday, tuesday)

    outcome = apply_assignment("s3", "a", days)

    assert isinstance(outcome, AssignmentSuccess)
    assert outcome.success is True
    new_monday, new_tuesday = outcome.updated_days
    assert new_monday.shifts[0].assigned_staff_ids == ("s2", "s1", "s3")
    assert new_monday is not monday
    assert new_monday.shifts[0] is not target
    assert new_monday.shifts[1] is sibling
    assert new_tuesday is tuesday


def test_commit_does_not_deduplicate() -> None:
    days = (ScheduledDay(1, (_shift("a", quantity=2, assigned=["s1"]),)),)
    outcome = apply_assignment("s1", "a", days)
    assert outcome.updated_days[0].shifts[0].assigned_staff_ids == ("s1", "s1")


def test_commit_leaves_input_unchanged() -> None:
    days = [ScheduledDay(1, (_shift("a", quantity=2),))]
    snapshot = list(days)
    apply_assignment("s1", "a", days)
    assert days == snapshot
    assert days[0].shifts[0].assigned_staff_ids == ()


def test_commit_uses_first_match_only() -> None:
    days = (
        ScheduledDay(1, (_shift("dup", quantity=2),)),
        ScheduledDay(2, (_shift("dup", quantity=2),)),
    )
    outcome = apply_assignment("s1", "dup", days)
    assert outcome.updated_days[0].shifts[0].assigned_staff_ids == ("s1",)
    assert outcome.updated_days[1] is days[1]


@pytest.mark.parametrize("days", [(), [], None])
def test_commit_on_empty_week_is_shift_not_found(days) -> None:
    outcome = apply_assignment("s1", "a", days)
    assert isinstance(outcome, AssignmentFailure)
    assert outcome.success is False
    assert outcome.reason is Rejection.SHIFT_NOT_FOUND


def test_commit_unknown_reference_is_shift_not_found() -> None:
    days = (ScheduledDay(1, (_shift("a"),)),)
    outcome = apply_assignment("s1", "missing", days)
    assert outcome.reason is Rejection.SHIFT_NOT_FOUND
    assert days[0].shifts[0].assigned_staff_ids == ()


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def _suggestion_week():
    target = _shift("pm", "13:00", "17:00", quantity=3, assigned=["s_assigned"])
    clash = _shift("mid", "12:00", "14:00", quantity=2, assigned=["s_busy"])
    adjacent = _shift("am", "09:00", "13:00", quantity=2, assigned=["s_morning"])
    monday = ScheduledDay(1, (adjacent, clash, target))
    tuesday = ScheduledDay(
        2,
        (
            _shift("t1", "09:00", "17:00", quantity=3, assigned=["s_heavy", "s_morning"]),
            _shift("t2", "09:00", "17:00", quantity=1, assigned=["s_heavy"]),
        ),
    )
    roster = [
        _staff("s_heavy"),
        _staff("s_manager", MANAGER),
        _staff("s_assigned"),
        _staff("s_busy"),
        _staff("s_fresh"),
        _staff("s_morning"),
        _staff("s_fresh2"),
    ]
    return target, (monday, tuesday), roster


def test_suggestions_filter_and_rank_by_hours() -> None:
    target, days, roster = _suggestion_week()
    suggested = get_suggested_staff(target, 1, days, roster)
    ids = [staff.id for staff in suggested]
    assert ids == ["s_fresh", "s_fresh2", "s_morning", "s_heavy"]


def test_suggestions_never_include_ineligible_staff() -> None:
    target, days, roster = _suggestion_week()
    suggested = get_suggested_staff(target, 1, days, roster)
    hours = calculate_weekly_hours(days)
    for staff in suggested:
        assert staff.role == target.role_required
        assert staff.id not in target.assigned_staff_ids
        assert staff.id != "s_busy"
    ranked_hours = [hours.get(staff.id, 0) for staff in suggested]
    assert ranked_hours == sorted(ranked_hours)


def test_suggestions_skip_overlap_filter_when_day_missing() -> None:
    target, days, roster = _suggestion_week()
    suggested = get_suggested_staff(target, 4, days, roster)
    assert "s_busy" in [staff.id for staff in suggested]


def test_suggestions_empty_inputs() -> None:
    target, days, _roster = _suggestion_week()
    assert get_suggested_staff(target, 1, days, []) == []
    assert get_suggested_staff(target, 1, (), []) == []
    managers_only = [_staff("m1", MANAGER)]
    assert get_suggested_staff(target, 1, days, managers_only) == []
