from __future__ import annotations

import sys
import unittest
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    Base,
    RecordNotFoundError,
    create_location,
    create_rota,
    create_staff,
    create_template,
    delete_template,
    get_rota,
    list_audit_log,
    rota_to_dict,
    update_rota,
    upsert_policy,
)
from policy import build_default_policy, load_active_policy, weekly_hours_limits  # noqa: E402
from rota_service import assign_staff_to_shift, load_rota_days, suggest_staff_for_shift  # noqa: E402
from scheduling import AssignmentWarning, ShiftSlot, calculate_warnings  # noqa: E402
from validation import validate_rota  # noqa: E402


class RotaServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.session = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)()
        location = create_location(self.session, {"name": "High Street"})
        self.manager = create_staff(self.session, {"name": "Alex", "role": "Manager"})
        self.anna = create_staff(self.session, {"name": "Anna", "role": "Sales Assistant"})
        self.ben = create_staff(self.session, {"name": "Ben", "role": "Sales Assistant"})
        self.cara = create_staff(self.session, {"name": "Cara", "role": "Sales Assistant"})
        template = create_template(
            self.session,
            {
                "name": "Standard",
                "days": [
                    {
                        "day_of_week": 1,
                        "shifts": [
                            {"start_time": "09:00", "end_time": "13:00", "role_required": "Sales Assistant", "quantity_required": 2},
                            {"start_time": "12:00", "end_time": "17:00", "role_required": "Sales Assistant", "quantity_required": 1},
                            {"start_time": "13:00", "end_time": "17:00", "role_required": "Sales Assistant", "quantity_required": 2},
                        ],
                    },
                    {
                        "day_of_week": 2,
                        "shifts": [
                            {"start_time": "08:00", "end_time": "18:00", "role_required": "Sales Assistant", "quantity_required": 3},
                        ],
                    },
                ],
            },
        )
        self.template_id = template.id
        self.morning, self.midday, self.afternoon, self.tuesday = [str(shift.id) for shift in template.shifts]
        self.rota = create_rota(
            self.session,
            {"location_id": location.id, "template_id": template.id, "week_start": "2024-04-01"},
        )

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def _assign(self, staff, shift_id: str):
        return assign_staff_to_shift(self.session, self.rota.id, staff.id, shift_id, actor="tests")

    def test_successful_assignment_is_persisted_and_audited(self) -> None:
        result = self._assign(self.anna, self.morning)
        self.assertTrue(result["assigned"])
        self.assertIsNone(result["rejection"])
        self.assertEqual(result["warnings"], [])
        self.assertEqual(result["weekly_hours"], {str(self.anna.id): 4.0})

        stored = rota_to_dict(get_rota(self.session, self.rota.id))
        self.assertEqual(
            stored["days"],
            [{"day_of_week": 1, "assignments": [{"staff_id": self.anna.id, "shift_template_id": int(self.morning)}]}],
        )
        audit = list_audit_log(self.session, target_type="Rota", target_id=self.rota.id)
        self.assertEqual([row.action for row in audit], ["assign_staff"])

    def test_rejections_are_returned_not_raised(self) -> None:
        self.assertEqual(self._assign(self.manager, self.morning)["rejection"], "ROLE_MISMATCH")
        self._assign(self.anna, self.midday)
        self.assertEqual(self._assign(self.ben, self.midday)["rejection"], "SLOT_FULL")
        self.assertEqual(self._assign(self.anna, self.midday)["rejection"], "SLOT_FULL")
        self.assertEqual(self._assign(self.anna, self.morning)["rejection"], "OVERLAPPING_SHIFT")
        self._assign(self.ben, self.afternoon)
        self.assertEqual(self._assign(self.ben, self.afternoon)["rejection"], "ALREADY_ASSIGNED")
        self.assertEqual(self._assign(self.anna, "9999")["rejection"], "SHIFT_NOT_FOUND")

        rejected = self._assign(self.manager, self.tuesday)
        self.assertFalse(rejected["assigned"])
        stored = rota_to_dict(get_rota(self.session, self.rota.id))
        pairs = [pair for day in stored["days"] for pair in day["assignments"]]
        self.assertEqual(len(pairs), 2)

    def test_adjacent_shift_is_allowed(self) -> None:
        self._assign(self.cara, self.morning)
        result = self._assign(self.cara, self.afternoon)
        self.assertTrue(result["assigned"])
        self.assertEqual(result["weekly_hours"][str(self.cara.id)], 8.0)

    def test_warnings_follow_active_policy(self) -> None:
        policy = build_default_policy()
        policy["global"]["max_hours_week"] = 12
        upsert_policy(self.session, policy.pop("name"), policy, edited_by="tests")
        self.assertEqual(weekly_hours_limits(load_active_policy(self.session)), (12.0, 0.9))

        first = self._assign(self.anna, self.morning)
        self.assertEqual(first["warnings"], [])
        second = self._assign(self.anna, self.tuesday)
        self.assertTrue(second["assigned"])
        self.assertEqual(second["warnings"], ["EXCEEDS_WEEKLY_HOURS"])
        self.assertEqual(second["weekly_hours"][str(self.anna.id)], 14.0)

    def test_weekly_hours_limits_ignore_non_finite_and_boolean_values(self) -> None:
        for junk in ("nan", "inf", "-inf", float("nan"), True, None, "forty", 0, -5):
            limits = weekly_hours_limits({"global": {"max_hours_week": junk, "near_limit_ratio": junk}})
            self.assertEqual(limits, (40.0, 0.9), junk)
        self.assertEqual(
            weekly_hours_limits({"global": {"max_hours_week": "32", "near_limit_ratio": 85}}), (32.0, 0.85)
        )
        self.assertEqual(weekly_hours_limits({"global": {"near_limit_ratio": 250}}), (40.0, 0.9))

    def test_junk_stored_policy_still_warns_on_weekly_hours(self) -> None:
        upsert_policy(
            self.session,
            "Broken",
            {"global": {"max_hours_week": "nan", "near_limit_ratio": "inf"}},
            edited_by="tests",
        )
        max_hours, near_ratio = weekly_hours_limits(load_active_policy(self.session))
        self.assertEqual((max_hours, near_ratio), (40.0, 0.9))
        shift = ShiftSlot(
            id="long",
            template_reference_id="long",
            start_time="08:00",
            end_time="18:00",
            role_required="Sales Assistant",
            quantity_required=1,
        )
        warnings = calculate_warnings(shift, 60, max_weekly_hours=max_hours, near_limit_threshold=near_ratio)
        self.assertEqual(warnings, [AssignmentWarning.EXCEEDS_WEEKLY_HOURS])

    def test_unknown_staff_or_rota_raise(self) -> None:
        with self.assertRaises(RecordNotFoundError):
            assign_staff_to_shift(self.session, self.rota.id, 999, self.morning)
        with self.assertRaises(RecordNotFoundError):
            assign_staff_to_shift(self.session, 999, self.anna.id, self.morning)
        with self.assertRaises(ValueError) as ctx:
            assign_staff_to_shift(self.session, self.rota.id, "abc", self.morning)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    def test_missing_template_raises(self) -> None:
        delete_template(self.session, self.template_id)
        with self.assertRaises(RecordNotFoundError) as ctx:
            load_rota_days(self.session, self.rota.id)
        self.assertIn(f"used by rota {self.rota.id}", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, RecordNotFoundError)

    def test_suggestions_rank_least_scheduled_first(self) -> None:
        self._assign(self.anna, self.tuesday)
        self._assign(self.ben, self.midday)
        suggestions = suggest_staff_for_shift(self.session, self.rota.id, self.afternoon)
        # Ben overlaps 12:00-17:00; the manager has the wrong role.
        self.assertEqual([item["id"] for item in suggestions], [self.cara.id, self.anna.id])
        self.assertEqual(suggestions[1]["weekly_hours"], 10.0)
        with self.assertRaises(RecordNotFoundError):
            suggest_staff_for_shift(self.session, self.rota.id, "9999")

    def test_validation_report_flags_stored_problems(self) -> None:
        morning = int(self.morning)
        update_rota(
            self.session,
            self.rota.id,
            {
                "days": [
                    {
                        "day_of_week": 1,
                        "assignments": [
                            {"staff_id": self.manager.id, "shift_template_id": morning},
                            {"staff_id": self.anna.id, "shift_template_id": morning},
                            {"staff_id": self.anna.id, "shift_template_id": morning},
                            {"staff_id": self.anna.id, "shift_template_id": int(self.midday)},
                            {"staff_id": 4242, "shift_template_id": int(self.afternoon)},
                        ],
                    }
                ]
            },
        )
        report = validate_rota(self.session, self.rota.id)
        issue_types = sorted({issue["type"] for issue in report["issues"]})
        self.assertEqual(issue_types, ["capacity", "duplicate", "overlap", "role", "unknown_staff"])
        self.assertTrue(all(issue["severity"] == "error" for issue in report["issues"]))
        understaffed = [warning for warning in report["warnings"] if warning["type"] == "understaffed"]
        self.assertEqual(len(understaffed), 2)
        statuses = {check["label"]: check["status"] for check in report["checks"]}
        self.assertEqual(statuses["Roles match shift requirements?"], "fail")
        self.assertEqual(statuses["Every shift fully staffed?"], "warn")
        self.assertEqual(statuses["Weekly hours within limit?"], "ok")
        self.assertEqual(report["week_start"], "2024-04-01")

    def test_validation_report_clean_rota(self) -> None:
        self._assign(self.anna, self.morning)
        self._assign(self.ben, self.morning)
        self._assign(self.cara, self.midday)
        self._assign(self.anna, self.afternoon)
        self._assign(self.ben, self.afternoon)
        for staff in (self.anna, self.ben, self.cara):
            self._assign(staff, self.tuesday)
        report = validate_rota(self.session, self.rota.id)
        self.assertEqual(report["issues"], [])
        self.assertEqual(report["warnings"], [])
        self.assertTrue(all(check["status"] == "ok" for check in report["checks"]))


if __name__ == "__main__":
    unittest.main()
