from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from database import Location, RotaTemplate, SessionLocal, Staff, create_template, init_database
from policy import ensure_default_policy
from roles import is_valid_role


SAMPLE_LOCATION = {"name": "High Street", "address": "12 High Street"}

SAMPLE_STAFF: List[Dict] = [
    {"name": "Alex Nguyen", "role": "Manager"},
    {"name": "Maya Thompson", "role": "Assistant Manager"},
    {"name": "Jordan Ellis", "role": "Assistant Manager"},
    {"name": "Sofia Ramirez", "role": "Sales Assistant"},
    {"name": "Logan Patel", "role": "Sales Assistant"},
    {"name": "Harper Reed", "role": "Sales Assistant"},
    {"name": "Noah Price", "role": "Sales Assistant"},
    {"name": "Avery Brooks", "role": "Sales Assistant"},
    {"name": "Caleb Foster", "role": "Sales Assistant"},
]


def _weekday_shifts() -> List[Dict]:
    return [
        {"start_time": "08:00", "end_time": "16:00", "role_required": "Manager", "quantity_required": 1},
        {"start_time": "12:00", "end_time": "20:00", "role_required": "Assistant Manager", "quantity_required": 1},
        {"start_time": "09:00", "end_time": "13:00", "role_required": "Sales Assistant", "quantity_required": 2},
        {"start_time": "13:00", "end_time": "18:00", "role_required": "Sales Assistant", "quantity_required": 2},
    ]


SAMPLE_TEMPLATE = {
    "name": "Standard Week",
    "days": [
        {"day_of_week": 0, "shifts": [
            {"start_time": "10:00", "end_time": "16:00", "role_required": "Assistant Manager", "quantity_required": 1},
            {"start_time": "10:00", "end_time": "16:00", "role_required": "Sales Assistant", "quantity_required": 2},
        ]},
        *({"day_of_week": day, "shifts": _weekday_shifts()} for day in range(1, 6)),
        {"day_of_week": 6, "shifts": [
            {"start_time": "08:00", "end_time": "18:00", "role_required": "Manager", "quantity_required": 1},
            {"start_time": "09:00", "end_time": "17:00", "role_required": "Sales Assistant", "quantity_required": 3},
        ]},
    ],
}


def seed_rota() -> None:
    init_database()
    ensure_default_policy(SessionLocal)
    with SessionLocal() as session:
        location = session.scalars(select(Location).where(Location.name == SAMPLE_LOCATION["name"])).first()
        if not location:
            location = Location(**SAMPLE_LOCATION)
            session.add(location)
            session.commit()
            session.refresh(location)
            print(f"[seed] Created location {location.name}.")

        created = 0
        for entry in SAMPLE_STAFF:
            if not is_valid_role(entry["role"]):
                print(f"[seed] Skipping {entry['name']}: undefined role '{entry['role']}'.")
                continue
            if session.scalars(select(Staff).where(Staff.name == entry["name"])).first():
                continue
            staff = Staff(name=entry["name"], role=entry["role"])
            staff.location_id_list = [location.id]
            session.add(staff)
            created += 1
        session.commit()

        template = session.scalars(select(RotaTemplate).where(RotaTemplate.name == SAMPLE_TEMPLATE["name"])).first()
        if not template:
            template = create_template(session, {**SAMPLE_TEMPLATE, "location_id": location.id})
            print(f"[seed] Created template '{template.name}' with {len(template.shifts)} shifts.")

    print(f"[seed] Added {created} staff; location and template ready.")


if __name__ == "__main__":
    seed_rota()
