from __future__ import annotations

import datetime
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from roles import parse_role, role_group

logger = logging.getLogger("rota.database")

DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.getenv("ROTA_DATABASE_URL") or f"sqlite:///{(DATA_DIR / 'rota.db').as_posix()}"
ROTA_STATUS_CHOICES = ("draft", "published")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class RecordNotFoundError(LookupError):
    """Raised when a referenced row does not exist."""


class RotaConflictError(ValueError):
    """Raised when a rota already exists for a location and week."""

    def __init__(self, message: str, existing_rota_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.existing_rota_id = existing_rota_id


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for every table living in rota.db."""

    pass


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(40), nullable=False)
    location_ids: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    @property
    def location_id_list(self) -> List[int]:
        return [int(part) for part in self.location_ids.split(",") if part.strip()]

    @location_id_list.setter
    def location_id_list(self, ids: Iterable[int]) -> None:
        self.location_ids = ",".join(str(value) for value in sorted({int(value) for value in ids}))


class RotaTemplate(Base):
    __tablename__ = "rota_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    location_id: Mapped[int | None] = mapped_column(ForeignKey("locations.id"), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    shifts: Mapped[List["TemplateShift"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateShift.position",
    )


class TemplateShift(Base):
    __tablename__ = "template_shifts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("rota_templates.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Sunday
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    role_required: Mapped[str] = mapped_column(String(40), nullable=False)
    quantity_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    template: Mapped[RotaTemplate] = relationship(back_populates="shifts")


class Rota(Base):
    __tablename__ = "rotas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id"), nullable=False)
    template_id: Mapped[int] = mapped_column(Integer, nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    assignments: Mapped[List["RotaAssignment"]] = relationship(
        back_populates="rota",
        cascade="all, delete-orphan",
        order_by="RotaAssignment.position",
    )

    __table_args__ = (
        UniqueConstraint("location_id", "week_start_date", name="uq_rota_location_week"),
    )


class RotaAssignment(Base):
    __tablename__ = "rota_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rota_id: Mapped[int] = mapped_column(ForeignKey("rotas.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    staff_id: Mapped[int] = mapped_column(Integer, nullable=False)
    template_shift_id: Mapped[int] = mapped_column(Integer, nullable=False)

    rota: Mapped[Rota] = relationship(back_populates="assignments")


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("name", name="uq_policies_name"),
    )

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Rota")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


schedule_engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=schedule_engine, expire_on_commit=False, future=True)


def init_database(engine=None) -> None:
    Base.metadata.create_all(engine or schedule_engine)


# ---------------------------------------------------------------------------
# Payload coercion
# ---------------------------------------------------------------------------


def _pick(payload: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def _parse_id(value: Any, label: str) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be an integer id, got '{value}'.") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be a positive id, got '{value}'.")
    return parsed


def parse_time_value(value: Any, label: str = "time") -> str:
    text = str(value or "").strip()
    if not TIME_PATTERN.match(text):
        raise ValueError(f"{label} must be HH:MM (24-hour), got '{value}'.")
    return text


def parse_week_start(value: Any, label: str = "weekStartDate") -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value or "").strip()
    if not DATE_PATTERN.match(text):
        raise ValueError(f"Invalid {label} format. Expected YYYY-MM-DD")
    try:
        return datetime.date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid {label} format. Expected YYYY-MM-DD") from exc


def _parse_day_of_week(value: Any) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"day_of_week must be an integer 0-6, got '{value}'.") from exc
    if day < 0 or day > 6:
        raise ValueError(f"day_of_week must be between 0 (Sunday) and 6 (Saturday), got {day}.")
    return day


def _parse_quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"quantity_required must be a positive integer, got '{value}'.") from exc
    if quantity < 1:
        raise ValueError(f"quantity_required must be a positive integer, got {quantity}.")
    return quantity


def _parse_status(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized not in ROTA_STATUS_CHOICES:
        raise ValueError(f"Unsupported rota status '{value}'.")
    return normalized


# ---------------------------------------------------------------------------
# Locations & staff
# ---------------------------------------------------------------------------


def location_to_dict(location: Location) -> Dict[str, Any]:
    return {"id": location.id, "name": location.name, "address": location.address}


def create_location(session, payload: Dict[str, Any]) -> Location:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValueError("Location name is required.")
    location = Location(name=name, address=str(payload.get("address") or "").strip())
    session.add(location)
    session.commit()
    session.refresh(location)
    logger.info("Created location %s (%s)", location.id, location.name)
    return location


def list_locations(session) -> List[Location]:
    return list(session.scalars(select(Location).order_by(Location.name.asc(), Location.id.asc())))


def get_location(session, location_id: int) -> Location:
    location = session.get(Location, location_id)
    if not location:
        raise RecordNotFoundError(f"Location with id {location_id} was not found.")
    return location


def staff_to_dict(staff: Staff) -> Dict[str, Any]:
    return {
        "id": staff.id,
        "name": staff.name,
        "role": staff.role,
        "group": role_group(staff.role),
        "location_ids": staff.location_id_list,
    }


def create_staff(session, payload: Dict[str, Any]) -> Staff:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValueError("Staff name is required.")
    role = parse_role(payload.get("role"))
    staff = Staff(name=name, role=role.value)
    staff.location_id_list = [
        _parse_id(value, "location id") for value in (_pick(payload, "location_ids", "locationIds", default=[]) or [])
    ]
    session.add(staff)
    session.commit()
    session.refresh(staff)
    logger.info("Created staff %s (%s)", staff.id, staff.role)
    return staff


def list_staff(session, *, role: Optional[str] = None, location_id: Optional[int] = None) -> List[Staff]:
    stmt = select(Staff).order_by(Staff.name.asc(), Staff.id.asc())
    if role:
        stmt = stmt.where(Staff.role == parse_role(role).value)
    staff = list(session.scalars(stmt))
    if location_id:
        staff = [member for member in staff if location_id in member.location_id_list]
    return staff


def get_staff(session, staff_id: int) -> Staff:
    staff = session.get(Staff, staff_id)
    if not staff:
        raise RecordNotFoundError(f"Staff with id {staff_id} was not found.")
    return staff


def delete_staff(session, staff_id: int) -> None:
    staff = get_staff(session, staff_id)
    session.delete(staff)
    session.commit()
    logger.info("Deleted staff %s", staff_id)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def template_to_dict(template: RotaTemplate) -> Dict[str, Any]:
    days: Dict[int, List[Dict[str, Any]]] = {}
    for shift in template.shifts:
        days.setdefault(shift.day_of_week, []).append(
            {
                "id": shift.id,
                "start_time": shift.start_time,
                "end_time": shift.end_time,
                "role_required": shift.role_required,
                "quantity_required": shift.quantity_required,
            }
        )
    return {
        "id": template.id,
        "name": template.name,
        "location_id": template.location_id,
        "days": [{"day_of_week": day, "shifts": shifts} for day, shifts in days.items()],
    }


def _template_shift_rows(days: Any) -> List[Dict[str, Any]]:
    if not isinstance(days, list):
        raise ValueError("Template days must be a list.")
    rows: List[Dict[str, Any]] = []
    for day in days:
        day_of_week = _parse_day_of_week(_pick(day, "day_of_week", "dayOfWeek"))
        for entry in day.get("shifts") or []:
            start = parse_time_value(_pick(entry, "start_time", "startTime"), "start_time")
            end = parse_time_value(_pick(entry, "end_time", "endTime"), "end_time")
            role = parse_role(_pick(entry, "role_required", "roleRequired"))
            quantity = _parse_quantity(_pick(entry, "quantity_required", "quantityRequired", default=1))
            shift_id = entry.get("id")
            rows.append(
                {
                    "id": _parse_id(shift_id, "shift id") if shift_id not in (None, "") else None,
                    "day_of_week": day_of_week,
                    "start_time": start,
                    "end_time": end,
                    "role_required": role.value,
                    "quantity_required": quantity,
                }
            )
    return rows


def _apply_template_shifts(template: RotaTemplate, rows: List[Dict[str, Any]]) -> None:
    existing = {shift.id: shift for shift in template.shifts}
    kept: List[TemplateShift] = []
    for position, row in enumerate(rows):
        shift = existing.pop(row["id"], None) if row["id"] else None
        if shift is None:
            shift = TemplateShift()
        shift.day_of_week = row["day_of_week"]
        shift.position = position
        shift.start_time = row["start_time"]
        shift.end_time = row["end_time"]
        shift.role_required = row["role_required"]
        shift.quantity_required = row["quantity_required"]
        kept.append(shift)
    template.shifts = kept


def create_template(session, payload: Dict[str, Any]) -> RotaTemplate:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValueError("Template name is required.")
    location_id = _pick(payload, "location_id", "locationId")
    template = RotaTemplate(
        name=name,
        location_id=_parse_id(location_id, "location_id") if location_id not in (None, "") else None,
    )
    _apply_template_shifts(template, _template_shift_rows(payload.get("days") or []))
    session.add(template)
    session.commit()
    session.refresh(template)
    logger.info("Created template %s with %s shifts", template.id, len(template.shifts))
    return template


def list_templates(session) -> List[RotaTemplate]:
    return list(session.scalars(select(RotaTemplate).order_by(RotaTemplate.name.asc(), RotaTemplate.id.asc())))


def get_template(session, template_id: int) -> RotaTemplate:
    template = session.get(RotaTemplate, template_id)
    if not template:
        raise RecordNotFoundError(f"Template with id {template_id} was not found.")
    return template


def update_template(session, template_id: int, payload: Dict[str, Any]) -> RotaTemplate:
    """Update name/location/days. Shifts sent back with their ``id`` keep it."""
    template = get_template(session, template_id)
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValueError("Template name is required.")
        template.name = name
    if "location_id" in payload or "locationId" in payload:
        location_id = _pick(payload, "location_id", "locationId")
        template.location_id = _parse_id(location_id, "location_id") if location_id not in (None, "") else None
    if "days" in payload:
        _apply_template_shifts(template, _template_shift_rows(payload.get("days") or []))
    session.commit()
    session.refresh(template)
    return template


def delete_template(session, template_id: int) -> None:
    template = get_template(session, template_id)
    session.delete(template)
    session.commit()
    logger.info("Deleted template %s", template_id)


# ---------------------------------------------------------------------------
# Rotas
# ---------------------------------------------------------------------------


def rota_to_dict(rota: Rota) -> Dict[str, Any]:
    days: Dict[int, List[Dict[str, Any]]] = {}
    for assignment in rota.assignments:
        days.setdefault(assignment.day_of_week, []).append(
            {"staff_id": assignment.staff_id, "shift_template_id": assignment.template_shift_id}
        )
    return {
        "id": rota.id,
        "location_id": rota.location_id,
        "template_id": rota.template_id,
        "week_start": rota.week_start_date.isoformat(),
        "status": rota.status,
        "days": [{"day_of_week": day, "assignments": pairs} for day, pairs in sorted(days.items())],
        "updated_at": rota.updated_at.isoformat() if rota.updated_at else None,
    }


def _assignment_rows(days: Any) -> List[Tuple[int, int, int]]:
    if not isinstance(days, list):
        raise ValueError("Rota days must be a list.")
    rows: List[Tuple[int, int, int]] = []
    for day in days:
        day_of_week = _parse_day_of_week(_pick(day, "day_of_week", "dayOfWeek"))
        for pair in day.get("assignments") or []:
            staff_id = _parse_id(_pick(pair, "staff_id", "staffId"), "staff_id")
            shift_id = _parse_id(_pick(pair, "shift_template_id", "shiftTemplateId"), "shift_template_id")
            rows.append((day_of_week, staff_id, shift_id))
    return rows


def _replace_assignments(rota: Rota, rows: List[Tuple[int, int, int]]) -> None:
    rota.assignments = [
        RotaAssignment(day_of_week=day, position=position, staff_id=staff_id, template_shift_id=shift_id)
        for position, (day, staff_id, shift_id) in enumerate(rows)
    ]


def _existing_rota(session, location_id: int, week_start: datetime.date) -> Optional[Rota]:
    stmt = select(Rota).where(Rota.location_id == location_id, Rota.week_start_date == week_start)
    return session.scalars(stmt).first()


def _insert_rota(session, rota: Rota) -> None:
    """Add and commit a new rota; a concurrent insert for the same week becomes a conflict."""
    session.add(rota)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        existing = _existing_rota(session, rota.location_id, rota.week_start_date)
        raise RotaConflictError(
            "A rota already exists for this week and location.",
            existing_rota_id=existing.id if existing else None,
        ) from exc


def create_rota(session, payload: Dict[str, Any]) -> Rota:
    location_id = _parse_id(_pick(payload, "location_id", "locationId"), "location_id")
    template_id = _parse_id(_pick(payload, "template_id", "templateId"), "template_id")
    week_start = parse_week_start(_pick(payload, "week_start", "weekStartDate", "weekStart"))
    status = _parse_status(payload.get("status") or "draft")
    get_location(session, location_id)
    get_template(session, template_id)
    existing = _existing_rota(session, location_id, week_start)
    if existing:
        raise RotaConflictError(
            "A rota already exists for this week and location.", existing_rota_id=existing.id
        )
    rota = Rota(location_id=location_id, template_id=template_id, week_start_date=week_start, status=status)
    _replace_assignments(rota, _assignment_rows(payload.get("days") or []))
    _insert_rota(session, rota)
    session.refresh(rota)
    logger.info("Created %s rota %s for week %s", rota.status, rota.id, week_start.isoformat())
    return rota


def list_rotas(session, *, week_start: Any = None, location_id: Optional[int] = None) -> List[Rota]:
    stmt = select(Rota).order_by(Rota.week_start_date.desc(), Rota.id.asc())
    if week_start:
        stmt = stmt.where(Rota.week_start_date == parse_week_start(week_start))
    if location_id:
        stmt = stmt.where(Rota.location_id == location_id)
    return list(session.scalars(stmt))


def get_rota(session, rota_id: int) -> Rota:
    rota = session.get(Rota, rota_id)
    if not rota:
        raise RecordNotFoundError(f"Rota with id {rota_id} was not found.")
    return rota


def update_rota(session, rota_id: int, payload: Dict[str, Any]) -> Rota:
    rota = get_rota(session, rota_id)
    if payload.get("status") is not None:
        rota.status = _parse_status(payload["status"])
    if payload.get("days") is not None:
        _replace_assignments(rota, _assignment_rows(payload["days"]))
    rota.updated_at = _utcnow()
    session.commit()
    session.refresh(rota)
    return rota


def save_rota_days(session, rota: Rota, days: List[Dict[str, Any]]) -> Rota:
    """Replace every assignment pair of ``rota``; last write wins."""
    _replace_assignments(rota, _assignment_rows(days))
    rota.updated_at = _utcnow()
    session.commit()
    session.refresh(rota)
    return rota


def set_rota_status(session, rota_id: int, status: str) -> Rota:
    rota = get_rota(session, rota_id)
    rota.status = _parse_status(status)
    rota.updated_at = _utcnow()
    session.commit()
    session.refresh(rota)
    logger.info("Rota %s is now %s", rota.id, rota.status)
    return rota


def delete_rota(session, rota_id: int) -> Dict[str, Any]:
    rota = get_rota(session, rota_id)
    summary = {"id": rota.id, "week_start": rota.week_start_date.isoformat(), "status": rota.status}
    session.delete(rota)
    session.commit()
    logger.info("Deleted %s rota %s", summary["status"], rota_id)
    return summary


def copy_previous_week(session, location_id: Any, week_start: Any) -> Dict[str, Any]:
    """Create a draft for ``week_start`` from the rota seven days earlier."""
    if location_id in (None, "") or week_start in (None, ""):
        raise ValueError("Missing required fields: location_id and week_start are required")
    location_id = _parse_id(location_id, "location_id")
    target_week = parse_week_start(week_start)
    existing = _existing_rota(session, location_id, target_week)
    if existing:
        raise RotaConflictError(
            "A rota already exists for this week and location. Cannot copy.",
            existing_rota_id=existing.id,
        )
    previous_week = target_week - datetime.timedelta(days=7)
    previous = _existing_rota(session, location_id, previous_week)
    if not previous:
        raise RecordNotFoundError(f"No rota found for the previous week ({previous_week.isoformat()}).")
    rota = Rota(
        location_id=previous.location_id,
        template_id=previous.template_id,
        week_start_date=target_week,
        status="draft",
    )
    _replace_assignments(
        rota,
        [(item.day_of_week, item.staff_id, item.template_shift_id) for item in previous.assignments],
    )
    _insert_rota(session, rota)
    session.refresh(rota)
    logger.info("Copied rota %s (%s) into %s", previous.id, previous_week.isoformat(), target_week.isoformat())
    return {
        "rota": rota_to_dict(rota),
        "copied_from": {"week_start": previous_week.isoformat(), "rota_id": previous.id},
    }


def get_staff_rotas(
    session,
    staff_id: Any,
    *,
    date_from: Any = None,
    date_to: Any = None,
) -> List[Dict[str, Any]]:
    """Published weeks for one staff member, newest first, with only their own shifts."""
    staff_id = _parse_id(staff_id, "staff_id")
    stmt = select(Rota).where(Rota.status == "published")
    if date_from:
        stmt = stmt.where(Rota.week_start_date >= parse_week_start(date_from, "from"))
    if date_to:
        stmt = stmt.where(Rota.week_start_date <= parse_week_start(date_to, "to"))
    stmt = stmt.order_by(Rota.week_start_date.desc(), Rota.id.desc())

    shift_cache: Dict[int, Dict[int, TemplateShift]] = {}
    payload: List[Dict[str, Any]] = []
    for rota in session.scalars(stmt):
        mine = [item for item in rota.assignments if item.staff_id == staff_id]
        if not mine:
            continue
        if rota.template_id not in shift_cache:
            template = session.get(RotaTemplate, rota.template_id)
            shift_cache[rota.template_id] = {shift.id: shift for shift in template.shifts} if template else {}
        template_shifts = shift_cache[rota.template_id]
        shifts = []
        for item in mine:
            details = template_shifts.get(item.template_shift_id)
            shifts.append(
                {
                    "day_of_week": item.day_of_week,
                    "shift_template_id": item.template_shift_id,
                    "start_time": details.start_time if details else None,
                    "end_time": details.end_time if details else None,
                    "role_required": details.role_required if details else None,
                }
            )
        payload.append(
            {
                "rota_id": rota.id,
                "week_start": rota.week_start_date.isoformat(),
                "location_id": rota.location_id,
                "template_id": rota.template_id,
                "shifts": shifts,
            }
        )
    return payload


# ---------------------------------------------------------------------------
# Policy & audit
# ---------------------------------------------------------------------------


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing: Optional[Policy] = session.execute(select(Policy).where(Policy.name == name)).scalars().first()
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    policy = Policy(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Rota",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}),
    )
    session.add(log)
    session.commit()
    return log


def list_audit_log(session, *, target_type: Optional[str] = None, target_id: Optional[int] = None) -> List[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.id.asc())
    if target_type:
        stmt = stmt.where(AuditLog.target_type == target_type)
    if target_id is not None:
        stmt = stmt.where(AuditLog.target_id == target_id)
    return list(session.scalars(stmt))
