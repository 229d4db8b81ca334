"""FastAPI wrapper around the rota database and the assignment engine.

Bodies are plain JSON dicts; snake_case and camelCase keys are both accepted.
Domain errors map onto HTTP codes in one place (``_call``).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Ensure absolute imports (e.g., "import database") still resolve.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import (  # noqa: E402
    RecordNotFoundError,
    RotaConflictError,
    SessionLocal,
    copy_previous_week,
    create_location,
    create_rota,
    create_staff,
    create_template,
    delete_rota,
    delete_staff,
    delete_template,
    get_active_policy,
    get_rota,
    get_staff,
    get_staff_rotas,
    get_template,
    init_database,
    list_locations,
    list_rotas,
    list_staff,
    list_templates,
    location_to_dict,
    record_audit_log,
    rota_to_dict,
    set_rota_status,
    staff_to_dict,
    template_to_dict,
    update_rota,
    update_template,
    upsert_policy,
)
from logging_config import configure_logging  # noqa: E402
from policy import ensure_default_policy  # noqa: E402
from roles import defined_roles, grouped_roles  # noqa: E402
from rota_days import build_days_from_template, group_shifts_by_day  # noqa: E402
from rota_service import (  # noqa: E402
    assign_staff_to_shift,
    days_payload,
    load_rota_days,
    suggest_staff_for_shift,
)
from scheduling import calculate_weekly_hours  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from validation import validate_rota  # noqa: E402

logger = logging.getLogger("rota.api")


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    init_database()
    ensure_default_policy(SessionLocal)
    yield


app = FastAPI(title="Rota Assistant API", version="0.1", lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _call(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a database/service call, translating domain errors to HTTP errors."""
    try:
        return func(*args, **kwargs)
    except RotaConflictError as exc:
        detail: Dict[str, Any] = {"error": str(exc)}
        if exc.existing_rota_id is not None:
            detail["existing_rota_id"] = exc.existing_rota_id
        raise HTTPException(status_code=409, detail=detail) from exc
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _actor(payload: Optional[Dict[str, Any]]) -> str:
    return str((payload or {}).get("actor") or "api").strip() or "api"


def _audit(
    db: Session,
    actor: str,
    action: str,
    target_type: str,
    target_id: Optional[int],
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    record_audit_log(db, user_id=actor, action=action, target_type=target_type, target_id=target_id, payload=payload)


def _policy_payload(policy) -> Dict[str, Any]:
    return {
        "id": policy.id,
        "name": policy.name,
        "params": policy.params_dict(),
        "lastEditedBy": policy.lastEditedBy,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/roles")
def roles() -> JSONResponse:
    return JSONResponse(content={"roles": defined_roles(), "groups": grouped_roles(defined_roles())})


# ---------------------------------------------------------------------------
# Locations & staff
# ---------------------------------------------------------------------------


@app.get("/api/v1/locations")
def locations(db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder([location_to_dict(item) for item in list_locations(db)]))


@app.post("/api/v1/locations", status_code=201)
def add_location(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    location = _call(create_location, db, payload)
    _audit(db, _actor(payload), "LOCATION_CREATE", "Location", location.id, {"name": location.name})
    return JSONResponse(status_code=201, content=jsonable_encoder(location_to_dict(location)))


@app.get("/api/v1/staff")
def staff_list(
    role: Optional[str] = Query(None),
    location_id: Optional[int] = Query(None, alias="locationId"),
    db=Depends(get_db),
) -> JSONResponse:
    staff = _call(list_staff, db, role=role, location_id=location_id)
    return JSONResponse(content=jsonable_encoder([staff_to_dict(member) for member in staff]))


@app.post("/api/v1/staff", status_code=201)
def add_staff(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    staff = _call(create_staff, db, payload)
    _audit(db, _actor(payload), "STAFF_CREATE", "Staff", staff.id, {"role": staff.role})
    return JSONResponse(status_code=201, content=jsonable_encoder(staff_to_dict(staff)))


@app.get("/api/v1/staff/{staff_id}")
def staff_detail(staff_id: int, db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(staff_to_dict(_call(get_staff, db, staff_id))))


@app.delete("/api/v1/staff/{staff_id}")
def remove_staff(staff_id: int, db=Depends(get_db)) -> JSONResponse:
    _call(delete_staff, db, staff_id)
    _audit(db, "api", "STAFF_DELETE", "Staff", staff_id)
    return JSONResponse(content={"deleted": staff_id})


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


@app.get("/api/v1/templates")
def templates(db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder([template_to_dict(item) for item in list_templates(db)]))


@app.post("/api/v1/templates", status_code=201)
def add_template(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    template = _call(create_template, db, payload)
    _audit(db, _actor(payload), "TEMPLATE_CREATE", "Template", template.id, {"name": template.name})
    return JSONResponse(status_code=201, content=jsonable_encoder(template_to_dict(template)))


@app.get("/api/v1/templates/{template_id}")
def template_detail(template_id: int, db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(template_to_dict(_call(get_template, db, template_id))))


@app.get("/api/v1/templates/{template_id}/days")
def template_days(template_id: int, db=Depends(get_db)) -> JSONResponse:
    """Empty draft week built from the template, as a new rota would start."""
    template = template_to_dict(_call(get_template, db, template_id))
    return JSONResponse(
        content=jsonable_encoder(
            {
                "template": {"id": template["id"], "name": template["name"]},
                "days": days_payload(build_days_from_template(template)),
            }
        )
    )


@app.put("/api/v1/templates/{template_id}")
def edit_template(template_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    template = _call(update_template, db, template_id, payload)
    _audit(db, _actor(payload), "TEMPLATE_UPDATE", "Template", template.id)
    return JSONResponse(content=jsonable_encoder(template_to_dict(template)))


@app.delete("/api/v1/templates/{template_id}")
def remove_template(template_id: int, db=Depends(get_db)) -> JSONResponse:
    _call(delete_template, db, template_id)
    _audit(db, "api", "TEMPLATE_DELETE", "Template", template_id)
    return JSONResponse(content={"deleted": template_id})


# ---------------------------------------------------------------------------
# Rotas
# ---------------------------------------------------------------------------


@app.get("/api/v1/rotas")
def rotas(
    week_start: Optional[str] = Query(None, alias="weekStart"),
    location_id: Optional[int] = Query(None, alias="locationId"),
    db=Depends(get_db),
) -> JSONResponse:
    items = _call(list_rotas, db, week_start=week_start, location_id=location_id)
    return JSONResponse(content=jsonable_encoder([rota_to_dict(item) for item in items]))


@app.post("/api/v1/rotas", status_code=201)
def add_rota(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    rota = _call(create_rota, db, payload)
    _audit(db, _actor(payload), "ROTA_CREATE", "Rota", rota.id, {"week_start": rota.week_start_date.isoformat()})
    return JSONResponse(status_code=201, content=jsonable_encoder(rota_to_dict(rota)))


@app.post("/api/v1/rotas/copy-previous-week", status_code=201)
def copy_rota(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    location_id = payload.get("location_id", payload.get("locationId"))
    week_start = payload.get("week_start", payload.get("weekStartDate", payload.get("weekStart")))
    result = _call(copy_previous_week, db, location_id, week_start)
    _audit(
        db,
        _actor(payload),
        "ROTA_COPY",
        "Rota",
        result["rota"]["id"],
        {"copied_from": result["copied_from"]},
    )
    return JSONResponse(status_code=201, content=jsonable_encoder(result))


@app.get("/api/v1/rotas/staff/{staff_id}")
def staff_rotas(
    staff_id: int,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    db=Depends(get_db),
) -> JSONResponse:
    _call(get_staff, db, staff_id)
    weeks = _call(get_staff_rotas, db, staff_id, date_from=date_from, date_to=date_to)
    for week in weeks:
        week["days"] = group_shifts_by_day(week["shifts"])
    return JSONResponse(content=jsonable_encoder({"staff_id": staff_id, "rotas": weeks}))


@app.get("/api/v1/rotas/{rota_id}")
def rota_detail(rota_id: int, db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(rota_to_dict(_call(get_rota, db, rota_id))))


@app.put("/api/v1/rotas/{rota_id}")
def edit_rota(rota_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    rota = _call(update_rota, db, rota_id, payload)
    _audit(db, _actor(payload), "ROTA_UPDATE", "Rota", rota.id, {"status": rota.status})
    return JSONResponse(content=jsonable_encoder(rota_to_dict(rota)))


@app.delete("/api/v1/rotas/{rota_id}")
def remove_rota(rota_id: int, db=Depends(get_db)) -> JSONResponse:
    summary = _call(delete_rota, db, rota_id)
    _audit(db, "api", "ROTA_DELETE", "Rota", rota_id, summary)
    return JSONResponse(content=jsonable_encoder({"deleted": summary}))


@app.get("/api/v1/rotas/{rota_id}/days")
def rota_days(rota_id: int, db=Depends(get_db)) -> JSONResponse:
    rota, template, days = _call(load_rota_days, db, rota_id)
    return JSONResponse(
        content=jsonable_encoder(
            {
                "rota": rota_to_dict(rota),
                "template": {"id": template["id"], "name": template["name"]},
                "days": days_payload(days),
                "weekly_hours": calculate_weekly_hours(days),
            }
        )
    )


@app.post("/api/v1/rotas/{rota_id}/assign")
def assign(rota_id: int, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    staff_id = payload.get("staff_id", payload.get("staffId"))
    shift_template_id = payload.get("shift_template_id", payload.get("shiftTemplateId"))
    if staff_id in (None, "") or shift_template_id in (None, ""):
        raise HTTPException(status_code=400, detail="staff_id and shift_template_id are required")
    result = _call(assign_staff_to_shift, db, rota_id, staff_id, shift_template_id, actor=_actor(payload))
    status_code = 200 if result["assigned"] else 409
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result))


@app.get("/api/v1/rotas/{rota_id}/suggestions")
def suggestions(
    rota_id: int,
    shift_template_id: str = Query(..., alias="shiftTemplateId"),
    db=Depends(get_db),
) -> JSONResponse:
    ranked = _call(suggest_staff_for_shift, db, rota_id, shift_template_id)
    return JSONResponse(
        content=jsonable_encoder({"rota_id": rota_id, "shift_template_id": shift_template_id, "suggestions": ranked})
    )


@app.get("/api/v1/rotas/{rota_id}/validate")
def validate_rota_endpoint(rota_id: int, db=Depends(get_db)) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(_call(validate_rota, db, rota_id)))


@app.post("/api/v1/rotas/{rota_id}/publish")
def publish_rota(rota_id: int, payload: Dict[str, Any] | None = None, db=Depends(get_db)) -> JSONResponse:
    rota = _call(set_rota_status, db, rota_id, "published")
    _audit(db, _actor(payload), "ROTA_PUBLISH", "Rota", rota.id)
    return JSONResponse(content=jsonable_encoder(rota_to_dict(rota)))


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db)) -> JSONResponse:
    policy = get_active_policy(db)
    if not policy:
        raise HTTPException(status_code=404, detail="No active policy found")
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    name = payload.get("name")
    params = payload.get("params") or {}
    actor = _actor(payload)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    if not isinstance(params, dict):
        raise HTTPException(status_code=400, detail="params must be an object")
    policy = upsert_policy(db, name=name, params_dict=params, edited_by=actor)
    _audit(db, actor, "POLICY_EDIT", "Policy", policy.id, {"name": policy.name})
    logger.info("Policy '%s' updated by %s", policy.name, actor)
    return JSONResponse(content=jsonable_encoder(_policy_payload(policy)))
