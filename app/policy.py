from __future__ import annotations

import copy
import math
from typing import Any, Dict, Optional, Tuple

from database import get_active_policy, upsert_policy
from scheduling import MAX_WEEKLY_HOURS, NEAR_LIMIT_THRESHOLD


BASELINE_POLICY: Dict[str, Any] = {
    "name": "Default Rota Policy",
    "global": {
        "max_hours_week": MAX_WEEKLY_HOURS,
        "near_limit_ratio": NEAR_LIMIT_THRESHOLD,
    },
}


def load_active_policy(conn) -> Dict:
    """Return the active policy payload as a dict."""
    if conn is None:
        return _normalize_policy({})
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return _normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return _normalize_policy(policy.params_dict() if policy else {})


def _normalize_policy(policy: Dict) -> Dict:
    """Fill in missing sections so callers can read every key unconditionally."""
    if not isinstance(policy, dict):
        policy = {}
    normalized = copy.deepcopy(policy)
    global_cfg = normalized.get("global")
    if not isinstance(global_cfg, dict):
        global_cfg = {}
        normalized["global"] = global_cfg
    for key, value in BASELINE_POLICY["global"].items():
        global_cfg.setdefault(key, value)
    return normalized


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def weekly_hours_limits(policy: Dict) -> Tuple[float, float]:
    """Return (max weekly hours, near-limit ratio), falling back to defaults for junk values."""
    global_cfg = (policy or {}).get("global") or {}
    max_hours = _finite_number(global_cfg.get("max_hours_week", MAX_WEEKLY_HOURS))
    if max_hours is None or max_hours <= 0:
        max_hours = float(MAX_WEEKLY_HOURS)
    ratio = _finite_number(global_cfg.get("near_limit_ratio", NEAR_LIMIT_THRESHOLD))
    if ratio is not None and ratio > 1.0:
        # Stored as a percentage.
        ratio /= 100.0
    if ratio is None or ratio <= 0 or ratio > 1.0:
        ratio = NEAR_LIMIT_THRESHOLD
    return max_hours, ratio


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline policy exactly once."""

    with session_factory() as session:
        if get_active_policy(session):
            return
        defaults = build_default_policy()
        name = defaults.get("name", "Default Rota Policy")
        params = {key: value for key, value in defaults.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")
