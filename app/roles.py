from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List


class Role(str, Enum):
    MANAGER = "Manager"
    ASSISTANT_MANAGER = "Assistant Manager"
    SALES_ASSISTANT = "Sales Assistant"

    def __str__(self) -> str:
        return self.value


ROLE_GROUPS: Dict[str, List[str]] = {
    "Management": [
        Role.MANAGER.value,
        Role.ASSISTANT_MANAGER.value,
    ],
    "Shop Floor": [
        Role.SALES_ASSISTANT.value,
    ],
}


def normalize_role(role: str) -> str:
    return " ".join((role or "").split()).lower()


_ROLE_LOOKUP: Dict[str, Role] = {normalize_role(role.value): role for role in Role}


def defined_roles() -> List[str]:
    """Return the role labels staff and shifts may carry, in declaration order."""
    return [role.value for role in Role]


def parse_role(label: str) -> Role:
    """Map a free-form label onto a Role, ignoring case and extra whitespace."""
    if isinstance(label, Role):
        return label
    role = _ROLE_LOOKUP.get(normalize_role(str(label or "")))
    if role is None:
        raise ValueError(f"Unknown role '{label}'. Expected one of: {', '.join(defined_roles())}.")
    return role


def is_valid_role(label: str) -> bool:
    return normalize_role(str(label or "")) in _ROLE_LOOKUP


def role_group(role: str) -> str:
    label = normalize_role(role)
    if not label:
        return "Other"
    for group, names in ROLE_GROUPS.items():
        for name in names:
            if label == normalize_role(name):
                return group
    return "Other"


def grouped_roles(roles: Iterable[str]) -> Dict[str, List[str]]:
    mapping: Dict[str, List[str]] = {group: [] for group in ROLE_GROUPS}
    mapping["Other"] = []
    for role in roles:
        if not role:
            continue
        group = role_group(role)
        if role not in mapping[group]:
            mapping[group].append(role)
    return {group: entries for group, entries in mapping.items() if entries}
