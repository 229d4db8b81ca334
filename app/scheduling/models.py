"""Value types shared by the assignment engine.

Everything here is immutable: collections are normalised to tuples so a
committed week can be shared between callers as is.
Application rows (ORM objects, request payloads) are mapped onto these
explicitly by ``rota_days``; the engine never sees them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


class Rejection(str, Enum):
    """Hard-constraint failures. Returned as values, never raised."""

    ROLE_MISMATCH = "ROLE_MISMATCH"
    SLOT_FULL = "SLOT_FULL"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    OVERLAPPING_SHIFT = "OVERLAPPING_SHIFT"
    SHIFT_NOT_FOUND = "SHIFT_NOT_FOUND"


class AssignmentWarning(str, Enum):
    """Soft-constraint signals. They never block a commit."""

    EXCEEDS_WEEKLY_HOURS = "EXCEEDS_WEEKLY_HOURS"
    NEAR_WEEKLY_LIMIT = "NEAR_WEEKLY_LIMIT"


@dataclass(frozen=True)
class StaffMember:
    id: str
    name: str
    role: str


@dataclass(frozen=True)
class ShiftSlot:
    id: str
    template_reference_id: str
    start_time: Optional[str]
    end_time: Optional[str]
    role_required: str
    quantity_required: int
    assigned_staff_ids: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "assigned_staff_ids", tuple(self.assigned_staff_ids or ()))

    @property
    def has_times(self) -> bool:
        return bool(self.start_time) and bool(self.end_time)

    @property
    def open_slots(self) -> int:
        return max(0, self.quantity_required - len(self.assigned_staff_ids))


@dataclass(frozen=True)
class ScheduledDay:
    day_of_week: int
    shifts: Tuple[ShiftSlot, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shifts", tuple(self.shifts or ()))


# A week is just the ordered days; kept as a tuple once it leaves the committer.
WeekSchedule = Tuple[ScheduledDay, ...]


@dataclass(frozen=True)
class AssignmentValidation:
    valid: bool
    rejection: Optional[Rejection] = None

    @classmethod
    def ok(cls) -> "AssignmentValidation":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: Rejection) -> "AssignmentValidation":
        return cls(valid=False, rejection=reason)


@dataclass(frozen=True)
class AssignmentSuccess:
    updated_days: WeekSchedule
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class AssignmentFailure:
    reason: Rejection
    success: bool = field(default=False, init=False)


AssignmentOutcome = Union[AssignmentSuccess, AssignmentFailure]
