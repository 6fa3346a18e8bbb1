"""
model.py

Domain models for the Work Allocation & Scoring Engine.

Entities
--------
- Project
- GroupAssignment      (team-level allocation of a project scope subset)
- MemberAssignment     (individual allocation of a group scope subset)
- User
- Team
- Notification
- PolicyConfig         (scoring / submission policy knobs)

All models use Python dataclasses for clean, framework-agnostic definitions.
UUID primary keys are used throughout for portability.
Timestamps are always stored in UTC.
Status values are the literal wire strings used by the API.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from scope import ScopeItem


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class AssignmentStatus(str, Enum):
    """
    Lifecycle status shared by group and member assignments.

    PENDING is only reachable by group assignments (freshly deployed to a
    team); member assignments are born IN_PROGRESS.
    """
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_ACK = "PENDING_ACK"
    COMPLETED = "COMPLETED"
    REJECTION_REQ = "REJECTION_REQ"
    REJECTED = "REJECTED"


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    TEAM_LEAD = "TEAM_LEAD"
    MEMBER = "MEMBER"


TERMINAL_STATUSES = frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.REJECTED})

REWORK_PROJECT_REMARKS = "REWORK Generated"
REWORK_ORDER_REMARKS = "REWORK ORDER"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """
    A unit of billable work described by three independent catalogs.

    The full work scope is the cartesian product
    divisions x part_nos x work_types.  Assignments select subsets of it.
    ``total_hold_duration`` accumulates paused minutes and never decreases.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str = ""
    date: str = ""                                     # ISO date the project was opened
    divisions: List[str] = field(default_factory=list)
    part_nos: List[str] = field(default_factory=list)
    work_types: List[str] = field(default_factory=list)
    status: ProjectStatus = ProjectStatus.ACTIVE
    remarks: str = ""

    hold_start_time: Optional[datetime] = None
    total_hold_duration: int = 0                       # minutes

    # Shadow projects created by the rework dispatcher point back at their origin
    rework_of_id: Optional[uuid.UUID] = None           # FK → Project.id

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@dataclass
class GroupAssignment:
    """
    Team-level allocation of part of a project's scope.

    Owned by exactly one Project; deleting the project (or this record)
    cascades to every child MemberAssignment.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    project_id: uuid.UUID = field(default_factory=uuid.uuid4)   # FK → Project.id
    team_id: uuid.UUID = field(default_factory=uuid.uuid4)      # FK → Team.id
    scope: List[ScopeItem] = field(default_factory=list)
    file_size: str = ""

    assigned_time: datetime = field(default_factory=_utcnow)
    eta: datetime = field(default_factory=_utcnow)

    status: AssignmentStatus = AssignmentStatus.PENDING
    rating: int = 0                                    # 0 = unrated, else 1-5
    remarks: str = ""
    completion_time: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    version: int = 1                                   # bumped on every write
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class MemberAssignment:
    """
    Individual allocation of part of a group assignment's scope.

    ``bonus_awarded`` / ``blackmarks_awarded`` record what the scoring engine
    credited on acceptance; they are written exactly once.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    group_assignment_id: uuid.UUID = field(default_factory=uuid.uuid4)  # FK → GroupAssignment.id
    member_id: uuid.UUID = field(default_factory=uuid.uuid4)            # FK → User.id
    scope: List[ScopeItem] = field(default_factory=list)

    assigned_time: datetime = field(default_factory=_utcnow)
    eta: datetime = field(default_factory=_utcnow)
    completion_time: Optional[datetime] = None

    status: AssignmentStatus = AssignmentStatus.IN_PROGRESS
    rating: int = 0
    remarks: str = ""
    rework_from_id: Optional[uuid.UUID] = None         # FK → MemberAssignment.id
    bonus_awarded: float = 0.0
    blackmarks_awarded: float = 0.0
    rejection_reason: Optional[str] = None
    proof: Optional[str] = None                        # opaque attachment reference

    version: int = 1
    updated_at: datetime = field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Score ledger owners
# ---------------------------------------------------------------------------


@dataclass
class User:
    """
    A person who can lead a team or work on member assignments.

    ``bonus_points`` and ``blackmarks`` only ever grow; the net score is
    always derived.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str = ""
    email: str = ""
    roles: List[UserRole] = field(default_factory=lambda: [UserRole.MEMBER])
    team_id: Optional[uuid.UUID] = None                # FK → Team.id
    bonus_points: float = 0.0
    blackmarks: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def net_score(self) -> float:
        return self.bonus_points - self.blackmarks


@dataclass
class Team:
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str = ""
    lead_ids: List[uuid.UUID] = field(default_factory=list)
    bonus_points: float = 0.0
    blackmarks: float = 0.0
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def net_score(self) -> float:
        return self.bonus_points - self.blackmarks


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass
class Notification:
    """One inbox entry for one user."""
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    user_id: uuid.UUID = field(default_factory=uuid.uuid4)     # FK → User.id
    message: str = ""
    is_read: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class OutboxMessage:
    """
    A notification queued during a unit of work and delivered after commit.

    Exactly one of ``user_id`` / ``team_id`` is set; ``role_filter`` narrows
    a team broadcast to members holding that role.
    """
    message: str
    user_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    role_filter: Optional[UserRole] = None


# ---------------------------------------------------------------------------
# Policy configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyConfig:
    """
    Numeric policy knobs read by the scoring engine and the state machine.

    Stored overrides are keyed by the upper-case names below; anything
    missing or null falls back to the defaults passed to ``resolve``.
    """
    bonus_on_time: float = 3
    bonus_star_3: float = 1
    bonus_star_4: float = 2
    bonus_star_5: float = 3
    bm_delay_per_hr: float = 1
    bm_rework: float = 5
    allow_time_edit: int = 0

    @classmethod
    def keys(cls) -> List[str]:
        return [f.name.upper() for f in fields(cls)]

    @classmethod
    def resolve(
        cls,
        overrides: Mapping[str, Any],
        defaults: Optional["PolicyConfig"] = None,
    ) -> "PolicyConfig":
        base = defaults or cls()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = overrides.get(f.name.upper())
            values[f.name] = getattr(base, f.name) if raw is None else raw
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name.upper(): getattr(self, f.name) for f in fields(self)}

    @property
    def time_edit_allowed(self) -> bool:
        return bool(self.allow_time_edit)
