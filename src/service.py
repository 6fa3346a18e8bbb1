"""
service.py

Service layer for the Work Allocation & Scoring Engine.

Responsibilities
----------------
Each service class owns the rules for one concern and works on domain
model instances (from model.py).  Nothing here persists anything; the
application layer loads and stores models through its unit of work.

Services
--------
- ProjectService            – Project creation, edits and cascade planning
- CompletionService         – Allocation / completion percentages over scope trees
- ScoringService            – Timeliness + rating bonus and blackmark awards
- GroupAssignmentService    – Team-level allocation, field edits, transitions
- MemberAssignmentService   – Individual allocation, field edits, transitions
- HoldService               – Project pause / resume with ETA extension
- ReworkService             – Culprit detection and shadow project creation
- NotificationService       – Outbox message construction and inbox queries
- LeaderboardService        – Net-score rankings for teams and members
- DashboardService          – Productivity, turnaround, score trends and reports

Design notes
------------
- UTC datetimes are used throughout; naive values are taken to be UTC.
- Business rule violations raise ValueError (or one of its typed
  subclasses: ScopeError, InvalidTransitionError) with a descriptive message.
- Methods that would normally persist data return the mutated object(s)
  so the caller can hand them to a repository.
- The score ledger of a User or Team is only touched by
  ScoringService.apply_score (task completion) and
  ScoringService.apply_rework_penalty (rework).
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from model import (
    REWORK_ORDER_REMARKS,
    REWORK_PROJECT_REMARKS,
    TERMINAL_STATUSES,
    AssignmentStatus,
    GroupAssignment,
    MemberAssignment,
    Notification,
    OutboxMessage,
    PolicyConfig,
    Project,
    ProjectStatus,
    Team,
    User,
    UserRole,
)
from scope import (
    MalformedScopePolicy,
    OverlapGranularity,
    ScopeItem,
    WorkUnit,
    catalogs_of,
    cartesian_size,
    check_scope_overlap,
    project_units,
    require_non_empty,
    units_of,
    validate_subset,
    validate_within_catalogs,
)
from workflow import (
    GROUP_WORKFLOW,
    MEMBER_WORKFLOW,
    AssignmentEvent,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _percent(count: int, total: int) -> int:
    """Whole percentage rounded half-up; an empty denominator is 0 %."""
    if total <= 0:
        return 0
    return int(math.floor(100 * count / total + 0.5))


def _check_window(assigned_time: datetime, eta: datetime) -> None:
    if as_utc(eta) < as_utc(assigned_time):
        raise ValueError("eta must not be before assigned_time.")


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for v in values:
        v = v.strip()
        if not v:
            raise ValueError("Catalog entries must be non-empty strings.")
        seen.setdefault(v, None)
    return list(seen)


# Groups whose scope and member allocations may still change.
OPEN_GROUP_STATUSES = frozenset({AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS})


def _require_rating(entity: str, current: AssignmentStatus, rating: Optional[int]) -> int:
    if rating is None or not (1 <= rating <= 5):
        raise InvalidTransitionError(
            entity, current, AssignmentStatus.COMPLETED, "a rating between 1 and 5 is required"
        )
    return rating


def _require_reason(
    entity: str, current: AssignmentStatus, target: AssignmentStatus, reason: Optional[str]
) -> str:
    if reason is None or not reason.strip():
        raise InvalidTransitionError(entity, current, target, "a rejection reason is required")
    return reason.strip()


@dataclass
class TransitionOutcome:
    """What a status change did: the event fired and any score it produced."""
    event: AssignmentEvent
    previous: AssignmentStatus
    status: AssignmentStatus
    award: Optional["ScoreAward"] = None


# ---------------------------------------------------------------------------
# ProjectService
# ---------------------------------------------------------------------------

class ProjectService:
    """
    Manages project creation, edits and the cascade set for hard deletes.
    """

    SETTABLE_STATUSES = frozenset({ProjectStatus.ACTIVE, ProjectStatus.COMPLETED})

    def create_project(
        self,
        name: str,
        date: str,
        divisions: Sequence[str],
        part_nos: Sequence[str],
        work_types: Sequence[str],
        remarks: str = "",
    ) -> Project:
        """Create and return a new Project instance (unsaved)."""
        if not name.strip():
            raise ValueError("Project name must not be empty.")
        now = _utcnow()
        return Project(
            name=name.strip(),
            date=date or now.date().isoformat(),
            divisions=_dedupe(divisions),
            part_nos=_dedupe(part_nos),
            work_types=_dedupe(work_types),
            status=ProjectStatus.ACTIVE,
            remarks=remarks,
            created_at=now,
            updated_at=now,
        )

    def update_project(
        self,
        project: Project,
        groups: Sequence[GroupAssignment],
        name: Optional[str] = None,
        date: Optional[str] = None,
        divisions: Optional[Sequence[str]] = None,
        part_nos: Optional[Sequence[str]] = None,
        work_types: Optional[Sequence[str]] = None,
        status: Optional[ProjectStatus] = None,
        remarks: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """
        Apply edits to a project (unsaved).

        Catalogs may shrink only while every group assignment scope still
        fits inside them.  Status moves between ACTIVE and COMPLETED here;
        ON_HOLD is owned by HoldService.toggle_hold.
        """
        if status is not None:
            if status not in self.SETTABLE_STATUSES:
                raise ValueError("Project status can only be set to ACTIVE or COMPLETED; use hold / resume to pause.")
            if project.status == ProjectStatus.ON_HOLD:
                raise ValueError(f"Project '{project.name}' is on hold; resume it before changing its status.")
        if name is not None and not name.strip():
            raise ValueError("Project name must not be empty.")

        catalogs = {}
        for axis, values in (("divisions", divisions), ("part_nos", part_nos), ("work_types", work_types)):
            if values is None:
                continue
            cleaned = _dedupe(values)
            if not cleaned:
                raise ValueError(f"Project {axis} must not be empty.")
            catalogs[axis] = cleaned
        if catalogs:
            candidate = replace(project, **catalogs)
            for g in groups:
                if g.project_id == project.id:
                    validate_within_catalogs(g.scope, candidate)
            for axis, cleaned in catalogs.items():
                setattr(project, axis, cleaned)

        if name is not None:
            project.name = name.strip()
        if date is not None:
            project.date = date
        if remarks is not None:
            project.remarks = remarks
        if status is not None:
            project.status = status
        project.updated_at = as_utc(now) or _utcnow()
        return project

    def plan_cascade_delete(
        self,
        project: Project,
        groups: Sequence[GroupAssignment],
        members: Sequence[MemberAssignment],
    ) -> Tuple[List[uuid.UUID], List[uuid.UUID]]:
        """
        Return (group ids, member ids) that must be deleted with the project.
        The delete is hard and unrecoverable; nothing is archived.
        """
        group_ids = [g.id for g in groups if g.project_id == project.id]
        wanted = set(group_ids)
        member_ids = [m.id for m in members if m.group_assignment_id in wanted]
        return group_ids, member_ids


# ---------------------------------------------------------------------------
# CompletionService
# ---------------------------------------------------------------------------

@dataclass
class CompletionStats:
    total_units: int
    allocated_units: int
    completed_units: int

    @property
    def allocation_percent(self) -> int:
        return _percent(self.allocated_units, self.total_units)

    @property
    def completion_percent(self) -> int:
        return _percent(self.completed_units, self.total_units)


@dataclass
class ProjectCompletion:
    project_id: uuid.UUID
    stats: CompletionStats
    groups: Dict[uuid.UUID, CompletionStats] = field(default_factory=dict)


Coverage = Dict[WorkUnit, List[bool]]


class CompletionService:
    """
    Folds every assignment touching a scope into a per-unit coverage map.

    Each non-REJECTED covering instance contributes one flag (True iff the
    instance is done).  A unit is allocated when it has at least one flag and
    completed when it has at least one flag and all of them are True.
    """

    def _fold(
        self,
        universe: Set[WorkUnit],
        instances: Iterable[Tuple[Set[WorkUnit], Callable[[WorkUnit], bool]]],
    ) -> Coverage:
        coverage: Coverage = {}
        for units, is_done in instances:
            for unit in units & universe:
                coverage.setdefault(unit, []).append(is_done(unit))
        return coverage

    @staticmethod
    def _summarise(coverage: Coverage, total: int) -> CompletionStats:
        return CompletionStats(
            total_units=total,
            allocated_units=len(coverage),
            completed_units=sum(1 for flags in coverage.values() if flags and all(flags)),
        )

    # --- Group level --------------------------------------------------------

    def group_coverage(
        self, group: GroupAssignment, members: Iterable[MemberAssignment]
    ) -> Coverage:
        return self._fold(
            units_of(group.scope),
            (
                (units_of(m.scope), (lambda _u, done=(m.status == AssignmentStatus.COMPLETED): done))
                for m in members
                if m.group_assignment_id == group.id and m.status != AssignmentStatus.REJECTED
            ),
        )

    def group_stats(
        self, group: GroupAssignment, members: Iterable[MemberAssignment]
    ) -> CompletionStats:
        return self._summarise(
            self.group_coverage(group, members), len(units_of(group.scope))
        )

    def group_allocation_percent(self, group, members) -> int:
        return self.group_stats(group, members).allocation_percent

    def group_completion_percent(self, group, members) -> int:
        return self.group_stats(group, members).completion_percent

    # --- Project level ------------------------------------------------------

    def project_stats(
        self,
        project: Project,
        groups: Sequence[GroupAssignment],
        members: Sequence[MemberAssignment],
    ) -> ProjectCompletion:
        """
        Project-wide fold over the project's non-REJECTED group assignments.

        A group's flag for a unit is True when the group itself is COMPLETED,
        or when the unit is complete inside the group (covered by member
        work that is all COMPLETED).
        """
        by_group: Dict[uuid.UUID, List[MemberAssignment]] = {}
        for m in members:
            by_group.setdefault(m.group_assignment_id, []).append(m)

        per_group: Dict[uuid.UUID, CompletionStats] = {}
        instances = []
        for g in groups:
            if g.project_id != project.id:
                continue
            inner = self.group_coverage(g, by_group.get(g.id, []))
            per_group[g.id] = self._summarise(inner, len(units_of(g.scope)))
            if g.status == AssignmentStatus.REJECTED:
                continue

            def is_done(unit, group=g, inner=inner):
                if group.status == AssignmentStatus.COMPLETED:
                    return True
                flags = inner.get(unit)
                return bool(flags) and all(flags)

            instances.append((units_of(g.scope), is_done))

        coverage = self._fold(project_units(project), instances)
        return ProjectCompletion(
            project_id=project.id,
            stats=self._summarise(coverage, cartesian_size(project)),
            groups=per_group,
        )

    def allocation_percent(self, project, groups, members) -> int:
        return self.project_stats(project, groups, members).stats.allocation_percent

    def completion_percent(self, project, groups, members) -> int:
        return self.project_stats(project, groups, members).stats.completion_percent


# ---------------------------------------------------------------------------
# ScoringService
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreAward:
    bonus: float = 0
    blackmark: float = 0


class ScoringService:
    """
    Timeliness- and rating-based scoring.

    delay_hours = (completed_at - eta) / 1h
      bonus     = BONUS_ON_TIME if delay_hours <= 0
                + BONUS_STAR_3 / _4 / _5 for ratings 3 / 4 / 5
      blackmark = floor(delay_hours) * BM_DELAY_PER_HR
                  if delay_hours > 1 and the reviewer did not override it
    """

    def compute_award(
        self,
        eta: datetime,
        completed_at: datetime,
        rating: int,
        override_blackmark: bool,
        policy: PolicyConfig,
    ) -> ScoreAward:
        delay_hours = (as_utc(completed_at) - as_utc(eta)).total_seconds() / 3600

        bonus = 0
        if delay_hours <= 0:
            bonus += policy.bonus_on_time
        star_bonus = {
            3: policy.bonus_star_3,
            4: policy.bonus_star_4,
            5: policy.bonus_star_5,
        }
        bonus += star_bonus.get(rating, 0)

        blackmark = 0
        if delay_hours > 1 and not override_blackmark:
            blackmark += math.floor(delay_hours) * policy.bm_delay_per_hr
        return ScoreAward(bonus=bonus, blackmark=blackmark)

    def apply_score(
        self,
        target: Union[User, Team],
        eta: datetime,
        completed_at: datetime,
        rating: int,
        override_blackmark: bool,
        policy: PolicyConfig,
    ) -> ScoreAward:
        """Compute the award and credit it to the target's ledger."""
        award = self.compute_award(eta, completed_at, rating, override_blackmark, policy)
        target.bonus_points += award.bonus
        target.blackmarks += award.blackmark
        logger.info(
            "Scored %s %s: +%s bonus, +%s blackmarks (rating=%s, override=%s)",
            type(target).__name__, target.id, award.bonus, award.blackmark,
            rating, override_blackmark,
        )
        return award

    def apply_rework_penalty(self, user: User, policy: PolicyConfig) -> float:
        """Flat rework penalty; never touches bonus points."""
        user.blackmarks += policy.bm_rework
        return policy.bm_rework


# ---------------------------------------------------------------------------
# GroupAssignmentService
# ---------------------------------------------------------------------------

class GroupAssignmentService:
    """
    Team-level allocation: deploy-to-team, field edits, and the guarded
    status machine (see workflow.GROUP_TRANSITIONS).
    """

    def __init__(self, completion: CompletionService, scoring: ScoringService):
        self._completion = completion
        self._scoring = scoring

    def create_group_assignment(
        self,
        project: Project,
        team_id: uuid.UUID,
        scope: List[ScopeItem],
        file_size: str,
        assigned_time: datetime,
        eta: datetime,
        remarks: str = "",
    ) -> GroupAssignment:
        """Create and return a PENDING GroupAssignment (unsaved)."""
        if project.status == ProjectStatus.COMPLETED:
            raise ValueError(f"Project '{project.name}' is completed and cannot be allocated.")
        require_non_empty(scope)
        validate_within_catalogs(scope, project)
        _check_window(assigned_time, eta)
        return GroupAssignment(
            project_id=project.id,
            team_id=team_id,
            scope=list(scope),
            file_size=file_size,
            assigned_time=as_utc(assigned_time),
            eta=as_utc(eta),
            status=AssignmentStatus.PENDING,
            remarks=remarks,
            updated_at=_utcnow(),
        )

    def update_fields(
        self,
        group: GroupAssignment,
        project: Project,
        members: Sequence[MemberAssignment],
        scope: Optional[List[ScopeItem]] = None,
        file_size: Optional[str] = None,
        assigned_time: Optional[datetime] = None,
        eta: Optional[datetime] = None,
        remarks: Optional[str] = None,
    ) -> GroupAssignment:
        """
        Apply non-status edits.  Terminal records only accept remarks, so a
        completed record keeps the deadline it was scored against.
        """
        structural = (scope, file_size, assigned_time, eta)
        if group.status in TERMINAL_STATUSES and any(v is not None for v in structural):
            raise ValueError(
                f"GroupAssignment {group.id} is {group.status.value}; only remarks may change."
            )
        if scope is not None and group.status not in OPEN_GROUP_STATUSES:
            raise ValueError(
                f"GroupAssignment {group.id} is {group.status.value}; its scope is locked."
            )
        if scope is not None:
            require_non_empty(scope)
            validate_within_catalogs(scope, project)
            for m in members:
                if m.group_assignment_id == group.id and m.status != AssignmentStatus.REJECTED:
                    validate_subset(m.scope, scope)
            group.scope = list(scope)
        if file_size is not None:
            group.file_size = file_size
        new_assigned = as_utc(assigned_time) if assigned_time is not None else group.assigned_time
        new_eta = as_utc(eta) if eta is not None else group.eta
        _check_window(new_assigned, new_eta)
        group.assigned_time, group.eta = new_assigned, new_eta
        if remarks is not None:
            group.remarks = remarks
        group.version += 1
        group.updated_at = _utcnow()
        return group

    def transition(
        self,
        group: GroupAssignment,
        target: AssignmentStatus,
        members: Sequence[MemberAssignment],
        policy: PolicyConfig,
        team: Optional[Team] = None,
        rating: Optional[int] = None,
        override_blackmark: bool = False,
        rejection_reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TransitionOutcome:
        """
        Move the group to ``target``.  Guards are evaluated here, never
        trusted from the caller; every failure raises InvalidTransitionError
        before the record is touched.
        """
        now = as_utc(now) or _utcnow()
        entity = GROUP_WORKFLOW.entity
        previous = group.status
        event = GROUP_WORKFLOW.resolve(previous, target)
        own_members = [m for m in members if m.group_assignment_id == group.id]
        award = None

        if event in (AssignmentEvent.SUBMIT, AssignmentEvent.ACCEPT):
            pct = self._completion.group_completion_percent(group, own_members)
            if pct != 100:
                raise InvalidTransitionError(
                    entity, previous, target, f"group work is only {pct}% complete"
                )
        if event is AssignmentEvent.REQUEST_REJECTION:
            active = [m for m in own_members if m.status != AssignmentStatus.REJECTED]
            if active:
                raise InvalidTransitionError(
                    entity, previous, target,
                    f"{len(active)} member assignment(s) are still active",
                )
            rejection_reason = _require_reason(entity, previous, target, rejection_reason)
        elif event is AssignmentEvent.ACCEPT:
            rating = _require_rating(entity, previous, rating)
            if team is None:
                raise ValueError(f"Team {group.team_id} is required to score this assignment.")

        if event is AssignmentEvent.SUBMIT:
            group.completion_time = now
        elif event is AssignmentEvent.ACCEPT:
            award = self._scoring.apply_score(
                team, group.eta, now, rating, override_blackmark, policy
            )
            group.rating = rating
            group.completion_time = now
        elif event is AssignmentEvent.REVOKE_SUBMISSION:
            group.completion_time = None
        elif event is AssignmentEvent.REQUEST_REJECTION:
            group.rejection_reason = rejection_reason
        elif event is AssignmentEvent.CONFIRM_REJECTION:
            if rejection_reason and rejection_reason.strip():
                group.rejection_reason = rejection_reason.strip()
        elif event is AssignmentEvent.REVOKE_REJECTION:
            group.rejection_reason = None

        group.status = GROUP_WORKFLOW.next_state(previous, event)
        group.version += 1
        group.updated_at = now
        logger.info("GroupAssignment %s: %s -> %s (%s)", group.id, previous.value, group.status.value, event.value)
        return TransitionOutcome(event=event, previous=previous, status=group.status, award=award)

    def start(self, group: GroupAssignment, policy: PolicyConfig, now: Optional[datetime] = None) -> TransitionOutcome:
        return self.transition(group, AssignmentStatus.IN_PROGRESS, [], policy, now=now)


# ---------------------------------------------------------------------------
# MemberAssignmentService
# ---------------------------------------------------------------------------

class MemberAssignmentService:
    """
    Individual allocation under a group, and the member status machine
    (see workflow.MEMBER_TRANSITIONS).
    """

    ALLOCATABLE_GROUP_STATUSES = OPEN_GROUP_STATUSES
    LOCKED_GROUP_STATUSES = frozenset({AssignmentStatus.PENDING_ACK}) | TERMINAL_STATUSES

    def __init__(self, scoring: ScoringService):
        self._scoring = scoring

    def create_member_assignment(
        self,
        group: GroupAssignment,
        member: User,
        scope: List[ScopeItem],
        assigned_time: datetime,
        eta: datetime,
        remarks: str = "",
        rework_from_id: Optional[uuid.UUID] = None,
    ) -> MemberAssignment:
        """Create and return an IN_PROGRESS MemberAssignment (unsaved)."""
        if group.status not in self.ALLOCATABLE_GROUP_STATUSES:
            raise ValueError(
                f"GroupAssignment {group.id} is {group.status.value}; work can no longer be allocated."
            )
        require_non_empty(scope)
        validate_subset(scope, group.scope)
        _check_window(assigned_time, eta)
        return MemberAssignment(
            group_assignment_id=group.id,
            member_id=member.id,
            scope=list(scope),
            assigned_time=as_utc(assigned_time),
            eta=as_utc(eta),
            status=AssignmentStatus.IN_PROGRESS,
            remarks=remarks,
            rework_from_id=rework_from_id,
            updated_at=_utcnow(),
        )

    def update_fields(
        self,
        assignment: MemberAssignment,
        group: GroupAssignment,
        scope: Optional[List[ScopeItem]] = None,
        assigned_time: Optional[datetime] = None,
        eta: Optional[datetime] = None,
        remarks: Optional[str] = None,
        proof: Optional[str] = None,
    ) -> MemberAssignment:
        structural = (scope, assigned_time, eta)
        if assignment.status in TERMINAL_STATUSES and any(v is not None for v in structural):
            raise ValueError(
                f"MemberAssignment {assignment.id} is {assignment.status.value}; only remarks may change."
            )
        if scope is not None and group.status not in self.ALLOCATABLE_GROUP_STATUSES:
            raise ValueError(
                f"GroupAssignment {group.id} is {group.status.value}; member scopes are locked."
            )
        if scope is not None:
            require_non_empty(scope)
            validate_subset(scope, group.scope)
            assignment.scope = list(scope)
        new_assigned = as_utc(assigned_time) if assigned_time is not None else assignment.assigned_time
        new_eta = as_utc(eta) if eta is not None else assignment.eta
        _check_window(new_assigned, new_eta)
        assignment.assigned_time, assignment.eta = new_assigned, new_eta
        if remarks is not None:
            assignment.remarks = remarks
        if proof is not None:
            assignment.proof = proof
        assignment.version += 1
        assignment.updated_at = _utcnow()
        return assignment

    def check_removable(self, assignment: MemberAssignment, group: GroupAssignment) -> None:
        """Member work under a submitted or closed group can no longer be deleted."""
        if group.status in self.LOCKED_GROUP_STATUSES:
            raise ValueError(
                f"GroupAssignment {group.id} is {group.status.value}; "
                f"MemberAssignment {assignment.id} cannot be deleted."
            )

    def transition(
        self,
        assignment: MemberAssignment,
        target: AssignmentStatus,
        policy: PolicyConfig,
        member: Optional[User] = None,
        rating: Optional[int] = None,
        override_blackmark: bool = False,
        rejection_reason: Optional[str] = None,
        completion_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> TransitionOutcome:
        now = as_utc(now) or _utcnow()
        entity = MEMBER_WORKFLOW.entity
        previous = assignment.status
        event = MEMBER_WORKFLOW.resolve(previous, target)
        award = None

        if event is AssignmentEvent.SUBMIT:
            if completion_time is not None and not policy.time_edit_allowed:
                raise ValueError("Custom completion times are disabled (ALLOW_TIME_EDIT=0).")
            assignment.completion_time = as_utc(completion_time) or now
        elif event is AssignmentEvent.ACCEPT:
            rating = _require_rating(entity, previous, rating)
            if member is None:
                raise ValueError(f"User {assignment.member_id} is required to score this assignment.")
            completed_at = assignment.completion_time or now
            award = self._scoring.apply_score(
                member, assignment.eta, completed_at, rating, override_blackmark, policy
            )
            assignment.rating = rating
            assignment.bonus_awarded = award.bonus
            assignment.blackmarks_awarded = award.blackmark
        elif event in (AssignmentEvent.REJECT, AssignmentEvent.REQUEST_REJECTION):
            assignment.rejection_reason = _require_reason(entity, previous, target, rejection_reason)
        elif event is AssignmentEvent.CONFIRM_REJECTION:
            if rejection_reason and rejection_reason.strip():
                assignment.rejection_reason = rejection_reason.strip()
        elif event is AssignmentEvent.REVOKE_SUBMISSION:
            assignment.completion_time = None
        elif event is AssignmentEvent.REVOKE_REJECTION:
            assignment.rejection_reason = None

        assignment.status = MEMBER_WORKFLOW.next_state(previous, event)
        assignment.version += 1
        assignment.updated_at = now
        logger.info(
            "MemberAssignment %s: %s -> %s (%s)",
            assignment.id, previous.value, assignment.status.value, event.value,
        )
        return TransitionOutcome(event=event, previous=previous, status=assignment.status, award=award)


# ---------------------------------------------------------------------------
# HoldService
# ---------------------------------------------------------------------------

@dataclass
class HoldOutcome:
    project: Project
    held_minutes: int = 0
    extended_group_ids: List[uuid.UUID] = field(default_factory=list)
    extended_member_ids: List[uuid.UUID] = field(default_factory=list)


class HoldService:
    """
    Project pause / resume.

    Nothing moves while a project is held.  On resume the whole minutes spent
    on hold are added to total_hold_duration and pushed onto the eta of every
    assignment under the project that is not COMPLETED; completed records keep
    the deadline they were scored against.
    """

    def toggle_hold(
        self,
        project: Project,
        is_hold: bool,
        groups: Sequence[GroupAssignment],
        members: Sequence[MemberAssignment],
        now: Optional[datetime] = None,
    ) -> HoldOutcome:
        now = as_utc(now) or _utcnow()
        if is_hold:
            if project.status == ProjectStatus.ON_HOLD:
                raise ValueError(f"Project '{project.name}' is already on hold.")
            if project.status == ProjectStatus.COMPLETED:
                raise ValueError(f"Project '{project.name}' is completed and cannot be held.")
            project.hold_start_time = now
            project.status = ProjectStatus.ON_HOLD
            project.updated_at = now
            return HoldOutcome(project=project)

        if project.status != ProjectStatus.ON_HOLD:
            raise ValueError(f"Project '{project.name}' is not on hold.")

        diff_minutes = 0
        if project.hold_start_time is not None:
            elapsed = (now - as_utc(project.hold_start_time)).total_seconds()
            diff_minutes = max(0, math.floor(elapsed / 60))

        project.total_hold_duration += diff_minutes
        project.status = ProjectStatus.ACTIVE
        project.hold_start_time = None
        project.updated_at = now
        outcome = HoldOutcome(project=project, held_minutes=diff_minutes)
        if diff_minutes <= 0:
            return outcome

        shift = timedelta(minutes=diff_minutes)
        group_ids = set()
        for g in groups:
            if g.project_id != project.id:
                continue
            group_ids.add(g.id)
            if g.status != AssignmentStatus.COMPLETED:
                g.eta = as_utc(g.eta) + shift
                g.version += 1
                outcome.extended_group_ids.append(g.id)
        for m in members:
            if m.group_assignment_id in group_ids and m.status != AssignmentStatus.COMPLETED:
                m.eta = as_utc(m.eta) + shift
                m.version += 1
                outcome.extended_member_ids.append(m.id)
        return outcome


# ---------------------------------------------------------------------------
# ReworkService
# ---------------------------------------------------------------------------

@dataclass
class ReworkPlan:
    project: Project
    group_assignment: GroupAssignment
    culprit_ids: List[uuid.UUID] = field(default_factory=list)


class ReworkService:
    """
    Defect-driven rework.

    The origin project and its scores are never mutated; instead every
    member who historically worked on an overlapping (division, part) is
    identified, and a fresh shadow project with one PENDING group assignment
    carries the corrective work.
    """

    def __init__(
        self,
        group_service: GroupAssignmentService,
        granularity: OverlapGranularity = OverlapGranularity.DIVISION_PART,
        on_malformed: MalformedScopePolicy = MalformedScopePolicy.FAIL_CLOSED,
    ):
        self._groups = group_service
        self.granularity = granularity
        self.on_malformed = on_malformed

    def check_scope_overlap(self, candidate_scope, rework_scope) -> bool:
        return check_scope_overlap(
            candidate_scope, rework_scope, self.granularity, self.on_malformed
        )

    def find_culprits(
        self,
        members: Sequence[MemberAssignment],
        rework_scope: List[ScopeItem],
    ) -> List[uuid.UUID]:
        """Distinct member ids whose historical scope overlaps, in first-seen order."""
        culprits: Dict[uuid.UUID, None] = {}
        for m in members:
            if self.check_scope_overlap(m.scope, rework_scope):
                culprits.setdefault(m.member_id, None)
        return list(culprits)

    def build_shadow_project(
        self,
        origin: Project,
        rework_scope: List[ScopeItem],
        team_id: uuid.UUID,
        assigned_time: datetime,
        eta: datetime,
        file_size: str,
        now: Optional[datetime] = None,
    ) -> Tuple[Project, GroupAssignment]:
        now = as_utc(now) or _utcnow()
        require_non_empty(rework_scope)
        validate_within_catalogs(rework_scope, origin)
        divisions, part_nos, work_types = catalogs_of(rework_scope)
        shadow = Project(
            name=f"{origin.name} R",
            date=now.date().isoformat(),
            divisions=divisions,
            part_nos=part_nos,
            work_types=work_types,
            status=ProjectStatus.ACTIVE,
            remarks=REWORK_PROJECT_REMARKS,
            rework_of_id=origin.id,
            created_at=now,
            updated_at=now,
        )
        group = self._groups.create_group_assignment(
            shadow, team_id, rework_scope, file_size, assigned_time, eta,
            remarks=REWORK_ORDER_REMARKS,
        )
        return shadow, group


# ---------------------------------------------------------------------------
# NotificationService
# ---------------------------------------------------------------------------

class NotificationService:
    """
    Builds outbox messages and answers inbox queries.
    Delivery is the notification sink's job; nothing here performs I/O.
    """

    INBOX_LIMIT = 50

    def to_user(self, user_id: uuid.UUID, message: str) -> OutboxMessage:
        return OutboxMessage(message=message, user_id=user_id)

    def to_users(self, user_ids: Iterable[uuid.UUID], message: str) -> List[OutboxMessage]:
        return [self.to_user(uid, message) for uid in user_ids]

    def to_team(
        self,
        team_id: uuid.UUID,
        message: str,
        role_filter: Optional[UserRole] = None,
    ) -> OutboxMessage:
        return OutboxMessage(message=message, team_id=team_id, role_filter=role_filter)

    def inbox(self, notifications: Sequence[Notification]) -> List[Notification]:
        """Newest first, capped at INBOX_LIMIT entries."""
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)[: self.INBOX_LIMIT]


# ---------------------------------------------------------------------------
# LeaderboardService
# ---------------------------------------------------------------------------

class LeaderboardService:
    def top_teams(self, teams: Sequence[Team], limit: int = 5) -> List[Team]:
        return sorted(teams, key=lambda t: t.net_score, reverse=True)[:limit]

    def top_members(
        self,
        users: Sequence[User],
        team_id: Optional[uuid.UUID] = None,
        limit: int = 5,
    ) -> List[User]:
        pool = [u for u in users if team_id is None or u.team_id == team_id]
        return sorted(pool, key=lambda u: u.net_score, reverse=True)[:limit]


# ---------------------------------------------------------------------------
# DashboardService
# ---------------------------------------------------------------------------

@dataclass
class ProductivityRow:
    id: uuid.UUID
    name: str
    done: int
    total: int

    @property
    def ratio(self) -> float:
        return round(self.done / self.total, 2) if self.total else 0


@dataclass
class TurnaroundRow:
    id: uuid.UUID
    name: str
    average_hours: float


@dataclass
class TrendBucket:
    label: str
    start: datetime
    bonus: float = 0
    blackmark: float = 0
    projects: int = 0


def _month_start(year: int, month: int) -> datetime:
    """First instant of a month; ``month`` may run outside 1..12."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


class DashboardService:
    """
    Read models over assignments and the score ledgers.

    Turnaround is completion_time - assigned_time in hours, averaged over
    COMPLETED records and rounded to one decimal.  Trends fold the
    bonus_awarded / blackmarks_awarded recorded on a member's COMPLETED
    assignments into UTC calendar buckets keyed by completion_time.
    """

    TREND_DAYS = 7
    TREND_MONTHS = 6
    RECENT_WINDOW = timedelta(days=7)

    def team_productivity(
        self, teams: Sequence[Team], groups: Sequence[GroupAssignment]
    ) -> List[ProductivityRow]:
        rows = []
        for t in teams:
            own = [g for g in groups if g.team_id == t.id]
            done = sum(1 for g in own if g.status == AssignmentStatus.COMPLETED)
            rows.append(ProductivityRow(id=t.id, name=t.name, done=done, total=len(own)))
        return rows

    def member_productivity(
        self, users: Sequence[User], members: Sequence[MemberAssignment]
    ) -> List[ProductivityRow]:
        rows = []
        for u in users:
            own = [m for m in members if m.member_id == u.id]
            done = sum(1 for m in own if m.status == AssignmentStatus.COMPLETED)
            rows.append(ProductivityRow(id=u.id, name=u.name, done=done, total=len(own)))
        return rows

    @staticmethod
    def _average_hours(records) -> float:
        spans = [
            (as_utc(r.completion_time) - as_utc(r.assigned_time)).total_seconds() / 3600
            for r in records
            if r.status == AssignmentStatus.COMPLETED and r.completion_time is not None
        ]
        return round(sum(spans) / len(spans), 1) if spans else 0

    def team_turnaround(
        self, teams: Sequence[Team], groups: Sequence[GroupAssignment]
    ) -> List[TurnaroundRow]:
        return [
            TurnaroundRow(t.id, t.name, self._average_hours([g for g in groups if g.team_id == t.id]))
            for t in teams
        ]

    def member_turnaround(
        self, users: Sequence[User], members: Sequence[MemberAssignment]
    ) -> List[TurnaroundRow]:
        return [
            TurnaroundRow(u.id, u.name, self._average_hours([m for m in members if m.member_id == u.id]))
            for u in users
        ]

    def completed_since(self, records, since: datetime) -> int:
        since = as_utc(since)
        return sum(
            1 for r in records
            if r.status == AssignmentStatus.COMPLETED
            and r.completion_time is not None
            and as_utc(r.completion_time) > since
        )

    def pending_count(self, records) -> int:
        return sum(1 for r in records if r.status not in TERMINAL_STATUSES)

    def _fold_trend(self, buckets: List[TrendBucket], ends: List[datetime], members) -> List[TrendBucket]:
        for m in members:
            if m.status != AssignmentStatus.COMPLETED or m.completion_time is None:
                continue
            done_at = as_utc(m.completion_time)
            for bucket, end in zip(buckets, ends):
                if bucket.start <= done_at < end:
                    bucket.bonus += m.bonus_awarded
                    bucket.blackmark += m.blackmarks_awarded
                    bucket.projects += 1
                    break
        return buckets

    def daily_trend(self, members: Sequence[MemberAssignment], now: datetime) -> List[TrendBucket]:
        """One bucket per UTC day for the last TREND_DAYS days, oldest first."""
        today = as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
        starts = [today - timedelta(days=i) for i in range(self.TREND_DAYS - 1, -1, -1)]
        buckets = [TrendBucket(label=s.strftime("%a"), start=s) for s in starts]
        ends = [s + timedelta(days=1) for s in starts]
        return self._fold_trend(buckets, ends, members)

    def monthly_trend(self, members: Sequence[MemberAssignment], now: datetime) -> List[TrendBucket]:
        """One bucket per UTC calendar month for the last TREND_MONTHS months, oldest first."""
        now = as_utc(now)
        offsets = range(self.TREND_MONTHS - 1, -1, -1)
        starts = [_month_start(now.year, now.month - i) for i in offsets]
        buckets = [TrendBucket(label=s.strftime("%b"), start=s) for s in starts]
        ends = [_month_start(now.year, now.month - i + 1) for i in offsets]
        return self._fold_trend(buckets, ends, members)

    def report(
        self,
        members: Sequence[MemberAssignment],
        groups: Dict[uuid.UUID, GroupAssignment],
        start: datetime,
        end: datetime,
        team_id: Optional[uuid.UUID] = None,
        member_id: Optional[uuid.UUID] = None,
    ) -> List[MemberAssignment]:
        """
        Member assignments whose assigned_time falls in [start, end],
        optionally narrowed to one team and / or one member, newest first.
        """
        start, end = as_utc(start), as_utc(end)
        if end < start:
            raise ValueError("Report end must not be before its start.")
        rows = []
        for m in members:
            group = groups.get(m.group_assignment_id)
            if group is None or not (start <= as_utc(m.assigned_time) <= end):
                continue
            if team_id is not None and group.team_id != team_id:
                continue
            if member_id is not None and m.member_id != member_id:
                continue
            rows.append(m)
        return sorted(rows, key=lambda m: m.assigned_time, reverse=True)
