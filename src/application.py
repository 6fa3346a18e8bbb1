"""
application.py

Application layer for the Work Allocation & Scoring Engine.

Overview
--------
The application layer sits between the presentation layer (API) and the
domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) so that no raw domain objects
     are leaked upward.
  2. Declaring abstract Repository interfaces and the notification sink so
     that the application layer stays persistence-agnostic (implementations
     live in infrastructure.py).
  3. Declaring the UnitOfWork abstraction: every use case runs inside one
     unit of work, all of its writes commit or roll back together, and
     queued notifications are only delivered after a successful commit.
  4. Implementing Use Case handlers, one class per user-facing operation.

Structure
---------
DTOs
    ProjectDTO, GroupAssignmentDTO, MemberAssignmentDTO
    UserDTO, TeamDTO, NotificationDTO
    CompletionStatsDTO, GroupStatsDTO, ProjectStatsDTO
    HoldResultDTO, ReworkResultDTO, PolicyConfigDTO, LeaderboardDTO
    ProductivityDTO, TurnaroundDTO, TrendPointDTO, DashboardDTO, ReportRowDTO

Repository interfaces
    AbstractProjectRepository
    AbstractGroupAssignmentRepository
    AbstractMemberAssignmentRepository
    AbstractUserRepository
    AbstractTeamRepository
    AbstractNotificationRepository
    AbstractConfigRepository

Notification sink
    AbstractNotificationSink

Unit of Work
    AbstractUnitOfWork

Use Cases
    --- Projects ---
    CreateProjectUseCase, GetProjectUseCase, ListProjectsUseCase,
    UpdateProjectUseCase, DeleteProjectUseCase, ToggleHoldUseCase, TriggerReworkUseCase,
    ComputeProjectStatsUseCase

    --- Teams & users ---
    CreateTeamUseCase, GetTeamUseCase, ListTeamsUseCase,
    CreateUserUseCase, GetUserUseCase, ListUsersUseCase, GetLeaderboardUseCase

    --- Dashboard & reports ---
    GetDashboardUseCase, GetReportUseCase

    --- Group assignments ---
    CreateGroupAssignmentUseCase, UpdateGroupAssignmentUseCase,
    DeleteGroupAssignmentUseCase, GetGroupAssignmentUseCase,
    ListGroupAssignmentsUseCase, ComputeGroupStatsUseCase

    --- Member assignments ---
    CreateMemberAssignmentUseCase, UpdateMemberAssignmentUseCase,
    DeleteMemberAssignmentUseCase, GetMemberAssignmentUseCase,
    ListMemberAssignmentsUseCase

    --- Config & notifications ---
    GetConfigUseCase, UpdateConfigUseCase,
    ListNotificationsUseCase, MarkNotificationsReadUseCase,
    ClearNotificationsUseCase

Design notes
------------
- Use cases receive commands and return DTOs only.
- Each use case accepts a UnitOfWork as its sole dependency.  Use cases that
  read the clock take a ``clock`` callable at construction time.
- All timestamps flowing out are ISO-8601 strings (UTC).
- Errors bubble up as NotFoundError, ConcurrentModificationError,
  ApplicationError (business) or the typed ValueErrors raised by the domain
  (InvalidTransitionError, ScopeError).
"""

from __future__ import annotations

import abc
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from model import (
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
from scope import ScopeError, parse_scope, scope_to_dicts
from service import (
    CompletionService,
    CompletionStats,
    DashboardService,
    GroupAssignmentService,
    HoldService,
    LeaderboardService,
    MemberAssignmentService,
    NotificationService,
    ProductivityRow,
    ProjectService,
    ReworkService,
    ScoringService,
    TransitionOutcome,
    TrendBucket,
    TurnaroundRow,
    as_utc,
)
from settings import get_settings
from workflow import GROUP_WORKFLOW, MEMBER_WORKFLOW, InvalidTransitionError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class ConcurrentModificationError(ApplicationError):
    """Raised when a write carries an expected_version that is no longer current."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fmt(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if dt is None:
        return None
    return as_utc(dt).isoformat()


def _str_or_none(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value else None


@contextmanager
def _business_rules() -> Iterator[None]:
    """Re-raise plain ValueErrors from the service layer as ApplicationError."""
    try:
        yield
    except (InvalidTransitionError, ScopeError):
        raise
    except ValueError as exc:
        raise ApplicationError(str(exc)) from exc


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class ProjectDTO:
    id: str
    name: str
    date: str
    divisions: List[str]
    part_nos: List[str]
    work_types: List[str]
    status: str
    remarks: str
    hold_start_time: Optional[str]
    total_hold_duration: int
    rework_of_id: Optional[str]
    allocation_percent: int
    completion_percent: int
    created_at: str
    updated_at: str


@dataclass
class GroupAssignmentDTO:
    id: str
    project_id: str
    team_id: str
    scope: List[Dict[str, Any]]
    file_size: str
    assigned_time: str
    eta: str
    status: str
    rating: int
    remarks: str
    completion_time: Optional[str]
    rejection_reason: Optional[str]
    allocation_percent: int
    completion_percent: int
    version: int
    updated_at: str


@dataclass
class MemberAssignmentDTO:
    id: str
    group_assignment_id: str
    member_id: str
    scope: List[Dict[str, Any]]
    assigned_time: str
    eta: str
    completion_time: Optional[str]
    status: str
    rating: int
    remarks: str
    rework_from_id: Optional[str]
    bonus_awarded: float
    blackmarks_awarded: float
    rejection_reason: Optional[str]
    proof: Optional[str]
    version: int
    updated_at: str


@dataclass
class UserDTO:
    id: str
    name: str
    email: str
    roles: List[str]
    team_id: Optional[str]
    bonus_points: float
    blackmarks: float
    net_score: float


@dataclass
class TeamDTO:
    id: str
    name: str
    lead_ids: List[str]
    bonus_points: float
    blackmarks: float
    net_score: float


@dataclass
class NotificationDTO:
    id: str
    user_id: str
    message: str
    is_read: bool
    created_at: str


@dataclass
class CompletionStatsDTO:
    total_units: int
    allocated_units: int
    completed_units: int
    allocation_percent: int
    completion_percent: int


@dataclass
class GroupStatsDTO:
    group_assignment_id: str
    status: str
    stats: CompletionStatsDTO


@dataclass
class ProjectStatsDTO:
    project_id: str
    stats: CompletionStatsDTO
    groups: List[GroupStatsDTO]


@dataclass
class HoldResultDTO:
    project: ProjectDTO
    held_minutes: int
    extended_group_ids: List[str]
    extended_member_ids: List[str]


@dataclass
class ReworkResultDTO:
    new_project_id: str
    assignment_id: str
    penalized_member_ids: List[str]


@dataclass
class PolicyConfigDTO:
    values: Dict[str, Any]


@dataclass
class LeaderboardDTO:
    top_teams: List[TeamDTO]
    top_members: List[UserDTO]


@dataclass
class ProductivityDTO:
    id: str
    name: str
    done: int
    total: int
    ratio: float


@dataclass
class TurnaroundDTO:
    id: str
    name: str
    average_hours: float


@dataclass
class TrendPointDTO:
    label: str
    start: str
    bonus: float
    blackmark: float
    projects: int


@dataclass
class DashboardDTO:
    """
    Portfolio figures are always present.  Team figures are filled when a
    team is requested, member figures when a member is requested.
    """
    active_projects: int
    groups_completed_last_week: int
    top_teams: List[TeamDTO]
    team_productivity: List[ProductivityDTO]
    team_turnaround: List[TurnaroundDTO]
    team_active_assignments: Optional[int] = None
    top_members: List[UserDTO] = field(default_factory=list)
    member_productivity: List[ProductivityDTO] = field(default_factory=list)
    member_turnaround: List[TurnaroundDTO] = field(default_factory=list)
    member: Optional[UserDTO] = None
    member_completed_last_week: Optional[int] = None
    member_pending_tasks: Optional[int] = None
    daily_trend: List[TrendPointDTO] = field(default_factory=list)
    monthly_trend: List[TrendPointDTO] = field(default_factory=list)


@dataclass
class ReportRowDTO:
    project_name: str
    team_id: str
    team_name: str
    member_name: str
    assignment: MemberAssignmentDTO


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def stats(s: CompletionStats) -> CompletionStatsDTO:
        return CompletionStatsDTO(
            total_units=s.total_units,
            allocated_units=s.allocated_units,
            completed_units=s.completed_units,
            allocation_percent=s.allocation_percent,
            completion_percent=s.completion_percent,
        )

    @staticmethod
    def project(p: Project, stats: CompletionStats) -> ProjectDTO:
        return ProjectDTO(
            id=str(p.id),
            name=p.name,
            date=p.date,
            divisions=list(p.divisions),
            part_nos=list(p.part_nos),
            work_types=list(p.work_types),
            status=p.status.value,
            remarks=p.remarks,
            hold_start_time=_fmt(p.hold_start_time),
            total_hold_duration=p.total_hold_duration,
            rework_of_id=_str_or_none(p.rework_of_id),
            allocation_percent=stats.allocation_percent,
            completion_percent=stats.completion_percent,
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
        )

    @staticmethod
    def group_assignment(g: GroupAssignment, stats: CompletionStats) -> GroupAssignmentDTO:
        return GroupAssignmentDTO(
            id=str(g.id),
            project_id=str(g.project_id),
            team_id=str(g.team_id),
            scope=scope_to_dicts(g.scope),
            file_size=g.file_size,
            assigned_time=_fmt(g.assigned_time),
            eta=_fmt(g.eta),
            status=g.status.value,
            rating=g.rating,
            remarks=g.remarks,
            completion_time=_fmt(g.completion_time),
            rejection_reason=g.rejection_reason,
            allocation_percent=stats.allocation_percent,
            completion_percent=stats.completion_percent,
            version=g.version,
            updated_at=_fmt(g.updated_at),
        )

    @staticmethod
    def member_assignment(m: MemberAssignment) -> MemberAssignmentDTO:
        return MemberAssignmentDTO(
            id=str(m.id),
            group_assignment_id=str(m.group_assignment_id),
            member_id=str(m.member_id),
            scope=scope_to_dicts(m.scope),
            assigned_time=_fmt(m.assigned_time),
            eta=_fmt(m.eta),
            completion_time=_fmt(m.completion_time),
            status=m.status.value,
            rating=m.rating,
            remarks=m.remarks,
            rework_from_id=_str_or_none(m.rework_from_id),
            bonus_awarded=m.bonus_awarded,
            blackmarks_awarded=m.blackmarks_awarded,
            rejection_reason=m.rejection_reason,
            proof=m.proof,
            version=m.version,
            updated_at=_fmt(m.updated_at),
        )

    @staticmethod
    def user(u: User) -> UserDTO:
        return UserDTO(
            id=str(u.id),
            name=u.name,
            email=u.email,
            roles=[r.value for r in u.roles],
            team_id=_str_or_none(u.team_id),
            bonus_points=u.bonus_points,
            blackmarks=u.blackmarks,
            net_score=u.net_score,
        )

    @staticmethod
    def team(t: Team) -> TeamDTO:
        return TeamDTO(
            id=str(t.id),
            name=t.name,
            lead_ids=[str(i) for i in t.lead_ids],
            bonus_points=t.bonus_points,
            blackmarks=t.blackmarks,
            net_score=t.net_score,
        )

    @staticmethod
    def productivity(row: ProductivityRow) -> ProductivityDTO:
        return ProductivityDTO(
            id=str(row.id), name=row.name, done=row.done, total=row.total, ratio=row.ratio
        )

    @staticmethod
    def turnaround(row: TurnaroundRow) -> TurnaroundDTO:
        return TurnaroundDTO(id=str(row.id), name=row.name, average_hours=row.average_hours)

    @staticmethod
    def trend_point(b: TrendBucket) -> TrendPointDTO:
        return TrendPointDTO(
            label=b.label, start=_fmt(b.start), bonus=b.bonus,
            blackmark=b.blackmark, projects=b.projects,
        )

    @staticmethod
    def notification(n: Notification) -> NotificationDTO:
        return NotificationDTO(
            id=str(n.id),
            user_id=str(n.user_id),
            message=n.message,
            is_read=n.is_read,
            created_at=_fmt(n.created_at),
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, project_id: uuid.UUID) -> Optional[Project]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Project]: ...
    @abc.abstractmethod
    def save(self, project: Project) -> None: ...
    @abc.abstractmethod
    def delete(self, project_id: uuid.UUID) -> None: ...


class AbstractGroupAssignmentRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, group_id: uuid.UUID) -> Optional[GroupAssignment]: ...
    @abc.abstractmethod
    def list_all(self) -> List[GroupAssignment]: ...
    @abc.abstractmethod
    def list_for_project(self, project_id: uuid.UUID) -> List[GroupAssignment]: ...
    @abc.abstractmethod
    def list_for_team(self, team_id: uuid.UUID) -> List[GroupAssignment]: ...
    @abc.abstractmethod
    def save(self, group: GroupAssignment) -> None: ...
    @abc.abstractmethod
    def delete(self, group_id: uuid.UUID) -> None: ...


class AbstractMemberAssignmentRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, assignment_id: uuid.UUID) -> Optional[MemberAssignment]: ...
    @abc.abstractmethod
    def list_all(self) -> List[MemberAssignment]: ...
    @abc.abstractmethod
    def list_for_group(self, group_id: uuid.UUID) -> List[MemberAssignment]: ...
    @abc.abstractmethod
    def list_for_member(self, member_id: uuid.UUID) -> List[MemberAssignment]: ...
    @abc.abstractmethod
    def save(self, assignment: MemberAssignment) -> None: ...
    @abc.abstractmethod
    def delete(self, assignment_id: uuid.UUID) -> None: ...


class AbstractUserRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, user_id: uuid.UUID) -> Optional[User]: ...
    @abc.abstractmethod
    def get_by_email(self, email: str) -> Optional[User]: ...
    @abc.abstractmethod
    def list_all(self) -> List[User]: ...
    @abc.abstractmethod
    def list_for_team(self, team_id: uuid.UUID) -> List[User]: ...
    @abc.abstractmethod
    def save(self, user: User) -> None: ...


class AbstractTeamRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, team_id: uuid.UUID) -> Optional[Team]: ...
    @abc.abstractmethod
    def get_by_name(self, name: str) -> Optional[Team]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Team]: ...
    @abc.abstractmethod
    def save(self, team: Team) -> None: ...


class AbstractNotificationRepository(abc.ABC):
    @abc.abstractmethod
    def list_for_user(self, user_id: uuid.UUID) -> List[Notification]: ...
    @abc.abstractmethod
    def save(self, notification: Notification) -> None: ...
    @abc.abstractmethod
    def delete(self, notification_id: uuid.UUID) -> None: ...


class AbstractConfigRepository(abc.ABC):
    """Key/value store for runtime policy overrides (upper-case keys)."""
    @abc.abstractmethod
    def get_all(self) -> Dict[str, Any]: ...
    @abc.abstractmethod
    def set(self, key: str, value: Any) -> None: ...


# ===========================================================================
# NOTIFICATION SINK
# ===========================================================================

class AbstractNotificationSink(abc.ABC):
    """
    Delivery target for committed notifications.  Delivery is
    fire-and-forget: a failing sink never fails the use case that queued
    the message.
    """

    @abc.abstractmethod
    def notify(self, user_id: uuid.UUID, message: str) -> None: ...

    @abc.abstractmethod
    def notify_team(
        self,
        team_id: uuid.UUID,
        message: str,
        role_filter: Optional[UserRole] = None,
    ) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.projects.save(project)
            uow.publish(message)
            uow.commit()

    Leaving the block with an exception rolls everything back, including
    the notification outbox.
    """
    projects: AbstractProjectRepository
    group_assignments: AbstractGroupAssignmentRepository
    member_assignments: AbstractMemberAssignmentRepository
    users: AbstractUserRepository
    teams: AbstractTeamRepository
    notifications: AbstractNotificationRepository
    config: AbstractConfigRepository

    def __init__(self, sink: Optional[AbstractNotificationSink] = None):
        self.sink = sink
        self.outbox: List[OutboxMessage] = []

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    def publish(self, *messages: OutboxMessage) -> None:
        self.outbox.extend(messages)

    def commit(self) -> None:
        self._commit()
        pending, self.outbox = self.outbox, []
        self._deliver(pending)

    def rollback(self) -> None:
        self.outbox = []
        self._rollback()

    def _deliver(self, messages: Sequence[OutboxMessage]) -> None:
        if self.sink is None:
            return
        for msg in messages:
            try:
                if msg.user_id is not None:
                    self.sink.notify(msg.user_id, msg.message)
                else:
                    self.sink.notify_team(msg.team_id, msg.message, msg.role_filter)
            except Exception:
                logger.exception("Notification delivery failed: %r", msg)

    @abc.abstractmethod
    def _commit(self) -> None: ...

    @abc.abstractmethod
    def _rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_project_svc = ProjectService()
_completion_svc = CompletionService()
_scoring_svc = ScoringService()
_group_svc = GroupAssignmentService(_completion_svc, _scoring_svc)
_member_svc = MemberAssignmentService(_scoring_svc)
_hold_svc = HoldService()
_notification_svc = NotificationService()
_leaderboard_svc = LeaderboardService()
_dashboard_svc = DashboardService()


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_project_or_raise(uow: AbstractUnitOfWork, project_id: uuid.UUID) -> Project:
    project = uow.projects.get(project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")
    return project


def _get_group_or_raise(uow: AbstractUnitOfWork, group_id: uuid.UUID) -> GroupAssignment:
    group = uow.group_assignments.get(group_id)
    if group is None:
        raise NotFoundError(f"GroupAssignment {group_id} not found.")
    return group


def _get_member_assignment_or_raise(
    uow: AbstractUnitOfWork, assignment_id: uuid.UUID
) -> MemberAssignment:
    assignment = uow.member_assignments.get(assignment_id)
    if assignment is None:
        raise NotFoundError(f"MemberAssignment {assignment_id} not found.")
    return assignment


def _get_user_or_raise(uow: AbstractUnitOfWork, user_id: uuid.UUID) -> User:
    user = uow.users.get(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return user


def _get_team_or_raise(uow: AbstractUnitOfWork, team_id: uuid.UUID) -> Team:
    team = uow.teams.get(team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found.")
    return team


def _check_version(entity: str, obj: Any, expected: Optional[int]) -> None:
    if expected is not None and obj.version != expected:
        raise ConcurrentModificationError(
            f"{entity} {obj.id} is at version {obj.version}, expected {expected}."
        )


def _check_status(entity: str, obj: Any, expected: Optional[AssignmentStatus], target) -> None:
    if expected is not None and obj.status != expected:
        raise InvalidTransitionError(
            entity, obj.status, target, f"expected current status {expected.value}"
        )


def _policy(uow: AbstractUnitOfWork) -> PolicyConfig:
    return PolicyConfig.resolve(uow.config.get_all(), defaults=get_settings().policy_defaults())


def _members_of_project(uow: AbstractUnitOfWork, project_id: uuid.UUID) -> List[MemberAssignment]:
    members: List[MemberAssignment] = []
    for g in uow.group_assignments.list_for_project(project_id):
        members.extend(uow.member_assignments.list_for_group(g.id))
    return members


def _project_dto(uow: AbstractUnitOfWork, project: Project) -> ProjectDTO:
    groups = uow.group_assignments.list_for_project(project.id)
    members = _members_of_project(uow, project.id)
    stats = _completion_svc.project_stats(project, groups, members).stats
    return _Assembler.project(project, stats)


def _group_dto(uow: AbstractUnitOfWork, group: GroupAssignment) -> GroupAssignmentDTO:
    members = uow.member_assignments.list_for_group(group.id)
    return _Assembler.group_assignment(group, _completion_svc.group_stats(group, members))


def _notify_managers(uow: AbstractUnitOfWork, message: str) -> None:
    """Queue a message for every project manager and admin."""
    managers = [
        u.id for u in uow.users.list_all()
        if UserRole.PROJECT_MANAGER in u.roles or UserRole.ADMIN in u.roles
    ]
    uow.publish(*_notification_svc.to_users(managers, message))


def _notify_team_leads(uow: AbstractUnitOfWork, team_id: uuid.UUID, message: str) -> None:
    uow.publish(_notification_svc.to_team(team_id, message, UserRole.TEAM_LEAD))


# ===========================================================================
# USE CASES — PROJECTS
# ===========================================================================

@dataclass
class CreateProjectCommand:
    name: str
    divisions: List[str]
    part_nos: List[str]
    work_types: List[str]
    date: str = ""
    remarks: str = ""


class CreateProjectUseCase:
    def execute(self, cmd: CreateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            with _business_rules():
                project = _project_svc.create_project(
                    name=cmd.name,
                    date=cmd.date,
                    divisions=cmd.divisions,
                    part_nos=cmd.part_nos,
                    work_types=cmd.work_types,
                    remarks=cmd.remarks,
                )
            uow.projects.save(project)
            uow.commit()
            return _project_dto(uow, project)


class GetProjectUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            return _project_dto(uow, _get_project_or_raise(uow, project_id))


class ListProjectsUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[ProjectDTO]:
        with uow:
            projects = sorted(uow.projects.list_all(), key=lambda p: p.created_at, reverse=True)
            return [_project_dto(uow, p) for p in projects]


@dataclass
class UpdateProjectCommand:
    project_id: uuid.UUID
    name: Optional[str] = None
    date: Optional[str] = None
    divisions: Optional[List[str]] = None
    part_nos: Optional[List[str]] = None
    work_types: Optional[List[str]] = None
    status: Optional[ProjectStatus] = None
    remarks: Optional[str] = None


class UpdateProjectUseCase:
    """
    Edit a project's name, date, catalogs, remarks or status.  Marking a
    project COMPLETED closes it to new group assignments and to hold.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: UpdateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            previous = project.status
            with _business_rules():
                _project_svc.update_project(
                    project,
                    uow.group_assignments.list_for_project(project.id),
                    name=cmd.name,
                    date=cmd.date,
                    divisions=cmd.divisions,
                    part_nos=cmd.part_nos,
                    work_types=cmd.work_types,
                    status=cmd.status,
                    remarks=cmd.remarks,
                    now=self._clock(),
                )
            uow.projects.save(project)
            uow.commit()
            if project.status != previous:
                logger.info("Project %s: %s -> %s", project.id, previous.value, project.status.value)
            return _project_dto(uow, project)


class DeleteProjectUseCase:
    """
    Hard delete: the project, every group assignment under it and every
    member assignment under those.  Score ledgers are not touched.
    """

    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> None:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            group_ids, member_ids = _project_svc.plan_cascade_delete(
                project,
                uow.group_assignments.list_for_project(project_id),
                _members_of_project(uow, project_id),
            )
            for mid in member_ids:
                uow.member_assignments.delete(mid)
            for gid in group_ids:
                uow.group_assignments.delete(gid)
            uow.projects.delete(project_id)
            uow.commit()
            logger.info(
                "Deleted project %s with %d group and %d member assignments",
                project_id, len(group_ids), len(member_ids),
            )


@dataclass
class ToggleHoldCommand:
    project_id: uuid.UUID
    is_hold: bool


class ToggleHoldUseCase:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: ToggleHoldCommand, uow: AbstractUnitOfWork) -> HoldResultDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            groups = uow.group_assignments.list_for_project(project.id)
            members = _members_of_project(uow, project.id)
            with _business_rules():
                outcome = _hold_svc.toggle_hold(project, cmd.is_hold, groups, members, now=self._clock())
            uow.projects.save(project)
            extended_groups = set(outcome.extended_group_ids)
            extended_members = set(outcome.extended_member_ids)
            for g in groups:
                if g.id in extended_groups:
                    uow.group_assignments.save(g)
            for m in members:
                if m.id in extended_members:
                    uow.member_assignments.save(m)
            uow.commit()
            if cmd.is_hold:
                logger.info("Project %s put on hold", project.id)
            else:
                logger.info(
                    "Project %s resumed after %d min; %d group / %d member etas extended",
                    project.id, outcome.held_minutes, len(extended_groups), len(extended_members),
                )
            return HoldResultDTO(
                project=_project_dto(uow, project),
                held_minutes=outcome.held_minutes,
                extended_group_ids=[str(i) for i in outcome.extended_group_ids],
                extended_member_ids=[str(i) for i in outcome.extended_member_ids],
            )


@dataclass
class TriggerReworkCommand:
    project_id: uuid.UUID
    team_id: uuid.UUID
    scope: Any
    eta: datetime
    assigned_time: Optional[datetime] = None
    file_size: str = ""


class TriggerReworkUseCase:
    """
    Penalise every member whose historical work on the project overlaps the
    defective scope, then open a shadow project ("<name> R") with one
    PENDING group assignment for the corrective work.  The origin project
    and its scores are left untouched.  All-or-nothing.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: TriggerReworkCommand, uow: AbstractUnitOfWork) -> ReworkResultDTO:
        settings = get_settings()
        rework_svc = ReworkService(
            _group_svc,
            granularity=settings.rework_overlap_granularity,
            on_malformed=settings.malformed_scope_policy,
        )
        with uow:
            origin = _get_project_or_raise(uow, cmd.project_id)
            team = _get_team_or_raise(uow, cmd.team_id)
            policy = _policy(uow)
            now = self._clock()
            rework_scope = parse_scope(cmd.scope)

            history = _members_of_project(uow, origin.id)
            culprit_ids = rework_svc.find_culprits(history, rework_scope)
            with _business_rules():
                shadow, group = rework_svc.build_shadow_project(
                    origin, rework_scope, team.id,
                    assigned_time=cmd.assigned_time or now,
                    eta=cmd.eta,
                    file_size=cmd.file_size,
                    now=now,
                )

            penalized: List[uuid.UUID] = []
            for member_id in culprit_ids:
                user = uow.users.get(member_id)
                if user is None:
                    logger.warning("Rework culprit %s no longer exists; skipped", member_id)
                    continue
                penalty = _scoring_svc.apply_rework_penalty(user, policy)
                uow.users.save(user)
                penalized.append(user.id)
                uow.publish(_notification_svc.to_user(
                    user.id, f"REWORK generated. You received {penalty:g} Blackmarks."
                ))

            uow.projects.save(shadow)
            uow.group_assignments.save(group)
            _notify_team_leads(uow, team.id, "New Project Allocated: Check Group Assignments")
            uow.commit()
            logger.info(
                "Rework of project %s dispatched as %s; %d member(s) penalised",
                origin.id, shadow.id, len(penalized),
            )
            return ReworkResultDTO(
                new_project_id=str(shadow.id),
                assignment_id=str(group.id),
                penalized_member_ids=[str(i) for i in penalized],
            )


class ComputeProjectStatsUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> ProjectStatsDTO:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            groups = uow.group_assignments.list_for_project(project_id)
            result = _completion_svc.project_stats(
                project, groups, _members_of_project(uow, project_id)
            )
            return ProjectStatsDTO(
                project_id=str(project.id),
                stats=_Assembler.stats(result.stats),
                groups=[
                    GroupStatsDTO(
                        group_assignment_id=str(g.id),
                        status=g.status.value,
                        stats=_Assembler.stats(result.groups[g.id]),
                    )
                    for g in groups
                ],
            )


# ===========================================================================
# USE CASES — TEAMS & USERS
# ===========================================================================

@dataclass
class CreateTeamCommand:
    name: str
    lead_ids: List[uuid.UUID] = field(default_factory=list)


class CreateTeamUseCase:
    def execute(self, cmd: CreateTeamCommand, uow: AbstractUnitOfWork) -> TeamDTO:
        with uow:
            name = cmd.name.strip()
            if not name:
                raise ApplicationError("Team name must not be empty.")
            if uow.teams.get_by_name(name) is not None:
                raise ApplicationError(f"A team named '{name}' already exists.")
            for lead_id in cmd.lead_ids:
                _get_user_or_raise(uow, lead_id)
            team = Team(name=name, lead_ids=list(dict.fromkeys(cmd.lead_ids)))
            uow.teams.save(team)
            uow.commit()
            return _Assembler.team(team)


class GetTeamUseCase:
    def execute(self, team_id: uuid.UUID, uow: AbstractUnitOfWork) -> TeamDTO:
        with uow:
            return _Assembler.team(_get_team_or_raise(uow, team_id))


class ListTeamsUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> List[TeamDTO]:
        with uow:
            return [_Assembler.team(t) for t in sorted(uow.teams.list_all(), key=lambda t: t.name)]


@dataclass
class CreateUserCommand:
    name: str
    email: str
    roles: List[UserRole] = field(default_factory=lambda: [UserRole.MEMBER])
    team_id: Optional[uuid.UUID] = None


class CreateUserUseCase:
    """Register a user; a TEAM_LEAD joining a team is added to its leads."""

    def execute(self, cmd: CreateUserCommand, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            if not cmd.name.strip():
                raise ApplicationError("User name must not be empty.")
            if uow.users.get_by_email(cmd.email) is not None:
                raise ApplicationError(f"A user with email '{cmd.email}' already exists.")
            team = _get_team_or_raise(uow, cmd.team_id) if cmd.team_id else None
            user = User(
                name=cmd.name.strip(),
                email=cmd.email,
                roles=list(dict.fromkeys(cmd.roles)) or [UserRole.MEMBER],
                team_id=cmd.team_id,
            )
            uow.users.save(user)
            if team is not None and UserRole.TEAM_LEAD in user.roles:
                team.lead_ids.append(user.id)
                uow.teams.save(team)
            uow.commit()
            return _Assembler.user(user)


class GetUserUseCase:
    def execute(self, user_id: uuid.UUID, uow: AbstractUnitOfWork) -> UserDTO:
        with uow:
            return _Assembler.user(_get_user_or_raise(uow, user_id))


class ListUsersUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        team_id: Optional[uuid.UUID] = None,
    ) -> List[UserDTO]:
        with uow:
            users = uow.users.list_for_team(team_id) if team_id else uow.users.list_all()
            return [_Assembler.user(u) for u in sorted(users, key=lambda u: u.name)]


class GetLeaderboardUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        team_id: Optional[uuid.UUID] = None,
        limit: int = 5,
    ) -> LeaderboardDTO:
        with uow:
            return LeaderboardDTO(
                top_teams=[
                    _Assembler.team(t)
                    for t in _leaderboard_svc.top_teams(uow.teams.list_all(), limit)
                ],
                top_members=[
                    _Assembler.user(u)
                    for u in _leaderboard_svc.top_members(uow.users.list_all(), team_id, limit)
                ],
            )


# ===========================================================================
# USE CASES — DASHBOARD & REPORTS
# ===========================================================================

class GetDashboardUseCase:
    """
    Portfolio, team and personal figures in one read.

    team_id adds the team's open workload, its top members and each
    member's completed count and turnaround.  member_id adds that member's
    recent throughput and the daily / monthly bonus and blackmark trends.
    """

    TOP_LIMIT = 5

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(
        self,
        uow: AbstractUnitOfWork,
        team_id: Optional[uuid.UUID] = None,
        member_id: Optional[uuid.UUID] = None,
    ) -> DashboardDTO:
        now = as_utc(self._clock())
        since = now - _dashboard_svc.RECENT_WINDOW
        with uow:
            teams = sorted(uow.teams.list_all(), key=lambda t: t.name)
            groups = uow.group_assignments.list_all()
            members = uow.member_assignments.list_all()
            result = DashboardDTO(
                active_projects=sum(
                    1 for p in uow.projects.list_all() if p.status == ProjectStatus.ACTIVE
                ),
                groups_completed_last_week=_dashboard_svc.completed_since(groups, since),
                top_teams=[_Assembler.team(t) for t in _leaderboard_svc.top_teams(teams, self.TOP_LIMIT)],
                team_productivity=[
                    _Assembler.productivity(r) for r in _dashboard_svc.team_productivity(teams, groups)
                ],
                team_turnaround=[
                    _Assembler.turnaround(r) for r in _dashboard_svc.team_turnaround(teams, groups)
                ],
            )

            if team_id is not None:
                _get_team_or_raise(uow, team_id)
                roster = sorted(uow.users.list_for_team(team_id), key=lambda u: u.name)
                result.team_active_assignments = _dashboard_svc.pending_count(
                    uow.group_assignments.list_for_team(team_id)
                )
                result.top_members = [
                    _Assembler.user(u)
                    for u in _leaderboard_svc.top_members(roster, team_id, self.TOP_LIMIT)
                ]
                result.member_productivity = [
                    _Assembler.productivity(r) for r in _dashboard_svc.member_productivity(roster, members)
                ]
                result.member_turnaround = [
                    _Assembler.turnaround(r) for r in _dashboard_svc.member_turnaround(roster, members)
                ]

            if member_id is not None:
                user = _get_user_or_raise(uow, member_id)
                own = uow.member_assignments.list_for_member(member_id)
                result.member = _Assembler.user(user)
                result.member_completed_last_week = _dashboard_svc.completed_since(own, since)
                result.member_pending_tasks = _dashboard_svc.pending_count(own)
                result.daily_trend = [
                    _Assembler.trend_point(b) for b in _dashboard_svc.daily_trend(own, now)
                ]
                result.monthly_trend = [
                    _Assembler.trend_point(b) for b in _dashboard_svc.monthly_trend(own, now)
                ]
            return result


@dataclass
class GetReportCommand:
    start: datetime
    end: datetime
    team_id: Optional[uuid.UUID] = None
    member_id: Optional[uuid.UUID] = None


class GetReportUseCase:
    """Member assignments allocated inside a date range, newest first."""

    def execute(self, cmd: GetReportCommand, uow: AbstractUnitOfWork) -> List[ReportRowDTO]:
        with uow:
            groups = {g.id: g for g in uow.group_assignments.list_all()}
            with _business_rules():
                rows = _dashboard_svc.report(
                    uow.member_assignments.list_all(), groups,
                    cmd.start, cmd.end,
                    team_id=cmd.team_id, member_id=cmd.member_id,
                )
            report = []
            for m in rows:
                group = groups[m.group_assignment_id]
                project = uow.projects.get(group.project_id)
                team = uow.teams.get(group.team_id)
                member = uow.users.get(m.member_id)
                report.append(ReportRowDTO(
                    project_name=project.name if project else "",
                    team_id=str(group.team_id),
                    team_name=team.name if team else "",
                    member_name=member.name if member else "",
                    assignment=_Assembler.member_assignment(m),
                ))
            return report


# ===========================================================================
# USE CASES — GROUP ASSIGNMENTS
# ===========================================================================

@dataclass
class CreateGroupAssignmentCommand:
    project_id: uuid.UUID
    team_id: uuid.UUID
    scope: Any
    assigned_time: datetime
    eta: datetime
    file_size: str = ""
    remarks: str = ""


class CreateGroupAssignmentUseCase:
    def execute(self, cmd: CreateGroupAssignmentCommand, uow: AbstractUnitOfWork) -> GroupAssignmentDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            team = _get_team_or_raise(uow, cmd.team_id)
            with _business_rules():
                group = _group_svc.create_group_assignment(
                    project=project,
                    team_id=team.id,
                    scope=parse_scope(cmd.scope),
                    file_size=cmd.file_size,
                    assigned_time=cmd.assigned_time,
                    eta=cmd.eta,
                    remarks=cmd.remarks,
                )
            uow.group_assignments.save(group)
            _notify_team_leads(uow, team.id, "New Project Allocated: Check Group Assignments")
            uow.commit()
            logger.info("GroupAssignment %s created for team %s on project %s", group.id, team.id, project.id)
            return _group_dto(uow, group)


@dataclass
class UpdateGroupAssignmentCommand:
    """
    Field edits and / or one status change.  ``expected_status`` pins the
    current status (used by the revoke endpoints); ``expected_version`` is
    the optimistic concurrency token.
    """
    group_assignment_id: uuid.UUID
    expected_version: Optional[int] = None
    expected_status: Optional[AssignmentStatus] = None
    status: Optional[AssignmentStatus] = None
    rating: Optional[int] = None
    override_blackmark: bool = False
    rejection_reason: Optional[str] = None
    scope: Any = None
    file_size: Optional[str] = None
    assigned_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    remarks: Optional[str] = None


class UpdateGroupAssignmentUseCase:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: UpdateGroupAssignmentCommand, uow: AbstractUnitOfWork) -> GroupAssignmentDTO:
        with uow:
            group = _get_group_or_raise(uow, cmd.group_assignment_id)
            _check_version(GROUP_WORKFLOW.entity, group, cmd.expected_version)
            _check_status(GROUP_WORKFLOW.entity, group, cmd.expected_status, cmd.status or group.status)
            project = _get_project_or_raise(uow, group.project_id)
            team = _get_team_or_raise(uow, group.team_id)
            members = uow.member_assignments.list_for_group(group.id)

            edits = (cmd.scope, cmd.file_size, cmd.assigned_time, cmd.eta, cmd.remarks)
            outcome: Optional[TransitionOutcome] = None
            with _business_rules():
                if any(v is not None for v in edits):
                    _group_svc.update_fields(
                        group, project, members,
                        scope=parse_scope(cmd.scope) if cmd.scope is not None else None,
                        file_size=cmd.file_size,
                        assigned_time=cmd.assigned_time,
                        eta=cmd.eta,
                        remarks=cmd.remarks,
                    )
                if cmd.status is not None:
                    outcome = _group_svc.transition(
                        group, cmd.status, members, _policy(uow),
                        team=team,
                        rating=cmd.rating,
                        override_blackmark=cmd.override_blackmark,
                        rejection_reason=cmd.rejection_reason,
                        now=self._clock(),
                    )

            uow.group_assignments.save(group)
            if outcome is not None:
                if outcome.award is not None:
                    uow.teams.save(team)
                self._notify(uow, outcome, group, project, team)
            uow.commit()
            return _group_dto(uow, group)

    @staticmethod
    def _notify(uow, outcome: TransitionOutcome, group: GroupAssignment, project: Project, team: Team) -> None:
        status = outcome.status
        if status == AssignmentStatus.COMPLETED:
            _notify_managers(uow, f"Team '{team.name}' completed Project '{project.name}'.")
        elif status == AssignmentStatus.PENDING_ACK:
            _notify_managers(
                uow, f"Team '{team.name}' Submitted Work for Project: {project.name}. Please Review."
            )
        elif status == AssignmentStatus.REJECTION_REQ:
            _notify_managers(
                uow,
                f"Rejection Req: Team '{team.name}' for Project '{project.name}'. "
                f"Reason: {group.rejection_reason}",
            )
        elif status == AssignmentStatus.REJECTED:
            _notify_team_leads(
                uow, team.id,
                f"Project '{project.name}' was REJECTED by PM. Reason: {group.rejection_reason}",
            )


class DeleteGroupAssignmentUseCase:
    """Hard delete of a group assignment and its member assignments."""

    def execute(self, group_id: uuid.UUID, uow: AbstractUnitOfWork) -> None:
        with uow:
            group = _get_group_or_raise(uow, group_id)
            members = uow.member_assignments.list_for_group(group.id)
            for m in members:
                uow.member_assignments.delete(m.id)
            uow.group_assignments.delete(group.id)
            uow.commit()
            logger.info("Deleted GroupAssignment %s with %d member assignments", group_id, len(members))


class GetGroupAssignmentUseCase:
    def execute(self, group_id: uuid.UUID, uow: AbstractUnitOfWork) -> GroupAssignmentDTO:
        with uow:
            return _group_dto(uow, _get_group_or_raise(uow, group_id))


class ListGroupAssignmentsUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        project_id: Optional[uuid.UUID] = None,
        team_id: Optional[uuid.UUID] = None,
    ) -> List[GroupAssignmentDTO]:
        with uow:
            if project_id:
                groups = uow.group_assignments.list_for_project(project_id)
            elif team_id:
                groups = uow.group_assignments.list_for_team(team_id)
            else:
                groups = uow.group_assignments.list_all()
            if team_id:
                groups = [g for g in groups if g.team_id == team_id]
            groups = sorted(groups, key=lambda g: g.assigned_time, reverse=True)
            return [_group_dto(uow, g) for g in groups]


class ComputeGroupStatsUseCase:
    def execute(self, group_id: uuid.UUID, uow: AbstractUnitOfWork) -> GroupStatsDTO:
        with uow:
            group = _get_group_or_raise(uow, group_id)
            stats = _completion_svc.group_stats(group, uow.member_assignments.list_for_group(group.id))
            return GroupStatsDTO(
                group_assignment_id=str(group.id),
                status=group.status.value,
                stats=_Assembler.stats(stats),
            )


# ===========================================================================
# USE CASES — MEMBER ASSIGNMENTS
# ===========================================================================

@dataclass
class CreateMemberAssignmentCommand:
    group_assignment_id: uuid.UUID
    member_id: uuid.UUID
    scope: Any
    assigned_time: datetime
    eta: datetime
    remarks: str = ""
    rework_from_id: Optional[uuid.UUID] = None


class CreateMemberAssignmentUseCase:
    """
    Allocate part of a group's scope to one member.  The first allocation
    under a PENDING group starts it.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: CreateMemberAssignmentCommand, uow: AbstractUnitOfWork) -> MemberAssignmentDTO:
        with uow:
            group = _get_group_or_raise(uow, cmd.group_assignment_id)
            member = _get_user_or_raise(uow, cmd.member_id)
            if cmd.rework_from_id is not None:
                _get_member_assignment_or_raise(uow, cmd.rework_from_id)
            with _business_rules():
                assignment = _member_svc.create_member_assignment(
                    group=group,
                    member=member,
                    scope=parse_scope(cmd.scope),
                    assigned_time=cmd.assigned_time,
                    eta=cmd.eta,
                    remarks=cmd.remarks,
                    rework_from_id=cmd.rework_from_id,
                )
                if group.status == AssignmentStatus.PENDING:
                    _group_svc.start(group, _policy(uow), now=self._clock())
                    uow.group_assignments.save(group)
            uow.member_assignments.save(assignment)
            uow.publish(_notification_svc.to_user(member.id, "You have a new task assignment."))
            uow.commit()
            return _Assembler.member_assignment(assignment)


@dataclass
class UpdateMemberAssignmentCommand:
    member_assignment_id: uuid.UUID
    expected_version: Optional[int] = None
    expected_status: Optional[AssignmentStatus] = None
    status: Optional[AssignmentStatus] = None
    rating: Optional[int] = None
    override_blackmark: bool = False
    rejection_reason: Optional[str] = None
    completion_time: Optional[datetime] = None
    proof: Optional[str] = None
    scope: Any = None
    assigned_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    remarks: Optional[str] = None


class UpdateMemberAssignmentUseCase:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock

    def execute(self, cmd: UpdateMemberAssignmentCommand, uow: AbstractUnitOfWork) -> MemberAssignmentDTO:
        with uow:
            assignment = _get_member_assignment_or_raise(uow, cmd.member_assignment_id)
            _check_version(MEMBER_WORKFLOW.entity, assignment, cmd.expected_version)
            _check_status(
                MEMBER_WORKFLOW.entity, assignment, cmd.expected_status, cmd.status or assignment.status
            )
            group = _get_group_or_raise(uow, assignment.group_assignment_id)
            member = uow.users.get(assignment.member_id)

            edits = (cmd.scope, cmd.assigned_time, cmd.eta, cmd.remarks, cmd.proof)
            outcome: Optional[TransitionOutcome] = None
            with _business_rules():
                if any(v is not None for v in edits):
                    _member_svc.update_fields(
                        assignment, group,
                        scope=parse_scope(cmd.scope) if cmd.scope is not None else None,
                        assigned_time=cmd.assigned_time,
                        eta=cmd.eta,
                        remarks=cmd.remarks,
                        proof=cmd.proof,
                    )
                if cmd.status is not None:
                    outcome = _member_svc.transition(
                        assignment, cmd.status, _policy(uow),
                        member=member,
                        rating=cmd.rating,
                        override_blackmark=cmd.override_blackmark,
                        rejection_reason=cmd.rejection_reason,
                        completion_time=cmd.completion_time,
                        now=self._clock(),
                    )

            uow.member_assignments.save(assignment)
            if outcome is not None:
                if outcome.award is not None:
                    uow.users.save(member)
                self._notify(uow, outcome, assignment, group, member)
            uow.commit()
            return _Assembler.member_assignment(assignment)

    @staticmethod
    def _notify(uow, outcome: TransitionOutcome, assignment: MemberAssignment,
                group: GroupAssignment, member: Optional[User]) -> None:
        status = outcome.status
        name = member.name if member else str(assignment.member_id)
        if status == AssignmentStatus.COMPLETED:
            uow.publish(_notification_svc.to_user(
                assignment.member_id,
                f"Work Accepted! Rating: {assignment.rating}/5. "
                f"Points: +{outcome.award.bonus:g}, BM: {outcome.award.blackmark:g}",
            ))
        elif status == AssignmentStatus.PENDING_ACK:
            _notify_team_leads(uow, group.team_id, f"Member '{name}' submitted work. Please review.")
        elif status == AssignmentStatus.REJECTION_REQ:
            _notify_team_leads(
                uow, group.team_id,
                f"Rejection Req: Member '{name}'. Reason: {assignment.rejection_reason}",
            )
        elif status == AssignmentStatus.REJECTED:
            uow.publish(_notification_svc.to_user(
                assignment.member_id,
                f"Your work was REJECTED by Team Lead. Reason: {assignment.rejection_reason}",
            ))


class DeleteMemberAssignmentUseCase:
    def execute(self, assignment_id: uuid.UUID, uow: AbstractUnitOfWork) -> None:
        with uow:
            assignment = _get_member_assignment_or_raise(uow, assignment_id)
            group = _get_group_or_raise(uow, assignment.group_assignment_id)
            with _business_rules():
                _member_svc.check_removable(assignment, group)
            uow.member_assignments.delete(assignment_id)
            uow.commit()


class GetMemberAssignmentUseCase:
    def execute(self, assignment_id: uuid.UUID, uow: AbstractUnitOfWork) -> MemberAssignmentDTO:
        with uow:
            return _Assembler.member_assignment(_get_member_assignment_or_raise(uow, assignment_id))


class ListMemberAssignmentsUseCase:
    def execute(
        self,
        uow: AbstractUnitOfWork,
        group_assignment_id: Optional[uuid.UUID] = None,
        member_id: Optional[uuid.UUID] = None,
    ) -> List[MemberAssignmentDTO]:
        with uow:
            if group_assignment_id:
                assignments = uow.member_assignments.list_for_group(group_assignment_id)
            elif member_id:
                assignments = uow.member_assignments.list_for_member(member_id)
            else:
                assignments = uow.member_assignments.list_all()
            if member_id:
                assignments = [a for a in assignments if a.member_id == member_id]
            assignments = sorted(assignments, key=lambda a: a.assigned_time, reverse=True)
            return [_Assembler.member_assignment(a) for a in assignments]


# ===========================================================================
# USE CASES — POLICY CONFIG
# ===========================================================================

class GetConfigUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> PolicyConfigDTO:
        with uow:
            return PolicyConfigDTO(values=_policy(uow).as_dict())


@dataclass
class UpdateConfigCommand:
    values: Mapping[str, Any]


class UpdateConfigUseCase:
    """
    Store policy overrides.  Keys are the upper-case PolicyConfig names;
    unknown keys are rejected and a null value restores the default.
    """

    def execute(self, cmd: UpdateConfigCommand, uow: AbstractUnitOfWork) -> PolicyConfigDTO:
        known = set(PolicyConfig.keys())
        with uow:
            unknown = sorted(k for k in cmd.values if k.upper() not in known)
            if unknown:
                raise ApplicationError(f"Unknown config key(s): {', '.join(unknown)}.")
            for key, value in cmd.values.items():
                if value is not None:
                    if isinstance(value, bool) or not isinstance(value, (int, float)):
                        raise ApplicationError(f"Config value for {key} must be a number.")
                    if value < 0:
                        raise ApplicationError(f"Config value for {key} must not be negative.")
                    if key.upper() == "ALLOW_TIME_EDIT" and value not in (0, 1):
                        raise ApplicationError("ALLOW_TIME_EDIT must be 0 or 1.")
                uow.config.set(key.upper(), value)
            uow.commit()
            logger.info("Policy config updated: %s", dict(cmd.values))
            return PolicyConfigDTO(values=_policy(uow).as_dict())


# ===========================================================================
# USE CASES — NOTIFICATIONS
# ===========================================================================

class ListNotificationsUseCase:
    def execute(self, user_id: uuid.UUID, uow: AbstractUnitOfWork) -> List[NotificationDTO]:
        with uow:
            _get_user_or_raise(uow, user_id)
            inbox = _notification_svc.inbox(uow.notifications.list_for_user(user_id))
            return [_Assembler.notification(n) for n in inbox]


class MarkNotificationsReadUseCase:
    def execute(self, user_id: uuid.UUID, uow: AbstractUnitOfWork) -> int:
        with uow:
            _get_user_or_raise(uow, user_id)
            marked = 0
            for n in uow.notifications.list_for_user(user_id):
                if not n.is_read:
                    n.is_read = True
                    uow.notifications.save(n)
                    marked += 1
            uow.commit()
            return marked


class ClearNotificationsUseCase:
    def execute(self, user_id: uuid.UUID, uow: AbstractUnitOfWork) -> int:
        with uow:
            _get_user_or_raise(uow, user_id)
            notifications = uow.notifications.list_for_user(user_id)
            for n in notifications:
                uow.notifications.delete(n.id)
            uow.commit()
            return len(notifications)
