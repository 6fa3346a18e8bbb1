"""
api.py

REST API layer for the Work Allocation & Scoring Engine.

Framework : FastAPI
Auth      : none; callers are trusted (put the API behind your gateway).

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /users                        — user registration, score summary
  │   └── /{user_id}/notifications  — notification inbox
  ├── /teams                        — team registration
  ├── /projects                     — create, list, get, edit, delete
  │   ├── /{project_id}/hold        — pause / resume
  │   ├── /{project_id}/stats       — allocation / completion breakdown
  │   └── /{project_id}/rework      — defect-driven rework dispatch
  ├── /group-assignments            — team-level allocation & workflow
  ├── /member-assignments           — individual allocation & workflow
  ├── /config                       — runtime scoring policy
  ├── /leaderboard                  — top teams / members by net score
  ├── /dashboard                    — productivity, turnaround, score trends
  └── /reports                      — member assignments in a date range

Error handling
--------------
  NotFoundError               → 404
  InvalidTransitionError      → 409
  ConcurrentModificationError → 409
  ScopeError                  → 422
  ApplicationError            → 422
  ValueError                  → 422
  Unhandled                   → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn main:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import AliasChoices, BaseModel, EmailStr, Field, field_validator, model_validator

from application import (
    # Exceptions
    ApplicationError,
    ConcurrentModificationError,
    NotFoundError,
    # Unit of work
    AbstractUnitOfWork,
)
from infrastructure import InMemoryUnitOfWork
from logging_config import configure_logging
from model import AssignmentStatus, ProjectStatus, UserRole
from scope import ScopeError, build_scope
from settings import get_settings
from workflow import InvalidTransitionError

logger = logging.getLogger(__name__)

settings = get_settings()


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description=(
        "REST API for allocating project work scopes to teams and members, "
        "tracking assignment workflow, computing allocation / completion, and "
        "scoring timeliness and quality with bonus points and blackmarks."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def setup_logging():
    configure_logging(get_settings())


_SKIP_LOG = frozenset({"/health"})


@app.middleware("http")
async def time_requests(request: Request, call_next):
    """Adds X-Request-Duration-Ms and logs every API request."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
    if request.url.path not in _SKIP_LOG:
        extra = {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
        }
        if response.status_code >= 500:
            logger.error("Server error: %s %s %d", request.method, request.url.path,
                         response.status_code, extra=extra)
        else:
            logger.debug("Request: %s %s %d", request.method, request.url.path,
                         response.status_code, extra=extra)
    return response


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request, exc: InvalidTransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ConcurrentModificationError)
async def concurrent_modification_handler(request, exc: ConcurrentModificationError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ScopeError)
async def scope_error_handler(request, exc: ScopeError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

def _validate_status(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    valid = {s.value for s in AssignmentStatus}
    if v not in valid:
        raise ValueError(f"status must be one of: {sorted(valid)}")
    return v


# ---------------------------------------------------------------------------
# User & team schemas
# ---------------------------------------------------------------------------

class CreateUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    roles: List[str] = Field(default_factory=lambda: [UserRole.MEMBER.value])
    team_id: Optional[uuid.UUID] = None

    @field_validator("roles")
    @classmethod
    def validate_roles(cls, v: List[str]) -> List[str]:
        valid = {r.value for r in UserRole}
        bad = [r for r in v if r not in valid]
        if bad:
            raise ValueError(f"roles must be drawn from: {sorted(valid)}")
        return v


class CreateTeamRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    lead_ids: List[uuid.UUID] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Scope schemas
# ---------------------------------------------------------------------------

class ScopePartSchema(BaseModel):
    name: str = Field(..., min_length=1)
    work_types: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("work_types", "workTypes"),
    )


class ScopeItemSchema(BaseModel):
    division: str = Field(..., min_length=1)
    parts: List[ScopePartSchema]


class ScopeInput(BaseModel):
    """
    A scope given either as a tree or as three flat lists whose cartesian
    product is the scope.
    """
    scope: Optional[List[ScopeItemSchema]] = None
    divisions: Optional[List[str]] = None
    part_nos: Optional[List[str]] = None
    work_types: Optional[List[str]] = None

    @model_validator(mode="after")
    def exactly_one_form(self):
        flat = (self.divisions, self.part_nos, self.work_types)
        if self.scope is not None:
            valid = all(v is None for v in flat)
        else:
            valid = all(v is not None for v in flat)
        if not valid:
            raise ValueError("Provide either 'scope' or all of 'divisions', 'part_nos', 'work_types'.")
        return self

    def scope_payload(self) -> Any:
        if self.scope is not None:
            return [item.model_dump() for item in self.scope]
        return build_scope(self.divisions, self.part_nos, self.work_types)


# ---------------------------------------------------------------------------
# Project schemas
# ---------------------------------------------------------------------------

class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date: str = Field(default="", description="Free-form project date, e.g. 2024-05-01")
    divisions: List[str] = Field(..., min_length=1)
    part_nos: List[str] = Field(..., min_length=1)
    work_types: List[str] = Field(..., min_length=1)
    remarks: str = Field(default="")


class UpdateProjectRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    date: Optional[str] = None
    divisions: Optional[List[str]] = Field(default=None, min_length=1)
    part_nos: Optional[List[str]] = Field(default=None, min_length=1)
    work_types: Optional[List[str]] = Field(default=None, min_length=1)
    status: Optional[str] = Field(default=None, description="ACTIVE or COMPLETED")
    remarks: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        valid = {ProjectStatus.ACTIVE.value, ProjectStatus.COMPLETED.value}
        if v is not None and v not in valid:
            raise ValueError(f"status must be one of: {sorted(valid)}")
        return v


class ToggleHoldRequest(BaseModel):
    is_hold: bool


class TriggerReworkRequest(ScopeInput):
    team_id: uuid.UUID
    eta: datetime
    assigned_time: Optional[datetime] = None
    file_size: str = Field(default="")


# ---------------------------------------------------------------------------
# Assignment schemas
# ---------------------------------------------------------------------------

class CreateGroupAssignmentRequest(ScopeInput):
    project_id: uuid.UUID
    team_id: uuid.UUID
    eta: datetime
    assigned_time: Optional[datetime] = None
    file_size: str = Field(default="")
    remarks: str = Field(default="")


class UpdateGroupAssignmentRequest(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = Field(default=None, description="Target AssignmentStatus value")
    rating: Optional[int] = None
    override_blackmark: bool = False
    rejection_reason: Optional[str] = None
    scope: Optional[List[ScopeItemSchema]] = None
    file_size: Optional[str] = None
    assigned_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _validate_status(v)


class CreateMemberAssignmentRequest(ScopeInput):
    group_assignment_id: uuid.UUID
    member_id: uuid.UUID
    eta: datetime
    assigned_time: Optional[datetime] = None
    remarks: str = Field(default="")
    rework_from_id: Optional[uuid.UUID] = None


class UpdateMemberAssignmentRequest(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = Field(default=None, description="Target AssignmentStatus value")
    rating: Optional[int] = None
    override_blackmark: bool = False
    rejection_reason: Optional[str] = None
    completion_time: Optional[datetime] = None
    proof: Optional[str] = None
    scope: Optional[List[ScopeItemSchema]] = None
    assigned_time: Optional[datetime] = None
    eta: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _validate_status(v)


def _scope_or_none(scope: Optional[List[ScopeItemSchema]]) -> Optional[List[Dict[str, Any]]]:
    return [item.model_dump() for item in scope] if scope is not None else None


def _status_or_none(value: Optional[str]) -> Optional[AssignmentStatus]:
    return AssignmentStatus(value) if value is not None else None


# ---------------------------------------------------------------------------
# Config schemas
# ---------------------------------------------------------------------------

class UpdateConfigRequest(BaseModel):
    values: Dict[str, Optional[float]] = Field(
        ..., description="Upper-case policy keys, e.g. {\"BM_REWORK\": 8}; null restores the default."
    )


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

user_router = APIRouter(prefix="/users", tags=["Users"])


@user_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
def create_user(
    body: CreateUserRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    A TEAM_LEAD joining a team is recorded as one of the team's leads and
    receives its allocation notifications.
    """
    from application import CreateUserCommand, CreateUserUseCase
    cmd = CreateUserCommand(
        name=body.name,
        email=str(body.email),
        roles=[UserRole(r) for r in body.roles],
        team_id=body.team_id,
    )
    return _ok(CreateUserUseCase().execute(cmd, uow))


@user_router.get("", summary="List users")
def list_users(
    team_id: Optional[uuid.UUID] = Query(None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListUsersUseCase
    return _ok(ListUsersUseCase().execute(uow, team_id=team_id))


@user_router.get("/{user_id}", summary="Get a user and their score summary")
def get_user(
    user_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetUserUseCase
    return _ok(GetUserUseCase().execute(user_id, uow))


@user_router.get("/{user_id}/notifications", summary="Notification inbox (newest 50)")
def list_notifications(
    user_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListNotificationsUseCase
    return _ok(ListNotificationsUseCase().execute(user_id, uow))


@user_router.post("/{user_id}/notifications/read", summary="Mark every notification read")
def mark_notifications_read(
    user_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import MarkNotificationsReadUseCase
    return _ok({"marked": MarkNotificationsReadUseCase().execute(user_id, uow)})


@user_router.delete("/{user_id}/notifications", summary="Clear the notification inbox")
def clear_notifications(
    user_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ClearNotificationsUseCase
    return _ok({"deleted": ClearNotificationsUseCase().execute(user_id, uow)})


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

team_router = APIRouter(prefix="/teams", tags=["Teams"])


@team_router.post("", status_code=status.HTTP_201_CREATED, summary="Register a new team")
def create_team(
    body: CreateTeamRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import CreateTeamCommand, CreateTeamUseCase
    cmd = CreateTeamCommand(name=body.name, lead_ids=body.lead_ids)
    return _ok(CreateTeamUseCase().execute(cmd, uow))


@team_router.get("", summary="List teams")
def list_teams(uow: AbstractUnitOfWork = Depends(get_uow)):
    from application import ListTeamsUseCase
    return _ok(ListTeamsUseCase().execute(uow))


@team_router.get("/{team_id}", summary="Get a team and its score summary")
def get_team(
    team_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetTeamUseCase
    return _ok(GetTeamUseCase().execute(team_id, uow))


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.post("", status_code=status.HTTP_201_CREATED, summary="Create a project")
def create_project(
    body: CreateProjectRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    The full work scope of the project is the cartesian product of its
    three catalogs.
    """
    from application import CreateProjectCommand, CreateProjectUseCase
    cmd = CreateProjectCommand(
        name=body.name,
        date=body.date,
        divisions=body.divisions,
        part_nos=body.part_nos,
        work_types=body.work_types,
        remarks=body.remarks,
    )
    return _ok(CreateProjectUseCase().execute(cmd, uow))


@project_router.get("", summary="List all projects")
def list_projects(uow: AbstractUnitOfWork = Depends(get_uow)):
    from application import ListProjectsUseCase
    return _ok(ListProjectsUseCase().execute(uow))


@project_router.get("/{project_id}", summary="Get a project by ID")
def get_project(
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetProjectUseCase
    return _ok(GetProjectUseCase().execute(project_id, uow))


@project_router.patch("/{project_id}", summary="Edit a project")
def update_project(
    body: UpdateProjectRequest,
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Catalogs may only shrink while every group assignment still fits inside
    them.  Use the hold endpoint to pause a project; status here moves
    between ACTIVE and COMPLETED.
    """
    from application import UpdateProjectCommand, UpdateProjectUseCase
    cmd = UpdateProjectCommand(
        project_id=project_id,
        name=body.name,
        date=body.date,
        divisions=body.divisions,
        part_nos=body.part_nos,
        work_types=body.work_types,
        status=ProjectStatus(body.status) if body.status is not None else None,
        remarks=body.remarks,
    )
    return _ok(UpdateProjectUseCase().execute(cmd, uow))


@project_router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project and everything allocated under it",
)
def delete_project(
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    **Destructive.**  Hard-deletes the project, all of its group
    assignments and all member assignments under them.  There is no undo.
    Bonus points and blackmarks already awarded are kept.
    """
    from application import DeleteProjectUseCase
    DeleteProjectUseCase().execute(project_id, uow)


@project_router.put("/{project_id}/hold", summary="Put a project on hold or resume it")
def toggle_hold(
    body: ToggleHoldRequest,
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Resuming adds the whole minutes spent on hold to the project's
    total_hold_duration and to the eta of every unfinished assignment.
    """
    from application import ToggleHoldCommand, ToggleHoldUseCase
    cmd = ToggleHoldCommand(project_id=project_id, is_hold=body.is_hold)
    return _ok(ToggleHoldUseCase().execute(cmd, uow))


@project_router.get("/{project_id}/stats", summary="Allocation and completion breakdown")
def project_stats(
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ComputeProjectStatsUseCase
    return _ok(ComputeProjectStatsUseCase().execute(project_id, uow))


@project_router.post(
    "/{project_id}/rework",
    status_code=status.HTTP_201_CREATED,
    summary="Dispatch rework for a defective scope",
)
def trigger_rework(
    body: TriggerReworkRequest,
    project_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Every member whose historical work on the project overlaps the
    defective scope receives the rework blackmark penalty, and a shadow
    project "<name> R" is opened with one PENDING group assignment.
    """
    from application import TriggerReworkCommand, TriggerReworkUseCase
    cmd = TriggerReworkCommand(
        project_id=project_id,
        team_id=body.team_id,
        scope=body.scope_payload(),
        eta=body.eta,
        assigned_time=body.assigned_time,
        file_size=body.file_size,
    )
    return _ok(TriggerReworkUseCase().execute(cmd, uow))


# ---------------------------------------------------------------------------
# Group assignments
# ---------------------------------------------------------------------------

group_router = APIRouter(prefix="/group-assignments", tags=["Group Assignments"])


@group_router.post("", status_code=status.HTTP_201_CREATED, summary="Deploy work to a team")
def create_group_assignment(
    body: CreateGroupAssignmentRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import CreateGroupAssignmentCommand, CreateGroupAssignmentUseCase
    cmd = CreateGroupAssignmentCommand(
        project_id=body.project_id,
        team_id=body.team_id,
        scope=body.scope_payload(),
        assigned_time=body.assigned_time or _now(),
        eta=body.eta,
        file_size=body.file_size,
        remarks=body.remarks,
    )
    return _ok(CreateGroupAssignmentUseCase().execute(cmd, uow))


@group_router.get("", summary="List group assignments")
def list_group_assignments(
    project_id: Optional[uuid.UUID] = Query(None),
    team_id: Optional[uuid.UUID] = Query(None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListGroupAssignmentsUseCase
    return _ok(ListGroupAssignmentsUseCase().execute(uow, project_id=project_id, team_id=team_id))


@group_router.get("/{group_id}", summary="Get a group assignment")
def get_group_assignment(
    group_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetGroupAssignmentUseCase
    return _ok(GetGroupAssignmentUseCase().execute(group_id, uow))


@group_router.patch("/{group_id}", summary="Edit fields and / or change status")
def update_group_assignment(
    body: UpdateGroupAssignmentRequest,
    group_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Status changes follow the group workflow; COMPLETED requires a rating
    and scores the team once.  Pass expected_version to guard against
    concurrent edits.
    """
    from application import UpdateGroupAssignmentCommand, UpdateGroupAssignmentUseCase
    cmd = UpdateGroupAssignmentCommand(
        group_assignment_id=group_id,
        expected_version=body.expected_version,
        status=_status_or_none(body.status),
        rating=body.rating,
        override_blackmark=body.override_blackmark,
        rejection_reason=body.rejection_reason,
        scope=_scope_or_none(body.scope),
        file_size=body.file_size,
        assigned_time=body.assigned_time,
        eta=body.eta,
        remarks=body.remarks,
    )
    return _ok(UpdateGroupAssignmentUseCase().execute(cmd, uow))


@group_router.delete(
    "/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a group assignment and its member assignments",
)
def delete_group_assignment(
    group_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteGroupAssignmentUseCase
    DeleteGroupAssignmentUseCase().execute(group_id, uow)


@group_router.get("/{group_id}/stats", summary="Group allocation and completion")
def group_stats(
    group_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ComputeGroupStatsUseCase
    return _ok(ComputeGroupStatsUseCase().execute(group_id, uow))


def _revoke_group(group_id, expected: AssignmentStatus, expected_version, uow):
    from application import UpdateGroupAssignmentCommand, UpdateGroupAssignmentUseCase
    cmd = UpdateGroupAssignmentCommand(
        group_assignment_id=group_id,
        expected_version=expected_version,
        expected_status=expected,
        status=AssignmentStatus.IN_PROGRESS,
    )
    return _ok(UpdateGroupAssignmentUseCase().execute(cmd, uow))


@group_router.post("/{group_id}/revoke-submission", summary="Withdraw a submitted group")
def revoke_group_submission(
    group_id: uuid.UUID = Path(...),
    expected_version: Optional[int] = Query(None, ge=1),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _revoke_group(group_id, AssignmentStatus.PENDING_ACK, expected_version, uow)


@group_router.post("/{group_id}/revoke-rejection", summary="Withdraw a group rejection request")
def revoke_group_rejection(
    group_id: uuid.UUID = Path(...),
    expected_version: Optional[int] = Query(None, ge=1),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _revoke_group(group_id, AssignmentStatus.REJECTION_REQ, expected_version, uow)


# ---------------------------------------------------------------------------
# Member assignments
# ---------------------------------------------------------------------------

member_router = APIRouter(prefix="/member-assignments", tags=["Member Assignments"])


@member_router.post("", status_code=status.HTTP_201_CREATED, summary="Allocate work to a member")
def create_member_assignment(
    body: CreateMemberAssignmentRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """The first allocation under a PENDING group moves it to IN_PROGRESS."""
    from application import CreateMemberAssignmentCommand, CreateMemberAssignmentUseCase
    cmd = CreateMemberAssignmentCommand(
        group_assignment_id=body.group_assignment_id,
        member_id=body.member_id,
        scope=body.scope_payload(),
        assigned_time=body.assigned_time or _now(),
        eta=body.eta,
        remarks=body.remarks,
        rework_from_id=body.rework_from_id,
    )
    return _ok(CreateMemberAssignmentUseCase().execute(cmd, uow))


@member_router.get("", summary="List member assignments")
def list_member_assignments(
    group_assignment_id: Optional[uuid.UUID] = Query(None),
    member_id: Optional[uuid.UUID] = Query(None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import ListMemberAssignmentsUseCase
    return _ok(ListMemberAssignmentsUseCase().execute(
        uow, group_assignment_id=group_assignment_id, member_id=member_id
    ))


@member_router.get("/{assignment_id}", summary="Get a member assignment")
def get_member_assignment(
    assignment_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetMemberAssignmentUseCase
    return _ok(GetMemberAssignmentUseCase().execute(assignment_id, uow))


@member_router.patch("/{assignment_id}", summary="Edit fields and / or change status")
def update_member_assignment(
    body: UpdateMemberAssignmentRequest,
    assignment_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    completion_time may only be supplied on submit when the ALLOW_TIME_EDIT
    policy is enabled.
    """
    from application import UpdateMemberAssignmentCommand, UpdateMemberAssignmentUseCase
    cmd = UpdateMemberAssignmentCommand(
        member_assignment_id=assignment_id,
        expected_version=body.expected_version,
        status=_status_or_none(body.status),
        rating=body.rating,
        override_blackmark=body.override_blackmark,
        rejection_reason=body.rejection_reason,
        completion_time=body.completion_time,
        proof=body.proof,
        scope=_scope_or_none(body.scope),
        assigned_time=body.assigned_time,
        eta=body.eta,
        remarks=body.remarks,
    )
    return _ok(UpdateMemberAssignmentUseCase().execute(cmd, uow))


@member_router.delete(
    "/{assignment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a member assignment",
)
def delete_member_assignment(
    assignment_id: uuid.UUID = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import DeleteMemberAssignmentUseCase
    DeleteMemberAssignmentUseCase().execute(assignment_id, uow)


def _revoke_member(assignment_id, expected: AssignmentStatus, expected_version, uow):
    from application import UpdateMemberAssignmentCommand, UpdateMemberAssignmentUseCase
    cmd = UpdateMemberAssignmentCommand(
        member_assignment_id=assignment_id,
        expected_version=expected_version,
        expected_status=expected,
        status=AssignmentStatus.IN_PROGRESS,
    )
    return _ok(UpdateMemberAssignmentUseCase().execute(cmd, uow))


@member_router.post("/{assignment_id}/revoke-submission", summary="Withdraw a submission")
def revoke_member_submission(
    assignment_id: uuid.UUID = Path(...),
    expected_version: Optional[int] = Query(None, ge=1),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _revoke_member(assignment_id, AssignmentStatus.PENDING_ACK, expected_version, uow)


@member_router.post("/{assignment_id}/revoke-rejection", summary="Withdraw a rejection request")
def revoke_member_rejection(
    assignment_id: uuid.UUID = Path(...),
    expected_version: Optional[int] = Query(None, ge=1),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _revoke_member(assignment_id, AssignmentStatus.REJECTION_REQ, expected_version, uow)


# ---------------------------------------------------------------------------
# Config & leaderboard
# ---------------------------------------------------------------------------

config_router = APIRouter(prefix="/config", tags=["Config"])


@config_router.get("", summary="Effective scoring policy")
def get_config(uow: AbstractUnitOfWork = Depends(get_uow)):
    from application import GetConfigUseCase
    return _ok(GetConfigUseCase().execute(uow))


@config_router.put("", summary="Override scoring policy values")
def update_config(
    body: UpdateConfigRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import UpdateConfigCommand, UpdateConfigUseCase
    return _ok(UpdateConfigUseCase().execute(UpdateConfigCommand(values=body.values), uow))


leaderboard_router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])


@leaderboard_router.get("", summary="Top teams and members by net score")
def leaderboard(
    team_id: Optional[uuid.UUID] = Query(None, description="Restrict top members to one team"),
    limit: int = Query(5, ge=1, le=50),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetLeaderboardUseCase
    return _ok(GetLeaderboardUseCase().execute(uow, team_id=team_id, limit=limit))


dashboard_router = APIRouter(tags=["Dashboard"])


@dashboard_router.get("/dashboard", summary="Productivity, turnaround and score trends")
def dashboard(
    team_id: Optional[uuid.UUID] = Query(None, description="Add team workload and member figures"),
    member_id: Optional[uuid.UUID] = Query(None, description="Add one member's throughput and trends"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetDashboardUseCase
    return _ok(GetDashboardUseCase().execute(uow, team_id=team_id, member_id=member_id))


@dashboard_router.get("/reports", summary="Member assignments allocated in a date range")
def report(
    start: datetime = Query(..., description="Inclusive lower bound on assigned_time"),
    end: datetime = Query(..., description="Inclusive upper bound on assigned_time"),
    team_id: Optional[uuid.UUID] = Query(None),
    member_id: Optional[uuid.UUID] = Query(None),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    from application import GetReportCommand, GetReportUseCase
    cmd = GetReportCommand(start=start, end=end, team_id=team_id, member_id=member_id)
    return _ok(GetReportUseCase().execute(cmd, uow))


# ---------------------------------------------------------------------------
# Register all routers
# ---------------------------------------------------------------------------

api_v1.include_router(user_router)
api_v1.include_router(team_router)
api_v1.include_router(project_router)
api_v1.include_router(group_router)
api_v1.include_router(member_router)
api_v1.include_router(config_router)
api_v1.include_router(leaderboard_router)
api_v1.include_router(dashboard_router)

app.include_router(api_v1)

# ---------------------------------------------------------------------------
# MCP Server — exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ===========================================================================
# OPENAPI CUSTOMISATION — tag order and descriptions
# ===========================================================================

tags_metadata = [
    {"name": "Health", "description": "Liveness check."},
    {"name": "Users", "description": "People who lead teams or work on member assignments, with their score ledger."},
    {"name": "Teams", "description": "Teams receive group assignments and hold a team-level score ledger."},
    {
        "name": "Projects",
        "description": (
            "Projects declare division / part / work-type catalogs.  Includes hold / "
            "resume, completion statistics and rework dispatch."
        ),
    },
    {
        "name": "Group Assignments",
        "description": (
            "Team-level allocation of a project scope subset.  "
            "PENDING → IN_PROGRESS → PENDING_ACK → COMPLETED, with a rejection path."
        ),
    },
    {
        "name": "Member Assignments",
        "description": (
            "Individual allocation of a group scope subset.  "
            "IN_PROGRESS → PENDING_ACK → COMPLETED / REJECTED, with a rejection path."
        ),
    },
    {"name": "Config", "description": "Runtime scoring policy overrides."},
    {"name": "Leaderboard", "description": "Top teams and members by net score."},
    {"name": "Dashboard", "description": "Productivity, turnaround, score trends and date-range reports."},
]
app.openapi_tags = tags_metadata
