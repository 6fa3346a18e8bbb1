from datetime import timedelta

import pytest

from application import (
    ApplicationError,
    CreateGroupAssignmentCommand,
    CreateGroupAssignmentUseCase,
    CreateMemberAssignmentCommand,
    CreateMemberAssignmentUseCase,
    GetGroupAssignmentUseCase,
    GetMemberAssignmentUseCase,
    GetProjectUseCase,
    ToggleHoldCommand,
    ToggleHoldUseCase,
    UpdateMemberAssignmentCommand,
    UpdateMemberAssignmentUseCase,
)
from conftest import T0, as_uuid, scope
from infrastructure import InMemoryGroupAssignmentRepository, InMemoryUnitOfWork
from model import AssignmentStatus as S, Project, ProjectStatus
from service import HoldService

GROUP_ETA = T0 + timedelta(hours=8)
MEMBER_ETA = T0 + timedelta(hours=4)


def _toggle(uow, clock, project, is_hold):
    return ToggleHoldUseCase(clock=clock).execute(
        ToggleHoldCommand(project_id=as_uuid(project), is_hold=is_hold), uow
    )


@pytest.fixture
def allocated(uow, clock, project, team, alice, bob):
    group = CreateGroupAssignmentUseCase().execute(
        CreateGroupAssignmentCommand(
            project_id=as_uuid(project),
            team_id=as_uuid(team),
            scope=scope(("D1", "P1", "W1"), ("D1", "P2", "W1")),
            assigned_time=T0,
            eta=GROUP_ETA,
        ),
        uow,
    )
    tasks = []
    for member, part in ((alice, "P1"), (bob, "P2")):
        tasks.append(CreateMemberAssignmentUseCase(clock=clock).execute(
            CreateMemberAssignmentCommand(
                group_assignment_id=as_uuid(group),
                member_id=as_uuid(member),
                scope=scope(("D1", part, "W1")),
                assigned_time=T0,
                eta=MEMBER_ETA,
            ),
            uow,
        ))
    return group, tasks


def test_hold_then_resume_extends_open_deadlines(uow, clock, project, allocated):
    group, (open_task, done_task) = allocated
    update = UpdateMemberAssignmentUseCase(clock=clock)
    for status, extra in ((S.PENDING_ACK, {}), (S.COMPLETED, {"rating": 4})):
        update.execute(
            UpdateMemberAssignmentCommand(as_uuid(done_task), status=status, **extra), uow
        )

    held = _toggle(uow, clock, project, True)
    assert held.project.status == "ON_HOLD"
    assert held.project.hold_start_time == T0.isoformat()
    assert GetGroupAssignmentUseCase().execute(as_uuid(group), uow).eta == GROUP_ETA.isoformat()

    clock.advance(minutes=45, seconds=59)
    resumed = _toggle(uow, clock, project, False)

    assert resumed.held_minutes == 45
    assert resumed.project.status == "ACTIVE"
    assert resumed.project.hold_start_time is None
    assert resumed.project.total_hold_duration == 45
    assert resumed.extended_group_ids == [group.id]
    assert resumed.extended_member_ids == [open_task.id]

    shift = timedelta(minutes=45)
    assert GetGroupAssignmentUseCase().execute(as_uuid(group), uow).eta == (GROUP_ETA + shift).isoformat()
    assert GetMemberAssignmentUseCase().execute(as_uuid(open_task), uow).eta == (MEMBER_ETA + shift).isoformat()
    assert GetMemberAssignmentUseCase().execute(as_uuid(done_task), uow).eta == MEMBER_ETA.isoformat()


def test_hold_duration_accumulates(uow, clock, project):
    for minutes in (10, 20):
        _toggle(uow, clock, project, True)
        clock.advance(minutes=minutes)
        _toggle(uow, clock, project, False)
    assert GetProjectUseCase().execute(as_uuid(project), uow).total_hold_duration == 30


def test_short_hold_changes_nothing(uow, clock, project, allocated):
    group, _ = allocated
    _toggle(uow, clock, project, True)
    clock.advance(seconds=59)
    resumed = _toggle(uow, clock, project, False)
    assert resumed.held_minutes == 0
    assert resumed.extended_group_ids == []
    assert GetGroupAssignmentUseCase().execute(as_uuid(group), uow).eta == GROUP_ETA.isoformat()


def test_double_hold_rejected(uow, clock, project):
    _toggle(uow, clock, project, True)
    with pytest.raises(ApplicationError, match="already on hold"):
        _toggle(uow, clock, project, True)


def test_resume_active_project_rejected(uow, clock, project):
    with pytest.raises(ApplicationError, match="not on hold"):
        _toggle(uow, clock, project, False)


def test_missing_hold_start_resumes_without_extension():
    project = Project(name="Hull", status=ProjectStatus.ON_HOLD, hold_start_time=None)
    outcome = HoldService().toggle_hold(project, False, [], [], now=T0)
    assert outcome.held_minutes == 0
    assert project.status == ProjectStatus.ACTIVE


def test_clock_skew_never_shrinks_duration():
    project = Project(name="Hull", status=ProjectStatus.ON_HOLD, hold_start_time=T0)
    outcome = HoldService().toggle_hold(project, False, [], [], now=T0 - timedelta(hours=1))
    assert outcome.held_minutes == 0
    assert project.total_hold_duration == 0


class ExplodingGroupRepository(InMemoryGroupAssignmentRepository):
    def save(self, group):
        raise RuntimeError("disk full")


def test_failed_resume_leaves_everything_held(db, uow, clock, project, allocated):
    group, tasks = allocated
    _toggle(uow, clock, project, True)
    clock.advance(minutes=30)

    failing = InMemoryUnitOfWork(db)
    failing.group_assignments = ExplodingGroupRepository(db.group_assignments)
    with pytest.raises(RuntimeError, match="disk full"):
        _toggle(failing, clock, project, False)

    held = GetProjectUseCase().execute(as_uuid(project), uow)
    assert (held.status, held.total_hold_duration) == ("ON_HOLD", 0)
    assert held.hold_start_time == T0.isoformat()
    assert GetGroupAssignmentUseCase().execute(as_uuid(group), uow).eta == GROUP_ETA.isoformat()
    for task in tasks:
        assert GetMemberAssignmentUseCase().execute(as_uuid(task), uow).eta == MEMBER_ETA.isoformat()

    resumed = _toggle(uow, clock, project, False)
    assert resumed.held_minutes == 30
    assert GetGroupAssignmentUseCase().execute(as_uuid(group), uow).eta == (
        GROUP_ETA + timedelta(minutes=30)
    ).isoformat()
