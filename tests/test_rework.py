"""
Rework dispatch: culprit penalties, the shadow project, and all-or-nothing
behaviour.
"""

import uuid
from datetime import timedelta

import pytest

from application import (
    CreateGroupAssignmentCommand,
    CreateGroupAssignmentUseCase,
    CreateMemberAssignmentCommand,
    CreateMemberAssignmentUseCase,
    GetProjectUseCase,
    GetUserUseCase,
    ListGroupAssignmentsUseCase,
    ListNotificationsUseCase,
    ListProjectsUseCase,
    TriggerReworkCommand,
    TriggerReworkUseCase,
    UpdateConfigCommand,
    UpdateConfigUseCase,
)
from conftest import T0, as_uuid, scope
from scope import ScopeError

ETA = T0 + timedelta(days=1)


@pytest.fixture
def history(uow, clock, project, team, lead, alice, bob):
    """Alice worked D1/P1 twice (W1 and W2); Bob worked D2/P2."""
    group = CreateGroupAssignmentUseCase().execute(
        CreateGroupAssignmentCommand(
            project_id=as_uuid(project),
            team_id=as_uuid(team),
            scope=scope(("D1", "P1", "W1"), ("D1", "P1", "W2"), ("D2", "P2", "W1")),
            assigned_time=T0,
            eta=ETA,
        ),
        uow,
    )
    for member, unit in ((alice, ("D1", "P1", "W1")), (alice, ("D1", "P1", "W2")), (bob, ("D2", "P2", "W1"))):
        CreateMemberAssignmentUseCase(clock=clock).execute(
            CreateMemberAssignmentCommand(
                group_assignment_id=as_uuid(group),
                member_id=as_uuid(member),
                scope=scope(unit),
                assigned_time=T0,
                eta=ETA,
            ),
            uow,
        )
    return group


def _rework(uow, clock, project, team, scope_payload):
    return TriggerReworkUseCase(clock=clock).execute(
        TriggerReworkCommand(
            project_id=as_uuid(project),
            team_id=as_uuid(team),
            scope=scope_payload,
            eta=ETA,
            file_size="10MB",
        ),
        uow,
    )


def test_penalises_each_culprit_once(uow, clock, project, team, alice, bob, history):
    result = _rework(uow, clock, project, team, scope(("D1", "P1", "W2")))

    assert result.penalized_member_ids == [alice.id]
    assert GetUserUseCase().execute(as_uuid(alice), uow).blackmarks == 5
    assert GetUserUseCase().execute(as_uuid(bob), uow).blackmarks == 0

    inbox = [n.message for n in ListNotificationsUseCase().execute(as_uuid(alice), uow)]
    assert inbox.count("REWORK generated. You received 5 Blackmarks.") == 1


def test_overlap_ignores_work_type(uow, clock, project, team, alice, history):
    result = _rework(uow, clock, project, team, scope(("D2", "P2", "W2")))
    assert len(result.penalized_member_ids) == 1
    assert GetUserUseCase().execute(as_uuid(alice), uow).blackmarks == 0


def test_penalty_follows_policy(uow, clock, project, team, alice, history):
    UpdateConfigUseCase().execute(UpdateConfigCommand(values={"BM_REWORK": 8}), uow)
    _rework(uow, clock, project, team, scope(("D1", "P1", "W1")))
    assert GetUserUseCase().execute(as_uuid(alice), uow).blackmarks == 8


def test_opens_shadow_project(uow, clock, project, team, lead, history):
    result = _rework(uow, clock, project, team, scope(("D1", "P1", "W1"), ("D2", "P1", "W1")))

    shadow = GetProjectUseCase().execute(uuid.UUID(result.new_project_id), uow)
    assert shadow.name == "Hull R"
    assert shadow.status == "ACTIVE"
    assert shadow.remarks == "REWORK Generated"
    assert shadow.rework_of_id == project.id
    assert (shadow.divisions, shadow.part_nos, shadow.work_types) == (["D1", "D2"], ["P1"], ["W1"])

    groups = ListGroupAssignmentsUseCase().execute(uow, project_id=uuid.UUID(result.new_project_id))
    assert [g.id for g in groups] == [result.assignment_id]
    assert groups[0].status == "PENDING"
    assert groups[0].remarks == "REWORK ORDER"
    assert groups[0].file_size == "10MB"

    inbox = [n.message for n in ListNotificationsUseCase().execute(as_uuid(lead), uow)]
    assert inbox.count("New Project Allocated: Check Group Assignments") == 2


def test_origin_project_untouched(uow, clock, project, team, history):
    before = GetProjectUseCase().execute(as_uuid(project), uow)
    _rework(uow, clock, project, team, scope(("D1", "P1", "W1")))
    after = GetProjectUseCase().execute(as_uuid(project), uow)
    assert after == before


def test_invalid_scope_rolls_back_everything(uow, clock, project, team, alice, history):
    with pytest.raises(ScopeError):
        _rework(uow, clock, project, team, scope(("D1", "P1", "W1"), ("D9", "P1", "W1")))
    assert GetUserUseCase().execute(as_uuid(alice), uow).blackmarks == 0
    assert len(ListProjectsUseCase().execute(uow)) == 1
    inbox = [n.message for n in ListNotificationsUseCase().execute(as_uuid(alice), uow)]
    assert not any("REWORK" in m for m in inbox)
