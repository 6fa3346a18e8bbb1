"""Dashboard figures (productivity, turnaround, trends) and date-range reports."""

from datetime import datetime, timedelta, timezone

import pytest

from application import (
    ApplicationError,
    CreateGroupAssignmentCommand,
    CreateGroupAssignmentUseCase,
    CreateMemberAssignmentCommand,
    CreateMemberAssignmentUseCase,
    CreateTeamCommand,
    CreateTeamUseCase,
    CreateUserCommand,
    CreateUserUseCase,
    GetDashboardUseCase,
    GetReportCommand,
    GetReportUseCase,
    NotFoundError,
    UpdateGroupAssignmentCommand,
    UpdateGroupAssignmentUseCase,
    UpdateMemberAssignmentCommand,
    UpdateMemberAssignmentUseCase,
)
from conftest import T0, as_uuid, scope
from model import AssignmentStatus as S, MemberAssignment
from service import DashboardService

D1_P1 = scope(("D1", "P1", "W1"), ("D1", "P1", "W2"))
D1_P2 = scope(("D1", "P2", "W1"), ("D1", "P2", "W2"))
D1_ALL = scope(("D1", "P1", "W1"), ("D1", "P1", "W2"), ("D1", "P2", "W1"), ("D1", "P2", "W2"))


def _deploy(uow, project, team, units):
    return CreateGroupAssignmentUseCase().execute(
        CreateGroupAssignmentCommand(
            project_id=as_uuid(project), team_id=as_uuid(team), scope=units,
            assigned_time=T0, eta=T0 + timedelta(hours=8),
        ),
        uow,
    )


def _allocate(uow, clock, group, member, units, assigned_time=T0):
    return CreateMemberAssignmentUseCase(clock=clock).execute(
        CreateMemberAssignmentCommand(
            group_assignment_id=as_uuid(group), member_id=as_uuid(member), scope=units,
            assigned_time=assigned_time, eta=assigned_time + timedelta(hours=4),
        ),
        uow,
    )


def _finish(uow, clock, task, rating):
    update = UpdateMemberAssignmentUseCase(clock=clock)
    update.execute(UpdateMemberAssignmentCommand(as_uuid(task), status=S.PENDING_ACK), uow)
    return update.execute(
        UpdateMemberAssignmentCommand(as_uuid(task), status=S.COMPLETED, rating=rating), uow
    )


@pytest.fixture
def blue(uow):
    return CreateTeamUseCase().execute(CreateTeamCommand(name="Blue"), uow)


@pytest.fixture
def carol(uow, blue):
    return CreateUserUseCase().execute(
        CreateUserCommand(name="Carol", email="carol@example.com", team_id=as_uuid(blue)), uow
    )


@pytest.fixture
def history(uow, clock, project, team, blue, alice, bob, carol):
    """
    Red finishes D1 on day one: Alice on time at +2h, Bob late at +7h30,
    the group accepted at +10h.  Blue's D2 task is allocated a day later
    and left open.
    """
    red_group = _deploy(uow, project, team, D1_ALL)
    first = _allocate(uow, clock, red_group, alice, D1_P1)
    second = _allocate(uow, clock, red_group, bob, D1_P2)
    clock.advance(hours=2)
    _finish(uow, clock, first, rating=5)
    clock.advance(hours=5, minutes=30)
    _finish(uow, clock, second, rating=3)

    clock.advance(hours=2, minutes=30)
    group_update = UpdateGroupAssignmentUseCase(clock=clock)
    group_update.execute(UpdateGroupAssignmentCommand(as_uuid(red_group), status=S.PENDING_ACK), uow)
    group_update.execute(
        UpdateGroupAssignmentCommand(as_uuid(red_group), status=S.COMPLETED, rating=4), uow
    )

    blue_group = _deploy(uow, project, blue, scope(("D2", "P1", "W1")))
    open_task = _allocate(
        uow, clock, blue_group, carol, scope(("D2", "P1", "W1")), assigned_time=T0 + timedelta(days=1)
    )
    return {"red": red_group, "blue": blue_group, "alice": first, "bob": second, "carol": open_task}


class TestDashboard:
    def test_portfolio_figures(self, uow, clock, history):
        board = GetDashboardUseCase(clock=clock).execute(uow)
        assert board.active_projects == 1
        assert board.groups_completed_last_week == 1
        assert [(r.name, r.done, r.total, r.ratio) for r in board.team_productivity] == [
            ("Blue", 0, 1, 0), ("Red", 1, 1, 1.0),
        ]
        assert [(r.name, r.average_hours) for r in board.team_turnaround] == [
            ("Blue", 0), ("Red", 10.0),
        ]
        assert board.member is None
        assert board.daily_trend == []

    def test_team_figures(self, uow, clock, team, history):
        board = GetDashboardUseCase(clock=clock).execute(uow, team_id=as_uuid(team))
        assert board.team_active_assignments == 0
        assert [(r.name, r.done, r.total) for r in board.member_productivity] == [
            ("Alice", 1, 1), ("Bob", 1, 1),
        ]
        assert [(r.name, r.average_hours) for r in board.member_turnaround] == [
            ("Alice", 2.0), ("Bob", 7.5),
        ]
        assert [u.name for u in board.top_members] == ["Alice", "Bob"]

    def test_open_team_workload(self, uow, clock, blue, history):
        board = GetDashboardUseCase(clock=clock).execute(uow, team_id=as_uuid(blue))
        assert board.team_active_assignments == 1
        assert [(r.name, r.done, r.total, r.ratio) for r in board.member_productivity] == [
            ("Carol", 0, 1, 0),
        ]

    def test_member_trends(self, uow, clock, alice, history):
        board = GetDashboardUseCase(clock=clock).execute(uow, member_id=as_uuid(alice))
        assert board.member.name == "Alice"
        assert (board.member_completed_last_week, board.member_pending_tasks) == (1, 0)

        assert len(board.daily_trend) == 7
        today = board.daily_trend[-1]
        assert (today.label, today.start) == ("Wed", "2024-05-01T00:00:00+00:00")
        assert (today.bonus, today.blackmark, today.projects) == (6, 0, 1)
        assert all(b.projects == 0 for b in board.daily_trend[:-1])

        assert [b.label for b in board.monthly_trend] == ["Dec", "Jan", "Feb", "Mar", "Apr", "May"]
        assert board.monthly_trend[-1].bonus == 6

    def test_recent_window_moves_with_the_clock(self, uow, clock, bob, history):
        clock.advance(days=8)
        board = GetDashboardUseCase(clock=clock).execute(uow, member_id=as_uuid(bob))
        assert board.groups_completed_last_week == 0
        assert board.member_completed_last_week == 0
        assert all(b.projects == 0 for b in board.daily_trend)
        assert board.monthly_trend[-1].blackmark == 3

    def test_unknown_team(self, uow, clock, history):
        with pytest.raises(NotFoundError):
            GetDashboardUseCase(clock=clock).execute(uow, team_id=as_uuid(history["red"]))


def test_monthly_trend_crosses_year_end():
    done = MemberAssignment(
        status=S.COMPLETED,
        completion_time=datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc),
        bonus_awarded=4,
    )
    buckets = DashboardService().monthly_trend([done], datetime(2024, 1, 15, tzinfo=timezone.utc))
    assert [b.label for b in buckets] == ["Aug", "Sep", "Oct", "Nov", "Dec", "Jan"]
    assert [b.bonus for b in buckets] == [0, 0, 0, 0, 4, 0]


class TestReport:
    def _run(self, uow, start, end, **filters):
        return GetReportUseCase().execute(GetReportCommand(start=start, end=end, **filters), uow)

    def test_window_is_inclusive_and_newest_first(self, uow, history):
        rows = self._run(uow, T0, T0 + timedelta(days=1))
        assert rows[0].member_name == "Carol"
        assert sorted(r.member_name for r in rows[1:]) == ["Alice", "Bob"]
        assert rows[0].team_name == "Blue"
        assert rows[0].project_name == "Hull"

        first_day = self._run(uow, T0, T0 + timedelta(hours=1))
        assert sorted(r.member_name for r in first_day) == ["Alice", "Bob"]

    def test_filter_by_team(self, uow, blue, history):
        rows = self._run(uow, T0, T0 + timedelta(days=2), team_id=as_uuid(blue))
        assert [r.assignment.id for r in rows] == [history["carol"].id]

    def test_filter_by_member(self, uow, alice, history):
        rows = self._run(uow, T0, T0 + timedelta(days=2), member_id=as_uuid(alice))
        assert [(r.member_name, r.assignment.status) for r in rows] == [("Alice", "COMPLETED")]
        assert rows[0].assignment.bonus_awarded == 6

    def test_end_before_start(self, uow, history):
        with pytest.raises(ApplicationError, match="end must not be before"):
            self._run(uow, T0, T0 - timedelta(seconds=1))
