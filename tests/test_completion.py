"""Allocation / completion folding at group and project level."""

import pytest

from model import AssignmentStatus as S, GroupAssignment, MemberAssignment, Project
from scope import build_scope
from service import CompletionService, CompletionStats, _percent

completion = CompletionService()


@pytest.fixture
def project():
    return Project(name="Hull", divisions=["D1", "D2"], part_nos=["P1", "P2"], work_types=["W1", "W2"])


def _group(project, divisions, status=S.IN_PROGRESS):
    return GroupAssignment(
        project_id=project.id,
        scope=build_scope(divisions, ["P1", "P2"], ["W1", "W2"]),
        status=status,
    )


def _member(group, parts, work_types, status=S.IN_PROGRESS, division="D1"):
    return MemberAssignment(
        group_assignment_id=group.id,
        scope=build_scope([division], parts, work_types),
        status=status,
    )


@pytest.mark.parametrize(
    "count, total, expected",
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (1, 200, 1), (1, 201, 0), (5, 5, 100)],
)
def test_percent_rounds_half_up(count, total, expected):
    assert _percent(count, total) == expected


class TestGroupLevel:
    def test_unallocated_group(self, project):
        group = _group(project, ["D1"])
        assert completion.group_stats(group, []) == CompletionStats(4, 0, 0)

    def test_partial_allocation(self, project):
        group = _group(project, ["D1"])
        members = [_member(group, ["P1"], ["W1", "W2"])]
        stats = completion.group_stats(group, members)
        assert (stats.allocation_percent, stats.completion_percent) == (50, 0)

    def test_overlapping_instances_must_all_complete(self, project):
        group = _group(project, ["D1"])
        members = [
            _member(group, ["P1", "P2"], ["W1", "W2"], status=S.COMPLETED),
            _member(group, ["P1"], ["W1"], status=S.PENDING_ACK),
        ]
        stats = completion.group_stats(group, members)
        assert stats.allocated_units == 4
        assert stats.completed_units == 3
        assert stats.completion_percent == 75

    def test_rejected_instances_are_ignored(self, project):
        group = _group(project, ["D1"])
        members = [
            _member(group, ["P1", "P2"], ["W1", "W2"], status=S.COMPLETED),
            _member(group, ["P1"], ["W1"], status=S.REJECTED),
        ]
        assert completion.group_completion_percent(group, members) == 100

    def test_rejected_only_leaves_units_unallocated(self, project):
        group = _group(project, ["D1"])
        members = [_member(group, ["P1"], ["W1"], status=S.REJECTED)]
        assert completion.group_allocation_percent(group, members) == 0

    def test_other_groups_members_do_not_count(self, project):
        group = _group(project, ["D1"])
        other = _group(project, ["D1"])
        members = [_member(other, ["P1", "P2"], ["W1", "W2"], status=S.COMPLETED)]
        assert completion.group_completion_percent(group, members) == 0


class TestProjectLevel:
    def test_empty_project(self, project):
        result = completion.project_stats(project, [], [])
        assert result.stats == CompletionStats(8, 0, 0)
        assert result.groups == {}

    def test_completed_group_counts_every_unit(self, project):
        group = _group(project, ["D1"], status=S.COMPLETED)
        result = completion.project_stats(project, [group], [])
        assert result.stats.allocation_percent == 50
        assert result.stats.completion_percent == 50
        assert result.groups[group.id].completed_units == 0

    def test_units_complete_inside_open_group(self, project):
        group = _group(project, ["D1"])
        members = [_member(group, ["P1"], ["W1", "W2"], status=S.COMPLETED)]
        assert completion.completion_percent(project, [group], members) == 25
        assert completion.allocation_percent(project, [group], members) == 50

    def test_rejected_group_is_not_an_instance(self, project):
        done = _group(project, ["D1"], status=S.COMPLETED)
        rejected = _group(project, ["D2"], status=S.REJECTED)
        result = completion.project_stats(project, [done, rejected], [])
        assert result.stats.allocated_units == 4
        assert rejected.id in result.groups

    def test_open_group_blocks_completed_group_on_shared_units(self, project):
        done = _group(project, ["D1"], status=S.COMPLETED)
        reopened = _group(project, ["D1"])
        result = completion.project_stats(project, [done, reopened], [])
        assert result.stats.completed_units == 0

    def test_allocation_never_below_completion(self, project):
        g1 = _group(project, ["D1"])
        g2 = _group(project, ["D2"], status=S.COMPLETED)
        members = [_member(g1, ["P1"], ["W1"], status=S.COMPLETED)]
        stats = completion.project_stats(project, [g1, g2], members).stats
        assert stats.allocation_percent >= stats.completion_percent
        assert stats.completed_units == 5
