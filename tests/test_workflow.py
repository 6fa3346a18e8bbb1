"""
State machine tests for group and member assignments.

Every listed edge must resolve to its event; every other (from, to) pair,
self-transitions included, must raise InvalidTransitionError.
"""

import itertools

import pytest

from model import AssignmentStatus as S
from workflow import (
    GROUP_TRANSITIONS,
    GROUP_WORKFLOW,
    MEMBER_TRANSITIONS,
    MEMBER_WORKFLOW,
    AssignmentEvent as E,
    InvalidTransitionError,
)

GROUP_VALID = [
    (S.PENDING, S.IN_PROGRESS, E.START),
    (S.IN_PROGRESS, S.PENDING_ACK, E.SUBMIT),
    (S.PENDING_ACK, S.COMPLETED, E.ACCEPT),
    (S.PENDING_ACK, S.IN_PROGRESS, E.REVOKE_SUBMISSION),
    (S.PENDING, S.REJECTION_REQ, E.REQUEST_REJECTION),
    (S.IN_PROGRESS, S.REJECTION_REQ, E.REQUEST_REJECTION),
    (S.PENDING_ACK, S.REJECTION_REQ, E.REQUEST_REJECTION),
    (S.REJECTION_REQ, S.REJECTED, E.CONFIRM_REJECTION),
    (S.REJECTION_REQ, S.IN_PROGRESS, E.REVOKE_REJECTION),
]

MEMBER_VALID = [
    (S.IN_PROGRESS, S.PENDING_ACK, E.SUBMIT),
    (S.PENDING_ACK, S.COMPLETED, E.ACCEPT),
    (S.PENDING_ACK, S.REJECTED, E.REJECT),
    (S.PENDING_ACK, S.IN_PROGRESS, E.REVOKE_SUBMISSION),
    (S.IN_PROGRESS, S.REJECTION_REQ, E.REQUEST_REJECTION),
    (S.REJECTION_REQ, S.REJECTED, E.CONFIRM_REJECTION),
    (S.REJECTION_REQ, S.IN_PROGRESS, E.REVOKE_REJECTION),
]


def _invalid(valid):
    allowed = {(src, dst) for src, dst, _ in valid}
    return [pair for pair in itertools.product(S, S) if pair not in allowed]


class TestGroupWorkflow:
    @pytest.mark.parametrize("current, target, event", GROUP_VALID)
    def test_valid_transitions(self, current, target, event):
        assert GROUP_WORKFLOW.resolve(current, target) is event
        assert GROUP_WORKFLOW.next_state(current, event) is target

    @pytest.mark.parametrize("current, target", _invalid(GROUP_VALID))
    def test_invalid_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            GROUP_WORKFLOW.resolve(current, target)
        assert exc_info.value.entity == "GroupAssignment"
        assert exc_info.value.current is current
        assert exc_info.value.target is target

    def test_table_matches_grid(self):
        assert len(GROUP_TRANSITIONS) == len(GROUP_VALID)

    @pytest.mark.parametrize("state", [S.COMPLETED, S.REJECTED])
    def test_terminal_states(self, state):
        assert GROUP_WORKFLOW.is_terminal(state)
        with pytest.raises(InvalidTransitionError, match="terminal"):
            GROUP_WORKFLOW.resolve(state, S.IN_PROGRESS)

    def test_unknown_event_rejected(self):
        with pytest.raises(InvalidTransitionError, match="not allowed"):
            GROUP_WORKFLOW.next_state(S.PENDING, E.ACCEPT)


class TestMemberWorkflow:
    @pytest.mark.parametrize("current, target, event", MEMBER_VALID)
    def test_valid_transitions(self, current, target, event):
        assert MEMBER_WORKFLOW.resolve(current, target) is event

    @pytest.mark.parametrize("current, target", _invalid(MEMBER_VALID))
    def test_invalid_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError):
            MEMBER_WORKFLOW.resolve(current, target)

    def test_table_matches_grid(self):
        assert len(MEMBER_TRANSITIONS) == len(MEMBER_VALID)

    def test_members_never_pending(self):
        assert S.PENDING not in MEMBER_WORKFLOW.states

    def test_completed_cannot_complete_again(self):
        with pytest.raises(InvalidTransitionError, match="COMPLETED is terminal"):
            MEMBER_WORKFLOW.resolve(S.COMPLETED, S.COMPLETED)
