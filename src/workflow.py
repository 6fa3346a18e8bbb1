"""
workflow.py

Status state machines for group and member assignments.

Each machine is a finite table ``(state, event) -> state``.  A status change
requested by a caller is resolved to the single event whose edge leads from
the current state to the requested one; a pair that is not listed raises
InvalidTransitionError before anything is written.  Terminal states
(COMPLETED, REJECTED) have no outgoing edges, which is what makes a repeated
"mark COMPLETED" request unable to score twice.

Group assignment
----------------
    PENDING       --START-------------> IN_PROGRESS
    IN_PROGRESS   --SUBMIT------------> PENDING_ACK     (group 100 % complete)
    PENDING_ACK   --ACCEPT------------> COMPLETED       (rating 1-5, scores team)
    PENDING_ACK   --REVOKE_SUBMISSION-> IN_PROGRESS
    PENDING / IN_PROGRESS / PENDING_ACK
                  --REQUEST_REJECTION-> REJECTION_REQ   (no active member work)
    REJECTION_REQ --CONFIRM_REJECTION-> REJECTED
    REJECTION_REQ --REVOKE_REJECTION--> IN_PROGRESS

Member assignment
-----------------
    IN_PROGRESS   --SUBMIT------------> PENDING_ACK
    PENDING_ACK   --ACCEPT------------> COMPLETED       (rating 1-5, scores member)
    PENDING_ACK   --REJECT------------> REJECTED
    PENDING_ACK   --REVOKE_SUBMISSION-> IN_PROGRESS
    IN_PROGRESS   --REQUEST_REJECTION-> REJECTION_REQ
    REJECTION_REQ --CONFIRM_REJECTION-> REJECTED
    REJECTION_REQ --REVOKE_REJECTION--> IN_PROGRESS
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from model import AssignmentStatus as S


class AssignmentEvent(str, Enum):
    START = "start"
    SUBMIT = "submit"
    ACCEPT = "accept"
    REJECT = "reject"
    REVOKE_SUBMISSION = "revoke_submission"
    REQUEST_REJECTION = "request_rejection"
    CONFIRM_REJECTION = "confirm_rejection"
    REVOKE_REJECTION = "revoke_rejection"


E = AssignmentEvent


class InvalidTransitionError(ValueError):
    """Raised when a status change is not an edge of the machine or its guard fails."""

    def __init__(
        self,
        entity: str,
        current: S,
        target: S,
        reason: Optional[str] = None,
    ) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        self.reason = reason
        message = f"{entity} cannot move from {current.value} to {target.value}"
        super().__init__(f"{message}: {reason}" if reason else f"{message}.")


GROUP_TRANSITIONS: Dict[Tuple[S, E], S] = {
    (S.PENDING, E.START): S.IN_PROGRESS,
    (S.IN_PROGRESS, E.SUBMIT): S.PENDING_ACK,
    (S.PENDING_ACK, E.ACCEPT): S.COMPLETED,
    (S.PENDING_ACK, E.REVOKE_SUBMISSION): S.IN_PROGRESS,
    (S.PENDING, E.REQUEST_REJECTION): S.REJECTION_REQ,
    (S.IN_PROGRESS, E.REQUEST_REJECTION): S.REJECTION_REQ,
    (S.PENDING_ACK, E.REQUEST_REJECTION): S.REJECTION_REQ,
    (S.REJECTION_REQ, E.CONFIRM_REJECTION): S.REJECTED,
    (S.REJECTION_REQ, E.REVOKE_REJECTION): S.IN_PROGRESS,
}

MEMBER_TRANSITIONS: Dict[Tuple[S, E], S] = {
    (S.IN_PROGRESS, E.SUBMIT): S.PENDING_ACK,
    (S.PENDING_ACK, E.ACCEPT): S.COMPLETED,
    (S.PENDING_ACK, E.REJECT): S.REJECTED,
    (S.PENDING_ACK, E.REVOKE_SUBMISSION): S.IN_PROGRESS,
    (S.IN_PROGRESS, E.REQUEST_REJECTION): S.REJECTION_REQ,
    (S.REJECTION_REQ, E.CONFIRM_REJECTION): S.REJECTED,
    (S.REJECTION_REQ, E.REVOKE_REJECTION): S.IN_PROGRESS,
}


@dataclass(frozen=True)
class TransitionTable:
    entity: str
    edges: Mapping[Tuple[S, E], S]

    @property
    def states(self) -> FrozenSet[S]:
        found = set()
        for (src, _), dst in self.edges.items():
            found.update((src, dst))
        return frozenset(found)

    def targets(self, current: S) -> FrozenSet[S]:
        return frozenset(dst for (src, _), dst in self.edges.items() if src == current)

    def is_terminal(self, state: S) -> bool:
        return not self.targets(state)

    def next_state(self, current: S, event: E) -> S:
        try:
            return self.edges[(current, event)]
        except KeyError:
            raise InvalidTransitionError(
                self.entity, current, current, f"event '{event.value}' is not allowed"
            ) from None

    def resolve(self, current: S, target: S) -> E:
        """Return the event that moves ``current`` to ``target``."""
        for (src, event), dst in self.edges.items():
            if src == current and dst == target:
                return event
        if self.is_terminal(current):
            reason = f"{current.value} is terminal"
        else:
            reason = "no such transition"
        raise InvalidTransitionError(self.entity, current, target, reason)


GROUP_WORKFLOW = TransitionTable("GroupAssignment", GROUP_TRANSITIONS)
MEMBER_WORKFLOW = TransitionTable("MemberAssignment", MEMBER_TRANSITIONS)
