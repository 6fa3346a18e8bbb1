"""
infrastructure.py

In-memory implementation of all repository interfaces, the notification
sink and the Unit of Work.

Everything is stored in plain Python dicts keyed by UUID.  It is suitable
for local development, demos, and integration testing without a real
database.

Transactions
------------
A single process-wide re-entrant lock serialises units of work, so the
read-modify-write of one use case can never interleave with another's.  On
entry the unit of work snapshots every store; rollback() puts the snapshot
back, commit() takes a fresh one, and another after the committed
notifications have been delivered.

To swap in a real database later, implement the same Abstract* interfaces
from application.py and override get_uow() in api.py:

    app.dependency_overrides[get_uow] = lambda: SqlAlchemyUnitOfWork(session)
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Dict, List, Optional

from application import (
    AbstractConfigRepository,
    AbstractGroupAssignmentRepository,
    AbstractMemberAssignmentRepository,
    AbstractNotificationRepository,
    AbstractNotificationSink,
    AbstractProjectRepository,
    AbstractTeamRepository,
    AbstractUnitOfWork,
    AbstractUserRepository,
)
from model import Notification, UserRole

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key: uuid.UUID):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def remove(self, key: uuid.UUID) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    STORES = (
        "projects",
        "group_assignments",
        "member_assignments",
        "users",
        "teams",
        "notifications",
    )

    def __init__(self):
        self.projects:           _Store = _Store()
        self.group_assignments:  _Store = _Store()
        self.member_assignments: _Store = _Store()
        self.users:              _Store = _Store()
        self.teams:              _Store = _Store()
        self.notifications:      _Store = _Store()
        self.config:             Dict[str, Any] = {}
        self.lock = threading.RLock()

    def snapshot(self) -> Dict[str, Any]:
        state = {name: copy.deepcopy(dict(getattr(self, name))) for name in self.STORES}
        state["config"] = dict(self.config)
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        for name in self.STORES:
            store = getattr(self, name)
            store.clear()
            store.update(state[name])
        self.config.clear()
        self.config.update(state["config"])


_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class InMemoryProjectRepository(AbstractProjectRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, project_id):        return self._s.fetch(project_id)
    def list_all(self):               return self._s.all()
    def save(self, project):          self._s.put(project)
    def delete(self, project_id):     self._s.remove(project_id)


class InMemoryGroupAssignmentRepository(AbstractGroupAssignmentRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, group_id):          return self._s.fetch(group_id)
    def list_all(self):               return self._s.all()
    def list_for_project(self, project_id):
        return [g for g in self._s.all() if g.project_id == project_id]
    def list_for_team(self, team_id):
        return [g for g in self._s.all() if g.team_id == team_id]
    def save(self, group):            self._s.put(group)
    def delete(self, group_id):       self._s.remove(group_id)


class InMemoryMemberAssignmentRepository(AbstractMemberAssignmentRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, assignment_id):     return self._s.fetch(assignment_id)
    def list_all(self):               return self._s.all()
    def list_for_group(self, group_id):
        return [m for m in self._s.all() if m.group_assignment_id == group_id]
    def list_for_member(self, member_id):
        return [m for m in self._s.all() if m.member_id == member_id]
    def save(self, assignment):       self._s.put(assignment)
    def delete(self, assignment_id):  self._s.remove(assignment_id)


class InMemoryUserRepository(AbstractUserRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, user_id):           return self._s.fetch(user_id)
    def get_by_email(self, email):
        return next((u for u in self._s.all() if u.email.lower() == email.lower()), None)
    def list_all(self):               return self._s.all()
    def list_for_team(self, team_id):
        return [u for u in self._s.all() if u.team_id == team_id]
    def save(self, user):             self._s.put(user)


class InMemoryTeamRepository(AbstractTeamRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, team_id):           return self._s.fetch(team_id)
    def get_by_name(self, name):
        return next((t for t in self._s.all() if t.name == name), None)
    def list_all(self):               return self._s.all()
    def save(self, team):             self._s.put(team)


class InMemoryNotificationRepository(AbstractNotificationRepository):
    def __init__(self, store: _Store): self._s = store
    def list_for_user(self, user_id):
        return [n for n in self._s.all() if n.user_id == user_id]
    def save(self, notification):     self._s.put(notification)
    def delete(self, notification_id): self._s.remove(notification_id)


class InMemoryConfigRepository(AbstractConfigRepository):
    def __init__(self, values: Dict[str, Any]): self._v = values
    def get_all(self):                return dict(self._v)
    def set(self, key, value):        self._v[key] = value


# ---------------------------------------------------------------------------
# Notification sink
# ---------------------------------------------------------------------------

class InMemoryNotificationSink(AbstractNotificationSink):
    """
    Writes one Notification row per recipient.  Team broadcasts go to the
    team's users holding ``role_filter`` (plus the team's recorded leads when
    the filter is TEAM_LEAD).
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self._db = db

    def notify(self, user_id: uuid.UUID, message: str) -> None:
        with self._db.lock:
            self._db.notifications.put(Notification(user_id=user_id, message=message))

    def notify_team(
        self,
        team_id: uuid.UUID,
        message: str,
        role_filter: Optional[UserRole] = None,
    ) -> None:
        with self._db.lock:
            recipients: List[uuid.UUID] = [
                u.id for u in self._db.users.all()
                if u.team_id == team_id and (role_filter is None or role_filter in u.roles)
            ]
            team = self._db.teams.fetch(team_id)
            if team is not None and role_filter == UserRole.TEAM_LEAD:
                recipients.extend(team.lead_ids)
            for user_id in dict.fromkeys(recipients):
                self.notify(user_id, message)
            if not recipients:
                logger.debug("No recipients in team %s for %r", team_id, message)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all in-memory repositories in a lock-guarded, snapshot-backed
    transaction.  Nested ``with`` blocks on the same instance join the
    outer transaction.
    """

    def __init__(
        self,
        db: InMemoryDatabase = _db,
        sink: Optional[AbstractNotificationSink] = None,
    ):
        super().__init__(sink=sink if sink is not None else InMemoryNotificationSink(db))
        self._db = db
        self._depth = 0
        self._snapshot: Optional[Dict[str, Any]] = None
        self.projects           = InMemoryProjectRepository(db.projects)
        self.group_assignments  = InMemoryGroupAssignmentRepository(db.group_assignments)
        self.member_assignments = InMemoryMemberAssignmentRepository(db.member_assignments)
        self.users              = InMemoryUserRepository(db.users)
        self.teams              = InMemoryTeamRepository(db.teams)
        self.notifications      = InMemoryNotificationRepository(db.notifications)
        self.config             = InMemoryConfigRepository(db.config)

    def __enter__(self) -> "InMemoryUnitOfWork":
        self._db.lock.acquire()
        if self._depth == 0:
            self._snapshot = self._db.snapshot()
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self._depth == 1:
                super().__exit__(exc_type, exc_val, exc_tb)
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None
            self._db.lock.release()

    def _commit(self) -> None:
        self._snapshot = self._db.snapshot()

    def _deliver(self, messages) -> None:
        super()._deliver(messages)
        # Rows the sink wrote are part of the committed state.
        if messages:
            self._snapshot = self._db.snapshot()

    def _rollback(self) -> None:
        if self._snapshot is not None:
            self._db.restore(self._snapshot)
            logger.info("Unit of work rolled back")
