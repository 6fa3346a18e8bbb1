"""
Shared pytest fixtures for the Work Allocation & Scoring Engine test suite.

Provides:
    - db: fresh InMemoryDatabase per test
    - uow: unit of work bound to that database
    - clock / T0: a fixed, adjustable clock for use cases that read time
    - pm, lead, alice, bob, team: pre-registered users and their team
    - project: a 2 x 2 x 2 project (8 work units)
    - client: FastAPI TestClient wired to the same database
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from application import (
    CreateProjectCommand,
    CreateProjectUseCase,
    CreateTeamCommand,
    CreateTeamUseCase,
    CreateUserCommand,
    CreateUserUseCase,
)
from infrastructure import InMemoryDatabase, InMemoryUnitOfWork
from model import UserRole
from settings import get_settings

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def uow(db):
    return InMemoryUnitOfWork(db)


@pytest.fixture
def clock():
    return FixedClock()


# ── Ledger owners ────────────────────────────────────────────────────────


@pytest.fixture
def team(uow):
    return CreateTeamUseCase().execute(CreateTeamCommand(name="Red"), uow)


@pytest.fixture
def pm(uow):
    return CreateUserUseCase().execute(
        CreateUserCommand(name="Priya", email="priya@example.com", roles=[UserRole.PROJECT_MANAGER]),
        uow,
    )


@pytest.fixture
def lead(uow, team):
    return CreateUserUseCase().execute(
        CreateUserCommand(
            name="Lee", email="lee@example.com", roles=[UserRole.TEAM_LEAD], team_id=as_uuid(team)
        ),
        uow,
    )


@pytest.fixture
def alice(uow, team):
    return CreateUserUseCase().execute(
        CreateUserCommand(name="Alice", email="alice@example.com", team_id=as_uuid(team)), uow
    )


@pytest.fixture
def bob(uow, team):
    return CreateUserUseCase().execute(
        CreateUserCommand(name="Bob", email="bob@example.com", team_id=as_uuid(team)), uow
    )


@pytest.fixture
def project(uow):
    return CreateProjectUseCase().execute(
        CreateProjectCommand(
            name="Hull",
            divisions=["D1", "D2"],
            part_nos=["P1", "P2"],
            work_types=["W1", "W2"],
        ),
        uow,
    )


# ── HTTP ─────────────────────────────────────────────────────────────────


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from api import app, get_uow

    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(db)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Helpers ──────────────────────────────────────────────────────────────


def as_uuid(dto):
    return uuid.UUID(dto.id)


def scope(*units):
    """Build a scope payload from (division, part, work_type) triples."""
    tree = {}
    for division, part, work_type in units:
        tree.setdefault(division, {}).setdefault(part, []).append(work_type)
    return [
        {"division": d, "parts": [{"name": p, "work_types": wts} for p, wts in parts.items()]}
        for d, parts in tree.items()
    ]
