"""
main.py

Entry point for the Work Allocation & Scoring Engine API.

Wires the in-memory infrastructure into the FastAPI app and starts uvicorn.

Usage
-----
    # Option 1 — run directly (host / port / reload come from WORKTRACK_* settings)
    python main.py

    # Option 2 — run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  POST  /api/v1/users                  — register a project manager, a team lead and a member
2.  POST  /api/v1/teams                  — create a team (lead_ids = [team lead id])
3.  POST  /api/v1/projects               — create a project with divisions / part_nos / work_types
4.  POST  /api/v1/group-assignments      — deploy part of the project scope to the team
5.  POST  /api/v1/member-assignments     — allocate part of the group scope to the member
6.  PATCH /api/v1/member-assignments/{id}  {"status": "PENDING_ACK"}   — member submits
7.  PATCH /api/v1/member-assignments/{id}  {"status": "COMPLETED", "rating": 5}  — lead accepts
8.  PATCH /api/v1/group-assignments/{id}   {"status": "PENDING_ACK"}   — team submits
9.  PATCH /api/v1/group-assignments/{id}   {"status": "COMPLETED", "rating": 4}  — PM accepts
10. GET   /api/v1/projects/{id}/stats    — allocation / completion breakdown
11. GET   /api/v1/leaderboard            — top teams and members
12. POST  /api/v1/projects/{id}/rework   — penalise culprits and open "<name> R"

Every request runs in its own unit of work.  Notifications land in
GET /api/v1/users/{id}/notifications once the write has committed.
"""

import uvicorn

from api import app, get_uow
from infrastructure import InMemoryUnitOfWork
from settings import get_settings


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your SQL implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
