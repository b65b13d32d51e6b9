"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from solvebot.config import RankConfig, ServerConfig, SolveBotConfig
from solvebot.database.models import Base


# ---------------------------------------------------------------------------
# SQLite renders BigInteger as INTEGER so snowflake primary keys behave like
# rowids and autoincrement works.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


RANK_NAMES = ("script kiddie", "hacker", "pwner", "wizard", "elite")


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all solvebot tables.

    Uses StaticPool so every thread shares the same in-memory database
    (``run_db`` hops to a worker thread via ``asyncio.to_thread``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cfg() -> SolveBotConfig:
    return SolveBotConfig(
        server=ServerConfig(
            guild_id=100,
            solve_approvals_channel_id=200,
            rank_up_channel_id=300,
            officer_role="officer",
            member_role="member",
        ),
        ranks=RankConfig(
            points_per_solve=100,
            points_per_message=1,
            rank_names=RANK_NAMES,
        ),
    )


@pytest.fixture
def client(db_engine, cfg):
    """FastAPI TestClient wired to the in-memory database."""
    from fastapi.testclient import TestClient

    from solvebot.api.deps import get_config, get_engine
    from solvebot.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: cfg
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


class FakePlatform:
    """Records role and notification calls in order; can be told to fail.

    Implements both ``RoleSync`` and ``NotificationSink``.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.failing: set[str] = set()
        self._next_message_id = 9000

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    async def grant_role(self, user_id: int, role_name: str) -> None:
        self._record("grant", user_id, role_name)

    async def revoke_role(self, user_id: int, role_name: str) -> None:
        self._record("revoke", user_id, role_name)

    async def publish_decision_request(self, request) -> int:
        self._record("request", request.solve_id)
        self._next_message_id += 1
        return self._next_message_id

    async def publish_decision(self, solve_id, status, decider_id) -> None:
        self._record("decision", solve_id, status, decider_id)

    async def announce_rank_up(self, user_id: int, rank_name: str) -> None:
        self._record("announce", user_id, rank_name)

    def named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def challenge_factory(db_engine):
    """Create a competition (once) plus a challenge; returns the challenge id."""
    from solvebot.database.engine import get_session
    from solvebot.database.models import ChallengeCategory, Competition
    from solvebot.services import solve_store

    def _make(name: str = "baby-rop", category=ChallengeCategory.PWN) -> int:
        with get_session(db_engine) as session:
            if session.get(Competition, 10) is None:
                solve_store.create_competition(session, 10, "Test CTF")
            return solve_store.create_challenge(
                session, competition_id=10, name=name, category=category,
            )

    return _make
