"""
Shared fixtures: an in-memory database per test, a seeded tournament
and recording side-effect collaborators.

Fixtures commit their rows and hand out plain ids, because services roll
the session back on failure and that expires every loaded instance.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncGenerator, List

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from debate_engine.orm.base import Base
from debate_engine.orm.school import School
from debate_engine.orm.team import Team, TeamStatus
from debate_engine.orm.tournament import Tournament, TournamentStatus
from debate_engine.orm.user import User, UserRole
from debate_engine.rbac import Actor
from debate_engine.services.side_effects import Collaborators
from debate_engine.tests.factories import RecordingAuditSink, RecordingNotifier

# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    """One in-memory database shared by every session of a test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Collaborators
# =============================================================================

@pytest_asyncio.fixture
async def collaborators() -> Collaborators:
    """Fresh recording audit sink and notifier per test."""
    return Collaborators(audit=RecordingAuditSink(), notifier=RecordingNotifier())


# =============================================================================
# Seeded tournament
# =============================================================================

@dataclass
class World:
    tournament_id: int
    admin: Actor
    judges: List[Actor]
    conflicted_judge: Actor
    student: Actor
    north_a: int
    north_b: int
    south: int
    east: int
    west: int
    north_school: int


def _user(name: str, email: str, role: UserRole, school_id=None) -> User:
    return User(name=name, email=email, role=role, school_id=school_id,
                is_active=True, created_at=datetime.utcnow())


@pytest_asyncio.fixture
async def world(db: AsyncSession) -> World:
    """
    An inProgress tournament with two preliminary rounds, a three-judge
    panel size, five active teams (two from the same school), three
    unaffiliated judges and one judge from the north school.
    """
    north = School(name="Northside High", type="public")
    south = School(name="Southside High", type="public")
    east = School(name="Eastside Academy", type="private")
    west = School(name="Westside High", type="public")
    db.add_all([north, south, east, west])
    await db.flush()

    admin = _user("Tab Director", "tab@test.org", UserRole.ADMIN)
    judges = [
        _user(f"Judge {n}", f"judge{n}@test.org", UserRole.VOLUNTEER)
        for n in range(1, 4)
    ]
    conflicted = _user("Judge North", "judge.north@test.org", UserRole.VOLUNTEER, north.id)
    student = _user("Nora Student", "nora@test.org", UserRole.STUDENT, north.id)
    db.add_all([admin, *judges, conflicted, student])
    await db.flush()

    tournament = Tournament(
        name="Spring Invitational",
        format="WSDC",
        team_size=3,
        judges_per_debate=3,
        prelim_rounds=2,
        elimination_rounds=0,
        status=TournamentStatus.IN_PROGRESS,
        created_at=datetime.utcnow(),
    )
    db.add(tournament)
    await db.flush()

    def team(name, school, members=None):
        return Team(tournament_id=tournament.id, school_id=school.id, name=name,
                    members=members or [], status=TeamStatus.ACTIVE,
                    created_at=datetime.utcnow())

    north_a = team("Northside A", north, [student.id])
    north_b = team("Northside B", north)
    south_t = team("Southside", south)
    east_t = team("Eastside", east)
    west_t = team("Westside", west)
    db.add_all([north_a, north_b, south_t, east_t, west_t])
    await db.commit()

    return World(
        tournament_id=tournament.id,
        admin=Actor(id=admin.id, role=UserRole.ADMIN),
        judges=[Actor(id=j.id, role=UserRole.VOLUNTEER) for j in judges],
        conflicted_judge=Actor(id=conflicted.id, role=UserRole.VOLUNTEER),
        student=Actor(id=student.id, role=UserRole.STUDENT),
        north_a=north_a.id,
        north_b=north_b.id,
        south=south_t.id,
        east=east_t.id,
        west=west_t.id,
        north_school=north.id,
    )
