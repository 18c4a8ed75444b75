"""
Shared pytest configuration for footy tests.

Runs against an in-memory SQLite database (aiosqlite) so the suite needs no
running PostgreSQL. Time is pinned with a FrozenClock and notifications are
captured by a recording dispatcher.
"""

import os

# Must be set before footy modules are imported (rate limiter, engine URL)
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import pytz  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from footy.database import db  # noqa: E402
from footy.database.db import Base  # noqa: E402
from footy.database.models import Match, MatchRosterEntry, Player, Team  # noqa: E402
from footy.utils.constants import FORMAT_TEAM_SIZE  # noqa: E402
from footy.utils.datetime_utils import FrozenClock  # noqa: E402

# Every test starts at this instant
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=pytz.UTC)

# Default coordinates for players and matches (lower Manhattan)
HOME_LAT = 40.7128
HOME_LNG = -74.0060


class RecordingDispatcher:
    """Notification dispatcher that remembers what it was asked to send."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    async def notify(self, session, player_id, payload):
        if player_id in self.fail_for:
            raise RuntimeError(f"delivery to {player_id} failed")
        self.sent.append((player_id, payload))
        return True

    def recipients(self):
        return [player_id for player_id, _ in self.sent]

    def types(self):
        return [payload["type"] for _, payload in self.sent]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (background workers) uses the test engine too
    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Test database session. Services only flush; nothing is committed unless a test does."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_player(db_session):
    """Factory: create and flush a player. Keyword arguments override defaults."""
    counter = {"n": 0}

    async def _make(full_name=None, **overrides):
        counter["n"] += 1
        fields = {
            "full_name": full_name or f"Player {counter['n']}",
            "skill_level": "Intermediate",
            "latitude": HOME_LAT,
            "longitude": HOME_LNG,
            "reputation_score": 3.0,
            "warnings": [],
        }
        fields.update(overrides)
        player = Player(**fields)
        db_session.add(player)
        await db_session.flush()
        return player

    return _make


@pytest.fixture
def make_match(db_session):
    """
    Factory: create and flush a match with the given roster ids.

    The match kicks off a day after NOW unless date_time is given.
    """

    async def _make(organizer_id, team_a=(), team_b=(), format="5v5", **overrides):
        entries = [
            MatchRosterEntry(player_id=pid, team=Team.A.value, joined_at=NOW) for pid in team_a
        ] + [
            MatchRosterEntry(player_id=pid, team=Team.B.value, joined_at=NOW) for pid in team_b
        ]
        fields = {
            "title": "Sunday kickabout",
            "organizer_id": organizer_id,
            "format": format,
            "max_players_per_team": FORMAT_TEAM_SIZE[format],
            "skill_level_required": "Any",
            "status": "open",
            "date_time": NOW + timedelta(days=1),
            "late_join_deadline_minutes": 15,
            "latitude": HOME_LAT,
            "longitude": HOME_LNG,
            "roster_entries": entries,
        }
        fields.update(overrides)
        match = Match(**fields)
        db_session.add(match)
        await db_session.flush()
        return match

    return _make


@pytest.fixture
def make_players(make_player):
    """Factory: create n players at once."""

    async def _make(n, **overrides):
        return [await make_player(**overrides) for _ in range(n)]

    return _make
