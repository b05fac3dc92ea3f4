"""
Pytest configuration and fixtures

Tests never need Postgres or Redis:
- the default engine is pointed at in-memory sqlite before any app import
- repository tests get their own sqlite engine with the schema created from models
- the per-user Redis lock is disabled unless a test turns it on explicitly
"""
import os
import sys
from datetime import datetime

import pytest

# Must be set before core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PR_LOCK_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.database import Base  # noqa: E402
import models  # noqa: E402,F401
from services.pr_repository import InMemoryPRRepository  # noqa: E402
from services.pr_types import PRDefinition, WorkoutResult  # noqa: E402


@pytest.fixture
def user_id():
    return "user-123"


@pytest.fixture
def repo():
    return InMemoryPRRepository()


@pytest.fixture
def two_k_row():
    return PRDefinition(
        activity_key="2k_row",
        activity_name="2K Row",
        sport="rower",
        metric_type="time",
        target_distance=2000,
        display_order=4,
    )


@pytest.fixture
def thirty_min_row():
    return PRDefinition(
        activity_key="30min_row",
        activity_name="30min Row",
        sport="rower",
        metric_type="distance",
        target_time=1800,
        display_order=12,
    )


@pytest.fixture
def make_result():
    """Factory for WorkoutResult with rowing defaults."""
    def _make(id, time, date, distance=2000, sport="rower"):
        if isinstance(date, str):
            date = datetime.fromisoformat(date)
        return WorkoutResult(id=id, sport=sport, distance=distance, time=time, date=date)
    return _make


@pytest.fixture
def scenario_results(make_result):
    """Three 2K rows spanning two seasons and two calendar years."""
    return [
        make_result(1, 450, "2024-01-10T08:00:00"),
        make_result(2, 430, "2024-06-01T08:00:00"),
        make_result(3, 440, "2025-02-01T08:00:00"),
    ]


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session: Session = session_factory()
    yield session
    session.close()
