"""
Shared pytest fixtures.

Uses a SQLite database file so no Postgres is required for tests. Every test
starts from empty tables and a frozen clock.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from app.core.config import Settings
from app.db.base import Base, build_engine, build_session_factory
from app.dependencies import build_services
from app.main import create_app
from app.models import Activity, Post, User
from app.services.ledger import SqlActivityLedger
from app.services.registry import SqlUserRegistry
from app.services.retry import RetryPolicy

SQLITE_URL = "sqlite:///./test_marathon.db"

engine = build_engine(SQLITE_URL)
TestingSessionLocal = build_session_factory(engine)

# 2026-03-10 05:00 UTC, a Tuesday; most scenarios run in the 05:00 bucket.
T0 = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)

FAST_RETRY = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


def make_settings(**overrides) -> Settings:
    values = dict(
        DATABASE_URL=SQLITE_URL,
        DB_ISOLATION_LEVEL="",
        RETRY_MAX_ATTEMPTS=3,
        RETRY_BASE_DELAY=0.0,
        RETRY_MAX_DELAY=0.0,
        ROTATION_WORKERS=1,
        LOG_FORMAT="console",
        TRIGGER_TOKEN=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with TestingSessionLocal() as db:
        db.execute(delete(Post))
        db.execute(delete(Activity))
        db.execute(delete(User))
        db.commit()


@pytest.fixture()
def session_factory():
    return TestingSessionLocal


@pytest.fixture()
def clock():
    return FrozenClock(T0)


@pytest.fixture()
def registry(clock):
    return SqlUserRegistry(TestingSessionLocal, policy=FAST_RETRY, clock=clock, default_rotation_hour=12)


@pytest.fixture()
def ledger(clock):
    return SqlActivityLedger(TestingSessionLocal, policy=FAST_RETRY, clock=clock)


@pytest.fixture()
def services(clock):
    return build_services(make_settings(), TestingSessionLocal, clock=clock)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def app_settings():
    return make_settings()


@pytest.fixture()
def client(app_settings, clock):
    app = create_app(settings=app_settings, session_factory=TestingSessionLocal, clock=clock)
    with TestClient(app) as c:
        yield c
