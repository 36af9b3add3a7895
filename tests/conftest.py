"""
Pytest configuration and shared fixtures.
"""

import os

# Settings() is built at import time; give it what it needs before any
# virtual_line module is imported.
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/sqlite/test-unused.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import sessionmaker

from virtual_line.database import init_db, make_engine
from virtual_line.services.notifier import NotificationResult, Notifier
from virtual_line.services.slots import ScheduleConfig, SlotStore

DAY = "2025-06-02"


class RecordingNotifier(Notifier):
    """Synchronous notifier that keeps every message it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send(self, destination: str, text: str) -> NotificationResult:
        self.sent.append((destination, text))
        return NotificationResult(delivered=True, message_id=f"SM{len(self.sent)}")

    def dispatch(self, destination, text) -> str:
        if not destination:
            return "skipped"
        self.send(destination, text)
        return "queued"


@pytest.fixture(autouse=True)
def mock_redis():
    """No Redis in tests: the event bus pushes into a MagicMock."""
    with patch("virtual_line.services.events.redis_client") as client:
        client.rpush = MagicMock(return_value=1)
        yield client


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file per test (file, not :memory:, so threads share it)."""
    engine = make_engine(f"sqlite:///{tmp_path / 'virtual_line.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config():
    return ScheduleConfig(hold_ttl_seconds=120, site_min_intervals={1: 5, 2: 10})


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def now():
    """Fixed clock; pass explicitly to every engine call."""
    return datetime(2025, 6, 2, 12, 0, 0)


@pytest.fixture
def store(db, config):
    return SlotStore(db, config)


@pytest.fixture
def published_day(store, now):
    """Site 1, 07:00-08:00, 13 slots every 5 minutes."""
    store.publish(1, DAY, "07:00", "08:00", 13, now=now)
    return DAY
