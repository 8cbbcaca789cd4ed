import os
import tempfile
from datetime import datetime, timedelta, timezone

# The application module creates its tables on import; keep them out of the working tree.
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'roster_test_app.db')}"
)

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from roster.database.db import Base, get_db, make_engine
from roster.main import app
from roster.models.attendees import Attendee
from roster.models.events import Event


@pytest.fixture
def db_engine(tmp_path):
    """A file-backed SQLite database so worker threads get their own connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'roster.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(autouse=True)
def redis_client(fake_redis, monkeypatch):
    """Route the engine's per-event locks through fakeredis."""
    monkeypatch.setattr("roster.services.registrations.get_redis_client", lambda: fake_redis)
    return fake_redis


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def future_date(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def make_event(db_session):
    """Create an event directly in the database and return its id."""

    def _make_event(capacity: int = 10, title: str = "Test Event", days: int = 30) -> int:
        event = Event(
            title=title,
            description=f"{title} description",
            date=future_date(days),
            capacity=capacity,
        )
        db_session.add(event)
        db_session.commit()
        return event.id

    return _make_event


@pytest.fixture
def make_attendee(db_session):
    """Insert an attendee directly, bypassing the engine."""

    def _make_attendee(event_id: int, name: str = "Alice", email: str = "a@x.com") -> int:
        attendee = Attendee(event_id=event_id, name=name, email=email)
        db_session.add(attendee)
        db_session.commit()
        return attendee.id

    return _make_attendee
