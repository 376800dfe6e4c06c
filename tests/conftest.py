"""
Pytest configuration and fixtures for CareCall tests.

Every test gets its own in-memory SQLite database and a recording push sender
in place of FCM.
"""
import os

# keep the app's module-level engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carecall.errors import Unavailable
from carecall.models import Base, Device, Emergency, device_key
from carecall.notifier import PushSender


class RecordingPushSender(PushSender):
    """Collects outgoing pushes; raises Unavailable when `fail` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.many = []
        self.one = []

    def send_many(self, tokens, data):
        if self.fail:
            raise Unavailable("push backend down")
        self.many.append((list(tokens), dict(data)))

    def send_one(self, token, data):
        if self.fail:
            raise Unavailable("push backend down")
        self.one.append((token, dict(data)))


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def push():
    return RecordingPushSender()


@pytest.fixture
def client(session_factory, push):
    """
    TestClient wired to the per-test database and the recording push sender.
    """
    from fastapi.testclient import TestClient
    from carecall.main import app
    from carecall.database import get_db
    from carecall.notifier import get_push_sender

    def _override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_push_sender] = lambda: push
    try:
        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def make_device(
    db,
    user_id: int,
    role: str = "volunteer",
    token: str | None = "tok",
    available: bool = True,
    lat: float | None = None,
    lon: float | None = None,
    seen_ago: timedelta = timedelta(0),
) -> Device:
    now = datetime.utcnow()
    dev = Device(
        id=device_key(role, user_id),
        user_id=user_id,
        role=role,
        push_token=token,
        is_available=available,
        latitude=lat,
        longitude=lon,
        last_seen_at=now - seen_ago,
        updated_at=now,
    )
    db.add(dev)
    db.commit()
    return dev


def make_emergency(db, emergency_id: int, status: str = "active", volunteer_id=None, age=timedelta(0), elderly_id: int = 5) -> Emergency:
    created = datetime.utcnow() - age
    em = Emergency(
        id=emergency_id,
        elderly_id=elderly_id,
        latitude=10.0,
        longitude=20.0,
        status=status,
        volunteer_id=volunteer_id,
        created_at=created,
        updated_at=created,
    )
    db.add(em)
    db.commit()
    return em
