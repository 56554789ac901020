"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from app import database
from app.core import security
from app.database import get_db
from app.main import app
from app.models import Base
from helpers import RecordingPushDispatcher
from mesh.realtime import ConnectionRegistry, RealtimeFanout

security.pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine, monkeypatch) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine.

    Short-lived sessions opened outside request handling use the same engine.
    """

    factory = sessionmaker(bind=test_engine, autoflush=False, future=True)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def push_dispatcher() -> RecordingPushDispatcher:
    return RecordingPushDispatcher()


@pytest.fixture()
def fanout(push_dispatcher) -> RealtimeFanout:
    return RealtimeFanout(ConnectionRegistry(), push_dispatcher, send_timeout=1.0)


@pytest.fixture()
def client(session_factory, fanout) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database and fan-out overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.fanout = fanout
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
        app.state.fanout = None


@pytest.fixture()
def drain(client, fanout):
    """Block until every queued realtime event and push task has completed."""

    def _drain() -> None:
        client.portal.call(fanout.drain)

    return _drain
