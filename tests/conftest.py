"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. Every
test gets its own user id, so documents never leak between tests.
"""
import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_dreamtrack.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dreamtrack.db.base import Base, get_db
from dreamtrack.main import app
from dreamtrack.services.archiver import WeekArchiver
from dreamtrack.services.scoring import ScoringAggregator
from dreamtrack.services.templates import TemplateRepository
from dreamtrack.services.week_tracker import WeekTracker
from dreamtrack.store.documents import SqlDocumentStore

SQLITE_URL = "sqlite:///./test_dreamtrack.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def other_db():
    """A second, independent session: a concurrent writer."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def user_id():
    return f"user-{uuid.uuid4().hex[:10]}@example.com"


# ---------------------------------------------------------------------------
# Services wired over the test database
# ---------------------------------------------------------------------------

@pytest.fixture()
def store(db):
    return SqlDocumentStore(db)


@pytest.fixture()
def templates(store):
    return TemplateRepository(store)


@pytest.fixture()
def scoring(store):
    return ScoringAggregator(store)


@pytest.fixture()
def archiver(store, templates):
    return WeekArchiver(store, templates)


@pytest.fixture()
def tracker(store, archiver, scoring, templates):
    return WeekTracker(store, archiver, scoring, templates)


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
