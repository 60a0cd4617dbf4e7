import os

# Configure before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.services import submission_service


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


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
def override_db(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(override_db):
    return TestClient(override_db)


@pytest.fixture
def reviewer_headers():
    token = create_access_token({"sub": "reviewer@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def challenge(db):
    return submission_service.create_challenge(db, title="Two Sum", time_limit=30)


@pytest.fixture
def candidate(db, challenge):
    return submission_service.invite_candidate(db, challenge.id, "Ada", "ada@example.com")
