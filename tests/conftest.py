"""Shared fixtures: in-memory SQLite database, seeded users/projects, API client."""
import os

# Must be set before bugsage_core reads its settings
os.environ.setdefault("BUGSAGE_DATABASE_URL", "sqlite://")
os.environ.setdefault("BUGSAGE_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bugsage_core import crud, models
from bugsage_core.auth import hash_password
from bugsage_core.database import get_db
from bugsage_core.lifecycle import CallerContext

TEST_PASSWORD = "password123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
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
def tester(db):
    return crud.create_user(db, "Tina Tester", "tina@example.com", "unused-hash", models.UserRole.TESTER)


@pytest.fixture
def developer(db):
    return crud.create_user(db, "Dev Eloper", "dev@example.com", "unused-hash", models.UserRole.DEVELOPER)


@pytest.fixture
def project(db):
    return crud.create_project(db, "Web Portal", "Customer-facing site")


@pytest.fixture
def caller(tester):
    return CallerContext(user_id=tester.id, role=models.UserRole.TESTER)


@pytest.fixture
def client(session_factory):
    """API client whose requests use the test database."""
    from bugsage_core.api.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _make_user(session_factory, name, email, role):
    session = session_factory()
    try:
        user = crud.create_user(session, name, email, hash_password(TEST_PASSWORD), role)
        return user.id
    finally:
        session.close()


def _login(client, email):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text


@pytest.fixture
def auth_client(client, session_factory):
    """API client logged in as a Developer; ``client.user_id`` is that user."""
    client.user_id = _make_user(session_factory, "Alice Dev", "alice@example.com", models.UserRole.DEVELOPER)
    _login(client, "alice@example.com")
    return client


@pytest.fixture
def admin_client(client, session_factory):
    """API client logged in as an Admin."""
    client.user_id = _make_user(session_factory, "Ada Admin", "ada@example.com", models.UserRole.ADMIN)
    _login(client, "ada@example.com")
    return client
