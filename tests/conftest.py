"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any app module is imported,
so the cached settings, engine and app are built against the test database.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_messagely.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_WORK_FACTOR", "4")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app.main import app
from app.storage import Base, SessionLocal, engine


USERS = {
    "alice": {"first_name": "Alice", "last_name": "Anders", "phone": "+14155550101"},
    "bob": {"first_name": "Bob", "last_name": "Baker", "phone": "+14155550102"},
    "carol": {"first_name": "Carol", "last_name": "Chen", "phone": "+14155550103"},
}
PASSWORD = "password"


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    # Cleanup - drop all tables after test
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def tokens(client) -> dict:
    """Register alice, bob and carol; map each username to a session token."""
    result = {}
    for username, details in USERS.items():
        response = client.post(
            "/auth/register",
            json={"username": username, "password": PASSWORD, **details},
        )
        assert response.status_code == 200
        result[username] = response.json()["token"]
    return result


@pytest.fixture
def db(client):
    """A database session against the per-test schema."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
