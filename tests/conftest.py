"""
Test configuration.

Points the app at a throwaway SQLite file before anything from `donations`
is imported, and rebuilds the tables for every test.
"""

import os
import tempfile
from pathlib import Path

_TMP_DIR = Path(tempfile.mkdtemp(prefix="donations-tests-"))

# Set test environment variables BEFORE importing app modules
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-32chars"
os.environ["ADMIN_EMAILS"] = "boss@example.com"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEBUG"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from donations import crud  # noqa: E402
from donations.db import Base, SessionLocal, engine  # noqa: E402
from donations.main import app  # noqa: E402
from donations.models import ROLE_ADMIN, ROLE_MEMBER  # noqa: E402

PASSWORD = "correct-horse"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """Anonymous client."""
    return TestClient(app)


def _login(email: str) -> TestClient:
    c = TestClient(app)
    response = c.post(
        "/login",
        data={"email": email, "password": PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    return c


@pytest.fixture
def member(db):
    return crud.create_user(db, "member@example.com", PASSWORD, role=ROLE_MEMBER)


@pytest.fixture
def admin(db):
    return crud.create_user(db, "admin@example.com", PASSWORD, role=ROLE_ADMIN)


@pytest.fixture
def member_client(member):
    return _login(member.email)


@pytest.fixture
def admin_client(admin):
    return _login(admin.email)
