"""Pytest fixtures for the helpdesk tests.

Uses a file-backed SQLite database and FastAPI TestClient. Overrides the
`get_db` dependency so tests are isolated from any real DB file.
"""

import os
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import helpdesk.database as database
from helpdesk.auth import get_password_hash
from helpdesk.main import app
from helpdesk.models import Base, OrganizationModel, ProfileModel


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///./test_helpdesk.db")

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and drop them after to ensure isolation."""
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    """Provide a SQLAlchemy session for direct DB access in tests."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[database.get_db] = _override_get_db

# Many logins per test run would trip the global limiter
app.state.limiter.enabled = False


@pytest.fixture()
def client():
    """FastAPI test client using the app with overridden dependencies."""
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def create_organization(db_session):
    def _create_organization(name: str | None = None, domain: str | None = None):
        name = name or ("org-" + uuid.uuid4().hex[:8])
        now = datetime.now(timezone.utc)
        org = OrganizationModel(id=str(uuid.uuid4()), name=name, domain=domain, created_at=now, updated_at=now)
        db_session.add(org)
        db_session.commit()
        db_session.refresh(org)
        return org

    return _create_organization


@pytest.fixture()
def create_user(db_session):
    """Create a profile directly in the DB."""
    def _create_user(role: str = "user", organization_id: str | None = None, email: str | None = None, password: str = "secret123", **kwargs):
        email = email or (f"{role}_{uuid.uuid4().hex[:8]}@example.com")
        now = datetime.now(timezone.utc)
        profile = ProfileModel(
            id=str(uuid.uuid4()),
            email=email.lower(),
            full_name=kwargs.get("full_name") or email.split("@")[0],
            hashed_password=get_password_hash(password),
            role=role,
            organization_id=organization_id,
            phone=kwargs.get("phone"),
            is_active=kwargs.get("is_active", True),
            created_at=now,
            updated_at=now,
        )
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile

    return _create_user


@pytest.fixture()
def auth_headers(client, create_user):
    """Return a helper creating a profile and logging it in."""
    def _auth_headers(role: str = "user", organization_id: str | None = None, email: str | None = None, password: str = "secret123", **kwargs):
        profile = create_user(role=role, organization_id=organization_id, email=email, password=password, **kwargs)
        resp = client.post("/api/auth/login", json={"email": profile.email, "password": password})
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}, profile

    return _auth_headers


@pytest.fixture()
def org(create_organization):
    return create_organization(name="Acme", domain="acme.example.com")


@pytest.fixture()
def open_ticket(client):
    """Create a ticket through the API as the given requester and return its JSON."""
    def _open_ticket(headers, **overrides):
        payload = {
            "title": "Broken air conditioning",
            "description": "The unit on the second floor is leaking water.",
            "priority": "high",
            "category": "maintenance",
        }
        payload.update(overrides)
        r = client.post("/api/tickets/", json=payload, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()

    return _open_ticket


@pytest.fixture()
def error_code():
    """Extract the error code from either {"error": ...} or {"detail": {"error": ...}} bodies."""
    def _error_code(resp):
        body = resp.json()
        error = body.get("error") or (isinstance(body.get("detail"), dict) and body["detail"].get("error"))
        return error.get("code") if error else None

    return _error_code
