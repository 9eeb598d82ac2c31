"""
Shared fixtures: in-memory SQLite database, a TestClient wired to it, and
helpers to register orgs and add team members.
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "development"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stormdesk.auth import create_access_token, hash_password
from stormdesk.database import Base, get_db
from stormdesk.main import app
from stormdesk.models.db_models import MembershipDB, UserDB

DEFAULT_PASSWORD = "password123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register a user + org through the API. Returns token, headers and ids."""

    def _register(email=None, org_name="Acme Roofing", full_name="Pat Admin"):
        email = email or f"admin-{uuid4().hex[:8]}@example.com"
        response = client.post("/auth/register", json={
            "email": email,
            "password": DEFAULT_PASSWORD,
            "full_name": full_name,
            "org_name": org_name,
        })
        assert response.status_code == 201, response.text
        body = response.json()
        return {
            "email": email,
            "token": body["access_token"],
            "org_id": body["org_id"],
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }

    return _register


@pytest.fixture
def add_member(db_session):
    """Create a user with ``role`` in an existing org and return auth headers for it."""

    def _add_member(org_id, role="member", email=None):
        user = UserDB(
            id=str(uuid4()),
            email=email or f"{role}-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(DEFAULT_PASSWORD),
            full_name=f"Test {role.title()}",
        )
        db_session.add(user)
        db_session.add(MembershipDB(id=str(uuid4()), user_id=user.id, org_id=org_id, role=role))
        db_session.commit()
        token = create_access_token(user.id, user.email, org_id, role)
        return {
            "user_id": user.id,
            "email": user.email,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _add_member


@pytest.fixture
def org(register):
    return register()


@pytest.fixture
def other_org(register):
    return register(org_name="Rival Exteriors")
