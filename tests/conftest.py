"""
Pytest configuration and fixtures
"""
import os

# Settings are read once; point them at an in-memory database before any app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

import models  # noqa: F401
from db import build_engine, get_session
from main import app
from models import AidRequest, Resource, User
from routers.auth import create_session_token, hash_password

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory schema for each test"""
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(engine):
    """Test client with the database dependency pointed at the test engine"""

    def override_get_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role: str, email: Optional[str] = None, first_name: str = "Test") -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@example.com",
            first_name=first_name,
            last_name=f"{role.title()}{counter['n']}",
            role=role,
            password_hash=hash_password(DEFAULT_PASSWORD),
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_request(session):
    def _make(
        requester: User,
        aid_type: str = "water",
        quantity: int = 1,
        urgency: str = "low",
        latitude: float = 0.0,
        longitude: float = 0.0,
        created_at: Optional[datetime] = None,
        status: str = "pending",
    ) -> AidRequest:
        req = AidRequest(
            requester_id=requester.id,
            aid_type=aid_type,
            quantity=quantity,
            urgency=urgency,
            latitude=latitude,
            longitude=longitude,
            status=status,
        )
        if created_at is not None:
            req.created_at = created_at
        session.add(req)
        session.commit()
        session.refresh(req)
        return req

    return _make


@pytest.fixture
def make_resource(session):
    def _make(
        donor: User,
        resource_type: str = "water",
        quantity: int = 10,
        latitude: float = 0.0,
        longitude: float = 0.0,
    ) -> Resource:
        resource = Resource(
            donor_id=donor.id,
            resource_type=resource_type,
            quantity=quantity,
            latitude=latitude,
            longitude=longitude,
        )
        session.add(resource)
        session.commit()
        session.refresh(resource)
        return resource

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user.id)}"}


def ts(minute: int) -> datetime:
    return datetime(2024, 1, 1, 12, minute, tzinfo=timezone.utc)
