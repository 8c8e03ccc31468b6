"""
Shared fixtures.

Every service runs against its own in-memory SQLite database. The user service
talks to a real permission service app: its ``PermissionClient`` is handed a
``TestClient`` (an ``httpx.Client``) bound to the permission app.
"""
import os

# must be set before any service module reads its settings
os.environ["INIT_SUPER_ADMIN"] = "false"
os.environ["AUDIT_LOG_ENABLED"] = "false"
os.environ["USER_DATABASE_URL"] = "sqlite://"
os.environ["PERMISSION_DATABASE_URL"] = "sqlite://"
os.environ["LOGGING_DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pm_platform.common.audit import get_operation_log_publisher
from pm_platform.common.roles import RoleCode
from pm_platform.common.security import create_access_token
from pm_platform.logging_service import db as logging_db
from pm_platform.logging_service import models as logging_models  # noqa: F401
from pm_platform.logging_service.main import app as logging_app
from pm_platform.permission_service import db as permission_db
from pm_platform.permission_service import service as permission_service
from pm_platform.permission_service import models as permission_models
from pm_platform.permission_service.main import app as permission_app
from pm_platform.user_service import db as user_db
from pm_platform.user_service import models as user_models  # noqa: F401
from pm_platform.user_service.main import app as user_app
from pm_platform.user_service.permission_client import PermissionClient, get_permission_client


def make_session_factory(base):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def override_db(session_factory):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()
    return _get_db


class RecordingPublisher:
    """Stands in for OperationLogPublisher and keeps every published message."""

    def __init__(self):
        self.messages = []

    def publish(self, message):
        self.messages.append(message)
        return True

    def actions(self):
        return [message.action for message in self.messages]


@pytest.fixture
def audit_log():
    return RecordingPublisher()


@pytest.fixture
def permission_sessions():
    factory = make_session_factory(permission_db.Base)
    db = factory()
    try:
        permission_service.seed_roles(db)
    finally:
        db.close()
    return factory


@pytest.fixture
def user_sessions():
    return make_session_factory(user_db.Base)


@pytest.fixture
def logging_sessions():
    return make_session_factory(logging_db.Base)


@pytest.fixture
def permission_api(permission_sessions, audit_log):
    permission_app.dependency_overrides[permission_db.get_db] = override_db(permission_sessions)
    permission_app.dependency_overrides[get_operation_log_publisher] = lambda: audit_log
    yield TestClient(permission_app)
    permission_app.dependency_overrides.clear()


@pytest.fixture
def permission_client(permission_api):
    return PermissionClient(client=permission_api)


@pytest.fixture
def user_api(user_sessions, permission_client, audit_log):
    user_app.dependency_overrides[user_db.get_db] = override_db(user_sessions)
    user_app.dependency_overrides[get_permission_client] = lambda: permission_client
    user_app.dependency_overrides[get_operation_log_publisher] = lambda: audit_log
    yield TestClient(user_app)
    user_app.dependency_overrides.clear()


@pytest.fixture
def logging_api(logging_sessions):
    logging_app.dependency_overrides[logging_db.get_db] = override_db(logging_sessions)
    yield TestClient(logging_app)
    logging_app.dependency_overrides.clear()


def auth_headers(user_id: int, username: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, username)}"}


def set_role(permission_sessions, user_id: int, code: RoleCode) -> None:
    """Rebind ``user_id`` to ``code`` directly in the permission database."""
    db = permission_sessions()
    try:
        role = permission_service.find_role(db, code)
        binding = db.query(permission_models.UserRole).filter(
            permission_models.UserRole.user_id == user_id
        ).first()
        if binding is None:
            db.add(permission_models.UserRole(user_id=user_id, role_id=role.role_id))
        else:
            binding.role_id = role.role_id
        db.commit()
    finally:
        db.close()


@pytest.fixture
def register_user(user_api):
    """Register through the API and return ``(user_id, auth headers)``."""
    def _register(username, password="secret123", email=None, phone=None):
        payload = {"username": username, "password": password}
        if email is not None:
            payload["email"] = email
        if phone is not None:
            payload["phone"] = phone
        response = user_api.post("/user/register", json=payload)
        assert response.status_code == 201, response.text
        user_id = response.json()["data"]["userId"]
        return user_id, auth_headers(user_id, username)
    return _register
