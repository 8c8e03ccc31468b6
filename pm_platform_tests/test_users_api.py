"""
End-to-end tests of the user service against a live permission service app.
"""
import httpx
import pytest
from datetime import datetime, timedelta

from pm_platform.common.roles import RoleCode
from pm_platform.permission_service import service as permission_service
from pm_platform.user_service.models import User
from pm_platform.user_service.permission_client import PermissionClient, get_permission_client
from pm_platform.user_service.main import app as user_app

from .conftest import auth_headers, set_role


def role_of(permission_sessions, user_id):
    db = permission_sessions()
    try:
        role = permission_service.get_user_role(db, user_id)
        return role.role_code if role else None
    finally:
        db.close()


@pytest.fixture
def super_admin(register_user, permission_sessions):
    user_id, _ = register_user("super_admin", "super_admin")
    set_role(permission_sessions, user_id, RoleCode.SUPER_ADMIN)
    return user_id, auth_headers(user_id, "super_admin")


@pytest.fixture
def admin(register_user, permission_sessions):
    user_id, headers = register_user("admin_one")
    set_role(permission_sessions, user_id, RoleCode.ADMIN)
    return user_id, headers


def set_created(user_sessions, user_id, when):
    db = user_sessions()
    try:
        user = db.query(User).filter(User.user_id == user_id).first()
        user.gmt_create = when
        user.gmt_modified = when
        db.commit()
    finally:
        db.close()


# ---------- registration and login ----------

def test_register_binds_default_role(user_api, permission_sessions, audit_log):
    response = user_api.post("/user/register", json={
        "username": "alice",
        "password": "secret123",
        "email": "alice@example.com",
        "phone": "13800000001",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "201"
    assert body["data"]["username"] == "alice"
    assert role_of(permission_sessions, body["data"]["userId"]) == "user"
    assert audit_log.actions() == ["REGISTER"]


def test_register_duplicate_username(user_api, register_user):
    register_user("alice")
    response = user_api.post("/user/register", json={"username": "alice", "password": "secret123"})

    assert response.status_code == 409
    assert response.json() == {"code": "409", "message": "Username already exists: alice", "data": None}


@pytest.mark.parametrize("payload", [
    {"username": "al", "password": "secret123"},
    {"username": "alice", "password": "123"},
    {"username": "alice", "password": "secret123", "phone": "12345"},
    {"username": "alice", "password": "secret123", "email": "not-an-email"},
    {"password": "secret123"},
])
def test_register_rejects_invalid_payload(user_api, payload):
    response = user_api.post("/user/register", json=payload)
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "400"
    assert body["data"] is None
    assert body["message"].startswith("Parameter validation failed")


def test_register_rolls_back_when_role_binding_fails(user_api, user_sessions, audit_log):
    def unavailable(request):
        raise httpx.ConnectError("connection refused", request=request)

    broken = PermissionClient(client=httpx.Client(
        transport=httpx.MockTransport(unavailable), base_url="http://permission"
    ))
    user_app.dependency_overrides[get_permission_client] = lambda: broken

    response = user_api.post("/user/register", json={"username": "alice", "password": "secret123"})

    assert response.status_code == 503
    assert response.json()["code"] == "503"
    db = user_sessions()
    try:
        assert db.query(User).count() == 0
    finally:
        db.close()
    assert audit_log.messages == []


def test_register_recovers_when_role_bound_but_answer_lost(
    user_api, permission_api, permission_client, permission_sessions, user_sessions
):
    def bind_then_time_out(request):
        permission_api.request(request.method, request.url.path, params=request.url.params)
        raise httpx.ReadTimeout("timed out", request=request)

    lossy = PermissionClient(client=httpx.Client(
        transport=httpx.MockTransport(bind_then_time_out), base_url="http://permission"
    ))
    user_app.dependency_overrides[get_permission_client] = lambda: lossy

    first = user_api.post("/user/register", json={"username": "alice", "password": "secret123"})
    assert first.status_code == 503

    user_app.dependency_overrides[get_permission_client] = lambda: permission_client
    responses = [
        user_api.post("/user/register", json={"username": name, "password": "secret123"})
        for name in ("bob", "carol", "dave")
    ]

    assert [r.status_code for r in responses] == [201, 201, 201]
    for response in responses:
        assert role_of(permission_sessions, response.json()["data"]["userId"]) == "user"
    db = user_sessions()
    try:
        assert sorted(u.username for u in db.query(User).all()) == ["bob", "carol", "dave"]
    finally:
        db.close()


def test_login_returns_token_usable_for_info(user_api, register_user, audit_log):
    user_id, _ = register_user("alice", email="alice@example.com")

    response = user_api.post("/user/login", json={"username": "alice", "password": "secret123"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["userId"] == user_id
    assert data["expiresIn"] == 3600
    assert "REGISTER" in audit_log.actions() and "LOGIN" in audit_log.actions()

    info = user_api.get("/user/info", headers={"Authorization": f"Bearer {data['token']}"})
    assert info.status_code == 200
    assert info.json()["data"]["email"] == "alice@example.com"
    assert "password" not in info.json()["data"]


@pytest.mark.parametrize("username,password", [("alice", "wrongpass"), ("nobody", "secret123")])
def test_login_rejects_bad_credentials_with_one_message(user_api, register_user, username, password):
    register_user("alice")
    response = user_api.post("/user/login", json={"username": username, "password": password})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid username or password"


def test_info_requires_token(user_api):
    assert user_api.get("/user/info").status_code == 401
    bad = user_api.get("/user/info", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    assert bad.json()["code"] == "401"


# ---------- profile and password ----------

def test_update_profile_records_changes(user_api, register_user, audit_log):
    _, headers = register_user("alice", email="old@example.com")

    response = user_api.put("/user/info", json={"email": "new@example.com"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["email"] == "new@example.com"
    message = audit_log.messages[-1]
    assert message.action == "UPDATE_PROFILE"
    assert '"old": "old@example.com"' in message.detail
    assert '"new": "new@example.com"' in message.detail


def test_update_profile_requires_a_field(user_api, register_user):
    _, headers = register_user("alice")
    response = user_api.put("/user/info", json={"email": " "}, headers=headers)
    assert response.status_code == 400


def test_change_password(user_api, register_user, audit_log):
    _, headers = register_user("alice")

    wrong = user_api.put("/user/password", json={"oldPassword": "nope", "newPassword": "newsecret"}, headers=headers)
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Old password is incorrect"

    ok = user_api.put("/user/password", json={"oldPassword": "secret123", "newPassword": "newsecret"}, headers=headers)
    assert ok.status_code == 200
    assert audit_log.actions()[-1] == "CHANGE_PASSWORD"

    assert user_api.post("/user/login", json={"username": "alice", "password": "newsecret"}).status_code == 200
    assert user_api.post("/user/login", json={"username": "alice", "password": "secret123"}).status_code == 401


# ---------- viewing and resetting other users ----------

def test_plain_user_cannot_view_others(user_api, register_user):
    _, headers = register_user("alice")
    bob_id, _ = register_user("bob")
    assert user_api.get(f"/user/{bob_id}", headers=headers).status_code == 403


def test_admin_views_plain_user_but_not_admins(user_api, register_user, admin, super_admin):
    admin_id, admin_headers = admin
    super_id, _ = super_admin
    bob_id, _ = register_user("bob")

    assert user_api.get(f"/user/{bob_id}", headers=admin_headers).json()["data"]["username"] == "bob"
    assert user_api.get(f"/user/{super_id}", headers=admin_headers).status_code == 403
    assert user_api.get(f"/user/{admin_id}", headers=admin_headers).status_code == 403


def test_view_missing_user_is_404(user_api, super_admin):
    _, headers = super_admin
    response = user_api.get("/user/9999", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "404"


def test_admin_resets_plain_user_password(user_api, register_user, admin, audit_log):
    _, admin_headers = admin
    bob_id, _ = register_user("bob")

    response = user_api.post(f"/user/{bob_id}/reset-password", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["newPassword"] == "123456"
    assert audit_log.actions()[-1] == "RESET_PASSWORD"
    assert user_api.post("/user/login", json={"username": "bob", "password": "123456"}).status_code == 200


def test_admin_cannot_reset_super_admin(user_api, admin, super_admin):
    _, admin_headers = admin
    super_id, _ = super_admin
    assert user_api.post(f"/user/{super_id}/reset-password", headers=admin_headers).status_code == 403


def test_super_admin_cannot_reset_itself(user_api, super_admin):
    super_id, headers = super_admin
    assert user_api.post(f"/user/{super_id}/reset-password", headers=headers).status_code == 403


# ---------- listing ----------

def test_listing_example_page(user_api, register_user, user_sessions, super_admin):
    super_id, headers = super_admin
    set_created(user_sessions, super_id, datetime(2024, 1, 1, 0, 0, 0))
    start = datetime(2024, 1, 15, 10, 0, 0)
    for offset, name in enumerate(["first", "second", "third"]):
        user_id, _ = register_user(name)
        set_created(user_sessions, user_id, start + timedelta(minutes=offset))

    response = user_api.get("/user/users?page=1&size=2&sort=gmtCreate,desc", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["code"] == "200"
    data = body["data"]
    assert [u["username"] for u in data["users"]] == ["third", "second"]
    assert data["totalElements"] == 3
    assert data["totalPages"] == 2
    assert data["currentPage"] == 1
    assert data["pageSize"] == 2
    assert data["hasNext"] is True
    assert data["hasPrevious"] is False
    assert data["isFirst"] is True
    assert data["isLast"] is False
    assert data["users"][0]["gmtCreate"] == "2024-01-15 10:02:00"
    assert set(data["users"][0]) == {"userId", "username", "email", "phone", "gmtCreate", "gmtModified"}


def test_listing_role_visibility(user_api, register_user, admin, super_admin):
    admin_id, admin_headers = admin
    super_id, super_headers = super_admin
    bob_id, bob_headers = register_user("bob")

    admin_view = user_api.get("/user/users", headers=admin_headers).json()["data"]
    super_view = user_api.get("/user/users", headers=super_headers).json()["data"]

    assert {u["userId"] for u in admin_view["users"]} == {bob_id}
    assert {u["userId"] for u in super_view["users"]} == {bob_id, admin_id}
    assert super_id not in {u["userId"] for u in super_view["users"]}

    assert user_api.get("/user/users", headers=bob_headers).status_code == 403


def test_listing_follows_role_changes(user_api, permission_api, register_user, super_admin):
    _, super_headers = super_admin
    bob_id, bob_headers = register_user("bob")
    carol_id, _ = register_user("carol")

    upgrade = permission_api.put(f"/permission/user/{bob_id}/upgrade-to-admin", headers=super_headers)
    assert upgrade.status_code == 200

    bob_view = user_api.get("/user/users", headers=bob_headers)
    assert bob_view.status_code == 200
    assert [u["userId"] for u in bob_view.json()["data"]["users"]] == [carol_id]


def test_listing_filters(user_api, register_user, super_admin):
    _, headers = super_admin
    register_user("alice", email="alice@example.com", phone="13800000001")
    register_user("bob", email="bob@example.com", phone="13900000002")

    response = user_api.get("/user/users", params={"username": "ALI", "phone": "138"}, headers=headers)

    data = response.json()["data"]
    assert [u["username"] for u in data["users"]] == ["alice"]
    assert data["totalElements"] == 1


@pytest.mark.parametrize("query,message_part", [
    ("size=101", "size"),
    ("size=0", "size"),
    ("page=0", "page"),
    ("page=abc", "page"),
    ("sort=password,asc", "password"),
    ("sort=username,up", "up"),
    ("gmtCreateStart=2024-13-01%2000:00:00", "gmtCreateStart"),
])
def test_listing_rejects_invalid_parameters(user_api, super_admin, query, message_part):
    _, headers = super_admin
    response = user_api.get(f"/user/users?{query}", headers=headers)
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "400"
    assert body["data"] is None
    assert message_part in body["message"]


def test_listing_far_past_the_last_page(user_api, register_user, super_admin):
    _, headers = super_admin
    register_user("bob")

    response = user_api.get("/user/users?page=10000000000000000000", headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["users"] == []
    assert data["totalElements"] == 1
    assert data["currentPage"] == 10 ** 19
    assert data["hasNext"] is False
    assert data["isLast"] is True


@pytest.mark.parametrize("query", ["page=1_0", "size=1_0", "page=%D9%A3", "page=%2B2", "size=-5"])
def test_listing_rejects_loosely_formatted_numbers(user_api, super_admin, query):
    _, headers = super_admin
    response = user_api.get(f"/user/users?{query}", headers=headers)
    assert response.status_code == 400


def test_listing_accepts_max_page_size(user_api, super_admin):
    _, headers = super_admin
    response = user_api.get("/user/users?size=100", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["pageSize"] == 100


def test_listing_empty_result(user_api, super_admin):
    _, headers = super_admin
    data = user_api.get("/user/users", headers=headers).json()["data"]
    assert data["users"] == []
    assert data["totalElements"] == 0
    assert data["totalPages"] == 0
    assert data["isFirst"] is True
    assert data["isLast"] is True


def test_listing_requires_token(user_api):
    response = user_api.get("/user/users")
    assert response.status_code == 401


def test_listing_fails_closed_when_permission_service_times_out(user_api, admin):
    _, headers = admin

    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    slow = PermissionClient(client=httpx.Client(transport=httpx.MockTransport(timeout), base_url="http://permission"))
    user_app.dependency_overrides[get_permission_client] = lambda: slow

    response = user_api.get("/user/users", headers=headers)

    assert response.status_code == 503
    assert response.json() == {"code": "503", "message": "Permission service timed out", "data": None}


def test_listing_fails_closed_when_admin_lookup_breaks(user_api, admin):
    admin_id, headers = admin

    def role_ok_ids_broken(request):
        if request.url.path.endswith("/role"):
            return httpx.Response(200, json={"code": "200", "message": "OK", "data": {"roleCode": "admin", "roleName": "Admin"}})
        return httpx.Response(500, json={"code": "500", "message": "Internal server error", "data": None})

    flaky = PermissionClient(client=httpx.Client(
        transport=httpx.MockTransport(role_ok_ids_broken), base_url="http://permission"
    ))
    user_app.dependency_overrides[get_permission_client] = lambda: flaky

    response = user_api.get("/user/users", headers=headers)

    assert response.status_code == 503
    assert response.json()["data"] is None


def test_health(user_api):
    response = user_api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
