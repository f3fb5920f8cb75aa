from datetime import timedelta

from fastapi.testclient import TestClient
from pydantic import SecretStr

from jabuspark.core.auth import issue_session, resolve_session
from jabuspark.core.config import DEFAULT_SETUP_KEY
from jabuspark.main import create_app
from jabuspark.models.orm import User, UserSession

from conftest import SETUP_KEY


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"status": "ok"}}


def test_register_returns_session_and_defaults(client):
    r = client.post("/auth/register", json={"email": "  Jane.Doe@Example.com ", "password": "secret1"})
    assert r.status_code == 201
    data = r.json()["data"]
    assert len(data["token"]) == 64
    assert data["user"]["email"] == "jane.doe@example.com"
    assert data["user"]["fullName"] == "JANE DOE"
    assert data["user"]["role"] == "student"
    assert data["user"]["profile"] == {"facultyId": None, "departmentId": None, "level": None, "courseIds": []}

    r = client.get("/progress", headers={"Authorization": f"Bearer {data['token']}"})
    assert r.status_code == 200
    progress = r.json()["data"]["progress"]
    assert progress["streak"] == 1
    assert progress["totalAnswered"] == 0
    assert progress["accuracy"] == 0


def test_register_rejects_duplicates_and_bad_input(client, student):
    r = client.post("/auth/register", json={"email": "ADA@example.com", "password": "secret123"})
    assert r.status_code == 409
    assert r.json() == {"success": False, "error": "Email already registered"}

    r = client.post("/auth/register", json={"email": "not-an-email", "password": "secret123"})
    assert r.status_code == 422
    assert r.json()["success"] is False

    r = client.post("/auth/register", json={"email": "short@example.com", "password": "abc"})
    assert r.status_code == 422
    assert r.json()["error"] == "Password must be at least 6 characters"

    r = client.post("/auth/register", json={"password": "secret123"})
    assert r.status_code == 422
    assert r.json()["error"] == "Missing field: email"


def test_login_and_me(client, student):
    r = client.post("/auth/login", json={"email": "ada@example.com", "password": "wrong-pass"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"

    r = client.post("/auth/login", json={"email": "Ada@Example.com", "password": "secret123"})
    assert r.status_code == 200
    token = r.json()["data"]["token"]
    assert token != student["token"]

    # Both sessions stay valid
    for t in (token, student["token"]):
        r = client.get("/me", headers={"Authorization": f"Bearer {t}"})
        assert r.status_code == 200
        assert r.json()["data"]["user"]["fullName"] == "Ada L"


def test_missing_or_bogus_token(client):
    r = client.get("/me")
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Unauthorized"}

    r = client.get("/progress", headers={"Authorization": "Bearer deadbeef"})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Invalid or expired session"}


def test_expired_session_stops_resolving(client, student, session_factory):
    with session_factory() as s:
        user = s.get(User, student["id"])
        token, expires_at = issue_session(s, user, ttl_days=-1)
    r = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401

    with session_factory() as s:
        # Expired rows are ignored, not purged
        assert s.query(UserSession).filter(UserSession.user_id == student["id"]).count() == 2


def test_session_expires_at_its_deadline(make_user, db):
    user = make_user()
    token, expires_at = issue_session(db, user, ttl_days=1)
    deadline = expires_at.replace(tzinfo=None)

    assert resolve_session(db, token, now=deadline - timedelta(seconds=1)).id == user.id
    assert resolve_session(db, token, now=deadline) is None
    assert resolve_session(db, token, now=deadline + timedelta(seconds=1)) is None


def test_session_ttl_is_fixed(client, student, session_factory, settings):
    with session_factory() as s:
        row = s.query(UserSession).filter(UserSession.user_id == student["id"]).one()
        assert row.expires_at - row.created_at == timedelta(days=settings.SESSION_TTL_DAYS)
        assert row.token_hash != student["token"]


def test_logout_is_idempotent(client, student):
    r = client.post("/auth/logout", headers=student["headers"])
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"loggedOut": True}}

    r = client.get("/me", headers=student["headers"])
    assert r.status_code == 401

    assert client.post("/auth/logout", headers=student["headers"]).status_code == 200
    assert client.post("/auth/logout").status_code == 200


def test_profile_patch_is_partial(client, student):
    r = client.patch("/me/profile", headers=student["headers"], json={
        "facultyId": "sci", "departmentId": "csc", "level": 200, "courseIds": ["CSC201", "MTH201", "CSC201", ""],
    })
    assert r.status_code == 200
    profile = r.json()["data"]["user"]["profile"]
    assert profile["facultyId"] == "sci"
    assert profile["level"] == 200
    assert sorted(profile["courseIds"]) == ["CSC201", "MTH201"]

    r = client.patch("/me/profile", headers=student["headers"], json={"level": 300, "departmentId": None})
    profile = r.json()["data"]["user"]["profile"]
    assert profile == {"facultyId": "sci", "departmentId": "csc", "level": 300, "courseIds": ["CSC201", "MTH201"]}

    r = client.patch("/me/profile", headers=student["headers"], json={"courseIds": ["GST101"]})
    assert r.json()["data"]["user"]["profile"]["courseIds"] == ["GST101"]

    r = client.patch("/me/profile", headers=student["headers"], json={"courseIds": []})
    assert r.json()["data"]["user"]["profile"]["courseIds"] == []


def test_setup_requires_key(client):
    r = client.post("/setup/create-admin?key=wrong", json={"password": "long-enough-pw"})
    assert r.status_code == 403
    assert r.json() == {"success": False, "error": "Invalid setup key"}


def test_setup_creates_then_reports_admin(client):
    r = client.post(f"/setup/create-admin?key={SETUP_KEY}", json={"password": "long-enough-pw"})
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["message"] == "Admin created"
    assert data["email"] == "admin@jabuspark.com"
    assert "password" not in data

    r = client.post(f"/setup/create-admin?key={SETUP_KEY}", json={"password": "long-enough-pw"})
    assert r.status_code == 200
    assert r.json()["data"]["message"] == "Admin already exists"

    r = client.post("/auth/login", json={"email": "admin@jabuspark.com", "password": "long-enough-pw"})
    assert r.json()["data"]["user"]["role"] == "admin"


def test_setup_promotes_existing_user(client, student):
    r = client.post(f"/setup/create-admin?key={SETUP_KEY}", json={"email": "ada@example.com", "password": "irrelevant1"})
    assert r.status_code == 200
    assert r.json()["data"]["message"] == "User promoted to admin"

    r = client.get("/me", headers=student["headers"])
    assert r.json()["data"]["user"]["role"] == "admin"


def test_setup_rejects_short_password(client):
    r = client.post(f"/setup/create-admin?key={SETUP_KEY}", json={"password": "short"})
    assert r.status_code == 422


def test_setup_disabled_while_key_is_default(settings, engine):
    app = create_app(settings.model_copy(update={"SETUP_KEY": SecretStr(DEFAULT_SETUP_KEY)}), engine)
    with TestClient(app) as c:
        r = c.post(f"/setup/create-admin?key={DEFAULT_SETUP_KEY}", json={"password": "long-enough-pw"})

    assert r.status_code == 403
    assert r.json() == {"success": False, "error": "Setup key not configured"}


def test_profile_fields_must_fit_their_columns(client, student):
    client.patch("/me/profile", headers=student["headers"], json={"facultyId": "sci", "courseIds": ["CSC201"]})

    for body in (
        {"facultyId": "f" * 65},
        {"departmentId": "d" * 65},
        {"level": 2**31},
        {"level": -1},
        {"courseIds": ["CSC201", "c" * 65]},
    ):
        r = client.patch("/me/profile", headers=student["headers"], json=body)
        assert r.status_code == 422, body
        assert r.json()["success"] is False

    profile = client.get("/me", headers=student["headers"]).json()["data"]["user"]["profile"]
    assert profile == {"facultyId": "sci", "departmentId": None, "level": None, "courseIds": ["CSC201"]}


def test_register_rejects_oversized_name(client):
    r = client.post("/auth/register", json={"email": "long@example.com", "password": "secret123", "fullName": "n" * 256})
    assert r.status_code == 422
    assert r.json()["error"].startswith("Invalid field: fullName")
