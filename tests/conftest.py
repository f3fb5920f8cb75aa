"""
Test fixtures: a file-backed SQLite database per test, the app built on top of it,
and small factories for users and banks.
"""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from jabuspark.core.config import Settings
from jabuspark.core.database import build_engine, init_db, make_session_factory
from jabuspark.main import create_app
from jabuspark.services.accounts import register
from jabuspark.services.banks import create_bank

TODAY = date(2024, 3, 10)
SETUP_KEY = "test-setup-key"
ALLOWED_ORIGIN = "http://localhost:5173"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        ENVIRONMENT="testing",
        SETUP_KEY=SETUP_KEY,
        CORS_ORIGIN=ALLOWED_ORIGIN,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(session_factory):
    def _make(email="student@example.com", password="secret123", today=TODAY):
        with session_factory() as s:
            return register(s, email, password, today=today)
    return _make


@pytest.fixture
def make_bank(session_factory):
    def _make(questions=None, course_id="CSC101", title="Intro to Computing", created_by="seed"):
        questions = questions or [
            {"id": "q1", "question": "2 + 2?", "options": ["4", "5"], "answerIndex": 0, "explanation": "Basic sum"},
            {"id": "q2", "question": "Capital of Nigeria?", "options": ["Lagos", "Ibadan", "Abuja"], "answerIndex": 2},
            {"id": "q3", "prompt": "Binary of 2?", "options": ["10", "11"], "answerIndex": 0, "explain": "Base two"},
        ]
        with session_factory() as s:
            return create_bank(s, created_by, course_id, title, "practice", questions)
    return _make


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student(client):
    r = client.post("/auth/register", json={"email": "ada@example.com", "password": "secret123", "fullName": "Ada L"})
    assert r.status_code == 201
    data = r.json()["data"]
    return {"id": data["user"]["id"], "token": data["token"], "headers": auth_headers(data["token"])}


@pytest.fixture
def admin(client):
    r = client.post("/auth/register", json={"email": "boss@example.com", "password": "secret123"})
    assert r.status_code == 201
    token = r.json()["data"]["token"]
    r = client.post(f"/setup/create-admin?key={SETUP_KEY}", json={"email": "boss@example.com", "password": "whatever-long"})
    assert r.status_code == 200
    return {"token": token, "headers": auth_headers(token)}
