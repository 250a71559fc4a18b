"""Shared fixtures: every test gets its own in-memory SQLite store."""

import pytest
from fastapi.testclient import TestClient

from db import build_engine, build_session_factory, create_tables
from settings import Settings
from students.repository import StudentRepository


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def repository(session_factory):
    return StudentRepository(session_factory)


@pytest.fixture
def ada():
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "date_of_birth": "1815-12-10",
        "gender": "Female",
        "address": "London",
        "course": "Mathematics",
        "year": 2,
        "gpa": 3.9,
    }


@pytest.fixture
def make_settings():
    def _make(**overrides):
        values = {
            "database_url": "sqlite://",
            "seed_sample_data": False,
            "require_auth": True,
            "credential_backend": "hashed",
            "token_format": "jwt",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def client(make_settings):
    from main import create_app

    with TestClient(create_app(make_settings())) as client:
        yield client


@pytest.fixture
def auth_headers(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
