#!/usr/bin/env python3
"""
Shared pytest fixtures: a throwaway SQLite database per test, an app wired to
it, and a logged-in client.
"""

import os
import sys

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.core.config import Settings
from app.db.base import init_db
from app.db.session import build_engine, build_sessionmaker
from app.main import create_app

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "senha123"
JWT_SECRET = "test-secret"


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        APP_ENV="testing",
        JWT_SECRET=JWT_SECRET,
        JWT_EXPIRES_IN="2h",
        SALT_ROUNDS=4,  # bcrypt minimum, keeps login fast
        ADMIN_USERNAME=ADMIN_USERNAME,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        RATE_LIMIT_MAX=10_000,
        ALLOWED_ORIGINS="http://localhost:3000",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def client(settings):
    """TestClient with lifespan: tables are created on enter, pool disposed on exit."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def token(client):
    response = client.post("/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def db_session(settings):
    """AsyncSession on a fresh SQLite file with the schema created."""
    engine = build_engine(settings)
    await init_db(engine)
    factory = build_sessionmaker(engine)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def consult_series():
    """The weekly three-occurrence request used throughout the API tests."""
    return {
        "title": "Consult",
        "start": "2024-01-01T10:00:00Z",
        "end": "2024-01-01T11:00:00Z",
        "repeat": "weekly",
        "times": 3,
    }


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Pure unit tests with no database")
    config.addinivalue_line("markers", "integration: Tests that go through the app and SQLite")
