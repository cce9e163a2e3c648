"""Shared fixtures: an in-memory MongoDB and an authenticated API client."""

import sys
from contextlib import contextmanager
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import database
import main


@contextmanager
def _no_transaction():
    # mongomock has no sessions; writes run unbatched
    yield None


@pytest.fixture
def mongo_db(monkeypatch):
    """Point the API at a fresh mongomock database."""
    mock_db = mongomock.MongoClient().tracker
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(main, "db", mock_db)
    monkeypatch.setattr(main, "transaction", _no_transaction)
    monkeypatch.setenv("AUTH_REQUIRED", "true")
    return mock_db


def add_user(mock_db, name: str, token: str) -> str:
    result = mock_db["user"].insert_one({
        "name": name,
        "email": f"{name.lower()}@example.com",
        "api_token": token,
        "points": 0,
        "experience": 0,
        "level": 1,
    })
    return str(result.inserted_id)


@pytest.fixture
def user_id(mongo_db):
    return add_user(mongo_db, "Ada", "token-ada")


@pytest.fixture
def api(mongo_db, user_id):
    """TestClient authenticated as Ada."""
    client = TestClient(main.app)
    client.headers.update({"Authorization": "Bearer token-ada"})
    return client


@pytest.fixture
def client_id(api):
    """A client with a 10 hour / 80 per hour budget."""
    response = api.post("/api/clients", json={
        "name": "Acme",
        "profitability": {"hourly_rate": 80, "target_hours": 10, "monthly_budget": 800},
    })
    assert response.status_code == 201
    return response.json()["_id"]
