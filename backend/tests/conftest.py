import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Point the app at a throwaway SQLite file before `arena` is imported.
_DB_DIR = Path(tempfile.mkdtemp(prefix="arena-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def reset_db():
    """Ensure fresh tables and an empty login limiter for every test."""
    from arena import main
    from arena.database import create_db_and_tables, drop_db_and_tables
    drop_db_and_tables()
    create_db_and_tables()
    main._login_limiter.clear()
    yield


@pytest.fixture
def client():
    from arena.main import app
    return TestClient(app)


@pytest.fixture
def signup(client):
    """Create a member through the API and return auth headers for it."""
    def _signup(email="admin@arenapark.com", role="ADMIN", areas=None, name="Admin", password=DEFAULT_PASSWORD):
        body = {"name": name, "email": email, "phone": "+55 11 90000-0000", "password": password, "role": role}
        if areas is not None:
            body["areas"] = areas
        r = client.post("/members", json=body)
        assert r.status_code == 201, r.text
        login = client.post("/sessions", json={"email": email, "password": password})
        assert login.status_code == 201, login.text
        return {"Authorization": f"Bearer {login.json()['token']}"}
    return _signup


@pytest.fixture
def athlete_id(client, signup):
    headers = signup(email="owner@arenapark.com")
    r = client.post(
        "/athletes",
        json={"name": "Joana Silva", "birth_date": "2008-04-12", "gender": "FEMALE"},
        headers=headers,
    )
    assert r.status_code == 201
    return r.json()["athlete_id"]
