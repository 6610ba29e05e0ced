"""
Shared fixtures: an isolated SQLite database, in-memory cache and no rate limits.
"""
import os
import tempfile

# Must be set before notelink modules read their configuration at import time
_tmpdir = tempfile.mkdtemp(prefix="notelink-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("OPENAI_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from notelink.db import engine
from notelink.main import app
from notelink.services.cache import cache


@pytest.fixture
def db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    cache._memory_cache.clear()
    yield engine


@pytest.fixture
def make_client(db):
    """Factory for independent clients, each with its own session cookie."""
    def _make(username=None, password="password123"):
        client = TestClient(app)
        if username:
            response = client.post("/api/register", json={"username": username, "password": password})
            assert response.status_code == 200, response.text
        return client
    return _make


@pytest.fixture
def client(make_client):
    return make_client("alice")


NOTE_BODY = "# 第1章\n光合成とは、植物が光エネルギーを使って栄養を作る過程である。"


@pytest.fixture
def note_payload():
    return {
        "university_name": "東京大学",
        "author_name": "alice",
        "course_name": "生物学",
        "lecture_no": "1",
        "lecture_date": "2024-04-10",
        "title": "光合成",
        "body_raw": NOTE_BODY,
        "visibility": "public",
    }
