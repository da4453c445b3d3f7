"""
Shared fixtures: a throw-away SQLite database, the Flask app and fakes.
"""

import json

import pytest

from emr.api.app import create_app
from emr.database import init_engine
from emr.store import EmrStore


# ── Fakes ────────────────────────────────────────────────────────────

class FakeSink:
    """Records log calls instead of shipping them anywhere."""
    def __init__(self, ok=True):
        self.ok = ok
        self.records = []

    def log(self, message, level="debug"):
        self.records.append((message, level))
        return self.ok

    def levels(self):
        return [level for _, level in self.records]


class FakeLLMResponse:
    def __init__(self, content: str):
        self.content = content


class FakeLLM:
    def __init__(self, content: str):
        self._content = content
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        return FakeLLMResponse(self._content)


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def engine(tmp_path):
    return init_engine(f"sqlite:///{tmp_path / 'emr.db'}")


@pytest.fixture
def store(engine):
    return EmrStore(engine)


@pytest.fixture
def users(store):
    """One admin and two nurses."""
    return {
        "admin": store.create_user("admin", "admin-pw", "admin"),
        "nurse": store.create_user("nurse", "nurse-pw", "nurse"),
        "other": store.create_user("other", "other-pw", "nurse"),
    }


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def make_app(engine, sink):
    def _make(llm=None, **overrides):
        app = create_app(engine=engine, llm=llm, sink=sink, TESTING=True, **overrides)
        return app
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app, users):
    return app.test_client()


def set_session(client, username, role):
    client.set_cookie("auth-session", json.dumps({"username": username, "role": role}))


def login(client, username, password):
    return client.post("/api/auth/login", json={"username": username, "password": password})


@pytest.fixture
def nurse_client(client):
    assert login(client, "nurse", "nurse-pw").status_code == 200
    return client


@pytest.fixture
def admin_client(client):
    assert login(client, "admin", "admin-pw").status_code == 200
    return client
