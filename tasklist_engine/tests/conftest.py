import threading

import pytest
from fastapi.testclient import TestClient

from tasklist_engine.app import create_app
from tasklist_engine.config import Settings
from tasklist_engine.db import InMemoryStore, SqliteStore
from tasklist_engine.tasklists import TaskListWorker
from tasklist_engine.tasks import TaskWorker


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    s = SqliteStore(tmp_path / "test_tasks.db")
    s.init()
    return s


class ReadBarrierStore:
    """Wraps a store so each thread's first read waits for the other threads'.

    Every racing writer then starts from the same snapshot of the record.
    """

    def __init__(self, inner, parties):
        self.inner = inner
        self.barrier = threading.Barrier(parties, timeout=5)
        self._local = threading.local()

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def get(self, key):
        value = self.inner.get(key)
        if not getattr(self._local, "waited", False):
            self._local.waited = True
            self.barrier.wait()
        return value


@pytest.fixture
def read_barrier(store):
    return lambda parties=2: ReadBarrierStore(store, parties)


@pytest.fixture
def tasklists(store):
    return TaskListWorker(store, max_attempts=5)


@pytest.fixture
def tasks(store, tasklists):
    return TaskWorker(store, tasklists.exists, max_attempts=5)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / "api_tasks.db",
        auth_secret="test-secret",
        password_iterations=1_000,
        token_ttl_s=60,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    # register + login, returns headers for an authenticated owner
    client.post(
        "/v1/users/register",
        json={"name": "alice", "email": "a@x.com", "passwd": "s3cret"},
    )
    resp = client.post("/v1/users/login", auth=("a@x.com", "s3cret"))
    return {"Authorization": f"Bearer {resp.json()['token']}"}
