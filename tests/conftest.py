from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from db import get_session
from deps import get_clock
from main import app


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    # A Wednesday, so "today" and "this week" both hold the session timestamps.
    return FakeClock(datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def client(engine, clock):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


ALICE = {"X-User-Id": "alice", "X-User-Email": "alice@gmail.com"}
BOB = {"X-User-Id": "bob", "X-User-Email": "bob@gmail.com"}


@pytest.fixture
def make_task(client):
    def _make(headers=ALICE, **fields):
        body = {"title": "Read chapter 3", "module": "Algorithms", **fields}
        resp = client.post("/api/tasks", json=body, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _make


@pytest.fixture
def start_session(client, make_task):
    def _start(headers=ALICE, task=None, **body):
        task = task or make_task(headers)
        resp = client.post(
            "/api/sessions/start",
            json={"taskIds": [task["id"]], **body},
            headers=headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["session"], task
    return _start
