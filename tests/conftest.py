# tests/conftest.py
import os

# Settings are read at import time; keep tests on a private in-memory database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_GATEWAY_URL"] = ""
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from datetime import datetime, timedelta, timezone  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from supportpilot.backend.app import models  # noqa: E402,F401
from supportpilot.backend.app.ai.client import GenerationRegistry  # noqa: E402
from supportpilot.backend.app.db import Base, make_engine  # noqa: E402
from supportpilot.backend.app.deps import get_generations, get_store  # noqa: E402
from supportpilot.backend.app.main import app  # noqa: E402
from supportpilot.backend.app.schemas.ticket import Ticket  # noqa: E402
from supportpilot.backend.app.store.repository import TicketRepository  # noqa: E402
from supportpilot.backend.app.store.tickets_store import TicketsStore  # noqa: E402

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, future=True)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return TicketRepository(session_factory)


@pytest.fixture
def store(repository):
    return TicketsStore(repository)


@pytest.fixture
def make_ticket():
    """Build a Ticket; `minutes` offsets created_at from a fixed base time."""
    counter = {"n": 0}

    def _make(minutes=0, **overrides):
        counter["n"] += 1
        created = BASE_TIME + timedelta(minutes=minutes)
        data = {
            "id": f"t-{counter['n']}",
            "title": f"Ticket {counter['n']}",
            "category": "Bug",
            "priority": "Medium",
            "status": "Open",
            "channel": "Web",
            "description": "Something is broken",
            "created_at": created,
            "updated_at": created,
        }
        data.update(overrides)
        return Ticket.model_validate(data)

    return _make


@pytest.fixture
def gateway_registry():
    """Generations that call the app's own gateway route in-process."""
    return GenerationRegistry(
        lambda: httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        )
    )


@pytest.fixture
def client(store, gateway_registry):
    def _store():
        store.hydrate()
        return store

    app.dependency_overrides[get_store] = _store
    app.dependency_overrides[get_generations] = lambda: gateway_registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
