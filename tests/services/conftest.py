"""Service test fixtures: fake backend and session wired into a QueryEngine.

Invariants:
    - Every test gets a fresh FakeDatabase and FakeSession
    - Engines are closed after the test so no timer outlives it
    - Disconnect timeout shortened to keep timer tests fast
"""

import pytest

from rtdb_bridge.config import Settings
from rtdb_bridge.services.query_engine import QueryEngine
from tests.services.fake_database import FakeDatabase, FakeSession


@pytest.fixture
def settings():
    return Settings(disconnect_timeout_seconds=0.05, database_url="https://fake.firebaseio.com")


@pytest.fixture
def client_db():
    return FakeDatabase(admin=False)


@pytest.fixture
def admin_db():
    return FakeDatabase(admin=True)


@pytest.fixture
async def client_engine(client_db, settings):
    engine = QueryEngine(FakeSession(admin=False), client_db, settings)
    yield engine
    await engine.close()


@pytest.fixture
async def admin_engine(admin_db, settings):
    engine = QueryEngine(FakeSession(admin=True), admin_db, settings)
    yield engine
    await engine.close()
