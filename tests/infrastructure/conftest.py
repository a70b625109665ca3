"""Infrastructure test fixtures: httpx MockTransport for the client backend, a fake
firebase_admin.db for the admin backend.

Invariants:
    - No test touches the network: every request goes to a recording handler
    - Handlers are plain functions (request -> httpx.Response) set per test
    - Liveness interval and timeout shortened for fast tests
    - The admin backend runs against FakeRealtimeStore patched in place of firebase_admin.db
"""

from types import SimpleNamespace

import httpx
import pytest

from rtdb_bridge.config import Settings
from rtdb_bridge.infrastructure.admin_database import AdminDatabase
from rtdb_bridge.infrastructure.client_database import ClientDatabase
from rtdb_bridge.infrastructure.rest_transport import IdTokenAuth, RestTransport
from tests.infrastructure.fake_firebase import FakeRealtimeStore

DATABASE_URL = "https://demo.firebaseio.com"


async def _token():
    return "test-token"


class RecordingHandler:
    """Records requests; answers from `routes` (method, path) or `default`."""

    def __init__(self):
        self.requests = []
        self.routes = {}
        self.default = httpx.Response(200, json=None)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if callable(route):
            return route(request)
        return route if route is not None else self.default

    def find(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def settings():
    return Settings(
        database_url=DATABASE_URL,
        liveness_check_interval_seconds=0.02,
        liveness_check_timeout_seconds=0.5,
    )


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def transport(mock_client):
    return RestTransport(DATABASE_URL, IdTokenAuth(_token), client=mock_client)


@pytest.fixture
async def client_database(transport, settings):
    database = ClientDatabase(transport, settings)
    yield database
    await database.close()


@pytest.fixture
def store(monkeypatch):
    fake = FakeRealtimeStore()
    monkeypatch.setattr("rtdb_bridge.infrastructure.admin_database.db", fake)
    monkeypatch.setattr(
        "rtdb_bridge.infrastructure.admin_database.firebase_admin.delete_app", fake.delete_app,
    )
    return fake


@pytest.fixture
def admin_app():
    return SimpleNamespace(name="rtdb-bridge-test", options={"databaseURL": DATABASE_URL})


@pytest.fixture
async def admin_database(store, admin_app, settings):
    database = AdminDatabase(admin_app, settings)
    yield database
    await database.close()
