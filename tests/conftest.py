import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from cookbook.app import build_services, create_app
from cookbook.infra.sql_store import SqlStore
from cookbook.infra.store import MemoryStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def secret_key(monkeypatch):
    monkeypatch.setenv("COOKBOOK_SECRET_KEY", "test-secret")
    monkeypatch.delenv("COOKBOOK_ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("COOKBOOK_ADMIN_PASSWORD", raising=False)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """Each backend-agnostic test runs against both stores."""
    s = MemoryStore() if request.param == "memory" else SqlStore("sqlite://")
    s.ensure_ready()
    yield s
    s.close()


@pytest.fixture()
def file_store(tmp_path: Path):
    """sqlite on disk: real connection pool, usable from several threads."""
    s = SqlStore(f"sqlite:///{tmp_path / 'cookbook.db'}")
    s.ensure_ready()
    yield s
    s.close()


@pytest.fixture()
def services(store, clock):
    return build_services(store, clock)


@pytest.fixture()
def alice(services):
    return services.users.create_user("Alice@Example.com", "wonderland", name="Alice")


@pytest.fixture()
def app_store():
    return MemoryStore()


@pytest.fixture()
def client(app_store, clock):
    app = create_app(store=app_store, clock=clock)
    with TestClient(app) as c:
        yield c
