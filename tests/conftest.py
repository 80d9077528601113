from __future__ import annotations

from pathlib import Path
from typing import Callable

import httpx
import pytest

from tableside.core.config import get_settings
from tableside.devserver import create_app
from tableside.engine import OrderingEngine
from tableside.schemas import Role
from tableside.services.backend import (
    BaseOrderBackend,
    HttpOrderBackend,
    Kitchen,
    MockOrderBackend,
    reset_backend,
)
from tableside.store import PersistenceLayer

STAFF_PASSWORD = "secret"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV_MODE", "development")
    monkeypatch.setenv("STATE_FILE", str(tmp_path / "default_state.json"))
    monkeypatch.setenv("MOCK_MIN_LATENCY", "0")
    monkeypatch.setenv("MOCK_MAX_LATENCY", "0")
    get_settings.cache_clear()
    reset_backend()
    yield
    get_settings.cache_clear()
    reset_backend()


@pytest.fixture
def kitchen() -> Kitchen:
    return Kitchen(staff_password=STAFF_PASSWORD)


@pytest.fixture
def backend(kitchen: Kitchen) -> MockOrderBackend:
    return MockOrderBackend(kitchen=kitchen)


@pytest.fixture
async def http_backend(kitchen: Kitchen):
    transport = httpx.ASGITransport(app=create_app(kitchen))
    client = HttpOrderBackend(base_url="http://test/api/", transport=transport)
    yield client
    await client.aclose()


@pytest.fixture
def persistence(tmp_path: Path) -> PersistenceLayer:
    return PersistenceLayer(tmp_path / "state.json")


@pytest.fixture
def make_engine(backend: MockOrderBackend, tmp_path: Path) -> Callable[..., OrderingEngine]:
    """Build engines sharing one kitchen, each with its own state file."""

    def factory(name: str = "engine", on: BaseOrderBackend | None = None) -> OrderingEngine:
        persistence = PersistenceLayer(tmp_path / f"{name}.json")
        return OrderingEngine(backend=on or backend, persistence=persistence)

    return factory


@pytest.fixture
async def engine(make_engine: Callable[..., OrderingEngine]) -> OrderingEngine:
    guest = make_engine("guest")
    await guest.start()
    return guest


@pytest.fixture
async def customer(engine: OrderingEngine, kitchen: Kitchen) -> OrderingEngine:
    assert await engine.request_otp("9876543210", "diner@example.com")
    assert await engine.verify_otp(
        "9876543210", "diner@example.com", kitchen.pending_otp("diner@example.com")
    )
    return engine


@pytest.fixture
async def chef(make_engine: Callable[..., OrderingEngine]) -> OrderingEngine:
    staff = make_engine("chef")
    await staff.start()
    assert await staff.staff_login(Role.CHEF, STAFF_PASSWORD)
    return staff


@pytest.fixture
async def admin(make_engine: Callable[..., OrderingEngine]) -> OrderingEngine:
    staff = make_engine("admin")
    await staff.start()
    assert await staff.staff_login(Role.ADMIN, STAFF_PASSWORD)
    return staff
