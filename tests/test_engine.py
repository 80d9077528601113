from pathlib import Path

import pytest

from tableside.core.config import EnvironmentMode, Settings, get_settings
from tableside.engine import OrderingEngine
from tableside.schemas import Role
from tableside.services.backend import (
    HttpOrderBackend,
    Kitchen,
    MockOrderBackend,
    get_backend,
    reset_backend,
)
from tableside.store import EngineUsageError, PersistenceLayer


async def test_start_loads_menu(engine: OrderingEngine) -> None:
    assert [m.id for m in engine.menu.items] == ["m1", "m2", "m3", "m4"]
    assert engine.menu.get("m1").price == 706
    assert engine.menu.get("m9") is None


async def test_menu_failure_degrades_to_empty(engine: OrderingEngine, backend: MockOrderBackend) -> None:
    backend.failure_rate = 1.0

    assert not await engine.menu.fetch_menu()
    assert engine.menu.items == ()


@pytest.mark.parametrize(
    ("phone", "email", "notice"),
    [
        ("12345", "diner@example.com", "Phone number must be 10 digits"),
        ("9876543210", "diner@", "Invalid email format"),
    ],
)
async def test_request_otp_validates_input(
    engine: OrderingEngine, kitchen: Kitchen, phone: str, email: str, notice: str
) -> None:
    assert not await engine.request_otp(phone, email)
    assert engine.notices[-1] == notice
    assert kitchen.pending_otp(email) is None


async def test_staff_login_with_wrong_password(engine: OrderingEngine) -> None:
    assert not await engine.staff_login(Role.ADMIN, "wrong")
    assert engine.session.session.is_guest
    assert engine.notices[-1] == "Invalid credentials"


async def test_staff_login_rejects_non_staff_role(engine: OrderingEngine) -> None:
    with pytest.raises(EngineUsageError):
        await engine.staff_login(Role.CUSTOMER, "secret")


async def test_scan_table(engine: OrderingEngine, kitchen: Kitchen) -> None:
    assert not await engine.scan_table("4", "0000000000000000")
    assert engine.session.current_table is None

    assert await engine.scan_table("4", kitchen.qr_hash("4"))
    assert engine.session.current_table == "4"


async def test_logout_keeps_cart(customer: OrderingEngine) -> None:
    customer.cart.add_to_cart("m2")
    customer.logout()

    assert customer.session.session.is_guest
    assert [c.id for c in customer.cart.items] == ["m2"]


async def test_staff_session_restored_with_persisted_token(
    backend: MockOrderBackend, kitchen: Kitchen, tmp_path: Path
) -> None:
    path = tmp_path / "admin.json"
    first = OrderingEngine(backend=backend, persistence=PersistenceLayer(path, persist_token=True))
    assert await first.staff_login(Role.ADMIN, "secret")

    second = OrderingEngine(backend=backend, persistence=PersistenceLayer(path, persist_token=True))
    await second.start()

    assert second.session.session.role == Role.ADMIN
    assert second.session.token == first.session.token


async def test_reload_without_token_hides_previous_orders(
    customer: OrderingEngine, backend: MockOrderBackend
) -> None:
    customer.select_table("4")
    customer.cart.add_to_cart("m2")
    assert (await customer.checkout()).order is not None
    assert customer.orders.orders

    reloaded = OrderingEngine(backend=backend, persistence=customer.persistence)
    await reloaded.start()

    assert reloaded.session.session.is_guest
    assert reloaded.session.token is None
    assert reloaded.orders.orders == ()


async def test_notify_callback_receives_notices(backend: MockOrderBackend, tmp_path: Path) -> None:
    received = []
    engine = OrderingEngine(
        backend=backend,
        persistence=PersistenceLayer(tmp_path / "state.json"),
        notify=received.append,
    )

    await engine.request_otp("1", "x")

    assert received == ["Phone number must be 10 digits"]


def test_settings_normalize_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://orders.local/api")
    get_settings.cache_clear()

    assert get_settings().api_base_url == "http://orders.local/api/"


def test_settings_reject_unknown_mode() -> None:
    with pytest.raises(ValueError):
        Settings(env_mode="qa")


def test_development_uses_mock_backend() -> None:
    assert get_settings().env_mode == EnvironmentMode.DEVELOPMENT
    backend = get_backend()

    assert isinstance(backend, MockOrderBackend)
    assert get_backend() is backend


async def test_production_uses_http_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENV_MODE", "production")
    get_settings.cache_clear()
    reset_backend()

    backend = get_backend()

    assert isinstance(backend, HttpOrderBackend)
    assert backend.provider_name == "http"
    await backend.aclose()


def test_require_role(chef: OrderingEngine) -> None:
    assert chef.session.require_role(Role.CHEF, Role.ADMIN).role == Role.CHEF

    with pytest.raises(EngineUsageError):
        chef.session.require_role(Role.ADMIN)
