import asyncio
import time
from typing import Callable

import pytest

from tableside.engine import OrderingEngine
from tableside.schemas import CartItem, Customer, Order, OrderStatus, Role
from tableside.services.backend import Kitchen, MockOrderBackend
from tableside.store import (
    AppState,
    DashboardView,
    OrderCache,
    Poller,
    SessionStore,
    Store,
    ViewKind,
    today_revenue,
)

PIZZA = CartItem(id="m1", name="Margherita Pizza", price=706, qty=1)


class _GatedBackend(MockOrderBackend):
    """Takes the order snapshot immediately but answers only when released."""

    def __init__(self, kitchen: Kitchen):
        super().__init__(kitchen=kitchen)
        self.gates: list[asyncio.Event] = []

    async def list_orders(self, token: str) -> list[Order]:
        snapshot = self.kitchen.list_orders(token)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return snapshot


async def _until(predicate: Callable[[], bool]) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _place_order(kitchen: Kitchen, phone: str = "9876543210", table_no: str = "2") -> Order:
    kitchen.register_customer(phone, f"{phone}@example.com")
    token = kitchen.verify_customer(f"{phone}@example.com", kitchen.pending_otp(f"{phone}@example.com"))
    return kitchen.create_order(
        token, {"items": [PIZZA.model_dump()], "table_no": table_no}
    )


@pytest.fixture
def gated(kitchen: Kitchen) -> _GatedBackend:
    return _GatedBackend(kitchen)


@pytest.fixture
def gated_chef(gated: _GatedBackend, kitchen: Kitchen, make_engine) -> OrderingEngine:
    engine = make_engine("gated", on=gated)
    engine.session.login_staff(Role.CHEF, kitchen.staff_login("chef", "secret"))
    return engine


async def test_fetch_without_token_is_empty(engine: OrderingEngine) -> None:
    assert not await engine.orders.fetch_orders()
    assert engine.orders.orders == ()


async def test_older_response_is_discarded(
    gated_chef: OrderingEngine, gated: _GatedBackend, kitchen: Kitchen
) -> None:
    first = asyncio.create_task(gated_chef.orders.fetch_orders())
    await _until(lambda: len(gated.gates) == 1)
    _place_order(kitchen)
    second = asyncio.create_task(gated_chef.orders.fetch_orders())
    await _until(lambda: len(gated.gates) == 2)

    gated.gates[1].set()
    assert await second
    gated.gates[0].set()
    assert not await first

    assert len(gated_chef.orders.orders) == 1


async def test_response_after_logout_is_discarded(
    gated_chef: OrderingEngine, gated: _GatedBackend, kitchen: Kitchen
) -> None:
    _place_order(kitchen)
    fetch = asyncio.create_task(gated_chef.orders.fetch_orders())
    await _until(lambda: len(gated.gates) == 1)

    gated_chef.logout()
    gated.gates[0].set()

    assert not await fetch
    assert gated_chef.orders.orders == ()


async def test_response_after_view_teardown_is_discarded(
    gated_chef: OrderingEngine, gated: _GatedBackend, kitchen: Kitchen
) -> None:
    _place_order(kitchen)
    view = gated_chef.watch(ViewKind.CHEF, interval=60)

    async with view:
        await _until(lambda: len(gated.gates) == 1)
        late = asyncio.create_task(view.refresh())
        await _until(lambda: len(gated.gates) == 2)

    assert not view.is_polling
    gated.gates[1].set()
    assert not await late
    assert gated_chef.orders.orders == ()


async def test_expired_session_forces_logout(chef: OrderingEngine, kitchen: Kitchen) -> None:
    kitchen.revoke(chef.session.token)

    assert not await chef.orders.fetch_orders()
    assert chef.session.session.is_guest
    assert chef.notices[-1] == "Session expired. Please log in again."


async def test_failed_fetch_empties_cache(chef: OrderingEngine, kitchen: Kitchen, backend: MockOrderBackend) -> None:
    _place_order(kitchen)
    assert await chef.orders.fetch_orders()
    assert len(chef.orders.orders) == 1

    backend.failure_rate = 1.0
    assert not await chef.orders.fetch_orders()
    assert chef.orders.orders == ()
    assert not chef.session.session.is_guest


async def test_customer_sees_only_own_orders(customer: OrderingEngine, kitchen: Kitchen) -> None:
    _place_order(kitchen, phone="9000000001")
    customer.cart.add_to_cart("m2")
    mine = await customer.gateway.create_order_from_cart()

    assert await customer.orders.fetch_current_orders()
    assert [o.id for o in customer.orders.orders] == [mine.id]


def _order(status: OrderStatus, table_no: str | None, total: float = 100, created_at: int = 0) -> Order:
    return Order(
        id=f"ord_{status.value[:3]}{table_no or 'x'}",
        items=(PIZZA,),
        total=total,
        status=status,
        customer=Customer(phone="9876543210"),
        table_no=table_no,
        created_at=created_at,
    )


def _cache(*orders: Order) -> OrderCache:
    store = Store(initial=AppState(orders=orders))
    return OrderCache(store, MockOrderBackend(), SessionStore(store), lambda message: None)


def test_status_views() -> None:
    cache = _cache(
        _order(OrderStatus.PENDING, "3"),
        _order(OrderStatus.PREPARING, "1"),
        _order(OrderStatus.COMPLETED, None),
        _order(OrderStatus.PAID, "2"),
        _order(OrderStatus.CUSTOMER_PAID, "5"),
    )

    assert [o.table_no for o in cache.pending_orders] == ["3"]
    assert [o.table_no for o in cache.preparing_orders] == ["1"]
    assert [o.table_no for o in cache.completed_orders] == [None]
    assert [o.table_no for o in cache.history] == ["2", "5"]
    assert [o.table_no for o in cache.kitchen_queue] == ["1", "3"]
    assert len(cache.table_orders) == 4
    assert len(cache.parcel_orders) == 1
    assert len(cache.customer_orders("9876543210")) == 5


def test_unpaid_bills_put_parcels_last() -> None:
    cache = _cache(
        _order(OrderStatus.COMPLETED, None),
        _order(OrderStatus.PENDING, "4"),
        _order(OrderStatus.PAID, "1"),
        _order(OrderStatus.PREPARING, "2"),
    )

    assert [o.table_no for o in cache.unpaid_bills] == ["2", "4", None]


def test_today_revenue_counts_paid_orders_of_today() -> None:
    now = time.time()
    today_ms = int(now * 1000)
    orders = [
        _order(OrderStatus.PAID, "1", total=1412, created_at=today_ms),
        _order(OrderStatus.COMPLETED, "2", total=500, created_at=today_ms),
        _order(OrderStatus.PAID, "3", total=300, created_at=today_ms - 3 * 86_400_000),
    ]

    assert today_revenue(orders, now=now) == 1412


async def test_poller_keeps_running_after_errors() -> None:
    calls = 0

    async def refresh() -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    poller = Poller(refresh, interval=0.01, name="test-poller")
    poller.start()
    await asyncio.sleep(0.05)
    assert poller.is_running
    await poller.stop()

    assert calls >= 2
    assert not poller.is_running


def test_poller_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        Poller(lambda: asyncio.sleep(0), interval=0)


@pytest.mark.parametrize(
    ("kind", "seconds"),
    [
        (ViewKind.CHEF, 10),
        (ViewKind.KITCHEN, 10),
        (ViewKind.CUSTOMER, 15),
        (ViewKind.HISTORY, 30),
    ],
)
def test_view_default_intervals(kind: ViewKind, seconds: float) -> None:
    assert DashboardView(_cache(), kind).interval == seconds


async def test_view_polls_while_open(chef: OrderingEngine, kitchen: Kitchen) -> None:
    _place_order(kitchen)

    async with chef.watch(ViewKind.CHEF, interval=0.01) as view:
        assert view.is_polling
        await _until(lambda: len(view.orders) == 1)

    assert not view.is_polling
    assert view.orders[0].status == OrderStatus.PENDING
