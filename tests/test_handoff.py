from pathlib import Path

import pytest

from tableside.engine import OrderingEngine
from tableside.schemas import CartItem, PendingOrderData
from tableside.services.backend import Kitchen, MockOrderBackend, NetworkFailureError
from tableside.store import EngineUsageError, PersistenceLayer

PHONE = "9876543210"
EMAIL = "diner@example.com"


def _guest_with_cart(engine: OrderingEngine) -> None:
    engine.select_table("3")
    for item_id in ("m1", "m2", "m4"):
        engine.cart.add_to_cart(item_id)


async def test_guest_checkout_replays_once(engine: OrderingEngine, kitchen: Kitchen) -> None:
    _guest_with_cart(engine)

    checkout = await engine.checkout()
    assert checkout.auth_required
    assert checkout.order is None
    assert len(engine.handoff.pending.items) == 3

    assert await engine.request_otp(PHONE, EMAIL)
    result = await engine.verify_otp(PHONE, EMAIL, kitchen.pending_otp(EMAIL))

    assert result.verified
    assert result.replayed
    assert result.order.total == 706 + 581 + 498
    assert len(kitchen.orders) == 1
    assert engine.handoff.pending is None
    assert engine.cart.items == ()


async def test_retried_verification_does_not_order_twice(
    engine: OrderingEngine, kitchen: Kitchen
) -> None:
    _guest_with_cart(engine)
    await engine.checkout()
    await engine.request_otp(PHONE, EMAIL)
    otp = kitchen.pending_otp(EMAIL)

    assert await engine.verify_otp(PHONE, EMAIL, otp)
    again = await engine.verify_otp(PHONE, EMAIL, otp)
    assert not again

    await engine.request_otp(PHONE, EMAIL)
    relogin = await engine.verify_otp(PHONE, EMAIL, kitchen.pending_otp(EMAIL))
    assert relogin.verified
    assert not relogin.replayed
    assert len(kitchen.orders) == 1


async def test_pending_cleared_even_if_replay_fails(
    engine: OrderingEngine,
    kitchen: Kitchen,
    backend: MockOrderBackend,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def unreachable(token: str, payload: dict) -> None:
        raise NetworkFailureError("connection reset")

    _guest_with_cart(engine)
    await engine.checkout()
    await engine.request_otp(PHONE, EMAIL)
    monkeypatch.setattr(backend, "create_order", unreachable)

    result = await engine.verify_otp(PHONE, EMAIL, kitchen.pending_otp(EMAIL))

    assert result.verified
    assert not result.replayed
    assert engine.handoff.pending is None
    assert len(engine.cart.items) == 3
    assert kitchen.orders == {}
    assert "Failed to place order. Please try again." in engine.notices


async def test_wrong_otp_keeps_pending_order(engine: OrderingEngine) -> None:
    _guest_with_cart(engine)
    await engine.checkout()
    await engine.request_otp(PHONE, EMAIL)

    result = await engine.verify_otp(PHONE, EMAIL, "not-it")

    assert not result
    assert engine.session.session.is_guest
    assert engine.handoff.pending is not None
    assert engine.notices[-1] == "Invalid OTP"


async def test_pending_order_survives_restart(
    make_engine, kitchen: Kitchen, backend: MockOrderBackend, tmp_path: Path
) -> None:
    first = make_engine("shared")
    await first.start()
    _guest_with_cart(first)
    await first.checkout()
    await first.request_otp(PHONE, EMAIL)

    second = OrderingEngine(backend=backend, persistence=PersistenceLayer(tmp_path / "shared.json"))
    assert len(second.handoff.pending.items) == 3

    result = await second.verify_otp(PHONE, EMAIL, kitchen.pending_otp(EMAIL))
    assert result.replayed
    assert len(kitchen.orders) == 1


async def test_replay_falls_back_to_current_table(engine: OrderingEngine, kitchen: Kitchen) -> None:
    engine.handoff.set_pending_order(
        PendingOrderData(items=(CartItem(id="m3", name="Pasta Alfredo", price=768, qty=1),))
    )
    engine.session.set_current_table("6")
    await engine.request_otp(PHONE, EMAIL)

    result = await engine.verify_otp(PHONE, EMAIL, kitchen.pending_otp(EMAIL))

    assert result.order.table_no == "6"
    assert kitchen.orders[result.order.id].table_no == "6"


async def test_checkout_with_empty_cart_needs_nothing(engine: OrderingEngine) -> None:
    checkout = await engine.checkout()

    assert not checkout.auth_required
    assert engine.handoff.pending is None


async def test_customer_checkout_places_order(customer: OrderingEngine, kitchen: Kitchen) -> None:
    customer.select_table("1")
    customer.cart.add_to_cart("m1")

    checkout = await customer.checkout()

    assert not checkout.auth_required
    assert checkout.order.id in kitchen.orders


async def test_staff_cannot_set_pending_order(chef: OrderingEngine) -> None:
    data = PendingOrderData(items=(CartItem(id="m1", name="Pizza", price=706, qty=1),))

    with pytest.raises(EngineUsageError):
        chef.handoff.set_pending_order(data)
    with pytest.raises(EngineUsageError):
        await chef.checkout()


async def test_checkout_requires_a_table(engine: OrderingEngine) -> None:
    engine.cart.add_to_cart("m1")

    checkout = await engine.checkout()

    assert checkout.table_required
    assert not checkout.auth_required
    assert engine.handoff.pending is None
    assert engine.notices[-1] == "Select a table to continue"
