import re

import pytest
from pydantic import ValidationError

from tableside.schemas import (
    CartItem,
    Customer,
    MenuItem,
    Order,
    OrderStatus,
    Role,
    Session,
    next_status,
    validate_contact,
)


def test_guest_session_cannot_hold_token() -> None:
    with pytest.raises(ValidationError):
        Session(role=Role.GUEST, token="abc")


def test_customer_session_requires_contact_and_token() -> None:
    with pytest.raises(ValidationError):
        Session(role=Role.CUSTOMER, phone="9876543210", token="abc")
    with pytest.raises(ValidationError):
        Session(role=Role.CUSTOMER, phone="9876543210", email="a@b.co")

    session = Session(role=Role.CUSTOMER, phone="9876543210", email="a@b.co", token="abc")
    assert not session.is_guest
    assert not session.is_staff


def test_staff_session_carries_no_contact() -> None:
    with pytest.raises(ValidationError):
        Session(role=Role.CHEF, phone="9876543210", token="abc")
    assert Session(role=Role.ADMIN, token="abc").is_staff


def test_order_from_cart_fixes_total_and_id() -> None:
    items = [CartItem(id="m1", name="Margherita Pizza", price=706, qty=2)]
    order = Order.from_cart(items, Customer(phone="9876543210", email="a@b.co"), table_no="4")

    assert order.total == 1412
    assert order.status == OrderStatus.PENDING
    assert re.fullmatch(r"ord_[0-9a-z]{7}", order.id)
    assert order.created_at > 0
    assert order.is_table_order


def test_order_payload_uses_wire_names() -> None:
    order = Order.from_cart([CartItem(id="m2", name="Burger", price=581, qty=1)], Customer())
    payload = order.to_payload()

    assert "createdAt" in payload
    assert payload["status"] == "pending"
    assert Order.model_validate(payload) == order
    assert not order.is_table_order


def test_numeric_ids_become_strings() -> None:
    item = MenuItem.model_validate({"id": 7, "name": "Soup", "price": 120})
    order = Order.model_validate({"id": 42, "items": [], "total": 0})

    assert item.id == "7"
    assert order.id == "42"


def test_cart_item_rejects_zero_quantity() -> None:
    with pytest.raises(ValidationError):
        CartItem(id="m1", name="Pizza", price=706, qty=0)


def test_status_only_moves_forward() -> None:
    assert next_status(OrderStatus.PENDING) == OrderStatus.PREPARING
    assert next_status(OrderStatus.PREPARING) == OrderStatus.COMPLETED
    assert next_status(OrderStatus.COMPLETED) == OrderStatus.PAID
    assert next_status(OrderStatus.PAID) is None
    assert next_status(OrderStatus.READY) is None


@pytest.mark.parametrize(
    ("phone", "email", "error"),
    [
        ("9876543210", "diner@example.com", None),
        ("98765", "diner@example.com", "Phone number must be 10 digits"),
        ("98765abcde", "diner@example.com", "Phone number must be 10 digits"),
        ("9876543210", "not-an-email", "Invalid email format"),
    ],
)
def test_validate_contact(phone: str, email: str, error: str | None) -> None:
    assert validate_contact(phone, email) == error
