"""
Cart Ledger

Working set of lines the user intends to order. At most one line per menu
item and every quantity is at least 1.
"""

from typing import Iterable

from tableside.schemas import CartItem, cart_total
from tableside.store.state import AddToCart, ClearCart, RemoveFromCart, UpdateQty
from tableside.store.store import Store


class CartLedger:
    def __init__(self, store: Store):
        self._store = store

    @property
    def items(self) -> tuple[CartItem, ...]:
        return self._store.state.cart

    @property
    def total(self) -> float:
        return cart_total(self.items)

    @property
    def count(self) -> int:
        return sum(item.qty for item in self.items)

    def add_to_cart(self, item_id: str) -> None:
        """Add one of ``item_id``; unknown menu ids are ignored."""
        self._store.dispatch(AddToCart(item_id=str(item_id)))

    def remove_from_cart(self, item_id: str) -> None:
        self._store.dispatch(RemoveFromCart(item_id=str(item_id)))

    def update_qty(self, item_id: str, qty: int) -> None:
        """Set the quantity of a line, clamped to 1. Use remove_from_cart to drop it."""
        self._store.dispatch(UpdateQty(item_id=str(item_id), qty=int(qty)))

    def clear_cart(self) -> None:
        self._store.dispatch(ClearCart())


def adjust_line(items: Iterable[CartItem], item_id: str, qty: int) -> tuple[CartItem, ...]:
    """
    Set the quantity of one line of an existing order.

    Unlike ``CartLedger.update_qty``, a quantity of zero or less removes the
    line. Staff use this when editing an order the kitchen already holds.
    """
    lines = []
    for item in items:
        if item.id != item_id:
            lines.append(item)
        elif qty > 0:
            lines.append(item.model_copy(update={"qty": qty}))
    return tuple(lines)
