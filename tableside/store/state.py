"""
Engine State and Typed Actions

The whole engine state is one frozen ``AppState``. Components never edit it;
they dispatch one of the actions below and ``reduce`` returns the next state.
Reducers only read the state they are handed, so two quick dispatches can
never work from a stale copy.

Version: 1.0.0
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from tableside.schemas import (
    STAFF_ROLES,
    CartItem,
    MenuItem,
    Order,
    PendingOrderData,
    Role,
    Session,
)


class EngineUsageError(RuntimeError):
    """An engine operation was called in a state where it can never be valid."""


class AppState(BaseModel):
    """Snapshot of everything the engine knows."""
    model_config = ConfigDict(frozen=True)

    session: Session = Session()
    cart: tuple[CartItem, ...] = ()
    orders: tuple[Order, ...] = ()
    menu: tuple[MenuItem, ...] = ()
    current_table: Optional[str] = None
    pending_order: Optional[PendingOrderData] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "AppState":
        ids = [item.id for item in self.cart]
        if len(ids) != len(set(ids)):
            raise ValueError("cart contains duplicate item ids")
        if self.pending_order is not None and not self.session.is_guest:
            raise ValueError("pending order can only exist for a guest session")
        return self


# =============================================================================
# ACTIONS
# =============================================================================

@dataclass(frozen=True)
class MenuLoaded:
    items: tuple[MenuItem, ...]


@dataclass(frozen=True)
class AddToCart:
    item_id: str


@dataclass(frozen=True)
class RemoveFromCart:
    item_id: str


@dataclass(frozen=True)
class UpdateQty:
    item_id: str
    qty: int


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class CustomerLoggedIn:
    phone: str
    email: str
    token: str


@dataclass(frozen=True)
class StaffLoggedIn:
    role: Role
    token: str


@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class TableSelected:
    table_no: Optional[str]


@dataclass(frozen=True)
class PendingOrderSet:
    pending: Optional[PendingOrderData]


@dataclass(frozen=True)
class OrdersReplaced:
    orders: tuple[Order, ...]


@dataclass(frozen=True)
class OrderCreated:
    order: Order
    clear_cart: bool = True


Action = Union[
    MenuLoaded, AddToCart, RemoveFromCart, UpdateQty, ClearCart,
    CustomerLoggedIn, StaffLoggedIn, LoggedOut, TableSelected,
    PendingOrderSet, OrdersReplaced, OrderCreated,
]


# =============================================================================
# REDUCERS
# =============================================================================

_REDUCERS: dict[type, Callable[[AppState, object], AppState]] = {}


def _handles(action_type: type):
    def register(fn):
        _REDUCERS[action_type] = fn
        return fn
    return register


def reduce(state: AppState, action: Action) -> AppState:
    """
    Apply ``action`` to ``state``.

    Returns the same object when the action changes nothing, so callers can
    skip persistence for no-ops.

    Raises:
        TypeError: Unknown action type
        ValueError: The action would break a session or cart invariant
    """
    try:
        reducer = _REDUCERS[type(action)]
    except KeyError:
        raise TypeError(f"Unknown action: {action!r}") from None
    return reducer(state, action)


@_handles(MenuLoaded)
def _menu_loaded(state: AppState, action: MenuLoaded) -> AppState:
    if tuple(action.items) == state.menu:
        return state
    return state.model_copy(update={"menu": tuple(action.items)})


@_handles(AddToCart)
def _add_to_cart(state: AppState, action: AddToCart) -> AppState:
    item = next((m for m in state.menu if m.id == action.item_id), None)
    if item is None:
        return state
    if any(c.id == action.item_id for c in state.cart):
        cart = tuple(
            c.model_copy(update={"qty": c.qty + 1}) if c.id == action.item_id else c
            for c in state.cart
        )
    else:
        cart = state.cart + (CartItem(id=item.id, name=item.name, price=item.price, qty=1),)
    return state.model_copy(update={"cart": cart})


@_handles(RemoveFromCart)
def _remove_from_cart(state: AppState, action: RemoveFromCart) -> AppState:
    cart = tuple(c for c in state.cart if c.id != action.item_id)
    if len(cart) == len(state.cart):
        return state
    return state.model_copy(update={"cart": cart})


@_handles(UpdateQty)
def _update_qty(state: AppState, action: UpdateQty) -> AppState:
    qty = max(1, action.qty)
    if not any(c.id == action.item_id and c.qty != qty for c in state.cart):
        return state
    cart = tuple(
        c.model_copy(update={"qty": qty}) if c.id == action.item_id else c
        for c in state.cart
    )
    return state.model_copy(update={"cart": cart})


@_handles(ClearCart)
def _clear_cart(state: AppState, action: ClearCart) -> AppState:
    if not state.cart:
        return state
    return state.model_copy(update={"cart": ()})


@_handles(CustomerLoggedIn)
def _customer_logged_in(state: AppState, action: CustomerLoggedIn) -> AppState:
    session = Session(
        role=Role.CUSTOMER,
        phone=action.phone,
        email=action.email,
        token=action.token,
    )
    # Leaving the guest role consumes any pending order.
    return state.model_copy(update={"session": session, "pending_order": None})


@_handles(StaffLoggedIn)
def _staff_logged_in(state: AppState, action: StaffLoggedIn) -> AppState:
    role = Role(action.role)
    if role not in STAFF_ROLES:
        raise EngineUsageError(f"{role.value} is not a staff role")
    session = Session(role=role, token=action.token)
    return state.model_copy(update={"session": session, "pending_order": None})


@_handles(LoggedOut)
def _logged_out(state: AppState, action: LoggedOut) -> AppState:
    if (
        state.session.is_guest
        and state.current_table is None
        and state.pending_order is None
        and not state.orders
    ):
        return state
    # The cart survives logout; everything tied to the identity does not.
    return state.model_copy(update={
        "session": Session(),
        "current_table": None,
        "pending_order": None,
        "orders": (),
    })


@_handles(TableSelected)
def _table_selected(state: AppState, action: TableSelected) -> AppState:
    if state.current_table == action.table_no:
        return state
    return state.model_copy(update={"current_table": action.table_no})


@_handles(PendingOrderSet)
def _pending_order_set(state: AppState, action: PendingOrderSet) -> AppState:
    if action.pending is not None and not state.session.is_guest:
        raise EngineUsageError("pending orders are only captured for guests")
    if state.pending_order is None and action.pending is None:
        return state
    return state.model_copy(update={"pending_order": action.pending})


@_handles(OrdersReplaced)
def _orders_replaced(state: AppState, action: OrdersReplaced) -> AppState:
    if tuple(action.orders) == state.orders:
        return state
    return state.model_copy(update={"orders": tuple(action.orders)})


@_handles(OrderCreated)
def _order_created(state: AppState, action: OrderCreated) -> AppState:
    others = tuple(o for o in state.orders if o.id != action.order.id)
    update = {"orders": (action.order,) + others}
    if action.clear_cart:
        update["cart"] = ()
    return state.model_copy(update=update)
