"""
Pending Order Handoff

Carries a guest's cart across the OTP login. The captured order is read and
cleared in the same dispatch that logs the customer in, before any network
call, so a retried verification can never replay it twice. If the replay
then fails the order is lost; the cart itself is kept so the customer can
check out again.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Optional

from tableside.schemas import Order, PendingOrderData, Role
from tableside.store.gateway import TransitionGateway
from tableside.store.orders import Notify
from tableside.store.state import CustomerLoggedIn, EngineUsageError, PendingOrderSet
from tableside.store.store import Store

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    """
    Outcome of a checkout.

    Attributes:
        order: The created order, if one was placed
        auth_required: The cart was captured and the user must verify first
        table_required: No table is selected; scan or enter one first
    """
    order: Optional[Order] = None
    auth_required: bool = False
    table_required: bool = False


@dataclass
class ConsumeResult:
    """Outcome of logging in through the handoff."""
    pending: Optional[PendingOrderData] = None
    order: Optional[Order] = None

    @property
    def replayed(self) -> bool:
        return self.order is not None


class PendingOrderHandoff:
    def __init__(self, store: Store, gateway: TransitionGateway, notify: Notify):
        self._store = store
        self._gateway = gateway
        self._notify = notify

    @property
    def pending(self) -> Optional[PendingOrderData]:
        return self._store.state.pending_order

    def set_pending_order(self, data: Optional[PendingOrderData]) -> None:
        """
        Store (or clear, with None) the order to replay after login.

        Raises:
            EngineUsageError: ``data`` given while not a guest
        """
        self._store.dispatch(PendingOrderSet(pending=data))

    def capture(self) -> Optional[PendingOrderData]:
        """Snapshot the guest's cart and table as the pending order."""
        state = self._store.state
        if not state.session.is_guest:
            raise EngineUsageError("only guests hand off a pending order")
        if not state.cart:
            return None
        data = PendingOrderData(items=state.cart, table_no=state.current_table)
        self.set_pending_order(data)
        logger.info(f"Pending order captured ({len(data.items)} lines, table={data.table_no})")
        return data

    async def checkout(self) -> CheckoutResult:
        """
        Place the cart as an order, or capture it if the user must log in.

        Dine-in checkout needs a current table. Staff sessions cannot check
        out a cart; they use parcel orders.
        """
        state = self._store.state
        session = state.session
        if session.is_staff:
            raise EngineUsageError(f"{session.role.value} sessions cannot check out a cart")
        if state.cart and state.current_table is None:
            self._notify("Select a table to continue")
            return CheckoutResult(table_required=True)
        if session.role == Role.CUSTOMER:
            return CheckoutResult(order=await self._gateway.create_order_from_cart())
        captured = self.capture()
        return CheckoutResult(auth_required=captured is not None)

    async def consume(self, phone: str, email: str, token: str) -> ConsumeResult:
        """
        Log the customer in and replay the pending order, at most once.

        The pending order is cleared by the login dispatch itself, so it is
        gone from state (and from disk) before the order request is sent.
        """
        pending = self._store.state.pending_order
        self._store.dispatch(CustomerLoggedIn(phone=phone, email=email, token=token))
        if pending is None:
            return ConsumeResult()

        order = await self._gateway.replay_pending(pending)
        if order is None:
            logger.warning("Pending order could not be placed after login")
        return ConsumeResult(pending=pending, order=order)
