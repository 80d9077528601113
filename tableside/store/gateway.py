"""
Transition Gateway

Every mutation of an order goes through here: creation, the forward-only
status workflow, staff edits and billing.

    pending ──chef/admin──▶ preparing ──chef/admin──▶ completed ──admin──▶ paid

Calls made by a role that can never perform them raise EngineUsageError.
Everything the backend can refuse is returned as a falsy result and a
notice; nothing is retried. Each successful status change or edit is
followed by a full order refresh.

Usage:
    result = await gateway.mark_preparing(order_id)
    if not result and result.error_code == "conflict":
        await orders.fetch_orders()

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from tableside.schemas import (
    STAFF_ROLES,
    TRANSITIONS,
    CartItem,
    Customer,
    Order,
    OrderStatus,
    PendingOrderData,
    Role,
)
from tableside.services.backend.base import (
    AuthExpiredError,
    BackendError,
    BaseOrderBackend,
    BillResult,
    ConflictError,
    NotFoundError,
    ValidationFailureError,
)
from tableside.store.orders import Notify, OrderCache
from tableside.store.session import SessionStore
from tableside.store.state import OrderCreated
from tableside.store.store import Store

logger = logging.getLogger(__name__)

PLACE_ORDER_FAILED = "Failed to place order. Please try again."
UPDATE_FAILED = "Failed to update order. Please try again."


@dataclass
class TransitionResult:
    """
    Outcome of an order mutation.

    Attributes:
        success: Whether the backend accepted the change
        error_code: conflict | auth_expired | validation | network |
            invalid_transition, None on success
        message: User-facing explanation of the failure
    """
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


class TransitionGateway:
    def __init__(
        self,
        store: Store,
        backend: BaseOrderBackend,
        orders: OrderCache,
        session: SessionStore,
        notify: Notify,
    ):
        self._store = store
        self._backend = backend
        self._orders = orders
        self._session = session
        self._notify = notify

    # -------------------------------------------------------------------------
    # Failure handling
    # -------------------------------------------------------------------------

    def _fail(self, error: BackendError, fallback: str = UPDATE_FAILED) -> TransitionResult:
        """Turn a backend error into a result and a notice."""
        if isinstance(error, AuthExpiredError):
            logger.warning("Session expired during order update, logging out")
            self._session.logout()
            code, message = "auth_expired", error.message
        elif isinstance(error, ConflictError):
            code, message = "conflict", error.message
        elif isinstance(error, (ValidationFailureError, NotFoundError)):
            code, message = "validation", error.message or fallback
        else:
            code, message = "network", fallback

        logger.error(f"Order mutation failed ({code}): {error.message}")
        self._notify(message)
        return TransitionResult(success=False, error_code=code, message=message)

    async def _mutate(self, call: Callable[[], Awaitable[object]]) -> TransitionResult:
        try:
            await call()
        except BackendError as e:
            return self._fail(e)
        await self._orders.fetch_orders()
        return TransitionResult(success=True)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def _submit(
        self,
        items: Iterable[CartItem],
        customer: Customer,
        table_no: Optional[str],
        clear_cart: bool,
    ) -> Optional[Order]:
        order = Order.from_cart(items, customer, table_no)
        try:
            created = await self._backend.create_order(self._session.token, order.to_payload())
        except BackendError as e:
            self._fail(e, PLACE_ORDER_FAILED)
            return None

        # A bodiless acknowledgement still means the local order was accepted.
        order = created or order
        self._store.dispatch(OrderCreated(order=order, clear_cart=clear_cart))
        logger.info(f"Order {order.id} placed (total={order.total}, table={order.table_no})")
        return order

    async def create_order_from_cart(self) -> Optional[Order]:
        """
        Submit the cart as a new order for the logged-in customer.

        Returns:
            The created order, or None for an empty cart or a failed request

        Raises:
            EngineUsageError: Not logged in as a customer
        """
        session = self._session.require_role(Role.CUSTOMER)
        state = self._store.state
        if not state.cart:
            return None
        customer = Customer(phone=session.phone, email=session.email)
        return await self._submit(state.cart, customer, state.current_table, clear_cart=True)

    async def replay_pending(self, pending: PendingOrderData) -> Optional[Order]:
        """Submit an order captured before login; the cart is cleared only on success."""
        session = self._session.require_role(Role.CUSTOMER)
        if not pending.items:
            return None
        customer = Customer(phone=session.phone, email=session.email)
        table_no = pending.table_no or self._session.current_table
        return await self._submit(pending.items, customer, table_no, clear_cart=True)

    async def create_parcel_order(
        self,
        items: Iterable[CartItem],
        customer: Customer,
    ) -> Optional[Order]:
        """Take-away order entered by staff on behalf of a customer."""
        self._session.require_role(*STAFF_ROLES)
        lines = tuple(items)
        if not lines:
            return None
        return await self._submit(lines, customer, None, clear_cart=False)

    # -------------------------------------------------------------------------
    # Status workflow
    # -------------------------------------------------------------------------

    async def _advance(self, order_id: str, target: OrderStatus) -> TransitionResult:
        source, roles = TRANSITIONS[target]
        self._session.require_role(*roles)

        cached = self._orders.get(order_id)
        if cached is not None and cached.status != source:
            message = f"Order {order_id} is {cached.status.value}, cannot mark it {target.value}"
            logger.warning(message)
            return TransitionResult(success=False, error_code="invalid_transition", message=message)

        token = self._session.token
        result = await self._mutate(
            lambda: self._backend.update_order(token, order_id, status=target)
        )
        if result:
            logger.info(f"Order {order_id} → {target.value}")
        return result

    async def mark_preparing(self, order_id: str) -> TransitionResult:
        return await self._advance(order_id, OrderStatus.PREPARING)

    async def mark_prepared(self, order_id: str) -> TransitionResult:
        return await self._advance(order_id, OrderStatus.COMPLETED)

    async def mark_paid(self, order_id: str) -> TransitionResult:
        return await self._advance(order_id, OrderStatus.PAID)

    # -------------------------------------------------------------------------
    # Staff edits
    # -------------------------------------------------------------------------

    async def update_order_table(self, order_id: str, table_no: str) -> TransitionResult:
        self._session.require_role(*STAFF_ROLES)
        token = self._session.token
        return await self._mutate(
            lambda: self._backend.update_order(token, order_id, table_no=table_no)
        )

    async def update_order_items(self, order_id: str, items: Iterable[CartItem]) -> TransitionResult:
        """Replace the lines of an order; the backend recomputes its total."""
        self._session.require_role(*STAFF_ROLES)
        lines = list(items)
        if not lines:
            message = "Order must contain at least one item"
            self._notify(message)
            return TransitionResult(success=False, error_code="validation", message=message)
        token = self._session.token
        return await self._mutate(
            lambda: self._backend.update_order(token, order_id, items=lines)
        )

    async def delete_order(self, order_id: str) -> TransitionResult:
        self._session.require_role(Role.ADMIN)
        token = self._session.token
        return await self._mutate(lambda: self._backend.delete_order(token, order_id))

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    async def bill_customer(self, phone: str) -> Optional[BillResult]:
        """Mark every completed order of ``phone`` paid and return the bill."""
        self._session.require_role(Role.ADMIN)
        try:
            bill = await self._backend.bill_customer(self._session.token, phone)
        except BackendError as e:
            self._fail(e, "Failed to generate bill. Please try again.")
            return None
        logger.info(f"Billed {phone}: {bill.total_bill} ({len(bill.order_ids)} orders)")
        await self._orders.fetch_orders()
        return bill

    async def send_bill(self, order_id: str) -> bool:
        self._session.require_role(*STAFF_ROLES)
        try:
            await self._backend.send_bill(self._session.token, order_id)
        except BackendError as e:
            self._fail(e, "Failed to send bill. Please try again.")
            return False
        logger.info(f"Bill for order {order_id} sent")
        return True
