"""
Order Cache

Mirror of the backend's order list for the acting session, plus the derived
lists each dashboard renders. Fetches never raise: failures log, notify and
fall back to an empty list.

Stale responses are dropped. Every fetch takes a number from the cache's
request sequence before awaiting the backend; a response is applied only if
its number is still the newest, the session token has not changed, and the
requesting view (if any) is still active.

Version: 1.0.0
"""

import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from tableside.schemas import SETTLED_STATUSES, Order, OrderStatus, Role
from tableside.services.backend.base import AuthExpiredError, BackendError, BaseOrderBackend
from tableside.store.polling import RequestSequence
from tableside.store.session import SessionStore
from tableside.store.state import OrdersReplaced
from tableside.store.store import Store

logger = logging.getLogger(__name__)

Notify = Callable[[str], None]

# Parcel orders sort after every table.
PARCEL_SORT_KEY = "ZZZ"


def _by_table(order: Order) -> str:
    return order.table_no if order.is_table_order else PARCEL_SORT_KEY


def today_revenue(orders: Iterable[Order], now: Optional[float] = None) -> float:
    """Total of paid orders created on the local calendar day of ``now``."""
    today = datetime.fromtimestamp(now if now is not None else time.time()).date()
    return sum(
        o.total for o in orders
        if o.status in SETTLED_STATUSES
        and datetime.fromtimestamp(o.created_at / 1000).date() == today
    )


class OrderCache:
    def __init__(
        self,
        store: Store,
        backend: BaseOrderBackend,
        session: SessionStore,
        notify: Notify,
    ):
        self._store = store
        self._backend = backend
        self._session = session
        self._notify = notify
        self._sequence = RequestSequence()

    @property
    def orders(self) -> tuple[Order, ...]:
        return self._store.state.orders

    def get(self, order_id: str) -> Optional[Order]:
        return next((o for o in self.orders if o.id == order_id), None)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch_orders(self, is_current: Optional[Callable[[], bool]] = None) -> bool:
        """
        Replace the cache with GET /orders/.

        Returns:
            bool: True if a fresh list was applied
        """
        token = self._session.token
        if not token:
            self._store.dispatch(OrdersReplaced(orders=()))
            return False
        return await self._load(lambda: self._backend.list_orders(token), token, is_current)

    async def fetch_current_orders(
        self,
        include_paid: bool = True,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> bool:
        """Replace the cache with the customer's own orders (GET /orders/current/)."""
        session = self._session.session
        if session.role != Role.CUSTOMER:
            self._store.dispatch(OrdersReplaced(orders=()))
            return False
        token = session.token
        return await self._load(
            lambda: self._backend.current_orders(token, session.phone, include_paid),
            token,
            is_current,
        )

    async def _load(
        self,
        call: Callable[[], Awaitable[list[Order]]],
        token: str,
        is_current: Optional[Callable[[], bool]],
    ) -> bool:
        seq = self._sequence.issue()
        try:
            orders = await call()
        except AuthExpiredError as e:
            if self._session.token == token:
                logger.warning("Order fetch rejected, session expired")
                self._session.logout()
                self._notify(e.message)
            return False
        except BackendError as e:
            logger.warning(f"Order fetch failed: {e.message}")
            if self._accepts(seq, token, is_current):
                self._store.dispatch(OrdersReplaced(orders=()))
            return False

        if not self._accepts(seq, token, is_current):
            logger.debug(f"Discarding stale order response #{seq}")
            return False
        self._store.dispatch(OrdersReplaced(orders=tuple(orders)))
        return True

    def _accepts(self, seq: int, token: str, is_current: Optional[Callable[[], bool]]) -> bool:
        if not self._sequence.is_current(seq):
            return False
        if self._session.token != token:
            return False
        return is_current is None or is_current()

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def _with_status(self, status: OrderStatus) -> list[Order]:
        return [o for o in self.orders if o.status == status]

    @property
    def pending_orders(self) -> list[Order]:
        return self._with_status(OrderStatus.PENDING)

    @property
    def preparing_orders(self) -> list[Order]:
        return self._with_status(OrderStatus.PREPARING)

    @property
    def completed_orders(self) -> list[Order]:
        return self._with_status(OrderStatus.COMPLETED)

    @property
    def history(self) -> list[Order]:
        return [o for o in self.orders if o.status in SETTLED_STATUSES]

    def customer_orders(self, phone: str) -> list[Order]:
        return [o for o in self.orders if o.customer.phone == phone]

    @property
    def table_orders(self) -> list[Order]:
        return [o for o in self.orders if o.is_table_order]

    @property
    def parcel_orders(self) -> list[Order]:
        return [o for o in self.orders if not o.is_table_order]

    @property
    def kitchen_queue(self) -> list[Order]:
        """Orders the chef still has to act on, grouped by table."""
        active = (OrderStatus.PENDING, OrderStatus.PREPARING)
        return sorted((o for o in self.orders if o.status in active), key=_by_table)

    @property
    def unpaid_bills(self) -> list[Order]:
        return sorted(
            (o for o in self.orders if o.status not in SETTLED_STATUSES),
            key=_by_table,
        )

    @property
    def today_revenue(self) -> float:
        return today_revenue(self.orders)
