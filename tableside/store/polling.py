"""
Polling and Dashboard Views

Each dashboard keeps its order list fresh by polling on a fixed interval.
Pollers are asyncio tasks owned by a ``DashboardView``; leaving the view
(``async with``) cancels the task, and responses that arrive after that are
discarded by the order cache.

Usage:
    async with engine.watch(ViewKind.CHEF) as view:
        await asyncio.sleep(60)
        print(view.orders)

Version: 1.0.0
"""

import asyncio
import contextlib
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from tableside.core.config import get_settings
from tableside.schemas import Order

if TYPE_CHECKING:
    from tableside.store.orders import OrderCache

logger = logging.getLogger(__name__)


class RequestSequence:
    """Monotonic request counter; only the newest request may apply its result."""

    def __init__(self):
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, seq: int) -> bool:
        return seq == self._latest


class Poller:
    """
    Calls ``refresh`` immediately and then every ``interval`` seconds.

    Exceptions raised by ``refresh`` are logged and the loop continues.
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[object]],
        interval: float,
        name: str = "poller",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._refresh = refresh
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.debug(f"{self.name} started (every {self.interval}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug(f"{self.name} stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._refresh()
            except Exception:
                logger.exception(f"{self.name} refresh failed")
            await asyncio.sleep(self.interval)


class ViewKind(str, Enum):
    CHEF = "chef"
    KITCHEN = "kitchen"
    CUSTOMER = "customer"
    HISTORY = "history"


def default_interval(kind: ViewKind) -> float:
    settings = get_settings()
    return {
        ViewKind.CHEF: settings.chef_poll_seconds,
        ViewKind.KITCHEN: settings.kitchen_poll_seconds,
        ViewKind.CUSTOMER: settings.customer_poll_seconds,
        ViewKind.HISTORY: settings.history_poll_seconds,
    }[kind]


class DashboardView:
    """
    A live order list for one screen.

    ``orders`` is recomputed from the shared cache on every access, so it
    always reflects the latest applied response.
    """

    def __init__(self, cache: "OrderCache", kind: ViewKind, interval: Optional[float] = None):
        self.cache = cache
        self.kind = ViewKind(kind)
        self.active = False
        self._poller = Poller(
            self.refresh,
            interval or default_interval(self.kind),
            name=f"{self.kind.value}-poller",
        )

    @property
    def interval(self) -> float:
        return self._poller.interval

    @property
    def is_polling(self) -> bool:
        return self._poller.is_running

    async def refresh(self) -> bool:
        if self.kind == ViewKind.CUSTOMER:
            return await self.cache.fetch_current_orders(include_paid=True, is_current=self._is_active)
        return await self.cache.fetch_orders(is_current=self._is_active)

    def _is_active(self) -> bool:
        return self.active

    @property
    def orders(self) -> list[Order]:
        if self.kind == ViewKind.CHEF:
            return self.cache.kitchen_queue
        if self.kind == ViewKind.KITCHEN:
            return self.cache.pending_orders + self.cache.preparing_orders + self.cache.completed_orders
        if self.kind == ViewKind.HISTORY:
            return self.cache.history
        return list(self.cache.orders)

    async def __aenter__(self) -> "DashboardView":
        self.active = True
        self._poller.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.active = False
        await self._poller.stop()
