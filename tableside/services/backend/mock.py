"""
Mock Order Backend Implementation

Runs the engine against an in-process Kitchen instead of the REST API.
Used in development mode (ENV_MODE=development) to:
    - Exercise the full guest → OTP → kitchen → billing flow locally
    - Drive dashboards without a running server
    - Test failure handling deterministically

Behavior:
    - Simulates response times (MOCK_MIN_LATENCY-MOCK_MAX_LATENCY seconds)
    - Randomly raises NetworkFailureError at MOCK_FAILURE_RATE
    - Logs issued OTPs instead of mailing them

Version: 1.0.0
"""

import asyncio
import logging
import random
from typing import Any, Optional

from tableside.schemas import CartItem, MenuItem, Order, OrderStatus
from tableside.services.backend.base import (
    BaseOrderBackend,
    BillResult,
    NetworkFailureError,
    TableVerification,
)
from tableside.services.backend.kitchen import Kitchen

logger = logging.getLogger(__name__)


class MockOrderBackend(BaseOrderBackend):
    """
    Mock implementation of the order backend.

    Attributes:
        kitchen: The in-memory backend state (exposed for tests and demos)
        failure_rate: Probability of a simulated network failure (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> backend = MockOrderBackend(failure_rate=0.0)
        >>> menu = await backend.fetch_menu()
    """

    def __init__(
        self,
        kitchen: Optional[Kitchen] = None,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.kitchen = kitchen or Kitchen()
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        logger.info(
            f"MockOrderBackend initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency; always yields to the event loop."""
        latency = random.uniform(self.min_latency, self.max_latency) if self.max_latency else 0
        await asyncio.sleep(latency)

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def _roundtrip(self, name: str) -> None:
        await self._simulate_latency()
        if self._should_fail():
            logger.warning(f"Mock {name} failed (simulated)")
            raise NetworkFailureError(f"Simulated network failure during {name}")

    async def fetch_menu(self) -> list[MenuItem]:
        await self._roundtrip("fetch_menu")
        return list(self.kitchen.menu)

    async def verify_table(self, table_no: str, qr_hash: str) -> TableVerification:
        await self._roundtrip("verify_table")
        return self.kitchen.verify_table(table_no, qr_hash)

    async def register_customer(self, phone: str, email: str) -> None:
        await self._roundtrip("register_customer")
        otp = self.kitchen.register_customer(phone, email)
        logger.info(f"Mock OTP for {email}: {otp}")

    async def verify_customer(self, email: str, otp: str) -> str:
        await self._roundtrip("verify_customer")
        return self.kitchen.verify_customer(email, otp)

    async def staff_login(self, username: str, password: str) -> str:
        await self._roundtrip("staff_login")
        return self.kitchen.staff_login(username, password)

    async def list_orders(self, token: str) -> list[Order]:
        await self._roundtrip("list_orders")
        return self.kitchen.list_orders(token)

    async def current_orders(
        self,
        token: str,
        phone: str,
        include_paid: bool = False,
    ) -> list[Order]:
        await self._roundtrip("current_orders")
        return self.kitchen.current_orders(token, phone, include_paid)

    async def create_order(self, token: str, payload: dict[str, Any]) -> Optional[Order]:
        await self._roundtrip("create_order")
        return self.kitchen.create_order(token, payload)

    async def update_order(
        self,
        token: str,
        order_id: str,
        *,
        status: Optional[OrderStatus] = None,
        table_no: Optional[str] = None,
        items: Optional[list[CartItem]] = None,
    ) -> None:
        await self._roundtrip("update_order")
        self.kitchen.update_order(token, order_id, status=status, table_no=table_no, items=items)

    async def delete_order(self, token: str, order_id: str) -> None:
        await self._roundtrip("delete_order")
        self.kitchen.delete_order(token, order_id)

    async def bill_customer(self, token: str, phone: str) -> BillResult:
        await self._roundtrip("bill_customer")
        return self.kitchen.bill_customer(token, phone)

    async def send_bill(self, token: str, order_id: str) -> None:
        await self._roundtrip("send_bill")
        self.kitchen.send_bill(token, order_id)
