"""
Ordering Engine

Wires the store, its components and a backend into the object a front end
drives. The components stay reachable as attributes (``engine.cart``,
``engine.orders``, ``engine.gateway``...); the engine itself adds the
multi-step flows: OTP login with pending-order replay, staff login, QR
table scan and checkout.

Usage:
    async with OrderingEngine() as engine:
        engine.cart.add_to_cart("m1")
        result = await engine.checkout()
        if result.auth_required:
            await engine.request_otp(phone, email)
            await engine.verify_otp(phone, email, otp)

Version: 1.0.0
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from tableside.schemas import STAFF_ROLES, Order, Role, validate_contact
from tableside.services.backend import get_backend
from tableside.services.backend.base import BackendError, BaseOrderBackend
from tableside.store import (
    CartLedger,
    CheckoutResult,
    DashboardView,
    EngineUsageError,
    MenuCache,
    OrderCache,
    PendingOrderHandoff,
    PersistenceLayer,
    SessionStore,
    Store,
    TransitionGateway,
    ViewKind,
)

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """
    Outcome of an OTP verification.

    Attributes:
        verified: The OTP was accepted and the customer is logged in
        order: The order placed from the pending cart, if any
        replayed: A pending order existed and was placed
    """
    verified: bool
    order: Optional[Order] = None
    replayed: bool = False

    def __bool__(self) -> bool:
        return self.verified


class OrderingEngine:
    """
    Client-side ordering engine.

    Attributes:
        notices: Most recent user-facing messages, newest last
    """

    MAX_NOTICES = 50

    def __init__(
        self,
        backend: Optional[BaseOrderBackend] = None,
        persistence: Optional[PersistenceLayer] = None,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.backend = backend or get_backend()
        self.persistence = persistence or PersistenceLayer()
        self.notices: deque[str] = deque(maxlen=self.MAX_NOTICES)
        self._on_notice = notify

        self.store = Store(self.persistence)
        self.session = SessionStore(self.store)
        self.menu = MenuCache(self.store, self.backend)
        self.cart = CartLedger(self.store)
        self.orders = OrderCache(self.store, self.backend, self.session, self.notify)
        self.gateway = TransitionGateway(
            self.store, self.backend, self.orders, self.session, self.notify
        )
        self.handoff = PendingOrderHandoff(self.store, self.gateway, self.notify)

        logger.info(
            f"OrderingEngine ready (backend={self.backend.provider_name}, "
            f"role={self.session.session.role.value})"
        )

    def notify(self, message: str) -> None:
        """Record a user-facing message."""
        self.notices.append(message)
        if self._on_notice is not None:
            self._on_notice(message)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Load the menu and, for a restored login, the orders."""
        await self.menu.fetch_menu()
        if not self.session.session.is_guest:
            await self.orders.fetch_orders()

    async def close(self) -> None:
        await self.backend.aclose()

    async def __aenter__(self) -> "OrderingEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def watch(self, kind: ViewKind, interval: Optional[float] = None) -> DashboardView:
        """A polling view over the order cache; use with ``async with``."""
        return DashboardView(self.orders, kind, interval)

    # -------------------------------------------------------------------------
    # Customer login
    # -------------------------------------------------------------------------

    async def request_otp(self, phone: str, email: str) -> bool:
        """Ask the backend to send an OTP to ``email``."""
        error = validate_contact(phone, email)
        if error:
            self.notify(error)
            return False
        try:
            await self.backend.register_customer(phone, email)
        except BackendError as e:
            logger.warning(f"OTP request for {email} failed: {e.message}")
            self.notify(e.message or "Failed to send OTP. Please try again.")
            return False
        logger.info(f"OTP requested for {email}")
        return True

    async def verify_otp(self, phone: str, email: str, otp: str) -> VerificationResult:
        """
        Verify the OTP, log the customer in and place any pending order.

        Returns:
            VerificationResult: Falsy when the OTP was rejected
        """
        try:
            token = await self.backend.verify_customer(email, otp)
        except BackendError as e:
            logger.warning(f"OTP verification for {email} failed: {e.message}")
            self.notify(e.message or "Invalid OTP")
            return VerificationResult(verified=False)

        result = await self.handoff.consume(phone, email, token)
        logger.info(f"Customer {phone} verified (replayed={result.replayed})")
        await self.orders.fetch_orders()
        return VerificationResult(verified=True, order=result.order, replayed=result.replayed)

    async def login_customer(self, phone: str, email: str, token: str) -> None:
        """Adopt a customer token obtained elsewhere."""
        self.session.login_customer(phone, email, token)
        await self.orders.fetch_orders()

    # -------------------------------------------------------------------------
    # Staff login
    # -------------------------------------------------------------------------

    async def staff_login(self, role: Role, password: str) -> bool:
        """
        Log in as chef or admin. The username sent is the role name.

        Raises:
            EngineUsageError: ``role`` is not a staff role
        """
        role = Role(role)
        if role not in STAFF_ROLES:
            raise EngineUsageError(f"{role.value} is not a staff role")
        try:
            token = await self.backend.staff_login(role.value, password)
        except BackendError as e:
            logger.warning(f"Staff login as {role.value} failed: {e.message}")
            self.notify(e.message or "Login failed. Please try again.")
            return False
        self.session.login_staff(role, token)
        await self.orders.fetch_orders()
        return True

    def logout(self) -> None:
        self.session.logout()

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    async def scan_table(self, table_no: str, qr_hash: str) -> bool:
        """Verify a scanned table QR code and make it the current table."""
        try:
            verification = await self.backend.verify_table(table_no, qr_hash)
        except BackendError as e:
            logger.warning(f"Table verification failed: {e.message}")
            self.notify("Could not verify table. Please scan again.")
            return False
        if not verification.valid:
            self.notify("Invalid table QR code")
            return False
        self.session.set_current_table(verification.table_no or table_no)
        logger.info(f"Seated at table {self.session.current_table}")
        return True

    def select_table(self, table_no: Optional[str]) -> None:
        """Set the current table by hand (staff-assisted seating), or clear it."""
        self.session.set_current_table(table_no)

    async def checkout(self) -> CheckoutResult:
        return await self.handoff.checkout()
