"""
Order Backend Abstract Base Class

Defines the interface contract for every backend the engine can talk to.
Both MockOrderBackend and HttpOrderBackend implement these methods, so the
engine behaves identically against the in-process kitchen and the live API.

Backends raise; the engine components catch at their public boundary and
turn failures into None/False results plus user-facing notices.

Error taxonomy:
    AuthExpiredError        401/403 on a protected call (forces logout)
    ConflictError           409, another actor moved the order first
    NotFoundError           404
    ValidationFailureError  any other 4xx, message surfaced verbatim
    NetworkFailureError     transport errors and 5xx

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from tableside.schemas import CartItem, MenuItem, Order, OrderStatus


class BackendError(Exception):
    """Base class for backend errors."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthExpiredError(BackendError):
    def __init__(self, status_code: int = 401) -> None:
        super().__init__("Session expired. Please log in again.", status_code)


class ConflictError(BackendError):
    """The order changed server-side; reload and retry."""


class NotFoundError(BackendError):
    pass


class ValidationFailureError(BackendError):
    pass


class NetworkFailureError(BackendError):
    pass


@dataclass
class BillResult:
    """Outcome of billing every unpaid order of a customer."""
    phone: str
    total_bill: float
    order_ids: list[str]


@dataclass
class TableVerification:
    """Outcome of verifying a scanned table QR code."""
    valid: bool
    table_no: Optional[str] = None


class BaseOrderBackend(ABC):
    """
    Abstract base class for order/menu backends.

    One coroutine per REST call consumed by the engine. ``token`` is the
    bearer token of the acting session; public endpoints take none.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name (e.g. "mock", "http")."""
        pass

    # -------------------------------------------------------------------------
    # Catalog & tables
    # -------------------------------------------------------------------------

    @abstractmethod
    async def fetch_menu(self) -> list[MenuItem]:
        """GET /menu/"""
        pass

    @abstractmethod
    async def verify_table(self, table_no: str, qr_hash: str) -> TableVerification:
        """GET /tables/verify/{table_no}/{hash}/"""
        pass

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    @abstractmethod
    async def register_customer(self, phone: str, email: str) -> None:
        """POST /auth/customer/register/ (triggers an OTP)."""
        pass

    @abstractmethod
    async def verify_customer(self, email: str, otp: str) -> str:
        """POST /auth/customer/verify/, returns the customer token."""
        pass

    @abstractmethod
    async def staff_login(self, username: str, password: str) -> str:
        """POST /auth/staff/login/, returns the staff token."""
        pass

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_orders(self, token: str) -> list[Order]:
        """GET /orders/"""
        pass

    @abstractmethod
    async def current_orders(
        self,
        token: str,
        phone: str,
        include_paid: bool = False,
    ) -> list[Order]:
        """GET /orders/current/?phone=&include_paid="""
        pass

    @abstractmethod
    async def create_order(self, token: str, payload: dict[str, Any]) -> Optional[Order]:
        """
        POST /orders/

        Returns:
            The order as echoed by the backend, or None when the backend
            acknowledges without a parseable body.
        """
        pass

    @abstractmethod
    async def update_order(
        self,
        token: str,
        order_id: str,
        *,
        status: Optional[OrderStatus] = None,
        table_no: Optional[str] = None,
        items: Optional[list[CartItem]] = None,
    ) -> None:
        """PATCH /orders/{id}/ with exactly the fields given."""
        pass

    @abstractmethod
    async def delete_order(self, token: str, order_id: str) -> None:
        """DELETE /orders/{id}/"""
        pass

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    @abstractmethod
    async def bill_customer(self, token: str, phone: str) -> BillResult:
        """POST /customers/bill/"""
        pass

    @abstractmethod
    async def send_bill(self, token: str, order_id: str) -> None:
        """POST /send_bill_email/"""
        pass

    async def aclose(self) -> None:
        """Release network resources, if any."""
        return None
