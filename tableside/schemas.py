"""
Pydantic Schemas for Engine State and Backend Payloads

Every record the engine holds is an immutable (frozen) model, so state
transitions always build new objects instead of editing shared ones.

Version: 1.0.0
"""

import random
import re
import string
import time
from enum import Enum
from typing import Annotated, Any, Iterable, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    GUEST = "guest"
    CUSTOMER = "customer"
    CHEF = "chef"
    ADMIN = "admin"


STAFF_ROLES = frozenset({Role.CHEF, Role.ADMIN})


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    COMPLETED = "completed"
    PAID = "paid"
    # Reported by some dashboards/backends but never produced by the engine.
    READY = "ready"
    SERVED = "served"
    CUSTOMER_PAID = "customer_paid"


# Forward-only workflow driven by the transition gateway.
WORKFLOW = (
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.COMPLETED,
    OrderStatus.PAID,
)

SETTLED_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CUSTOMER_PAID})

# target status -> (required source status, roles allowed to move it there)
TRANSITIONS = {
    OrderStatus.PREPARING: (OrderStatus.PENDING, STAFF_ROLES),
    OrderStatus.COMPLETED: (OrderStatus.PREPARING, STAFF_ROLES),
    OrderStatus.PAID: (OrderStatus.COMPLETED, frozenset({Role.ADMIN})),
}


def next_status(status: OrderStatus) -> Optional[OrderStatus]:
    """The only status an order may advance to from ``status``."""
    if status not in WORKFLOW:
        return None
    index = WORKFLOW.index(status)
    return WORKFLOW[index + 1] if index + 1 < len(WORKFLOW) else None


def _as_str(v: Any) -> Any:
    """Backends may send numeric primary keys; ids are always strings here."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


StrId = Annotated[str, BeforeValidator(_as_str)]


# =============================================================================
# IDENTITY
# =============================================================================

class Session(BaseModel):
    """
    Who is using the engine.

    The validator is the single place the identity invariant is enforced:
    a token exists exactly when the role is not guest, and phone/email exist
    exactly when the role is customer.
    """
    model_config = ConfigDict(frozen=True)

    role: Role = Role.GUEST
    phone: Optional[str] = None
    email: Optional[str] = None
    token: Optional[str] = None

    @model_validator(mode="after")
    def check_identity(self) -> "Session":
        if self.role == Role.GUEST:
            if self.token:
                raise ValueError("guest session cannot carry a token")
        elif not self.token:
            raise ValueError(f"{self.role.value} session requires a token")

        if self.role == Role.CUSTOMER:
            if not self.phone or not self.email:
                raise ValueError("customer session requires phone and email")
        elif self.phone or self.email:
            raise ValueError("only customer sessions carry phone/email")
        return self

    @property
    def is_guest(self) -> bool:
        return self.role == Role.GUEST

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# =============================================================================
# CATALOG & CART
# =============================================================================

class MenuItem(BaseModel):
    """Catalog entry as served by GET /menu/."""
    model_config = ConfigDict(frozen=True)

    id: StrId
    name: str
    price: float = Field(..., ge=0)
    description: str = ""
    category: str = ""
    image: str = ""


class CartItem(BaseModel):
    """Single line of a cart or order, keyed by menu item id."""
    model_config = ConfigDict(frozen=True)

    id: StrId
    name: str
    price: float = Field(..., ge=0)
    qty: int = Field(..., ge=1)

    @property
    def line_total(self) -> float:
        return self.price * self.qty


def cart_total(items: Iterable[CartItem]) -> float:
    """Sum of price * qty over the given lines."""
    return sum(item.price * item.qty for item in items)


class PendingOrderData(BaseModel):
    """Cart and table captured before authentication, replayed after OTP."""
    model_config = ConfigDict(frozen=True)

    items: tuple[CartItem, ...]
    table_no: Optional[str] = None


# =============================================================================
# ORDERS
# =============================================================================

class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    phone: str = ""
    email: str = ""


def generate_order_id() -> str:
    """Local order id: 'ord_' followed by seven base36 characters."""
    alphabet = string.digits + string.ascii_lowercase
    return "ord_" + "".join(random.choices(alphabet, k=7))


class Order(BaseModel):
    """
    Order as mirrored from the backend.

    ``total`` is fixed when the order is built from a cart and never
    recomputed locally, even if staff later edit the items server-side.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: StrId
    items: tuple[CartItem, ...]
    total: float
    status: OrderStatus = OrderStatus.PENDING
    customer: Customer = Field(default_factory=Customer)
    table_no: Optional[str] = None
    created_at: int = Field(default=0, alias="createdAt")

    @classmethod
    def from_cart(
        cls,
        items: Iterable[CartItem],
        customer: Customer,
        table_no: Optional[str] = None,
    ) -> "Order":
        lines = tuple(items)
        return cls(
            id=generate_order_id(),
            items=lines,
            total=cart_total(lines),
            status=OrderStatus.PENDING,
            customer=customer,
            table_no=table_no,
            created_at=int(time.time() * 1000),
        )

    @property
    def is_table_order(self) -> bool:
        return bool(self.table_no and self.table_no.strip())

    def to_payload(self) -> dict[str, Any]:
        """Wire representation for POST /orders/."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# REQUEST VALIDATION
# =============================================================================

PHONE_PATTERN = re.compile(r"^\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_contact(phone: str, email: str) -> Optional[str]:
    """
    Check OTP registration input the way the sign-in form does.

    Returns:
        An error message, or None when both fields are acceptable
    """
    if not PHONE_PATTERN.match(phone or ""):
        return "Phone number must be 10 digits"
    if not EMAIL_PATTERN.match(email or ""):
        return "Invalid email format"
    return None
