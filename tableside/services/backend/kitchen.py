"""
In-Memory Kitchen

A self-contained implementation of the backend rules the engine relies on:
OTP issue/verify, staff login, per-role order visibility, forward-only status
transitions and billing. It backs both the mock backend (development mode)
and the FastAPI dev server, so the two always agree on behaviour.

Nothing is persisted; restart the process for a clean kitchen.

Version: 1.0.0
"""

import hashlib
import logging
import random
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from tableside.schemas import (
    SETTLED_STATUSES,
    TRANSITIONS,
    CartItem,
    Customer,
    MenuItem,
    Order,
    OrderStatus,
    Role,
    cart_total,
    generate_order_id,
    next_status,
)
from tableside.services.backend.base import (
    AuthExpiredError,
    BillResult,
    ConflictError,
    NotFoundError,
    TableVerification,
    ValidationFailureError,
)

logger = logging.getLogger(__name__)


DEFAULT_MENU = [
    MenuItem(
        id="m1",
        name="Margherita Pizza",
        price=706,
        description="Classic pizza with tomato, mozzarella and basil.",
        category="Pizza",
        image="/margherita-pizza.png",
    ),
    MenuItem(
        id="m2",
        name="Chicken Burger",
        price=581,
        description="Crispy chicken patty with lettuce and mayo.",
        category="Burger",
        image="/chicken-burger.jpg",
    ),
    MenuItem(
        id="m3",
        name="Pasta Alfredo",
        price=768,
        description="Creamy alfredo sauce with parmesan.",
        category="Pasta",
        image="/pasta-alfredo.jpg",
    ),
    MenuItem(
        id="m4",
        name="Caesar Salad",
        price=498,
        description="Romaine, croutons and caesar dressing.",
        category="Salad",
        image="/caesar-salad.png",
    ),
]


@dataclass
class Principal:
    role: Role
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class _PendingOtp:
    phone: str
    otp: str
    issued_at: float = field(default_factory=time.time)


class Kitchen:
    """
    In-memory order/menu backend.

    Example:
        >>> kitchen = Kitchen()
        >>> otp = kitchen.register_customer("9998887776", "a@b.co")
        >>> token = kitchen.verify_customer("a@b.co", otp)
    """

    OTP_TTL_SECONDS = 300

    def __init__(
        self,
        menu: Optional[list[MenuItem]] = None,
        staff_password: str = "kitchen123",
        qr_secret: Optional[str] = None,
        tables: Optional[list[str]] = None,
    ):
        self.menu: list[MenuItem] = list(menu if menu is not None else DEFAULT_MENU)
        self.staff_password = staff_password
        self._qr_secret = qr_secret or secrets.token_hex(8)
        self.tables: set[str] = set(tables or [str(n) for n in range(1, 11)])
        self.orders: dict[str, Order] = {}
        self.sent_bills: list[str] = []
        self._otps: dict[str, _PendingOtp] = {}
        self._tokens: dict[str, Principal] = {}

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def authenticate(self, token: Optional[str]) -> Principal:
        principal = self._tokens.get(token or "")
        if principal is None:
            raise AuthExpiredError(401)
        return principal

    def _require_staff(self, token: Optional[str]) -> Principal:
        principal = self.authenticate(token)
        if principal.role not in (Role.CHEF, Role.ADMIN):
            raise AuthExpiredError(403)
        return principal

    def _issue_token(self, principal: Principal) -> str:
        token = secrets.token_urlsafe(24)
        self._tokens[token] = principal
        return token

    def revoke(self, token: str) -> None:
        """Invalidate a token, as a server-side session expiry would."""
        self._tokens.pop(token, None)

    def register_customer(self, phone: str, email: str) -> str:
        """Issue an OTP for ``email``; returns it (the real server mails it)."""
        if not phone or not email:
            raise ValidationFailureError("Phone and email are required", 400)
        self._prune_otps()
        otp = f"{random.randint(0, 999999):06d}"
        self._otps[email] = _PendingOtp(phone=phone, otp=otp, issued_at=time.time())
        logger.info(f"Kitchen: OTP issued for {email}")
        return otp

    def pending_otp(self, email: str) -> Optional[str]:
        pending = self._otps.get(email)
        return pending.otp if pending else None

    def _prune_otps(self) -> None:
        cutoff = time.time() - self.OTP_TTL_SECONDS
        for email in [e for e, p in self._otps.items() if p.issued_at < cutoff]:
            del self._otps[email]

    def verify_customer(self, email: str, otp: str) -> str:
        pending = self._otps.get(email)
        if pending is None or pending.otp != otp:
            raise ValidationFailureError("Invalid OTP", 400)
        if time.time() - pending.issued_at > self.OTP_TTL_SECONDS:
            del self._otps[email]
            raise ValidationFailureError("OTP expired", 400)
        del self._otps[email]
        return self._issue_token(Principal(Role.CUSTOMER, pending.phone, email))

    def staff_login(self, username: str, password: str) -> str:
        try:
            role = Role(username)
        except ValueError:
            role = None
        if role not in (Role.CHEF, Role.ADMIN) or password != self.staff_password:
            raise ValidationFailureError("Invalid credentials", 400)
        return self._issue_token(Principal(role))

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def qr_hash(self, table_no: str) -> str:
        digest = hashlib.sha256(f"{self._qr_secret}:{table_no}".encode("utf-8"))
        return digest.hexdigest()[:16]

    def verify_table(self, table_no: str, qr_hash: str) -> TableVerification:
        if table_no in self.tables and secrets.compare_digest(qr_hash, self.qr_hash(table_no)):
            return TableVerification(valid=True, table_no=table_no)
        return TableVerification(valid=False)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def _newest_first(self, orders) -> list[Order]:
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def _get(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", 404)
        return order

    def list_orders(self, token: Optional[str]) -> list[Order]:
        principal = self.authenticate(token)
        if principal.role == Role.CUSTOMER:
            mine = (o for o in self.orders.values() if o.customer.phone == principal.phone)
            return self._newest_first(mine)
        return self._newest_first(self.orders.values())

    def current_orders(
        self,
        token: Optional[str],
        phone: str,
        include_paid: bool = False,
    ) -> list[Order]:
        principal = self.authenticate(token)
        if principal.role == Role.CUSTOMER and principal.phone != phone:
            raise AuthExpiredError(403)
        orders = [
            o for o in self.orders.values()
            if o.customer.phone == phone and (include_paid or o.status not in SETTLED_STATUSES)
        ]
        return self._newest_first(orders)

    def create_order(self, token: Optional[str], payload: dict[str, Any]) -> Order:
        principal = self.authenticate(token)
        data = dict(payload)
        try:
            items = tuple(CartItem.model_validate(i) for i in data.get("items") or [])
        except ValidationError as e:
            raise ValidationFailureError(f"Invalid items: {e.error_count()} error(s)", 400) from e
        if not items:
            raise ValidationFailureError("Order must contain at least one item", 400)

        if principal.role == Role.CUSTOMER:
            customer = Customer(phone=principal.phone or "", email=principal.email or "")
        else:
            customer = Customer.model_validate(data.get("customer") or {})

        order_id = str(data.get("id") or generate_order_id())
        if order_id in self.orders:
            raise ConflictError(f"Order {order_id} already exists", 409)

        order = Order(
            id=order_id,
            items=items,
            total=data.get("total", cart_total(items)),
            status=OrderStatus.PENDING,
            customer=customer,
            table_no=data.get("table_no") or None,
            created_at=data.get("createdAt") or int(time.time() * 1000),
        )
        self.orders[order.id] = order
        logger.info(f"Kitchen: order {order.id} created (total={order.total})")
        return order

    def update_order(
        self,
        token: Optional[str],
        order_id: str,
        *,
        status: Optional[OrderStatus] = None,
        table_no: Optional[str] = None,
        items: Optional[list[CartItem]] = None,
    ) -> Order:
        principal = self._require_staff(token)
        order = self._get(order_id)
        changes: dict[str, Any] = {}

        if status is not None:
            if status != next_status(order.status):
                raise ConflictError(
                    f"Order {order_id} is {order.status.value}, cannot move to {status.value}",
                    409,
                )
            if principal.role not in TRANSITIONS[status][1]:
                raise ValidationFailureError(
                    f"{principal.role.value} may not mark orders {status.value}", 400
                )
            changes["status"] = status
        if table_no is not None:
            changes["table_no"] = table_no or None
        if items is not None:
            if not items:
                raise ValidationFailureError("Order must contain at least one item", 400)
            changes["items"] = tuple(items)
            changes["total"] = cart_total(items)

        updated = order.model_copy(update=changes)
        self.orders[order_id] = updated
        return updated

    def delete_order(self, token: Optional[str], order_id: str) -> None:
        principal = self._require_staff(token)
        if principal.role != Role.ADMIN:
            raise ValidationFailureError("Only admin may delete orders", 400)
        self._get(order_id)
        del self.orders[order_id]

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    def bill_customer(self, token: Optional[str], phone: str) -> BillResult:
        principal = self._require_staff(token)
        if principal.role != Role.ADMIN:
            raise ValidationFailureError("Only admin may bill customers", 400)
        billable = [
            o for o in self.orders.values()
            if o.customer.phone == phone and o.status == OrderStatus.COMPLETED
        ]
        if not billable:
            raise ValidationFailureError(f"No completed unpaid orders for {phone}", 400)
        for order in billable:
            self.orders[order.id] = order.model_copy(update={"status": OrderStatus.PAID})
        return BillResult(
            phone=phone,
            total_bill=sum(o.total for o in billable),
            order_ids=[o.id for o in billable],
        )

    def send_bill(self, token: Optional[str], order_id: str) -> None:
        self._require_staff(token)
        order = self._get(order_id)
        if not order.customer.email:
            raise ValidationFailureError("Customer has no email on file", 400)
        self.sent_bills.append(order_id)
        logger.info(f"Kitchen: bill for {order_id} sent to {order.customer.email}")
