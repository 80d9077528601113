"""
HTTP Order Backend Implementation

Production backend talking to the restaurant REST API with httpx.
Used when ENV_MODE=production or ENV_MODE=staging.

Every protected call sends ``Authorization: Bearer <token>``. Status codes
are translated into the error taxonomy of ``base.py``; transport failures
become NetworkFailureError so callers never see raw httpx exceptions.

Version: 1.0.0
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from tableside.core.config import get_settings
from tableside.schemas import CartItem, MenuItem, Order, OrderStatus
from tableside.services.backend.base import (
    AuthExpiredError,
    BaseOrderBackend,
    BillResult,
    ConflictError,
    NetworkFailureError,
    NotFoundError,
    TableVerification,
    ValidationFailureError,
)

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull the backend's own message out of an error body, if any."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def _json(response: httpx.Response, what: str) -> Any:
    """Decode a success body; a body that is not JSON counts as a network failure."""
    try:
        return response.json()
    except ValueError as e:
        logger.warning(f"Malformed {what} response: {e}")
        raise NetworkFailureError(f"Malformed {what} response") from e


def _json_object(response: httpx.Response, what: str) -> dict[str, Any]:
    data = _json(response, what)
    if not isinstance(data, dict):
        logger.warning(f"Malformed {what} response: expected an object")
        raise NetworkFailureError(f"Malformed {what} response")
    return data


def _token(response: httpx.Response) -> str:
    token = _json_object(response, "login").get("token")
    if not isinstance(token, str) or not token:
        raise NetworkFailureError("Malformed login response: no token")
    return token


def _parse_orders(data: Any) -> list[Order]:
    """
    Parse an order list, skipping records that do not fit the schema.

    A single malformed record should not blank the whole dashboard.
    """
    if not isinstance(data, list):
        return []
    orders = []
    for raw in data:
        try:
            orders.append(Order.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed order {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")
    return orders


class HttpOrderBackend(BaseOrderBackend):
    """
    REST backend over httpx.AsyncClient.

    Example:
        >>> backend = HttpOrderBackend("http://localhost:8000/api/")
        >>> menu = await backend.fetch_menu()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            base_url: API root, defaults to API_BASE_URL
            timeout: Request timeout in seconds, defaults to REQUEST_TIMEOUT
            transport: Custom transport (tests mount the dev server here)
        """
        settings = get_settings()
        self.base_url = base_url or settings.api_base_url
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.request_timeout,
            transport=transport,
        )
        logger.info(f"HttpOrderBackend initialized ({self.base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send a request and map failures onto the backend error taxonomy."""
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = await self._client.request(
                method, path, headers=headers, json=json, params=params
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkFailureError(f"Network error: {e}") from e

        code = response.status_code
        if response.is_success:
            return response
        if code in (401, 403):
            raise AuthExpiredError(code)
        if code == 404:
            raise NotFoundError(_error_message(response, "Not found"), code)
        if code == 409:
            raise ConflictError(
                _error_message(response, "Order was changed by someone else"), code
            )
        if 400 <= code < 500:
            raise ValidationFailureError(_error_message(response, "Request rejected"), code)
        raise NetworkFailureError(f"Server error ({code})", code)

    # -------------------------------------------------------------------------
    # Catalog & tables
    # -------------------------------------------------------------------------

    async def fetch_menu(self) -> list[MenuItem]:
        response = await self._request("GET", "menu/")
        try:
            return [MenuItem.model_validate(raw) for raw in _json(response, "menu")]
        except (ValueError, TypeError) as e:
            raise NetworkFailureError(f"Malformed menu response: {e}") from e

    async def verify_table(self, table_no: str, qr_hash: str) -> TableVerification:
        response = await self._request("GET", f"tables/verify/{table_no}/{qr_hash}/")
        data = _json_object(response, "table verification")
        return TableVerification(
            valid=bool(data.get("valid")),
            table_no=data.get("table_no"),
        )

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def register_customer(self, phone: str, email: str) -> None:
        await self._request(
            "POST", "auth/customer/register/", json={"phone": phone, "email": email}
        )

    async def verify_customer(self, email: str, otp: str) -> str:
        try:
            response = await self._request(
                "POST", "auth/customer/verify/", json={"otp": otp, "email": email}
            )
        except AuthExpiredError as e:
            # No session exists yet, so a 401 here means a wrong code.
            raise ValidationFailureError("Invalid OTP", e.status_code) from e
        return _token(response)

    async def staff_login(self, username: str, password: str) -> str:
        try:
            response = await self._request(
                "POST",
                "auth/staff/login/",
                json={"username": username, "password": password},
            )
        except AuthExpiredError as e:
            raise ValidationFailureError(
                "Invalid credentials. Please check your password.", e.status_code
            ) from e
        return _token(response)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def list_orders(self, token: str) -> list[Order]:
        response = await self._request("GET", "orders/", token=token)
        return _parse_orders(_json(response, "order list"))

    async def current_orders(
        self,
        token: str,
        phone: str,
        include_paid: bool = False,
    ) -> list[Order]:
        try:
            response = await self._request(
                "GET",
                "orders/current/",
                token=token,
                params={"phone": phone, "include_paid": str(include_paid).lower()},
            )
        except NotFoundError:
            return []

        # Either a bare order or {"all_orders": [...]}
        data = _json(response, "current orders")
        if isinstance(data, dict) and "all_orders" in data:
            return _parse_orders(data["all_orders"])
        if isinstance(data, dict) and data:
            return _parse_orders([data])
        return _parse_orders(data)

    async def create_order(self, token: str, payload: dict[str, Any]) -> Optional[Order]:
        response = await self._request("POST", "orders/", token=token, json=payload)
        try:
            return Order.model_validate(response.json())
        except (ValueError, ValidationError):
            return None

    async def update_order(
        self,
        token: str,
        order_id: str,
        *,
        status: Optional[OrderStatus] = None,
        table_no: Optional[str] = None,
        items: Optional[list[CartItem]] = None,
    ) -> None:
        body: dict[str, Any] = {}
        if status is not None:
            body["status"] = status.value
        if table_no is not None:
            body["table_no"] = table_no
        if items is not None:
            body["items"] = [item.model_dump(mode="json") for item in items]
        await self._request("PATCH", f"orders/{order_id}/", token=token, json=body)

    async def delete_order(self, token: str, order_id: str) -> None:
        await self._request("DELETE", f"orders/{order_id}/", token=token)

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    async def bill_customer(self, token: str, phone: str) -> BillResult:
        response = await self._request(
            "POST", "customers/bill/", token=token, json={"phone": phone}
        )
        data = _json_object(response, "bill")
        try:
            return BillResult(
                phone=phone,
                total_bill=float(data.get("total_bill", 0.0)),
                order_ids=[str(i) for i in data.get("order_ids", [])],
            )
        except (ValueError, TypeError) as e:
            raise NetworkFailureError(f"Malformed bill response: {e}") from e

    async def send_bill(self, token: str, order_id: str) -> None:
        await self._request(
            "POST", "send_bill_email/", token=token, json={"order_id": order_id}
        )

    async def aclose(self) -> None:
        await self._client.aclose()
