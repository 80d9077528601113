"""
Development REST Server

FastAPI application serving the order/menu REST contract from an in-memory
Kitchen. Point API_BASE_URL at it to run the engine's HTTP backend end to
end without the production server.

Endpoints (all under /api):
    - GET    /menu/
    - GET    /tables/verify/{table_no}/{qr_hash}/
    - POST   /auth/customer/register/
    - POST   /auth/customer/verify/
    - POST   /auth/staff/login/
    - GET    /orders/
    - GET    /orders/current/?phone=&include_paid=
    - POST   /orders/
    - PATCH  /orders/{order_id}/
    - DELETE /orders/{order_id}/
    - POST   /customers/bill/
    - POST   /send_bill_email/
    - GET    /health

Run:
    python -m tableside.devserver

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Body, FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from tableside.core.config import get_settings, setup_logging
from tableside.schemas import CartItem, OrderStatus, StrId
from tableside.services.backend.base import BackendError
from tableside.services.backend.kitchen import Kitchen

logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    phone: str
    email: str


class VerifyRequest(BaseModel):
    email: str
    otp: str


class StaffLoginRequest(BaseModel):
    username: str
    password: str


class OrderUpdateRequest(BaseModel):
    status: Optional[OrderStatus] = None
    table_no: Optional[str] = None
    items: Optional[list[CartItem]] = None


class BillRequest(BaseModel):
    phone: str


class SendBillRequest(BaseModel):
    order_id: StrId


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(kitchen: Optional[Kitchen] = None) -> FastAPI:
    """
    Build the dev server around ``kitchen`` (a fresh one by default).

    The kitchen is exposed as ``app.state.kitchen`` for inspection.
    """
    settings = get_settings()
    kitchen = kitchen or Kitchen(staff_password=settings.mock_staff_password)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"Starting {settings.app_name} dev server")
        logger.info(f"   Version: {settings.app_version}")
        logger.info(f"   Menu items: {len(kitchen.menu)}")
        logger.info(f"   Tables: {len(kitchen.tables)}")
        logger.info(f"   Environment: {settings.env_mode.value}")
        if not settings.is_development:
            logger.warning("Dev server keeps orders in memory only; not for live service")
        logger.info("=" * 60)
        yield
        logger.info("Dev server stopped")

    app = FastAPI(
        title=f"{settings.app_name} Dev Server",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.kitchen = kitchen

    @app.exception_handler(BackendError)
    async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code or 503,
            content={"detail": exc.message},
        )

    api = APIRouter(prefix="/api")

    # -------------------------------------------------------------------------
    # Catalog & tables
    # -------------------------------------------------------------------------

    @api.get("/menu/", tags=["Menu"])
    async def get_menu() -> list[dict[str, Any]]:
        return [item.model_dump(mode="json") for item in kitchen.menu]

    @api.get("/tables/verify/{table_no}/{qr_hash}/", tags=["Tables"])
    async def verify_table(table_no: str, qr_hash: str) -> dict[str, Any]:
        result = kitchen.verify_table(table_no, qr_hash)
        return {"valid": result.valid, "table_no": result.table_no}

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    @api.post("/auth/customer/register/", tags=["Auth"])
    async def register_customer(body: RegisterRequest) -> dict[str, str]:
        otp = kitchen.register_customer(body.phone, body.email)
        logger.info(f"OTP for {body.email}: {otp}")
        return {"message": "OTP sent"}

    @api.post("/auth/customer/verify/", tags=["Auth"])
    async def verify_customer(body: VerifyRequest) -> dict[str, str]:
        return {"token": kitchen.verify_customer(body.email, body.otp)}

    @api.post("/auth/staff/login/", tags=["Auth"])
    async def staff_login(body: StaffLoginRequest) -> dict[str, str]:
        return {"token": kitchen.staff_login(body.username, body.password)}

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @api.get("/orders/", tags=["Orders"])
    async def list_orders(authorization: Optional[str] = Header(None)) -> list[dict[str, Any]]:
        return [o.to_payload() for o in kitchen.list_orders(_bearer(authorization))]

    @api.get("/orders/current/", tags=["Orders"])
    async def current_orders(
        phone: str,
        include_paid: bool = False,
        authorization: Optional[str] = Header(None),
    ) -> JSONResponse:
        orders = kitchen.current_orders(_bearer(authorization), phone, include_paid)
        if not orders:
            return JSONResponse(status_code=404, content={"detail": "No current orders"})
        return JSONResponse(content={"all_orders": [o.to_payload() for o in orders]})

    @api.post("/orders/", status_code=201, tags=["Orders"])
    async def create_order(
        payload: dict[str, Any] = Body(...),
        authorization: Optional[str] = Header(None),
    ) -> dict[str, Any]:
        return kitchen.create_order(_bearer(authorization), payload).to_payload()

    @api.patch("/orders/{order_id}/", tags=["Orders"])
    async def update_order(
        order_id: str,
        body: OrderUpdateRequest,
        authorization: Optional[str] = Header(None),
    ) -> dict[str, Any]:
        order = kitchen.update_order(
            _bearer(authorization),
            order_id,
            status=body.status,
            table_no=body.table_no,
            items=body.items,
        )
        return order.to_payload()

    @api.delete("/orders/{order_id}/", status_code=204, tags=["Orders"])
    async def delete_order(order_id: str, authorization: Optional[str] = Header(None)) -> Response:
        kitchen.delete_order(_bearer(authorization), order_id)
        return Response(status_code=204)

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    @api.post("/customers/bill/", tags=["Billing"])
    async def bill_customer(
        body: BillRequest,
        authorization: Optional[str] = Header(None),
    ) -> dict[str, Any]:
        bill = kitchen.bill_customer(_bearer(authorization), body.phone)
        return {"phone": bill.phone, "total_bill": bill.total_bill, "order_ids": bill.order_ids}

    @api.post("/send_bill_email/", tags=["Billing"])
    async def send_bill(
        body: SendBillRequest,
        authorization: Optional[str] = Header(None),
    ) -> dict[str, str]:
        kitchen.send_bill(_bearer(authorization), body.order_id)
        return {"message": "Bill sent"}

    app.include_router(api)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "version": settings.app_version,
            "orders": len(kitchen.orders),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging()
    uvicorn.run(app, host=settings.devserver_host, port=settings.devserver_port)
