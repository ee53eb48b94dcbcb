from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import schemas
from .admin import AdminDirectory, AuthenticationFailed
from .config import Settings, load_settings
from .gateway import InvalidSignature, MockPaydunyaGateway, PaydunyaFlow, verify_signature
from .models import AdminUser, Order, Payment
from .repository import OrderRepository, PaymentRepository
from .service import (
    InvalidFields,
    InvalidTransition,
    MissingFields,
    NotFound,
    OrderService,
    PaymentService,
)
from .store import JsonFileStore

logger = logging.getLogger(__name__)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.orders


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payments


def get_paydunya_flow(request: Request) -> PaydunyaFlow:
    return request.app.state.paydunya


def get_admin_directory(request: Request) -> AdminDirectory:
    return request.app.state.admins


def _status_payload(payment: Payment) -> schemas.PaymentStatusResponse:
    return schemas.PaymentStatusResponse(
        data=schemas.PaymentStatusData(
            payment_id=payment.id,
            order_id=payment.order_id,
            status=payment.status,
            payment_method=payment.payment_method,
            amount=payment.amount,
            created_at=payment.created_at,
            paid_at=payment.paid_at,
            error_message=payment.error_message,
        )
    )


def _validation_message(exc: RequestValidationError) -> str:
    missing, invalid = [], []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        if error.get("type") in {"missing", "string_too_short", "too_short"}:
            missing.append(location)
        else:
            invalid.append(f"{location} ({error.get('msg')})")
    if invalid:
        return "Invalid fields: " + ", ".join(missing + invalid)
    return "Missing required fields: " + ", ".join(missing)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    data_dir = settings.data_dir

    order_service = OrderService(OrderRepository(JsonFileStore(data_dir / "orders.json", Order)))
    payment_service = PaymentService(
        PaymentRepository(JsonFileStore(data_dir / "payments.json", Payment))
    )
    admins = AdminDirectory(
        JsonFileStore(data_dir / "admin-users.json", AdminUser),
        session_ttl_hours=settings.session_ttl_hours,
    )
    admins.ensure_default_user(settings.admin_email, settings.admin_password, settings.admin_name)

    app = FastAPI(
        title="Storefront Service",
        version="0.1.0",
        description="Orders, payments and mock PayDunya checkout for the storefront.",
    )
    app.state.settings = settings
    app.state.orders = order_service
    app.state.payments = payment_service
    app.state.paydunya = PaydunyaFlow(
        order_service, payment_service, MockPaydunyaGateway(settings.paydunya_checkout_url)
    )
    app.state.admins = admins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_api_calls(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": _validation_message(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error"},
        )

    @app.get("/healthz", response_model=schemas.HealthResponse, tags=["system"])
    def healthz() -> schemas.HealthResponse:
        return schemas.HealthResponse(status="ok")

    @app.get("/api/ping", response_model=schemas.PingResponse, tags=["system"])
    def ping() -> schemas.PingResponse:
        return schemas.PingResponse(message=settings.ping_message)

    # --- orders ---

    @app.post("/api/orders", response_model=Order, tags=["orders"])
    def create_order(
        payload: schemas.CreateOrderRequest,
        orders: OrderService = Depends(get_order_service),
    ) -> Order:
        try:
            return orders.create_order(payload.model_dump(mode="json"))
        except (MissingFields, InvalidFields) as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    @app.get("/api/orders/admin/all", response_model=List[Order], tags=["orders"])
    def list_orders(orders: OrderService = Depends(get_order_service)) -> List[Order]:
        return orders.list_orders()

    @app.get("/api/orders/{order_id}", response_model=Order, tags=["orders"])
    def get_order(order_id: str, orders: OrderService = Depends(get_order_service)) -> Order:
        try:
            return orders.get_order(order_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    @app.put("/api/orders/{order_id}", response_model=Order, tags=["orders"])
    def update_order(
        order_id: str,
        payload: schemas.OrderUpdate,
        orders: OrderService = Depends(get_order_service),
    ) -> Order:
        try:
            return orders.update_order(order_id, payload.changes())
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except InvalidTransition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except InvalidFields as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    @app.post("/api/orders/{order_id}/{action}", response_model=Order, tags=["orders"])
    def transition_order(
        order_id: str,
        action: str,
        orders: OrderService = Depends(get_order_service),
    ) -> Order:
        try:
            return orders.apply_action(order_id, action)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except InvalidTransition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    # --- payments ---

    @app.post("/api/payments", response_model=Payment, tags=["payments"])
    def create_payment(
        payload: schemas.CreatePaymentRequest,
        payments: PaymentService = Depends(get_payment_service),
    ) -> Payment:
        try:
            return payments.create_payment(payload.model_dump(mode="json"))
        except (MissingFields, InvalidFields) as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    @app.get("/api/payments/admin/all", response_model=List[Payment], tags=["payments"])
    def list_payments(payments: PaymentService = Depends(get_payment_service)) -> List[Payment]:
        return payments.list_payments()

    @app.get("/api/payments/by-order/{order_id}", response_model=Payment, tags=["payments"])
    def get_payment_by_order(
        order_id: str, payments: PaymentService = Depends(get_payment_service)
    ) -> Payment:
        try:
            return payments.get_by_order_id(order_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    @app.get("/api/payments/{payment_id}", response_model=Payment, tags=["payments"])
    def get_payment(
        payment_id: str, payments: PaymentService = Depends(get_payment_service)
    ) -> Payment:
        try:
            return payments.get_payment(payment_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    @app.put("/api/payments/{payment_id}", response_model=Payment, tags=["payments"])
    def update_payment(
        payment_id: str,
        payload: schemas.PaymentUpdate,
        payments: PaymentService = Depends(get_payment_service),
    ) -> Payment:
        try:
            return payments.update_payment(payment_id, payload.changes())
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except InvalidTransition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        except InvalidFields as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    # --- mock PayDunya gateway ---

    @app.post(
        "/api/paydunya/initialize",
        response_model=schemas.InitializePaymentResponse,
        tags=["paydunya"],
    )
    def initialize_payment(
        payload: schemas.InitializePaymentRequest,
        flow: PaydunyaFlow = Depends(get_paydunya_flow),
    ) -> schemas.InitializePaymentResponse:
        try:
            invoice = flow.initialize(
                payload.order_id,
                payload.payment_id,
                payload.total,
                payload.payment_method.value if payload.payment_method else None,
            )
        except MissingFields as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except NotFound:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Payment record not found"
            )
        except InvalidTransition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        return schemas.InitializePaymentResponse(
            payment_url=invoice.payment_url,
            token=invoice.token,
            transaction_id=invoice.transaction_id,
        )

    @app.post("/api/paydunya/callback", response_model=schemas.MessageResponse, tags=["paydunya"])
    async def paydunya_callback(
        request: Request,
        flow: PaydunyaFlow = Depends(get_paydunya_flow),
    ) -> schemas.MessageResponse:
        body = await request.body()
        try:
            verify_signature(
                settings.paydunya_callback_secret,
                body,
                request.headers.get("X-Paydunya-Signature"),
            )
        except InvalidSignature as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))

        try:
            payload = schemas.CallbackRequest.model_validate_json(body or b"{}")
        except ValidationError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid callback payload")

        order_id = payload.resolved_order_id()
        try:
            message = await run_in_threadpool(
                flow.callback, payload.status, payload.token, order_id
            )
        except MissingFields as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
        except InvalidTransition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        return schemas.MessageResponse(message=message)

    @app.get(
        "/api/paydunya/status/{order_id}",
        response_model=schemas.PaymentStatusResponse,
        tags=["paydunya"],
    )
    def payment_status(
        order_id: str, flow: PaydunyaFlow = Depends(get_paydunya_flow)
    ) -> schemas.PaymentStatusResponse:
        try:
            return _status_payload(flow.status_for_order(order_id))
        except NotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    @app.get(
        "/api/paydunya/verify/{token}",
        response_model=schemas.PaymentStatusResponse,
        tags=["paydunya"],
    )
    def verify_payment(
        token: str, flow: PaydunyaFlow = Depends(get_paydunya_flow)
    ) -> schemas.PaymentStatusResponse:
        try:
            return _status_payload(flow.status_for_token(token))
        except NotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    # --- admin ---

    @app.post("/api/admin/login", tags=["admin"])
    def admin_login(
        payload: schemas.LoginRequest,
        admins: AdminDirectory = Depends(get_admin_directory),
    ) -> dict:
        try:
            return admins.login(payload.email, payload.password)
        except MissingFields as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except AuthenticationFailed as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))

    @app.post("/api/admin/check-session", tags=["admin"])
    def admin_check_session(
        payload: schemas.SessionRequest,
        admins: AdminDirectory = Depends(get_admin_directory),
    ):
        try:
            return admins.check_session(payload.user_id, payload.logged_in_at)
        except MissingFields as exc:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "valid": False, "error": str(exc)},
            )

    @app.get("/api/admin/user/{user_id}", tags=["admin"])
    def admin_user(
        user_id: str, admins: AdminDirectory = Depends(get_admin_directory)
    ) -> dict:
        try:
            return admins.get_user(user_id)
        except NotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    return app
