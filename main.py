import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from core.database import db
from core.logging import BusinessEvents, configure_logging
from core.payments.manager import PaymentManager
from core.response_envelope import (
    apply_response_documentation,
    document_response,
    error_response,
    http_exception_response,
)
from core.settings import get_settings
from core.validation_errors import format_validation_error_details

configure_logging()
settings = get_settings()
log = structlog.get_logger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        elapsed = time.time() - start_time
        response.headers["X-Process-Time"] = str(elapsed)
        log.info(
            BusinessEvents.API_ENTRY,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Misconfigured providers abort startup.
    PaymentManager.configure_from_settings()
    try:
        yield
    finally:
        PaymentManager.reset()


app = FastAPI(lifespan=lifespan, title="Storefront API")
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(SessionMiddleware, secret_key=settings.cookie_secret)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins) if settings.cors_origins else ["http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def custom_http_exception_handler(request: Request, exc: HTTPException):
    return http_exception_response(exc=exc, request=request)


@app.exception_handler(RequestValidationError)
async def custom_validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        status_code=422,
        message="Validation error",
        data={"code": "VALIDATION_FAILED", "details": format_validation_error_details(exc.errors())},
        request_id=getattr(request.state, "request_id", None),
    )


@app.exception_handler(Exception)
async def custom_exception_handler(request: Request, exc: Exception):
    log.exception("api.unhandled_error", path=request.url.path)
    details = str(exc) if (settings.debug_include_error_details and not settings.is_production) else None
    return error_response(
        status_code=500,
        message="Internal Server Error",
        data={"code": "INTERNAL_ERROR", "details": details},
        request_id=getattr(request.state, "request_id", None),
    )


@app.get("/health", tags=["Health"])
@document_response(
    message="Health check completed",
    success_example={"status": "healthy", "services": {"mongo": {"status": "healthy"}}, "payment_providers": ["system"]},
)
async def health_check(request: Request):
    services: dict[str, dict[str, str | float]] = {}
    overall_status = "healthy"

    start = time.perf_counter()
    try:
        await db.command("ping")
        services["mongo"] = {
            "status": "healthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": "MongoDB ping successful",
        }
    except Exception as exc:
        overall_status = "degraded"
        services["mongo"] = {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "message": str(exc),
        }

    try:
        manager = PaymentManager.get_instance()
        payment_providers = manager.provider_ids
        default_provider: str | None = manager.default_provider
    except RuntimeError:
        overall_status = "degraded"
        payment_providers, default_provider = [], None

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": services,
        "payment_providers": payment_providers,
        "default_payment_provider": default_provider,
    }


from api.admin.payment_sessions_route import router as admin_payment_sessions_router
from api.hooks.payment_webhooks_route import router as payment_webhooks_router
from api.store.carts_route import router as store_carts_router
from api.store.payment_sessions_route import router as store_payment_sessions_router

app.include_router(store_carts_router, prefix="/store")
app.include_router(store_payment_sessions_router, prefix="/store")
app.include_router(admin_payment_sessions_router, prefix="/admin")
app.include_router(payment_webhooks_router, prefix="/hooks")

apply_response_documentation(app)
