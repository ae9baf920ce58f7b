"""
FastAPI application for order placement and payment settlement.

- Startup refuses to run in production without Comgate credentials
- Every request gets a request ID, echoed back and bound into the log context
- Domain errors map to their HTTP status with a structured body
- Request counts and latencies are exported per route template
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_settlement import __version__
from order_settlement.config import Settings, get_settings
from order_settlement.database.connection import close_db, init_db
from order_settlement.domain.exceptions import (
    GatewayError,
    GatewayErrorType,
    OrderSettlementError,
)
from order_settlement.monitoring.logging import (
    bind_request_context,
    clear_request_context,
    setup_logging,
)
from order_settlement.monitoring.metrics import metrics

from .routes import monitoring_router, order_router, product_router, webhook_router

REQUEST_ID_HEADER = "X-Request-ID"

# Setup logging first
setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()


def ensure_gateway_configured(settings: Settings) -> None:
    """
    Fail fast in production when Comgate credentials are missing.

    Elsewhere the service starts anyway so orders can be placed locally;
    paying then fails with a configuration GatewayError.

    Raises:
        GatewayError: Configuration error (production only)
    """
    missing = settings.missing_gateway_credentials()
    if not missing:
        return

    if settings.is_production:
        logger.error("gateway_configuration_missing", missing=missing, fatal=True)
        raise GatewayError(
            f"Missing Comgate credentials: {', '.join(missing)}",
            GatewayErrorType.CONFIGURATION,
        )
    logger.warning("gateway_configuration_missing", missing=missing, fatal=False)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    logger.info(
        "application_startup",
        version=__version__,
        env=settings.app_env,
        gateway_mode="test" if settings.gateway_test_mode else "live",
    )
    ensure_gateway_configured(settings)

    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    yield

    logger.info("application_shutdown")
    try:
        await close_db()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))


app = FastAPI(
    title="Order Settlement Service",
    description=(
        "Order placement with tiered pricing and race-safe stock reservation, "
        "Comgate payments and signed webhook reconciliation."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


def _route_template(request: Request) -> str:
    """/orders/{order_id} rather than /orders/42, to bound label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


@app.middleware("http")
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    """
    Bind request ID and caller into the log context; time the request.

    An incoming X-Request-ID (set by the proxy) is reused so one ID follows
    the request across services.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    start_time = time.perf_counter()

    bind_request_context(
        request_id,
        method=request.method,
        path=request.url.path,
        user_id=request.headers.get("X-User-ID"),
    )
    logger.info(
        "request_started",
        client_host=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration = time.perf_counter() - start_time
        metrics.record_http_request(request.method, _route_template(request), 500, duration)
        logger.error("request_failed", error=str(e), duration_seconds=duration)
        clear_request_context()
        raise

    duration = time.perf_counter() - start_time
    response.headers[REQUEST_ID_HEADER] = request_id
    metrics.record_http_request(
        request.method, _route_template(request), response.status_code, duration
    )
    logger.info(
        "request_completed",
        status_code=response.status_code,
        duration_seconds=duration,
    )
    clear_request_context()
    return response


@app.exception_handler(OrderSettlementError)
async def domain_exception_handler(request: Request, exc: OrderSettlementError) -> JSONResponse:
    """Map domain errors to their HTTP status with a structured body."""
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "domain_error",
        error_code=exc.error_code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: log the type, never return internals."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "type": "InternalError",
                "details": {},
            }
        },
    )


app.include_router(order_router)
app.include_router(product_router)
app.include_router(webhook_router)
app.include_router(monitoring_router)


@app.get("/", tags=["root"])
async def root() -> dict[str, Any]:
    """Service information."""
    return {
        "service": settings.app_name,
        "version": __version__,
        "environment": settings.app_env,
        "gateway_mode": "test" if settings.gateway_test_mode else "live",
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
