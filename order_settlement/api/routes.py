"""
API routes for order placement, payment and settlement.
"""
import json
from functools import lru_cache
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncSession

from order_settlement.core.orders import OrderService, RequestContext
from order_settlement.core.reconciliation import PaymentReconciler
from order_settlement.database.connection import get_db
from order_settlement.integrations.comgate_client import ComgateClient, PaymentGateway
from order_settlement.monitoring.health import HealthCheck

from .schemas import (
    CreateOrderRequest,
    HealthCheckResponse,
    OrderResponse,
    PaymentResponse,
    PriceQuoteResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
order_router = APIRouter(prefix="/orders", tags=["orders"])
product_router = APIRouter(prefix="/products", tags=["products"])
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
monitoring_router = APIRouter(tags=["monitoring"])


# ============================================================================
# DEPENDENCIES
# ============================================================================

def _decode_header_text(value: Optional[str]) -> Optional[str]:
    """
    Recover UTF-8 text from a header value.

    ASGI servers decode header bytes as latin-1, so a name sent by the proxy
    as raw UTF-8 ("Nováková") arrives as mojibake ("NovÃ¡kovÃ¡"). Values that
    are not valid UTF-8 once re-encoded are returned unchanged.
    """
    if value is None:
        return None
    try:
        return value.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return value


async def get_request_context(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
) -> RequestContext:
    """
    Caller identity forwarded by the authentication proxy.

    Raises:
        HTTPException: 401 if the identity headers are missing or malformed
    """
    if not x_user_id or not x_user_email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user ID")
    return RequestContext(
        user_id=user_id,
        email=x_user_email,
        full_name=_decode_header_text(x_user_name),
    )


@lru_cache()
def get_gateway_client() -> PaymentGateway:
    """Comgate client; raises a configuration GatewayError without credentials."""
    return ComgateClient()


@lru_cache()
def get_order_service() -> OrderService:
    return OrderService()


def get_payment_service(
    gateway: PaymentGateway = Depends(get_gateway_client),
) -> OrderService:
    return OrderService(gateway=gateway)


@lru_cache()
def get_reconciler() -> PaymentReconciler:
    return PaymentReconciler()


@lru_cache()
def get_health_check() -> HealthCheck:
    return HealthCheck()


# ============================================================================
# ORDERS
# ============================================================================

@order_router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="Price the lines, reserve stock and persist the order atomically",
)
async def create_order(
    request: CreateOrderRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Place a new order."""
    logger.info(
        "api_create_order_request",
        user_id=ctx.user_id,
        item_count=len(request.items),
        currency=request.currency,
    )
    order = await service.create_order(
        db,
        ctx,
        [item.to_order_item() for item in request.items],
        request.currency,
    )
    return OrderResponse.from_order(order)


@order_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Retrieve one of the caller's orders with its line items",
)
async def get_order(
    order_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get order by ID."""
    order = await service.get_order(db, ctx, order_id)
    return OrderResponse.from_order(order)


@order_router.post(
    "/{order_id}/pay",
    response_model=PaymentResponse,
    summary="Pay an order",
    description="Create a Comgate payment for a pending order",
)
async def pay_order(
    order_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_payment_service),
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """Initiate payment; the customer is redirected to payment_url."""
    payment = await service.pay_order(db, ctx, order_id)
    return PaymentResponse(
        order_id=payment.order_id,
        payment_id=payment.payment_id,
        payment_url=payment.payment_url,
    )


@order_router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    summary="Cancel an order",
    description="Cancel a pending order and return its stock",
)
async def cancel_order(
    order_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Cancel an order."""
    order = await service.cancel_order(db, ctx, order_id)
    return OrderResponse.from_order(order)


# ============================================================================
# PRODUCTS
# ============================================================================

@product_router.get(
    "/{product_id}/price-quote",
    response_model=PriceQuoteResponse,
    summary="Quote a price",
    description="Unit price, line total and savings for a quantity",
)
async def price_quote(
    product_id: int,
    quantity: int = Query(default=1, description="Requested quantity"),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
) -> PriceQuoteResponse:
    """Price a quantity of a product."""
    quote = await service.quote(db, product_id, quantity)
    return PriceQuoteResponse(product_id=product_id, **quote.model_dump())


# ============================================================================
# WEBHOOKS
# ============================================================================

async def _read_webhook_payload(request: Request) -> Dict[str, Any]:
    """Comgate posts form-encoded fields; JSON is accepted as well."""
    body = await request.body()
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            data = json.loads(body or b"{}")
        except ValueError:
            logger.warning("api_webhook_invalid_json")
            return {}
        return data if isinstance(data, dict) else {}

    return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))


@webhook_router.post(
    "/comgate",
    response_model=WebhookResponse,
    summary="Comgate webhook endpoint",
    description="Apply Comgate payment status notifications",
)
async def comgate_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None, alias="X-Signature"),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """
    Handle Comgate payment notifications.

    Any non-2xx answer makes Comgate redeliver the notification.
    """
    payload = await _read_webhook_payload(request)
    result = await reconciler.process(db, payload, x_signature)

    if result.success:
        logger.info("api_webhook_processed", message=result.message)
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ok"})

    message = result.message
    if result.http_status >= 500:
        message = "Internal server error"
    logger.error(
        "api_webhook_failed",
        error_code=result.error_code,
        http_status=result.http_status,
        message=result.message,
    )
    return JSONResponse(
        status_code=result.http_status,
        content={"status": "error", "message": message, "code": result.error_code},
    )


# ============================================================================
# MONITORING
# ============================================================================

@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness check",
    description="Kubernetes liveness endpoint",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness check",
    description="Kubernetes readiness endpoint",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness endpoint."""
    try:
        result = await health_check.readiness()
        if result["status"] != "healthy":
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
        return result
    except HTTPException:
        raise
    except Exception as e:
        logger.error("readiness_check_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
