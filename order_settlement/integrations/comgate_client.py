"""
Comgate REST API client with error classification.

Implements:
- Payment creation (POST /payment.json)
- Payment status verification (GET /payment/transId/{id}.json)
- Payment cancellation (DELETE /payment/transId/{id}.json)

Every failure is raised as GatewayError with a type the caller can act on:
configuration errors are fatal, transient errors may be retried by the
caller, rejected requests should not be retried. Nothing is retried here.
"""
import time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog
from pydantic import BaseModel

from order_settlement.config import Settings, get_settings
from order_settlement.domain.exceptions import GatewayError, GatewayErrorType
from order_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class PayerContact(BaseModel):
    """Who is paying; sent to the gateway for its payment page."""

    email: str
    full_name: Optional[str] = None

    model_config = {"frozen": True}


class PaymentCreated(BaseModel):
    """Gateway acknowledgement of a new payment."""

    payment_id: str
    payment_url: str

    model_config = {"frozen": True}


class PaymentSnapshot(BaseModel):
    """Payment state as reported by the gateway."""

    payment_id: str
    status: Optional[str] = None
    message: Optional[str] = None
    test: Optional[bool] = None
    price: Optional[int] = None
    currency: Optional[str] = None

    model_config = {"frozen": True}


def parse_price_cents(value: Any) -> Optional[int]:
    """
    Price echoed by the gateway, in minor units.

    Integers are minor units; decimal strings such as "250.00" are major
    units. Returns None when the value is not a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value

    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


class OrderLike(Protocol):
    id: int
    total_cents: int
    currency: str


class PaymentGateway(Protocol):
    """Interface the order service depends on."""

    async def create_payment(self, order: OrderLike, contact: PayerContact) -> PaymentCreated:
        ...

    async def verify_payment(self, payment_id: str) -> PaymentSnapshot:
        ...

    async def cancel_payment(self, payment_id: str) -> bool:
        ...


class ComgateClient:
    """
    Wrapper for the Comgate API.

    Features:
    - HTTP Basic auth with merchant ID / secret
    - 10s connect / 30s read timeouts
    - Response code checking (code == 0 means success)
    - Comprehensive error classification
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize Comgate client.

        Args:
            settings: Optional settings (uses cached settings if not provided)
            transport: Optional httpx transport (tests plug in MockTransport)

        Raises:
            GatewayError: If merchant credentials are missing (configuration)
        """
        self.settings = settings or get_settings()
        self._validate_configuration()
        self.base_url = self.settings.comgate_base_url
        self.test_mode = self.settings.gateway_test_mode
        self.timeout = httpx.Timeout(
            self.settings.comgate_read_timeout,
            connect=self.settings.comgate_connect_timeout,
        )
        self._transport = transport

        logger.info(
            "comgate_client_initialized",
            base_url=self.base_url,
            test_mode=self.test_mode,
        )

    def _validate_configuration(self) -> None:
        missing = self.settings.missing_gateway_credentials()
        if missing:
            metrics.record_gateway_error(GatewayErrorType.CONFIGURATION.value)
            raise GatewayError(
                f"Missing Comgate credentials: {', '.join(missing)}",
                GatewayErrorType.CONFIGURATION,
            )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.settings.comgate_merchant_id, self.settings.comgate_secret),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform an API call and decode the JSON body.

        Raises:
            GatewayError: transient for network/timeout/5xx/bad JSON, rejected for 4xx
        """
        logger.info("comgate_request", operation=operation, method=method, endpoint=endpoint)
        start_time = time.time()

        try:
            async with self._client() as client:
                response = await client.request(method, endpoint, json=payload)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            raise self._fail(operation, start_time, f"Network timeout: {e}", GatewayErrorType.TRANSIENT, e)

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            error_type = (
                GatewayErrorType.REJECTED if 400 <= status_code < 500 else GatewayErrorType.TRANSIENT
            )
            raise self._fail(
                operation,
                start_time,
                f"HTTP {status_code}: {e.response.reason_phrase}",
                error_type,
                e,
            )

        except httpx.HTTPError as e:
            raise self._fail(operation, start_time, f"Request failed: {e}", GatewayErrorType.TRANSIENT, e)

        except ValueError as e:
            raise self._fail(
                operation, start_time, f"Invalid JSON response: {e}", GatewayErrorType.TRANSIENT, e
            )

        if not isinstance(data, dict):
            raise self._fail(
                operation,
                start_time,
                "Invalid JSON response: expected an object",
                GatewayErrorType.TRANSIENT,
            )

        metrics.record_gateway_call(operation, "success", time.time() - start_time)
        logger.debug("comgate_response", operation=operation, response=data)
        return data

    def _fail(
        self,
        operation: str,
        start_time: Optional[float],
        message: str,
        error_type: GatewayErrorType,
        original_error: Optional[Exception] = None,
    ) -> GatewayError:
        if start_time is not None:
            metrics.record_gateway_call(operation, "error", time.time() - start_time)
        metrics.record_gateway_error(error_type.value)
        logger.error(
            "comgate_api_error",
            operation=operation,
            error_type=error_type.value,
            error_message=message,
        )
        return GatewayError(message, error_type, original_error)

    @staticmethod
    def _response_code(data: Dict[str, Any]) -> int:
        try:
            return int(data.get("code", -1))
        except (TypeError, ValueError):
            return -1

    @staticmethod
    def _validate_order(order: OrderLike, contact: PayerContact) -> None:
        if order is None:
            raise GatewayError("Order cannot be None", GatewayErrorType.REJECTED)
        if order.total_cents <= 0:
            raise GatewayError("Order must have positive total", GatewayErrorType.REJECTED)
        if not order.currency:
            raise GatewayError("Order must have currency", GatewayErrorType.REJECTED)
        if not contact.email:
            raise GatewayError("Order must have payer email", GatewayErrorType.REJECTED)

    def build_payment_payload(self, order: OrderLike, contact: PayerContact) -> Dict[str, Any]:
        """Request body for POST /payment.json."""
        return {
            "test": self.test_mode,
            "price": order.total_cents,
            "curr": order.currency,
            "label": f"Order #{order.id}",
            "refId": str(order.id),
            "method": self.settings.comgate_method,
            "email": contact.email,
            "fullName": contact.full_name or contact.email,
            "lang": self.settings.comgate_lang,
            "country": self.settings.comgate_country,
        }

    async def create_payment(self, order: OrderLike, contact: PayerContact) -> PaymentCreated:
        """
        Create a payment for an order.

        Args:
            order: Order with id, total_cents and currency
            contact: Payer email / name

        Returns:
            PaymentCreated: transId and redirect URL

        Raises:
            GatewayError: If the gateway call fails or rejects the payment
        """
        self._validate_order(order, contact)
        payload = self.build_payment_payload(order, contact)
        data = await self._request("create_payment", "POST", "/payment.json", payload)

        if self._response_code(data) != 0:
            raise self._fail(
                "create_payment",
                None,
                data.get("message") or "Unknown payment error",
                GatewayErrorType.REJECTED,
            )

        payment_id = data.get("transId")
        payment_url = data.get("redirect")
        if not payment_id or not payment_url:
            raise self._fail(
                "create_payment",
                None,
                "Invalid JSON response: missing transId or redirect",
                GatewayErrorType.TRANSIENT,
            )

        logger.info("comgate_payment_created", order_id=order.id, payment_id=payment_id)
        return PaymentCreated(payment_id=str(payment_id), payment_url=str(payment_url))

    async def verify_payment(self, payment_id: str) -> PaymentSnapshot:
        """
        Retrieve payment state from the gateway.

        Raises:
            ValueError: If payment_id is blank
            GatewayError: If the call fails or the gateway reports an error
        """
        if not payment_id:
            raise ValueError("Payment ID cannot be blank")

        data = await self._request(
            "verify_payment", "GET", f"/payment/transId/{payment_id}.json"
        )
        if self._response_code(data) != 0:
            raise self._fail(
                "verify_payment",
                None,
                data.get("message") or "Payment verification failed",
                GatewayErrorType.REJECTED,
            )

        price = data.get("price")
        price_cents = parse_price_cents(price) if price is not None else None
        if price is not None and price_cents is None:
            raise self._fail(
                "verify_payment",
                None,
                f"Invalid JSON response: bad price {price!r}",
                GatewayErrorType.TRANSIENT,
            )

        test = data.get("test")
        return PaymentSnapshot(
            payment_id=payment_id,
            status=data.get("status"),
            message=data.get("message"),
            test=str(test).lower() == "true" if test is not None else None,
            price=price_cents,
            currency=data.get("curr"),
        )

    async def cancel_payment(self, payment_id: str) -> bool:
        """
        Cancel a pending payment.

        Returns:
            bool: True when the gateway acknowledged the cancellation
        """
        if not payment_id:
            raise ValueError("Payment ID cannot be blank")

        data = await self._request(
            "cancel_payment", "DELETE", f"/payment/transId/{payment_id}.json"
        )
        cancelled = self._response_code(data) == 0
        logger.info(
            "comgate_payment_cancel_requested",
            payment_id=payment_id,
            cancelled=cancelled,
            message=data.get("message"),
        )
        return cancelled
