"""
Exception hierarchy for order placement and payment settlement.

Every exception carries:
- An error code (stable, for client handling and localization)
- An HTTP status (for API responses)
- Structured details (for logs and API bodies)

Business-rule failures (stock, availability, order state) always leave the
database untouched: the service rolls back before raising them to the caller.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class OrderSettlementError(Exception):
    """Base exception for all order settlement errors."""

    error_code = "internal_error"
    http_status = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "type": self.__class__.__name__,
                "details": self.details,
            }
        }


# ============================================================================
# INPUT ERRORS
# ============================================================================

class ValidationError(OrderSettlementError):
    """Bad input shape. Carries one entry per offending field."""

    error_code = "validation_error"
    http_status = 400

    def __init__(self, errors: Sequence[Dict[str, str]]):
        self.errors: List[Dict[str, str]] = list(errors)
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in self.errors)
        super().__init__(f"Invalid request: {summary}", errors=self.errors)


# ============================================================================
# BUSINESS RULE ERRORS
# ============================================================================

class ProductUnavailable(OrderSettlementError):
    """One or more requested products do not exist or are not available."""

    error_code = "product_unavailable"
    http_status = 409

    def __init__(self, product_ids: Sequence[int]):
        self.product_ids = list(product_ids)
        ids = ", ".join(str(pid) for pid in self.product_ids)
        super().__init__(f"Products {ids} are not available", product_ids=self.product_ids)


class StockShortage:
    """A single product that cannot cover the requested quantity."""

    __slots__ = ("product_id", "product_name", "requested", "available")

    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "requested": self.requested,
            "available": self.available,
        }

    def __repr__(self) -> str:
        return (
            f"StockShortage(product_id={self.product_id}, "
            f"requested={self.requested}, available={self.available})"
        )


class InsufficientStock(OrderSettlementError):
    """Requested quantity exceeds available stock for at least one product."""

    error_code = "insufficient_stock"
    http_status = 409

    def __init__(self, shortages: Sequence[StockShortage]):
        if not shortages:
            raise ValueError("InsufficientStock requires at least one shortage")
        self.shortages = list(shortages)
        message = "; ".join(
            f"Insufficient stock for product '{s.product_name}' (ID: {s.product_id}). "
            f"Requested: {s.requested}, Available: {s.available}"
            for s in self.shortages
        )
        super().__init__(message, shortages=[s.to_dict() for s in self.shortages])

    @property
    def product_id(self) -> int:
        return self.shortages[0].product_id

    @property
    def requested(self) -> int:
        return self.shortages[0].requested

    @property
    def available(self) -> int:
        return self.shortages[0].available


class OrderNotFound(OrderSettlementError):
    """Order does not exist or does not belong to the caller."""

    error_code = "order_not_found"
    http_status = 404

    def __init__(self, order_id: Any):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", order_id=order_id)


class OrderNotPayable(OrderSettlementError):
    """Only pending orders can be paid."""

    error_code = "order_not_payable"
    http_status = 409

    def __init__(self, order_id: int, status: str):
        super().__init__(
            f"Order {order_id} cannot be paid (order status: {status})",
            order_id=order_id,
            status=status,
        )


class PaymentAlreadyExists(OrderSettlementError):
    """A payment is already pending or completed for the order."""

    error_code = "payment_already_exists"
    http_status = 409

    def __init__(self, order_id: int, payment_status: str):
        super().__init__(
            f"Order {order_id} already has a payment ({payment_status})",
            order_id=order_id,
            payment_status=payment_status,
        )


class OrderNotCancellable(OrderSettlementError):
    """Order has progressed past the point where it can be cancelled."""

    error_code = "order_not_cancellable"
    http_status = 409

    def __init__(self, order_id: int, status: str):
        super().__init__(
            f"Order {order_id} cannot be cancelled (current status: {status})",
            order_id=order_id,
            status=status,
        )


# ============================================================================
# PAYMENT GATEWAY ERRORS
# ============================================================================

class GatewayErrorType(Enum):
    """Classification of gateway errors for the caller's retry decision."""

    CONFIGURATION = "configuration"  # Fatal, fix the deployment
    TRANSIENT = "transient"  # Caller may retry
    REJECTED = "rejected"  # Gateway refused the request


class GatewayError(OrderSettlementError):
    """Payment gateway call failed."""

    error_code = "gateway_error"
    http_status = 502

    def __init__(
        self,
        message: str,
        error_type: GatewayErrorType,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, error_type=error_type.value)
        self.error_type = error_type
        self.original_error = original_error

    @property
    def retryable(self) -> bool:
        return self.error_type == GatewayErrorType.TRANSIENT

    @property
    def is_configuration_error(self) -> bool:
        return self.error_type == GatewayErrorType.CONFIGURATION


# ============================================================================
# WEBHOOK ERRORS
# ============================================================================

class WebhookError(OrderSettlementError):
    """Raised when an inbound payment notification cannot be applied."""

    error_code = "webhook_error"
    http_status = 422


class MalformedWebhook(WebhookError):
    error_code = "malformed_webhook"

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing required parameters: {', '.join(self.missing)}", missing=self.missing
        )


class Unauthorized(WebhookError):
    error_code = "unauthorized"
    http_status = 401


class WebhookOrderNotFound(WebhookError):
    error_code = "order_not_found"

    def __init__(self, transaction_id: Optional[str], reference_id: Optional[str]):
        super().__init__(
            f"Order not found for transId: {transaction_id}, refId: {reference_id}",
            transaction_id=transaction_id,
            reference_id=reference_id,
        )


class PaymentIdMismatch(WebhookError):
    error_code = "payment_id_mismatch"

    def __init__(self, expected: str, received: str):
        super().__init__(
            f"Payment ID mismatch: expected {expected}, got {received}",
            expected=expected,
            received=received,
        )


class CurrencyMismatch(WebhookError):
    error_code = "currency_mismatch"

    def __init__(self, expected: str, received: Optional[str]):
        super().__init__(
            f"Currency mismatch: expected {expected}, got {received}",
            expected=expected,
            received=received,
        )


class UnknownStatus(WebhookError):
    error_code = "unknown_status"

    def __init__(self, status: str):
        super().__init__(f"Unknown Comgate status: {status}", status=status)


class IllegalTransition(WebhookError):
    error_code = "illegal_transition"

    def __init__(self, order_id: int, old_status: str, new_status: str):
        super().__init__(
            f"Invalid status transition: {old_status} -> {new_status}",
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
        )
