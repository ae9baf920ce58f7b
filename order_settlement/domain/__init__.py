"""Domain vocabulary: statuses, transitions and the error taxonomy."""
from .exceptions import (
    CurrencyMismatch,
    GatewayError,
    GatewayErrorType,
    IllegalTransition,
    InsufficientStock,
    MalformedWebhook,
    OrderNotCancellable,
    OrderNotFound,
    OrderNotPayable,
    OrderSettlementError,
    PaymentAlreadyExists,
    PaymentIdMismatch,
    ProductUnavailable,
    StockShortage,
    Unauthorized,
    UnknownStatus,
    ValidationError,
    WebhookError,
    WebhookOrderNotFound,
)
from .statuses import (
    Currency,
    OrderStatus,
    PaymentStatus,
    is_transition_allowed,
    order_status_after_payment,
)

__all__ = [
    "Currency",
    "OrderStatus",
    "PaymentStatus",
    "is_transition_allowed",
    "order_status_after_payment",
    "OrderSettlementError",
    "ValidationError",
    "ProductUnavailable",
    "StockShortage",
    "InsufficientStock",
    "OrderNotFound",
    "OrderNotPayable",
    "PaymentAlreadyExists",
    "OrderNotCancellable",
    "GatewayError",
    "GatewayErrorType",
    "WebhookError",
    "MalformedWebhook",
    "Unauthorized",
    "WebhookOrderNotFound",
    "PaymentIdMismatch",
    "CurrencyMismatch",
    "UnknownStatus",
    "IllegalTransition",
]
