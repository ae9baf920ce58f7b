"""Core order placement and settlement logic."""
from .inventory import InventoryLedger
from .orders import OrderItem, OrderService, PaymentInitiated, RequestContext
from .pricing import PriceQuote, PriceTierResolver
from .reconciliation import PaymentReconciler, ReconciliationResult

__all__ = [
    "InventoryLedger",
    "OrderItem",
    "OrderService",
    "PaymentInitiated",
    "RequestContext",
    "PriceQuote",
    "PriceTierResolver",
    "PaymentReconciler",
    "ReconciliationResult",
]
