"""FastAPI application and routes."""
from .main import app
from .schemas import (
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    PriceQuoteResponse,
)

__all__ = [
    "app",
    "CreateOrderRequest",
    "OrderResponse",
    "PaymentResponse",
    "PriceQuoteResponse",
]
