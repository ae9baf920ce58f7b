"""Database package for the order settlement service."""
from .connection import (
    build_engine,
    close_db,
    create_session_factory,
    get_db,
    get_session_factory,
    init_db,
)
from .models import (
    Base,
    Order,
    OrderLineItem,
    PriceTier,
    Product,
)

__all__ = [
    "Base",
    "Product",
    "PriceTier",
    "Order",
    "OrderLineItem",
    "build_engine",
    "close_db",
    "create_session_factory",
    "get_db",
    "get_session_factory",
    "init_db",
]
