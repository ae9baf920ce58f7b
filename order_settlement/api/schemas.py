"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from order_settlement.core.orders import OrderItem
from order_settlement.database.models import Order


class OrderItemRequest(BaseModel):
    """One requested order line."""

    product_id: int = Field(..., description="Product ID")
    quantity: int = Field(..., description="Requested quantity (must be positive)")

    def to_order_item(self) -> OrderItem:
        return OrderItem(product_id=self.product_id, quantity=self.quantity)


class CreateOrderRequest(BaseModel):
    """Request schema for placing an order."""

    items: List[OrderItemRequest] = Field(..., description="Order lines, each product at most once")
    currency: str = Field(default="CZK", description="Order currency (CZK or EUR)")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Normalize currency code."""
        return v.strip().upper()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {"product_id": 1, "quantity": 12},
                        {"product_id": 2, "quantity": 1},
                    ],
                    "currency": "CZK",
                }
            ]
        }
    }


class OrderLineItemResponse(BaseModel):
    """Order line as priced when the order was placed."""

    product_id: int = Field(..., description="Product ID")
    quantity: int = Field(..., description="Quantity")
    unit_price_cents: int = Field(..., description="Captured unit price in minor units")
    total_cents: int = Field(..., description="Line total in minor units")


class OrderResponse(BaseModel):
    """Response schema for an order."""

    id: int = Field(..., description="Order ID")
    user_id: int = Field(..., description="Owner user ID")
    status: str = Field(..., description="Order status")
    payment_status: str = Field(..., description="Payment status")
    total_cents: int = Field(..., description="Order total in minor units")
    total: float = Field(..., description="Order total in major units (display only)")
    currency: str = Field(..., description="Currency code")
    payment_id: Optional[str] = Field(default=None, description="Comgate transaction ID")
    payment_url: Optional[str] = Field(default=None, description="Comgate payment page URL")
    items: List[OrderLineItemResponse] = Field(..., description="Order lines")
    created_at: Optional[str] = Field(default=None, description="Creation timestamp (ISO 8601)")
    updated_at: Optional[str] = Field(default=None, description="Last update timestamp (ISO 8601)")

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status.value,
            payment_status=order.payment_status.value,
            total_cents=order.total_cents,
            total=order.total_decimal,
            currency=order.currency,
            payment_id=order.payment_id,
            payment_url=order.payment_url,
            items=[
                OrderLineItemResponse(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    total_cents=line.total_cents,
                )
                for line in order.items
            ],
            created_at=_isoformat(order.created_at),
            updated_at=_isoformat(order.updated_at),
        )


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class PaymentResponse(BaseModel):
    """Response schema for payment initiation."""

    order_id: int = Field(..., description="Order ID")
    payment_id: str = Field(..., description="Comgate transaction ID")
    payment_url: str = Field(..., description="Redirect the customer here to pay")


class PriceQuoteResponse(BaseModel):
    """Response schema for a price quote."""

    product_id: int = Field(..., description="Product ID")
    quantity: int = Field(..., description="Quoted quantity")
    base_price_cents: int = Field(..., description="Base unit price in minor units")
    unit_price_cents: int = Field(..., description="Tier unit price in minor units")
    total_cents: int = Field(..., description="Line total in minor units")
    tier_name: Optional[str] = Field(default=None, description="Applied tier, if any")
    savings_percent: float = Field(..., description="Savings versus base price (%)")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="Processing status (ok/error)")
    message: Optional[str] = Field(default=None, description="Error message")
    code: Optional[str] = Field(default=None, description="Error code")
