"""
Order and payment status vocabularies.

Order status and payment status move independently:
- status tracks fulfilment (pending -> paid -> shipped -> delivered, or cancelled)
- payment_status tracks the gateway side of the order

Payment status only changes through the transition table below. A
notification that repeats the current status is always accepted so that
duplicate webhook deliveries are harmless.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class Currency(str, Enum):
    """Currencies an order can be placed in."""

    CZK = "CZK"
    EUR = "EUR"


class OrderStatus(str, Enum):
    """Fulfilment status of an order."""

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Gateway-facing payment status of an order."""

    NO_PAYMENT = "no_payment"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_CANCELLED = "payment_cancelled"

    def can_transition_to(self, new_status: PaymentStatus) -> bool:
        """Check the transition table; same status is always allowed."""
        return is_transition_allowed(self, new_status)


ALLOWED_PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.NO_PAYMENT: frozenset(
        {
            PaymentStatus.PAYMENT_PENDING,
            PaymentStatus.PAYMENT_COMPLETED,
            PaymentStatus.PAYMENT_FAILED,
            PaymentStatus.PAYMENT_CANCELLED,
        }
    ),
    PaymentStatus.PAYMENT_PENDING: frozenset(
        {
            PaymentStatus.PAYMENT_COMPLETED,
            PaymentStatus.PAYMENT_FAILED,
            PaymentStatus.PAYMENT_CANCELLED,
        }
    ),
    # Final state
    PaymentStatus.PAYMENT_COMPLETED: frozenset(),
    # Retry allowed
    PaymentStatus.PAYMENT_FAILED: frozenset(
        {PaymentStatus.PAYMENT_PENDING, PaymentStatus.PAYMENT_COMPLETED}
    ),
    PaymentStatus.PAYMENT_CANCELLED: frozenset({PaymentStatus.PAYMENT_PENDING}),
}


def is_transition_allowed(old_status: PaymentStatus, new_status: PaymentStatus) -> bool:
    """
    Check whether payment status may move from old_status to new_status.

    Args:
        old_status: Current payment status
        new_status: Requested payment status

    Returns:
        bool: True for a legal transition or an idempotent replay
    """
    if old_status == new_status:
        return True
    return new_status in ALLOWED_PAYMENT_TRANSITIONS[old_status]


def order_status_after_payment(
    current: OrderStatus, new_payment_status: PaymentStatus
) -> OrderStatus:
    """
    Derive the order status that follows a payment status change.

    A completed payment moves a pending order to paid. A failed or cancelled
    payment moves a paid order back to pending so the customer can retry.
    Every other combination keeps the current status.
    """
    if new_payment_status == PaymentStatus.PAYMENT_COMPLETED:
        if current == OrderStatus.PENDING:
            return OrderStatus.PAID
    elif new_payment_status in (
        PaymentStatus.PAYMENT_FAILED,
        PaymentStatus.PAYMENT_CANCELLED,
    ):
        if current == OrderStatus.PAID:
            return OrderStatus.PENDING
    return current
