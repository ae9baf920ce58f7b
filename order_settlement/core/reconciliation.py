"""
Payment reconciliation from Comgate webhook notifications.

Processing flow:
1. Parse the notification (transId, refId, status are required)
2. Verify the HMAC signature
3. Find and lock the order (by payment_id, falling back to order id)
4. Check payment id and currency; amount differences are only logged
5. Map the gateway status onto a payment status
6. Apply the change if the transition table allows it

Steps 3-6 share one transaction. Failures are returned as a result object
rather than raised, so the HTTP layer can answer non-2xx and let the
gateway redeliver.
"""
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_settlement.config import Settings, get_settings
from order_settlement.database.models import Order
from order_settlement.domain.exceptions import (
    CurrencyMismatch,
    IllegalTransition,
    PaymentIdMismatch,
    Unauthorized,
    UnknownStatus,
    WebhookError,
    WebhookOrderNotFound,
)
from order_settlement.domain.statuses import (
    PaymentStatus,
    is_transition_allowed,
    order_status_after_payment,
)
from order_settlement.integrations.webhook_handler import (
    WebhookNotification,
    verify_signature,
)
from order_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

COMGATE_STATUS_MAPPING = {
    "PAID": PaymentStatus.PAYMENT_COMPLETED,
    "CANCELLED": PaymentStatus.PAYMENT_CANCELLED,
    "TIMEOUT": PaymentStatus.PAYMENT_FAILED,
    "PENDING": PaymentStatus.PAYMENT_PENDING,
}


class ReconciliationResult(BaseModel):
    """Outcome of processing one notification."""

    success: bool
    message: str
    error_code: Optional[str] = None
    http_status: int = 200
    order_id: Optional[int] = None
    old_status: Optional[PaymentStatus] = None
    new_status: Optional[PaymentStatus] = None


def map_comgate_status(status: str) -> PaymentStatus:
    """
    Map a Comgate status (case-insensitive) onto a payment status.

    Raises:
        UnknownStatus: If the status is not one Comgate documents
    """
    mapped = COMGATE_STATUS_MAPPING.get(status.strip().upper())
    if mapped is None:
        raise UnknownStatus(status)
    return mapped


def amount_matches(expected_cents: int, price: Optional[str]) -> bool:
    """Accept the price echoed in minor units or in major units."""
    if price is None:
        return False
    try:
        if int(price) == expected_cents:
            return True
    except ValueError:
        pass
    try:
        return round(float(price) * 100) == expected_cents
    except (ValueError, OverflowError):
        # "nan", "inf", "1e400"
        return False


class PaymentReconciler:
    """
    Applies Comgate payment notifications to orders.

    Features:
    - Signature verification (bypass only outside production)
    - Idempotent redelivery (same status is a successful no-op)
    - Transition table enforcement
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize reconciler.

        Args:
            settings: Optional settings (uses cached settings if not provided)
        """
        self.settings = settings or get_settings()

    def _authenticate(self, notification: WebhookNotification, signature: Optional[str]) -> None:
        if not self.settings.webhook_verification_required:
            logger.warning(
                "webhook_signature_check_skipped",
                trans_id=notification.trans_id,
                app_env=self.settings.app_env,
            )
            return

        if not signature:
            raise Unauthorized("Missing signature")
        if not verify_signature(notification, signature, self.settings.comgate_secret):
            raise Unauthorized("Invalid signature")

    @staticmethod
    async def _find_order(db: AsyncSession, notification: WebhookNotification) -> Order:
        """Lock the order by payment_id, falling back to the order id in refId."""
        result = await db.execute(
            select(Order)
            .where(Order.payment_id == notification.trans_id)
            .order_by(Order.id)
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is not None:
            return order

        try:
            order_id = int(notification.ref_id)
        except ValueError:
            order_id = None

        if order_id is not None:
            result = await db.execute(
                select(Order)
                .where(Order.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            order = result.scalar_one_or_none()

        if order is None:
            raise WebhookOrderNotFound(notification.trans_id, notification.ref_id)
        return order

    @staticmethod
    def _validate_order(order: Order, notification: WebhookNotification) -> None:
        if order.payment_id and order.payment_id != notification.trans_id:
            raise PaymentIdMismatch(order.payment_id, notification.trans_id)

        if not amount_matches(order.total_cents, notification.price):
            logger.warning(
                "webhook_amount_mismatch",
                order_id=order.id,
                expected_cents=order.total_cents,
                received=notification.price,
            )

        if order.currency != notification.curr:
            raise CurrencyMismatch(order.currency, notification.curr)

    async def _apply(
        self, db: AsyncSession, notification: WebhookNotification
    ) -> ReconciliationResult:
        order = await self._find_order(db, notification)
        self._validate_order(order, notification)

        new_status = map_comgate_status(notification.status)
        old_status = order.payment_status

        if not is_transition_allowed(old_status, new_status):
            logger.warning(
                "webhook_invalid_transition",
                order_id=order.id,
                old_status=old_status.value,
                new_status=new_status.value,
            )
            raise IllegalTransition(order.id, old_status.value, new_status.value)

        changed = False
        if not order.payment_id:
            order.payment_id = notification.trans_id
            changed = True

        new_order_status = order_status_after_payment(order.status, new_status)
        if new_status != old_status or new_order_status != order.status:
            order.payment_status = new_status
            order.status = new_order_status
            changed = True

        if changed:
            order.updated_at = datetime.now(timezone.utc)
        await db.commit()

        logger.info(
            "webhook_payment_status_applied",
            order_id=order.id,
            trans_id=notification.trans_id,
            old_status=old_status.value,
            new_status=new_status.value,
            order_status=order.status.value,
            price=notification.price,
            currency=notification.curr,
            test_mode=notification.test == "true",
        )
        return ReconciliationResult(
            success=True,
            message=f"Order {order.id} status updated from {old_status.value} to {new_status.value}",
            order_id=order.id,
            old_status=old_status,
            new_status=new_status,
        )

    async def process(
        self,
        db: AsyncSession,
        payload: Mapping[str, Any],
        signature: Optional[str] = None,
    ) -> ReconciliationResult:
        """
        Process a webhook notification.

        Args:
            db: Database session
            payload: Raw notification fields (form or JSON)
            signature: X-Signature header value

        Returns:
            ReconciliationResult: success, or a failure with error code and HTTP status
        """
        start_time = time.time()
        gateway_status = str(payload.get("status") or "missing").upper()

        logger.info(
            "webhook_received",
            trans_id=payload.get("transId"),
            ref_id=payload.get("refId"),
            gateway_status=gateway_status,
        )

        try:
            notification = WebhookNotification.from_payload(payload)
            self._authenticate(notification, signature)
            result = await self._apply(db, notification)

        except WebhookError as e:
            await db.rollback()
            logger.error(
                "webhook_processing_failed",
                error_code=e.error_code,
                error_message=e.message,
                trans_id=payload.get("transId"),
            )
            result = ReconciliationResult(
                success=False,
                message=e.message,
                error_code=e.error_code,
                http_status=e.http_status,
                order_id=e.details.get("order_id"),
            )

        except Exception as e:
            await db.rollback()
            logger.error(
                "webhook_unexpected_error",
                error=str(e),
                trans_id=payload.get("transId"),
                exc_info=True,
            )
            result = ReconciliationResult(
                success=False,
                message="Internal processing error",
                error_code="internal_error",
                http_status=500,
            )

        if result.success:
            outcome = "noop" if result.old_status == result.new_status else "applied"
        else:
            outcome = result.error_code or "error"
        metrics.record_webhook_event(gateway_status, outcome, time.time() - start_time)
        return result
