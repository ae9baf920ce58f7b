"""
Order aggregate: placement, payment initiation and cancellation.

Order creation flow:
1. Validate input (items, quantities, currency)
2. Load available products
3. Resolve unit prices and pre-check stock for every line
4. Persist order + line items
5. Reserve stock through the inventory ledger
6. Commit (any failure rolls back steps 4-5)

Each public operation runs in exactly one transaction and commits or rolls
back before returning, so a caller never observes a partial order.
"""
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from order_settlement.config import Settings, get_settings
from order_settlement.core.inventory import InventoryLedger
from order_settlement.core.pricing import PriceQuote, PriceTierResolver
from order_settlement.database.models import Order, OrderLineItem, Product
from order_settlement.domain.exceptions import (
    GatewayError,
    InsufficientStock,
    OrderNotCancellable,
    OrderNotFound,
    OrderNotPayable,
    OrderSettlementError,
    PaymentAlreadyExists,
    ProductUnavailable,
    StockShortage,
    ValidationError,
)
from order_settlement.domain.statuses import OrderStatus, PaymentStatus
from order_settlement.integrations.comgate_client import PayerContact, PaymentGateway
from order_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class RequestContext(BaseModel):
    """Authenticated caller on whose behalf an operation runs."""

    user_id: int
    email: str
    full_name: Optional[str] = None

    model_config = {"frozen": True}


class OrderItem(BaseModel):
    """Requested line: product and quantity."""

    product_id: int
    quantity: int


class PaymentInitiated(BaseModel):
    order_id: int
    payment_id: str
    payment_url: str


class OrderService:
    """
    Places, pays and cancels orders.

    Stock and money rules:
    - Line prices come from the price tier resolver, never from the caller
    - Stock is only touched through the inventory ledger
    - Totals are integer minor units
    """

    def __init__(
        self,
        gateway: Optional[PaymentGateway] = None,
        ledger: Optional[InventoryLedger] = None,
        resolver: Optional[PriceTierResolver] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize order service.

        Args:
            gateway: Payment gateway client (required for pay_order)
            ledger: Optional inventory ledger
            resolver: Optional price tier resolver
            settings: Optional settings
        """
        self.settings = settings or get_settings()
        self.gateway = gateway
        self.ledger = ledger or InventoryLedger()
        self.resolver = resolver or PriceTierResolver()

    def _validate_order_request(
        self, items: Sequence[OrderItem], currency: str
    ) -> None:
        """
        Validate order request parameters.

        Raises:
            ValidationError: With one entry per offending field
        """
        errors: List[Dict[str, str]] = []

        if not items:
            errors.append({"field": "items", "message": "must contain at least one item"})

        seen = set()
        for index, item in enumerate(items):
            if item.quantity <= 0:
                errors.append(
                    {"field": f"items[{index}].quantity", "message": "must be greater than 0"}
                )
            if item.product_id in seen:
                errors.append(
                    {"field": f"items[{index}].product_id", "message": "duplicate product"}
                )
            seen.add(item.product_id)

        supported = self.settings.get_supported_currencies()
        if currency not in supported:
            errors.append(
                {"field": "currency", "message": f"must be one of {', '.join(supported)}"}
            )

        if errors:
            raise ValidationError(errors)

    @staticmethod
    async def _load_products(
        db: AsyncSession, product_ids: Sequence[int]
    ) -> Dict[int, Product]:
        """Load available products; raise listing every id that is missing."""
        result = await db.execute(
            select(Product).where(Product.id.in_(product_ids), Product.available.is_(True))
        )
        products = {product.id: product for product in result.scalars()}

        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise ProductUnavailable(missing)
        return products

    @staticmethod
    async def _lock_order(db: AsyncSession, ctx: RequestContext, order_id: int) -> Order:
        """Load the caller's order under an exclusive row lock."""
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id, Order.user_id == ctx.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def create_order(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        items: Sequence[OrderItem],
        currency: str = "CZK",
    ) -> Order:
        """
        Create an order and reserve its stock atomically.

        Args:
            db: Database session
            ctx: Caller identity
            items: Requested lines (each product at most once)
            currency: Order currency

        Returns:
            Order: Persisted order (pending / no_payment) with line items

        Raises:
            ValidationError: If the request is malformed
            ProductUnavailable: If a product does not exist or is unavailable
            InsufficientStock: If any line cannot be covered (all shortages listed)
        """
        start_time = time.time()
        currency = (currency or "").upper()

        logger.info(
            "order_creation_started",
            user_id=ctx.user_id,
            item_count=len(items),
            currency=currency,
        )

        try:
            self._validate_order_request(items, currency)

            product_ids = [item.product_id for item in items]
            products = await self._load_products(db, product_ids)

            shortages = []
            for item in items:
                product = products[item.product_id]
                if not product.sufficient_stock(item.quantity):
                    shortages.append(
                        StockShortage(product.id, product.name, item.quantity, product.quantity)
                    )
            if shortages:
                raise InsufficientStock(shortages)

            now = datetime.now(timezone.utc)
            line_items = [
                OrderLineItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price_cents=self.resolver.price_for(
                        products[item.product_id], item.quantity
                    ),
                    created_at=now,
                )
                for item in items
            ]
            order = Order(
                user_id=ctx.user_id,
                total_cents=sum(line.total_cents for line in line_items),
                currency=currency,
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.NO_PAYMENT,
                items=line_items,
                created_at=now,
                updated_at=now,
            )
            db.add(order)
            await db.flush()

            # Fixed lock order across concurrent orders
            for item in sorted(items, key=lambda i: i.product_id):
                await self.ledger.reserve(db, item.product_id, item.quantity)

            await db.commit()

        except OrderSettlementError as e:
            await db.rollback()
            metrics.record_order_rejected(e.error_code)
            logger.warning(
                "order_creation_rejected",
                user_id=ctx.user_id,
                error_code=e.error_code,
                error_message=e.message,
            )
            raise

        except Exception as e:
            await db.rollback()
            metrics.record_order_rejected("internal_error")
            logger.error(
                "order_creation_failed",
                user_id=ctx.user_id,
                error=str(e),
                exc_info=True,
            )
            raise

        metrics.record_order_created(order.currency, order.total_cents, time.time() - start_time)
        logger.info(
            "order_created",
            order_id=order.id,
            user_id=ctx.user_id,
            total_cents=order.total_cents,
            currency=order.currency,
        )
        return order

    async def get_order(self, db: AsyncSession, ctx: RequestContext, order_id: int) -> Order:
        """
        Get one of the caller's orders.

        Raises:
            OrderNotFound: If the order does not exist or belongs to someone else
        """
        result = await db.execute(
            select(Order).where(Order.id == order_id, Order.user_id == ctx.user_id)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def pay_order(
        self, db: AsyncSession, ctx: RequestContext, order_id: int
    ) -> PaymentInitiated:
        """
        Initiate a gateway payment for a pending order.

        Args:
            db: Database session
            ctx: Caller identity (also the payer contact)
            order_id: Order to pay

        Returns:
            PaymentInitiated: Gateway payment id and redirect URL

        Raises:
            OrderNotFound: If the order is not the caller's
            OrderNotPayable: If the order is not pending
            PaymentAlreadyExists: If a payment is pending or completed
            GatewayError: If the gateway call fails (not retried)
        """
        if self.gateway is None:
            raise RuntimeError("OrderService was created without a payment gateway")

        try:
            order = await self._lock_order(db, ctx, order_id)

            if order.status != OrderStatus.PENDING:
                raise OrderNotPayable(order.id, order.status.value)

            if order.payment_status in (
                PaymentStatus.PAYMENT_PENDING,
                PaymentStatus.PAYMENT_COMPLETED,
            ):
                raise PaymentAlreadyExists(order.id, order.payment_status.value)

            contact = PayerContact(email=ctx.email, full_name=ctx.full_name)
            created = await self.gateway.create_payment(order, contact)

            order.payment_id = created.payment_id
            order.payment_url = created.payment_url
            order.payment_status = PaymentStatus.PAYMENT_PENDING
            order.updated_at = datetime.now(timezone.utc)
            await db.commit()

        except GatewayError as e:
            await db.rollback()
            logger.error(
                "order_payment_gateway_error",
                order_id=order_id,
                error_type=e.error_type.value,
                error_message=e.message,
            )
            raise

        except Exception:
            await db.rollback()
            raise

        logger.info(
            "order_payment_initiated",
            order_id=order_id,
            user_id=ctx.user_id,
            payment_id=created.payment_id,
        )
        return PaymentInitiated(
            order_id=order_id,
            payment_id=created.payment_id,
            payment_url=created.payment_url,
        )

    async def cancel_order(self, db: AsyncSession, ctx: RequestContext, order_id: int) -> Order:
        """
        Cancel an order and return its stock.

        Raises:
            OrderNotFound: If the order is not the caller's
            OrderNotCancellable: If the order is cancelled or past payment
        """
        try:
            order = await self._lock_order(db, ctx, order_id)

            cancellable = order.status != OrderStatus.CANCELLED and (
                order.status == OrderStatus.PENDING
                or order.payment_status == PaymentStatus.PAYMENT_PENDING
            )
            if not cancellable:
                raise OrderNotCancellable(order.id, order.status.value)

            order.status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.PAYMENT_CANCELLED
            order.updated_at = datetime.now(timezone.utc)

            for line in sorted(order.items, key=lambda li: li.product_id):
                await self.ledger.release(db, line.product_id, line.quantity)

            await db.commit()

        except Exception:
            await db.rollback()
            raise

        metrics.record_order_cancelled()
        logger.info("order_cancelled", order_id=order_id, user_id=ctx.user_id)
        return order

    async def quote(self, db: AsyncSession, product_id: int, quantity: int) -> PriceQuote:
        """
        Price a quantity of an available product.

        Raises:
            ValidationError: If quantity is not positive
            ProductUnavailable: If the product is missing or unavailable
        """
        if quantity <= 0:
            raise ValidationError([{"field": "quantity", "message": "must be greater than 0"}])

        products = await self._load_products(db, [product_id])
        return self.resolver.quote(products[product_id], quantity)
