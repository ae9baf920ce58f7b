"""
Inventory ledger: the only writer of Product.quantity.

Reservation flow:
1. Lock the product row (SELECT ... FOR UPDATE)
2. Re-check stock against the freshly loaded row
3. Decrement with a conditional UPDATE (WHERE quantity >= requested)
4. Refresh the row and report low-stock transitions

Step 3 is a compare-and-swap: even on engines without row locks, two
concurrent reservations cannot both succeed against the same units.

The ledger never commits. It runs inside the caller's transaction so that
order creation and cancellation stay all-or-nothing.
"""
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_settlement.database.models import Product
from order_settlement.domain.exceptions import (
    InsufficientStock,
    ProductUnavailable,
    StockShortage,
)
from order_settlement.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class InventoryLedger:
    """Atomic reserve / release of product stock."""

    @staticmethod
    async def _lock_product(db: AsyncSession, product_id: int) -> Product:
        """Load the product row under an exclusive lock, bypassing the identity map."""
        stmt = (
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductUnavailable([product_id])
        return product

    @staticmethod
    def _check_positive(quantity: int) -> None:
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity}")

    def _report_low_stock(self, product: Product, previous_quantity: int) -> None:
        """Warn once when stock crosses to at/under the threshold."""
        metrics.set_stock_level(product.id, product.quantity)
        crossed = (
            previous_quantity > product.low_stock_threshold
            and product.quantity <= product.low_stock_threshold
        )
        if crossed:
            metrics.record_low_stock(product.id)
            logger.warning(
                "low_stock_alert",
                product_id=product.id,
                product_name=product.name,
                quantity=product.quantity,
                threshold=product.low_stock_threshold,
            )

    async def reserve(self, db: AsyncSession, product_id: int, quantity: int) -> int:
        """
        Reserve stock for a product.

        Args:
            db: Database session (caller owns the transaction)
            product_id: Product to reserve from
            quantity: Units to reserve

        Returns:
            int: Remaining quantity after the reservation

        Raises:
            InsufficientStock: If fewer than quantity units are available
            ProductUnavailable: If the product does not exist
        """
        self._check_positive(quantity)
        product = await self._lock_product(db, product_id)
        previous_quantity = product.quantity

        # Re-check after acquiring the lock
        if not product.sufficient_stock(quantity):
            metrics.record_stock_operation("reserve", "insufficient")
            raise InsufficientStock(
                [StockShortage(product.id, product.name, quantity, product.quantity)]
            )

        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.refresh(product, attribute_names=["quantity"])

        if result.rowcount != 1:
            # Lost the race on an engine that ignores FOR UPDATE
            metrics.record_stock_operation("reserve", "insufficient")
            raise InsufficientStock(
                [StockShortage(product.id, product.name, quantity, product.quantity)]
            )

        metrics.record_stock_operation("reserve", "success")
        logger.info(
            "stock_reserved",
            product_id=product_id,
            quantity=quantity,
            remaining=product.quantity,
        )
        self._report_low_stock(product, previous_quantity)
        return product.quantity

    async def release(self, db: AsyncSession, product_id: int, quantity: int) -> int:
        """
        Return previously reserved stock.

        Args:
            db: Database session (caller owns the transaction)
            product_id: Product to release to
            quantity: Units to release (must be positive)

        Returns:
            int: New quantity after the release
        """
        self._check_positive(quantity)
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=Product.quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            raise ProductUnavailable([product_id])

        product = await db.get(Product, product_id, populate_existing=True)
        metrics.record_stock_operation("release", "success")
        metrics.set_stock_level(product_id, product.quantity)
        logger.info(
            "stock_released",
            product_id=product_id,
            quantity=quantity,
            new_total=product.quantity,
        )
        return product.quantity

    async def adjust_stock(
        self,
        db: AsyncSession,
        product_id: int,
        new_quantity: int,
        reason: Optional[str] = None,
    ) -> int:
        """
        Set stock to an absolute value (stock takes, deliveries).

        Raises:
            ValueError: If new_quantity is negative
        """
        if new_quantity < 0:
            raise ValueError(f"Stock cannot be negative, got {new_quantity}")

        product = await self._lock_product(db, product_id)
        old_quantity = product.quantity
        await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=new_quantity)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(product, attribute_names=["quantity"])

        metrics.record_stock_operation("adjust", "success")
        logger.info(
            "stock_adjusted",
            product_id=product_id,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            reason=reason,
        )
        self._report_low_stock(product, old_quantity)
        return product.quantity
