"""
Tests for the inventory ledger.
"""
from typing import Any

import pytest

from order_settlement.core.inventory import InventoryLedger
from order_settlement.database.models import Product
from order_settlement.domain.exceptions import InsufficientStock, ProductUnavailable


class TestInventoryLedger:
    """Test suite for InventoryLedger."""

    @pytest.mark.asyncio
    async def test_reserve_decrements_stock(self, db: Any, make_product: Any, stock_of: Any) -> None:
        product_id = await make_product(quantity=20)

        remaining = await InventoryLedger().reserve(db, product_id, 5)
        await db.commit()

        assert remaining == 15
        assert await stock_of(product_id) == 15

    @pytest.mark.asyncio
    async def test_reserve_entire_stock(self, db: Any, make_product: Any, stock_of: Any) -> None:
        product_id = await make_product(quantity=3)

        assert await InventoryLedger().reserve(db, product_id, 3) == 0
        await db.commit()

        assert await stock_of(product_id) == 0

    @pytest.mark.asyncio
    async def test_reserve_insufficient_stock(
        self, db: Any, make_product: Any, stock_of: Any
    ) -> None:
        product_id = await make_product(name="Notebook A5", quantity=3)

        with pytest.raises(InsufficientStock) as exc_info:
            await InventoryLedger().reserve(db, product_id, 5)
        await db.rollback()

        error = exc_info.value
        assert error.product_id == product_id
        assert error.requested == 5
        assert error.available == 3
        assert "Notebook A5" in error.message
        assert await stock_of(product_id) == 3

    @pytest.mark.asyncio
    async def test_reserve_unknown_product(self, db: Any) -> None:
        with pytest.raises(ProductUnavailable) as exc_info:
            await InventoryLedger().reserve(db, 999, 1)
        assert exc_info.value.product_ids == [999]

    @pytest.mark.asyncio
    async def test_reserve_rejects_non_positive_quantity(self, db: Any, make_product: Any) -> None:
        product_id = await make_product(quantity=5)

        with pytest.raises(ValueError):
            await InventoryLedger().reserve(db, product_id, 0)

    @pytest.mark.asyncio
    async def test_release_increments_stock(self, db: Any, make_product: Any, stock_of: Any) -> None:
        product_id = await make_product(quantity=2)

        new_total = await InventoryLedger().release(db, product_id, 4)
        await db.commit()

        assert new_total == 6
        assert await stock_of(product_id) == 6

    @pytest.mark.asyncio
    async def test_release_rejects_non_positive_quantity(self, db: Any, make_product: Any) -> None:
        product_id = await make_product(quantity=2)

        with pytest.raises(ValueError):
            await InventoryLedger().release(db, product_id, -1)

    @pytest.mark.asyncio
    async def test_release_unknown_product(self, db: Any) -> None:
        with pytest.raises(ProductUnavailable):
            await InventoryLedger().release(db, 999, 1)

    @pytest.mark.asyncio
    async def test_reserve_release_sequence_never_negative(
        self, db: Any, make_product: Any, stock_of: Any
    ) -> None:
        product_id = await make_product(quantity=10)
        ledger = InventoryLedger()

        for quantity in (4, 4):
            await ledger.reserve(db, product_id, quantity)
        with pytest.raises(InsufficientStock):
            await ledger.reserve(db, product_id, 4)
        await ledger.release(db, product_id, 4)
        await ledger.reserve(db, product_id, 6)
        await db.commit()

        assert await stock_of(product_id) == 0

    @pytest.mark.asyncio
    async def test_low_stock_crossing_does_not_block(
        self, db: Any, make_product: Any, stock_of: Any
    ) -> None:
        product_id = await make_product(quantity=12, low_stock_threshold=10)

        remaining = await InventoryLedger().reserve(db, product_id, 5)
        await db.commit()

        assert remaining == 7
        product = await db.get(Product, product_id)
        assert product.low_stock()
        assert not product.out_of_stock()

    @pytest.mark.asyncio
    async def test_adjust_stock(self, db: Any, make_product: Any, stock_of: Any) -> None:
        product_id = await make_product(quantity=12)

        result = await InventoryLedger().adjust_stock(db, product_id, 40, reason="delivery")
        await db.commit()

        assert result == 40
        assert await stock_of(product_id) == 40

    @pytest.mark.asyncio
    async def test_adjust_stock_rejects_negative(self, db: Any, make_product: Any) -> None:
        product_id = await make_product(quantity=12)

        with pytest.raises(ValueError, match="negative"):
            await InventoryLedger().adjust_stock(db, product_id, -1)


class TestProductHelpers:
    """Test suite for Product stock helpers."""

    @pytest.mark.unit
    def test_stock_helpers(self) -> None:
        product = Product(name="Ruler", price_cents=4900, quantity=5, available=True, low_stock_threshold=10)

        assert product.in_stock()
        assert product.low_stock()
        assert product.sufficient_stock(5)
        assert not product.sufficient_stock(6)
        assert product.can_fulfill(5)
        assert product.price == 49.0

    @pytest.mark.unit
    def test_unavailable_product_cannot_fulfill(self) -> None:
        product = Product(name="Ruler", price_cents=4900, quantity=50, available=False, low_stock_threshold=10)

        assert product.in_stock()
        assert not product.can_fulfill(1)

    @pytest.mark.unit
    def test_out_of_stock(self) -> None:
        product = Product(name="Ruler", price_cents=4900, quantity=0, available=True, low_stock_threshold=10)

        assert product.out_of_stock()
        assert not product.low_stock()
