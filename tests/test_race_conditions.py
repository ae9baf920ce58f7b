"""
Race condition tests for concurrent stock reservations and order placement.

Every task runs in its own session (its own connection), like concurrent
requests do in production.
"""
import asyncio
from typing import Any, List

import pytest

from order_settlement.core.inventory import InventoryLedger
from order_settlement.core.orders import OrderItem, OrderService
from order_settlement.domain.exceptions import InsufficientStock


class TestRaceConditions:
    """Test suite for race condition scenarios."""

    @pytest.mark.race
    @pytest.mark.asyncio
    @pytest.mark.parametrize("stock,quantity,workers", [(10, 3, 10), (7, 1, 12), (20, 5, 6)])
    async def test_concurrent_reservations_never_oversell(
        self,
        session_factory: Any,
        make_product: Any,
        stock_of: Any,
        stock: int,
        quantity: int,
        workers: int,
    ) -> None:
        """
        N concurrent reservations of q units against S units of stock.

        Exactly floor(S / q) must succeed and the rest must see InsufficientStock.
        """
        product_id = await make_product(quantity=stock)
        ledger = InventoryLedger()

        async def reserve() -> bool:
            async with session_factory() as session:
                try:
                    await ledger.reserve(session, product_id, quantity)
                    await session.commit()
                    return True
                except InsufficientStock:
                    await session.rollback()
                    return False

        results: List[bool] = await asyncio.gather(*(reserve() for _ in range(workers)))

        expected_successes = min(workers, stock // quantity)
        assert results.count(True) == expected_successes
        assert results.count(False) == workers - expected_successes
        assert await stock_of(product_id) == stock - expected_successes * quantity

    @pytest.mark.race
    @pytest.mark.asyncio
    async def test_concurrent_orders_for_last_units(
        self,
        session_factory: Any,
        make_product: Any,
        stock_of: Any,
        count_orders: Any,
        test_settings: Any,
        ctx: Any,
    ) -> None:
        """Five buyers compete for 2 units; two orders exist afterwards."""
        product_id = await make_product(quantity=2)
        service = OrderService(settings=test_settings)

        async def place() -> bool:
            async with session_factory() as session:
                try:
                    await service.create_order(
                        session, ctx, [OrderItem(product_id=product_id, quantity=1)], "CZK"
                    )
                    return True
                except InsufficientStock:
                    return False

        results = await asyncio.gather(*(place() for _ in range(5)))

        assert results.count(True) == 2
        assert await stock_of(product_id) == 0
        assert await count_orders() == 2
