"""
Health checks for Kubernetes readiness and liveness endpoints.

Critical checks decide readiness:
- database: a round trip through the session factory
- comgate: merchant ID and secret are configured

Informational checks are reported but never fail readiness:
- inventory: how many available products are low on or out of stock
"""
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog
from sqlalchemy import case, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_settlement import __version__
from order_settlement.config import Settings, get_settings
from order_settlement.database.connection import get_session_factory
from order_settlement.database.models import Product

logger = structlog.get_logger(__name__)

Check = Callable[[], Awaitable[Dict[str, Any]]]


class HealthCheckError(Exception):
    """Raised when a dependency check fails."""


class HealthCheck:
    """Dependency checks for the settlement service."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If the round trip fails
        """
        start_time = time.perf_counter()
        try:
            async with self._sessions()() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {e}") from e

        return {
            "status": "healthy",
            "service": "database",
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
        }

    async def check_gateway(self) -> Dict[str, Any]:
        """
        Check that Comgate credentials are configured.

        No request is sent: Comgate has no side-effect-free ping endpoint.

        Raises:
            HealthCheckError: If merchant ID or secret is missing
        """
        missing = self.settings.missing_gateway_credentials()
        if missing:
            logger.error("gateway_health_check_failed", missing=missing)
            raise HealthCheckError(f"Comgate credentials missing: {', '.join(missing)}")

        return {
            "status": "healthy",
            "service": "comgate",
            "base_url": self.settings.comgate_base_url,
            "test_mode": self.settings.gateway_test_mode,
        }

    async def check_inventory(self) -> Dict[str, Any]:
        """Count available products at or under their low-stock threshold."""
        try:
            async with self._sessions()() as db:
                row = (
                    await db.execute(
                        select(
                            func.count(Product.id),
                            func.sum(case((Product.quantity == 0, 1), else_=0)),
                            func.sum(
                                case(
                                    (
                                        (Product.quantity > 0)
                                        & (Product.quantity <= Product.low_stock_threshold),
                                        1,
                                    ),
                                    else_=0,
                                )
                            ),
                        ).where(Product.available.is_(True))
                    )
                ).one()
        except Exception as e:
            logger.warning("inventory_health_check_failed", error=str(e))
            raise HealthCheckError(f"Inventory check failed: {e}") from e

        total, out_of_stock, low_stock = row
        return {
            "status": "healthy",
            "service": "inventory",
            "available_products": total or 0,
            "out_of_stock": out_of_stock or 0,
            "low_stock": low_stock or 0,
        }

    def _checks(self) -> Tuple[Tuple[str, Check, bool], ...]:
        # (name, check, critical)
        return (
            ("database", self.check_database, True),
            ("comgate", self.check_gateway, True),
            ("inventory", self.check_inventory, False),
        )

    async def check_all(self) -> Dict[str, Any]:
        """
        Run every check.

        Returns:
            Dict[str, Any]: "healthy" unless a critical check failed
        """
        checks: Dict[str, Any] = {}
        all_healthy = True

        for name, check, critical in self._checks():
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {
                    "status": "unhealthy" if critical else "unknown",
                    "service": name,
                    "error": str(e),
                }
                if critical:
                    all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """The process is up; dependencies are not touched."""
        return {
            "status": "alive",
            "message": f"{self.settings.app_name} {__version__} is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        return await self.check_all()
