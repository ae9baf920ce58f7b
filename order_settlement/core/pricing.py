"""
Quantity-tiered pricing.

Resolution rule for a requested quantity:
1. Quantity <= 1 always pays the base price.
2. Otherwise pick, among active tiers whose range covers the quantity, the
   one with the greatest min_quantity (highest priority breaks ties).
3. No covering tier -> base price.

Everything here is pure: no I/O, no session, same inputs give same output.
"""
from typing import Iterable, List, Optional, Protocol, Sequence

from pydantic import BaseModel

TIER_NAMES = ("1ks", "1bal", "10bal", "custom")

DEFAULT_TIER_PRIORITY = {
    "1ks": 0,
    "1bal": 10,
    "10bal": 20,
    "custom": 50,
}


class TierLike(Protocol):
    tier_name: str
    min_quantity: int
    max_quantity: Optional[int]
    price_cents: int
    priority: int
    active: bool


class ProductLike(Protocol):
    price_cents: int
    price_tiers: Sequence[TierLike]


class PriceQuote(BaseModel):
    """Price of a quantity of one product."""

    quantity: int
    base_price_cents: int
    unit_price_cents: int
    total_cents: int
    tier_name: Optional[str] = None
    savings_percent: float = 0.0

    model_config = {"frozen": True}


class PriceTierResolver:
    """Resolves the authoritative unit price for a product and quantity."""

    @staticmethod
    def applicable_tier(
        tiers: Iterable[TierLike], quantity: int
    ) -> Optional[TierLike]:
        """
        Select the tier that prices the given quantity.

        Overlapping tiers are not rejected here: the most specific one (largest
        min_quantity not exceeding the quantity) wins, then highest priority.
        """
        if quantity <= 1:
            return None

        best: Optional[TierLike] = None
        for tier in tiers:
            if not tier.active or tier.min_quantity > quantity:
                continue
            if tier.max_quantity is not None and tier.max_quantity < quantity:
                continue
            if best is None or (tier.min_quantity, tier.priority) > (
                best.min_quantity,
                best.priority,
            ):
                best = tier
        return best

    def price_for(self, product: ProductLike, quantity: int) -> int:
        """
        Unit price in minor units for the requested quantity.

        Args:
            product: Product with price_cents and price_tiers
            quantity: Requested quantity

        Returns:
            int: Unit price in minor currency units
        """
        tier = self.applicable_tier(product.price_tiers, quantity)
        return tier.price_cents if tier is not None else product.price_cents

    @staticmethod
    def savings_percent(base_price_cents: int, tier_price_cents: int) -> float:
        """Savings versus base price, clamped at 0, rounded to one decimal."""
        if base_price_cents <= 0 or tier_price_cents >= base_price_cents:
            return 0.0
        return round((base_price_cents - tier_price_cents) / base_price_cents * 100, 1)

    def savings_for(self, product: ProductLike, quantity: int) -> float:
        return self.savings_percent(product.price_cents, self.price_for(product, quantity))

    def quote(self, product: ProductLike, quantity: int) -> PriceQuote:
        """Full price breakdown for display."""
        tier = self.applicable_tier(product.price_tiers, quantity)
        unit_price = tier.price_cents if tier is not None else product.price_cents
        return PriceQuote(
            quantity=quantity,
            base_price_cents=product.price_cents,
            unit_price_cents=unit_price,
            total_cents=unit_price * quantity,
            tier_name=tier.tier_name if tier is not None else None,
            savings_percent=self.savings_percent(product.price_cents, unit_price),
        )


def validate_tier(
    tier_name: str,
    min_quantity: int,
    max_quantity: Optional[int],
    price_cents: int,
    priority: Optional[int] = None,
) -> List[dict]:
    """
    Field-level validation of a price tier definition.

    Returns:
        List[dict]: {"field", "message"} entries, empty when valid
    """
    errors = []
    if tier_name not in TIER_NAMES:
        errors.append(
            {"field": "tier_name", "message": f"must be one of {', '.join(TIER_NAMES)}"}
        )
    if min_quantity <= 0:
        errors.append({"field": "min_quantity", "message": "must be greater than 0"})
    if max_quantity is not None:
        if max_quantity <= 0:
            errors.append({"field": "max_quantity", "message": "must be greater than 0"})
        elif max_quantity < min_quantity:
            errors.append(
                {"field": "max_quantity", "message": "must be greater than or equal to min_quantity"}
            )
    if price_cents <= 0:
        errors.append({"field": "price_cents", "message": "must be greater than 0"})
    if priority is not None and priority < 0:
        errors.append({"field": "priority", "message": "must be greater than or equal to 0"})
    return errors


def default_priority(tier_name: str) -> int:
    return DEFAULT_TIER_PRIORITY.get(tier_name, 100)


def default_bulk_tiers(base_price_cents: int, currency: str = "CZK") -> List[dict]:
    """
    Standard bulk pricing: a 12-piece pack at 12% off, a 120-piece carton at 20% off.

    Returns plain dicts so callers can build PriceTier rows for any product.
    """
    return [
        {
            "tier_name": "1bal",
            "min_quantity": 12,
            "max_quantity": 119,
            "price_cents": round(base_price_cents * 0.88),
            "currency": currency,
            "priority": default_priority("1bal"),
            "description": "Pack of 12 - 12% off",
        },
        {
            "tier_name": "10bal",
            "min_quantity": 120,
            "max_quantity": None,
            "price_cents": round(base_price_cents * 0.80),
            "currency": currency,
            "priority": default_priority("10bal"),
            "description": "Carton of 120 - 20% off",
        },
    ]


def quantity_range_description(min_quantity: int, max_quantity: Optional[int]) -> str:
    if max_quantity is None:
        return f"{min_quantity}+ ks"
    if min_quantity == max_quantity:
        return f"{min_quantity} ks"
    return f"{min_quantity}-{max_quantity} ks"
