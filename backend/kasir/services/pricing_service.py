# Overview: Pricing resolver; computes effective unit prices from tiers and discounts.

"""
Pricing Resolver

A sellable unit is either a plain product or one variation of a product.
Variations carry their own price, stock and wholesale tiers but inherit the
parent's discount.

ALGORITHM (resolve_price):
1. base price = the unit's regular price
2. wholesale: among tiers with min <= quantity, take the largest min; it
   applies when max is unset or quantity <= max
3. discount: percentage -> base * (1 - value/100); fixed -> max(0, base - value)

Tier eligibility depends on quantity, so callers re-resolve on every
quantity change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..models import Product


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"


@dataclass(frozen=True)
class PriceInfo:
    base_price: float
    effective_price: float
    is_wholesale: bool

    def to_dict(self) -> dict:
        return {
            "basePrice": self.base_price,
            "effectivePrice": self.effective_price,
            "isWholesale": self.is_wholesale,
        }


@dataclass(frozen=True)
class ProductUnit:
    """A product sold as-is (no variations)."""
    product: Product

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def variation_index(self) -> None:
        return None

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def price(self) -> float:
        return self.product.price or 0

    @property
    def stock(self) -> int | None:
        return self.product.stock

    @property
    def wholesale_prices(self) -> list[dict]:
        return self.product.wholesale_prices or []

    @property
    def discount(self) -> dict | None:
        return normalize_discount(self.product.discount)


@dataclass(frozen=True)
class VariationUnit:
    """One variation of a product, priced and stocked on its own."""
    product: Product
    index: int
    variation: dict

    @property
    def product_id(self) -> int:
        return self.product.id

    @property
    def variation_index(self) -> int:
        return self.index

    @property
    def variation_name(self) -> str:
        return self.variation.get("name") or ""

    @property
    def name(self) -> str:
        return f"{self.product.name} ({self.variation_name})"

    @property
    def price(self) -> float:
        return self.variation.get("price") or 0

    @property
    def stock(self) -> int | None:
        return self.variation.get("stock")

    @property
    def wholesale_prices(self) -> list[dict]:
        return self.variation.get("wholesalePrices") or []

    @property
    def discount(self) -> dict | None:
        # Variations inherit the parent discount
        return normalize_discount(self.product.discount)


SellableUnit = Union[ProductUnit, VariationUnit]


class PricingError(ValueError):
    pass


def unit_for(product: Product, variation_index: int | None = None) -> SellableUnit:
    """
    Build the sellable unit for a product or one of its variations.

    Raises PricingError if the variation index does not exist, or if a
    product with variations is requested without choosing one.
    """
    variations = product.variations or []
    if variation_index is None:
        if variations:
            raise PricingError(f"Product {product.id} has variations; choose one")
        return ProductUnit(product)

    if variation_index < 0 or variation_index >= len(variations):
        raise PricingError(f"Product {product.id} has no variation {variation_index}")
    return VariationUnit(product, variation_index, variations[variation_index])


def normalize_discount(discount: dict | None, legacy_percentage: float | None = None) -> dict | None:
    """
    Canonical discount dict or None.

    Non-positive values mean "no discount". A legacy bare percentage
    (discountPercentage) is accepted when no discount object is present.
    """
    if isinstance(discount, dict):
        try:
            value = float(discount.get("value") or 0)
        except (TypeError, ValueError):
            value = 0
        if value > 0:
            dtype = discount.get("type") or DISCOUNT_PERCENTAGE
            if dtype not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
                dtype = DISCOUNT_PERCENTAGE
            return {"type": dtype, "value": value}
    if legacy_percentage and legacy_percentage > 0:
        return {"type": DISCOUNT_PERCENTAGE, "value": float(legacy_percentage)}
    return None


def select_wholesale_tier(tiers: list[dict], quantity: int) -> dict | None:
    """
    Pick the applicable wholesale tier for a quantity.

    The tier with the largest min <= quantity is the only candidate. Among
    tiers sharing that min, the first in stored order wins. The candidate
    applies only if its max is unset or quantity <= max.
    """
    candidates = [t for t in tiers or [] if t.get("min") is not None and quantity >= t["min"]]
    if not candidates:
        return None

    # sorted() is stable: equal mins keep their stored order
    best = sorted(candidates, key=lambda t: t["min"], reverse=True)[0]
    max_qty = best.get("max")
    if max_qty is None or quantity <= max_qty:
        return best
    return None


def apply_discount(base_price: float, discount: dict | None) -> float:
    if not discount:
        return base_price
    value = discount.get("value") or 0
    if value <= 0:
        return base_price
    if discount.get("type") == DISCOUNT_FIXED:
        return max(0, base_price - value)
    return base_price * (1 - value / 100)


def resolve_price(unit: SellableUnit, quantity: int) -> PriceInfo:
    base_price = unit.price
    is_wholesale = False

    tier = select_wholesale_tier(unit.wholesale_prices, quantity)
    if tier is not None:
        base_price = tier["price"]
        is_wholesale = True

    effective_price = apply_discount(base_price, unit.discount)
    return PriceInfo(base_price=base_price, effective_price=effective_price, is_wholesale=is_wholesale)
