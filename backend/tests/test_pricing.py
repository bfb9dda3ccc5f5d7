# Overview: Pytest coverage for the pricing resolver (wholesale tiers, discounts, variations).

import pytest

from kasir.models import Product
from kasir.money import round_half_up, round_up_to_unit
from kasir.services.pricing_service import (
    PricingError,
    ProductUnit,
    VariationUnit,
    apply_discount,
    normalize_discount,
    resolve_price,
    select_wholesale_tier,
    unit_for,
)


def _product(**fields):
    fields.setdefault("variations", [])
    fields.setdefault("wholesale_prices", [])
    return Product(id=fields.pop("id", 1), name=fields.pop("name", "Teh"), **fields)


class TestTierSelection:

    def test_below_every_tier_uses_regular_price(self):
        unit = unit_for(_product(price=10000, wholesale_prices=[{"min": 10, "max": None, "price": 8000}]))
        info = resolve_price(unit, 9)
        assert info.base_price == 10000
        assert info.is_wholesale is False

    def test_highest_qualifying_min_wins(self):
        tiers = [
            {"min": 5, "max": None, "price": 9000},
            {"min": 20, "max": None, "price": 7000},
            {"min": 10, "max": None, "price": 8000},
        ]
        assert select_wholesale_tier(tiers, 12)["price"] == 8000
        assert select_wholesale_tier(tiers, 20)["price"] == 7000
        assert select_wholesale_tier(tiers, 5)["price"] == 9000

    def test_max_bounds_the_selected_tier(self):
        tiers = [{"min": 10, "max": 19, "price": 8000}]
        assert select_wholesale_tier(tiers, 19)["price"] == 8000
        assert select_wholesale_tier(tiers, 20) is None

    def test_max_exceeded_does_not_fall_back_to_lower_tier(self):
        """Only the largest qualifying min is considered."""
        tiers = [
            {"min": 5, "max": None, "price": 9000},
            {"min": 10, "max": 15, "price": 8000},
        ]
        assert select_wholesale_tier(tiers, 16) is None

    def test_duplicate_min_keeps_stored_order(self):
        tiers = [
            {"min": 10, "max": None, "price": 8000},
            {"min": 10, "max": None, "price": 7500},
        ]
        assert select_wholesale_tier(tiers, 10)["price"] == 8000

    def test_no_tiers(self):
        assert select_wholesale_tier([], 100) is None
        assert select_wholesale_tier(None, 100) is None


class TestDiscounts:

    def test_percentage(self):
        assert apply_discount(10000, {"type": "percentage", "value": 10}) == pytest.approx(9000)

    def test_fixed_never_below_zero(self):
        assert apply_discount(3000, {"type": "fixed", "value": 5000}) == 0
        assert apply_discount(3000, {"type": "fixed", "value": 500}) == 2500

    @pytest.mark.parametrize("discount", [None, {"type": "percentage", "value": 0}, {"type": "fixed", "value": -5}])
    def test_absent_or_non_positive_discount_is_ignored(self, discount):
        unit = unit_for(_product(price=12000, discount=discount))
        info = resolve_price(unit, 1)
        assert info.effective_price == info.base_price == 12000

    def test_legacy_percentage_is_honoured(self):
        assert normalize_discount(None, 15) == {"type": "percentage", "value": 15.0}
        assert normalize_discount({"type": "fixed", "value": 0}, 15) == {"type": "percentage", "value": 15.0}

    def test_effective_never_exceeds_base(self):
        for discount in ({"type": "percentage", "value": 35}, {"type": "fixed", "value": 99999}):
            unit = unit_for(_product(price=5000, discount=discount,
                                     wholesale_prices=[{"min": 3, "max": None, "price": 4000}]))
            for qty in (1, 3, 10):
                info = resolve_price(unit, qty)
                assert info.effective_price <= info.base_price


class TestResolvePrice:

    def test_example_tier_and_percentage_discount(self):
        product = _product(
            price=10000,
            wholesale_prices=[{"min": 10, "max": None, "price": 8000}],
            discount={"type": "percentage", "value": 10},
        )
        unit = unit_for(product)

        at_five = resolve_price(unit, 5)
        assert at_five.base_price == 10000
        assert at_five.effective_price == pytest.approx(9000)
        assert at_five.is_wholesale is False

        at_ten = resolve_price(unit, 10)
        assert at_ten.base_price == 8000
        assert at_ten.effective_price == pytest.approx(7200)
        assert at_ten.is_wholesale is True

    def test_variation_uses_own_price_and_tiers_with_parent_discount(self):
        product = _product(
            price=1,
            discount={"type": "fixed", "value": 1000},
            variations=[
                {"name": "Kecil", "price": 5000, "stock": 3, "wholesalePrices": []},
                {"name": "Besar", "price": 9000, "stock": None,
                 "wholesalePrices": [{"min": 4, "max": None, "price": 8000}]},
            ],
        )
        unit = unit_for(product, 1)
        assert isinstance(unit, VariationUnit)
        assert unit.name == "Teh (Besar)"
        assert unit.stock is None

        info = resolve_price(unit, 4)
        assert info.base_price == 8000
        assert info.effective_price == 7000
        assert info.is_wholesale is True

    def test_product_with_variations_requires_a_choice(self):
        product = _product(price=1000, variations=[{"name": "A", "price": 1000, "stock": 1}])
        with pytest.raises(PricingError):
            unit_for(product)
        with pytest.raises(PricingError):
            unit_for(product, 5)

    def test_plain_product_unit(self):
        unit = unit_for(_product(price=2500, stock=4))
        assert isinstance(unit, ProductUnit)
        assert unit.variation_index is None
        assert unit.stock == 4


class TestMoney:

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(9749.5) == 9750
        assert round_half_up(0.49) == 0

    def test_round_up_to_unit(self):
        assert round_up_to_unit(107250, 1000) == 108000
        assert round_up_to_unit(108000, 1000) == 108000
