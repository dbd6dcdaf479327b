# tests/test_blend_pricing.py

import pytest

from clinic_pos.modules.transactions.blend_pricing import (
    PRICING_MANUAL,
    PRICING_MARGIN,
    back_compute_margin,
    derive_margin,
    quote_blend,
    refreshed_unit_price,
    suggest_price,
    total_ingredient_cost,
    validate_blend,
)
from clinic_pos.modules.transactions.errors import ValidationFailed
from clinic_pos.modules.transactions.items import BlendIngredient


@pytest.fixture()
def ingredients():
    """Cost basis 15.00: 5 × 2.00 + 10 × 0.50."""
    return [
        BlendIngredient(1, "Lavender", 5, 2.0),
        BlendIngredient(2, "Rosehip", 10, 0.5),
    ]


def test_cost_is_quantity_times_unit_cost(ingredients):
    assert total_ingredient_cost(ingredients) == 15.0
    assert ingredients[1].line_cost == 5.0


def test_suggested_price_and_minimum():
    s = suggest_price(15.0, 100)
    assert s.markup == 15.0
    assert s.suggested_price == 30.0
    assert s.minimum_price == 16.5


def test_margin_quote(ingredients):
    q = quote_blend(ingredients, PRICING_MARGIN, margin_percent=60)
    assert q.final_price == 24.0
    assert q.margin_percent == 60
    assert not q.below_minimum


def test_manual_quote_back_computes_margin(ingredients):
    q = quote_blend(ingredients, PRICING_MANUAL, manual_price=12)
    assert q.final_price == 12.0
    assert q.margin_percent == pytest.approx(-20.0)
    assert q.below_minimum


@pytest.mark.parametrize("price", [None, -1])
def test_manual_quote_needs_a_price(ingredients, price):
    with pytest.raises(ValidationFailed):
        quote_blend(ingredients, PRICING_MANUAL, manual_price=price)


def test_unknown_pricing_mode(ingredients):
    with pytest.raises(ValidationFailed):
        quote_blend(ingredients, "auction")


def test_margin_undefined_for_zero_cost():
    assert back_compute_margin(10, 0) is None
    assert quote_blend([BlendIngredient(1, "Free sample", 1, 0.0)], PRICING_MANUAL, manual_price=5).margin_percent is None


def test_derive_margin_from_old_price_ratio():
    assert derive_margin(30, 15) == 100.0
    assert derive_margin(20, 15) == 33.0
    # no usable ratio: fall back to what was stored
    assert derive_margin(30, 0, stored_margin=40) == 40.0
    assert derive_margin(0, 0) == 0.0


def test_refreshed_unit_price_keeps_ratio():
    assert refreshed_unit_price(30, 15, 20) == 40.0
    assert refreshed_unit_price(30, 0, 20) == 30.0


def test_validate_blend_lists_every_problem():
    with pytest.raises(ValidationFailed) as exc:
        validate_blend(" ", [], "")
    assert exc.value.errors == [
        "Blend name is required",
        "At least one ingredient is required",
        "Container type is required",
    ]


def test_validate_blend_rejects_non_positive_ingredient(ingredients):
    bad = ingredients + [BlendIngredient(3, "Chamomile", 0, 1.0)]
    with pytest.raises(ValidationFailed) as exc:
        validate_blend("Sleep", bad, "Dropper 30ml")
    assert exc.value.errors == ["Chamomile: Quantity must be greater than 0"]
