"""
Custom blend pricing.

Blends are priced cost-plus: the ingredient cost basis is the sum of each
ingredient's quantity times its per-unit selling price. The selling price
is either suggested from a margin percentage or typed in by the operator, in
which case the equivalent margin is back-computed for display only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import ValidationFailed
from .items import BlendIngredient
from ...utils.helpers import round2

__all__ = [
    "PRICING_MARGIN",
    "PRICING_MANUAL",
    "MINIMUM_PRICE_FACTOR",
    "PricingSuggestion",
    "BlendQuote",
    "total_ingredient_cost",
    "suggest_price",
    "back_compute_margin",
    "quote_blend",
    "derive_margin",
    "validate_blend",
    "refreshed_unit_price",
]

PRICING_MARGIN = "margin"
PRICING_MANUAL = "manual"

# informational floor: cost + 10%
MINIMUM_PRICE_FACTOR = 1.10


@dataclass(frozen=True)
class PricingSuggestion:
    total_cost: float
    margin_percent: float
    markup: float
    suggested_price: float
    minimum_price: float


@dataclass(frozen=True)
class BlendQuote:
    pricing_mode: str
    total_cost: float
    final_price: float
    margin_percent: float | None
    minimum_price: float

    @property
    def below_minimum(self) -> bool:
        return self.final_price < self.minimum_price


# ---- Cost & price ----

def total_ingredient_cost(ingredients: Iterable[BlendIngredient]) -> float:
    return sum(float(i.quantity) * float(i.cost_per_unit) for i in ingredients)


def suggest_price(total_cost: float, margin_percent: float) -> PricingSuggestion:
    cost = float(total_cost)
    margin = float(margin_percent)
    markup = cost * (margin / 100.0)
    return PricingSuggestion(
        total_cost=cost,
        margin_percent=margin,
        markup=markup,
        suggested_price=round2(cost + markup),
        minimum_price=round2(cost * MINIMUM_PRICE_FACTOR),
    )


def back_compute_margin(final_price: float, total_cost: float) -> float | None:
    """Margin % equivalent to a manually entered price; None when cost is zero."""
    cost = float(total_cost)
    if cost <= 0:
        return None
    return (float(final_price) - cost) / cost * 100.0


def quote_blend(
    ingredients: Sequence[BlendIngredient],
    pricing_mode: str = PRICING_MARGIN,
    margin_percent: float = 0.0,
    manual_price: float | None = None,
) -> BlendQuote:
    cost = total_ingredient_cost(ingredients)
    minimum = round2(cost * MINIMUM_PRICE_FACTOR)
    if pricing_mode == PRICING_MARGIN:
        s = suggest_price(cost, margin_percent)
        return BlendQuote(PRICING_MARGIN, cost, s.suggested_price, s.margin_percent, minimum)
    if pricing_mode == PRICING_MANUAL:
        if manual_price is None or float(manual_price) < 0:
            raise ValidationFailed("Enter a valid selling price")
        price = round2(float(manual_price))
        return BlendQuote(PRICING_MANUAL, cost, price, back_compute_margin(price, cost), minimum)
    raise ValidationFailed(f"Unknown pricing mode: {pricing_mode}")


def derive_margin(
    old_unit_price: float,
    old_total_cost: float,
    stored_margin: float | None = None,
) -> float:
    """
    Margin to seed the editor with when reopening a saved blend.

    Derived from the old price/cost ratio so refreshed ingredient costs give an
    equivalent price; falls back to the stored margin when that ratio is
    unavailable.
    """
    cost = float(old_total_cost or 0)
    price = float(old_unit_price or 0)
    if cost > 0 and price > 0:
        return float(round(((price / cost) - 1.0) * 100.0))
    return float(stored_margin or 0.0)


def refreshed_unit_price(old_unit_price: float, old_cost: float, new_cost: float) -> float:
    """Reprice a blend on new ingredient costs keeping its price/cost ratio."""
    if float(old_cost) <= 0:
        return float(old_unit_price)
    return round2(float(new_cost) * (float(old_unit_price) / float(old_cost)))


# ---- Validation ----

def validate_blend(
    name: str | None,
    ingredients: Sequence[BlendIngredient],
    container_type: str | None,
) -> None:
    """Raise ValidationFailed listing every problem at once."""
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Blend name is required")
    if not ingredients:
        errors.append("At least one ingredient is required")
    if not (container_type or "").strip():
        errors.append("Container type is required")
    for ing in ingredients:
        if float(ing.quantity) <= 0:
            errors.append(f"{ing.name}: Quantity must be greater than 0")
    if errors:
        raise ValidationFailed(errors)
