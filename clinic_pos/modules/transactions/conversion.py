"""
Unit & quantity conversion.

Two independent concerns live here:

* Sale-mode pricing. A line is sold either by whole containers (``quantity``
  mode) or as a partial measure drawn from a container (``volume`` mode). Both
  produce the same triple: total quantity, total price and the quantity in the
  product's smallest tracked unit (what stock deduction uses).
* Display-only unit conversion between ml, drops, mg and friends. These ratios
  feed the operator's "smart tip" and never touch price or stock.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationFailed
from .items import SALE_QUANTITY, SALE_VOLUME, SALE_TYPES
from ...utils.helpers import round2, fmt_qty

__all__ = [
    "QuantityResult",
    "effective_capacity",
    "validate_quantity",
    "compute_quantity",
    "volume_unit_price",
    "convert_units",
    "smart_tip",
    "DROPS_PER_ML",
    "MG_PER_ML",
]

DROPS_PER_ML = 20.0
MG_PER_ML = 1000.0

# (from, to) -> factor; a value in `from` times factor is the value in `to`
_FACTORS: dict[tuple[str, str], float] = {
    ("ml", "drops"): DROPS_PER_ML,
    ("mg", "drops"): DROPS_PER_ML / MG_PER_ML,
    ("l", "ml"): 1000.0,
    ("g", "mg"): 1000.0,
    ("kg", "g"): 1000.0,
}

_ALIASES = {
    "drop": "drops",
    "millilitre": "ml",
    "milliliter": "ml",
    "litre": "l",
    "liter": "l",
    "gram": "g",
    "grams": "g",
    "milligram": "mg",
    "milligrams": "mg",
    "kilogram": "kg",
}

# Hubs for two-step conversions (e.g. l -> ml -> drops)
_HUBS = ("ml", "g")


@dataclass(frozen=True)
class QuantityResult:
    total_quantity: float
    total_price: float
    converted_quantity: float


# ---- Sale-mode pricing ----

def effective_capacity(container_capacity: float | None) -> float:
    """Absent, zero or negative capacity counts as a single-unit container."""
    try:
        cap = float(container_capacity) if container_capacity is not None else 1.0
    except (TypeError, ValueError):
        return 1.0
    return cap if cap > 0 else 1.0


def validate_quantity(quantity) -> float:
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        raise ValidationFailed("Quantity must be a number") from None
    if q <= 0:
        raise ValidationFailed("Quantity must be greater than 0")
    return q


def compute_quantity(
    quantity: float,
    unit_price: float,
    container_capacity: float | None = 1.0,
    sale_type: str = SALE_QUANTITY,
) -> QuantityResult:
    """
    Price a requested quantity of a product in the given sale mode.

    ``unit_price`` is the price of one whole container. In quantity mode the
    total is ``quantity × unit_price`` and the substance consumed is
    ``quantity × capacity``. In volume mode ``quantity`` is already in base
    units, so it is priced as the fraction of a container it represents.
    """
    if sale_type not in SALE_TYPES:
        raise ValidationFailed(f"Unknown sale type: {sale_type}")
    q = validate_quantity(quantity)
    cap = effective_capacity(container_capacity)
    price = float(unit_price)

    if sale_type == SALE_VOLUME:
        proportion = q / cap
        return QuantityResult(
            total_quantity=q,
            total_price=round2(proportion * price),
            converted_quantity=q,
        )
    return QuantityResult(
        total_quantity=q,
        total_price=round2(q * price),
        converted_quantity=q * cap,
    )


def volume_unit_price(selling_price: float, container_capacity: float | None) -> float:
    """Per-base-unit price stored on a volume line (unrounded)."""
    return float(selling_price) / effective_capacity(container_capacity)


# ---- Display-only unit conversion ----

def _norm(unit: str | None) -> str:
    u = (unit or "").strip().lower()
    return _ALIASES.get(u, u)


def _factor(src: str, dst: str) -> float | None:
    if src == dst:
        return 1.0
    direct = _FACTORS.get((src, dst))
    if direct is not None:
        return direct
    reverse = _FACTORS.get((dst, src))
    if reverse is not None:
        return 1.0 / reverse
    return None


def convert_units(value: float, from_unit: str, to_unit: str) -> float | None:
    """
    Convert a displayed amount between units, or None when no route exists.

    Tries a direct ratio, then its inverse, then a two-step route through ml or g.
    """
    src, dst = _norm(from_unit), _norm(to_unit)
    f = _factor(src, dst)
    if f is None:
        for hub in _HUBS:
            a, b = _factor(src, hub), _factor(hub, dst)
            if a is not None and b is not None:
                f = a * b
                break
    if f is None:
        return None
    return float(value) * f


def smart_tip(quantity: float, unit: str, sale_type: str = SALE_VOLUME) -> str | None:
    """
    Operator hint shown next to the quantity field, e.g. "2 ml ≈ 40 drops".

    Only meaningful for partial sales in ml, drops or mg; returns None otherwise.
    """
    if sale_type != SALE_VOLUME:
        return None
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        return None
    if q <= 0:
        return None
    u = _norm(unit)
    if u == "ml":
        return f"{fmt_qty(q)} ml ≈ {convert_units(q, 'ml', 'drops'):.1f} drops"
    if u == "drops":
        return f"{fmt_qty(q)} drops ≈ {convert_units(q, 'drops', 'ml'):.2f} ml"
    if u == "mg":
        return f"{fmt_qty(q)} mg ≈ {convert_units(q, 'mg', 'drops'):.1f} drops"
    return None
