"""
Builders turning catalogue records into priced transaction lines.

Lines come out with ``total_price = unit_price × quantity`` and no discount;
the session applies the member discount afterwards.
"""
from __future__ import annotations

from typing import Sequence

from .blend_pricing import quote_blend, validate_blend, PRICING_MARGIN
from .conversion import compute_quantity, effective_capacity, validate_quantity, volume_unit_price
from .errors import ValidationFailed
from .items import (
    SALE_QUANTITY,
    SALE_VOLUME,
    BlendIngredient,
    BundleData,
    BundleItem,
    BundleProductLine,
    ConsultationItem,
    CustomBlendData,
    CustomBlendItem,
    FixedBlendItem,
    MiscellaneousItem,
    MISC_CATEGORIES,
    ProductItem,
)
from .records import BlendTemplate, BundleRecord, ProductRecord
from ...utils.helpers import round2, now_iso, fmt_money


def build_product_item(product: ProductRecord, quantity: float, sale_type: str = SALE_QUANTITY) -> ProductItem:
    """
    Whole-container lines carry the container price as unit price; partial
    lines carry the per-base-unit price so the line stays unit × quantity.
    """
    res = compute_quantity(quantity, product.selling_price, product.container_capacity, sale_type)
    if sale_type == SALE_VOLUME:
        unit_price = volume_unit_price(product.selling_price, product.container_capacity)
    else:
        unit_price = float(product.selling_price)
    return ProductItem(
        product_id=product.product_id,
        name=product.name,
        quantity=res.total_quantity,
        unit_price=unit_price,
        total_price=res.total_price,
        sale_type=sale_type,
        unit_of_measurement_id=product.unit_id,
        base_unit=product.unit_name,
        converted_quantity=res.converted_quantity,
        is_service=product.is_service,
    )


def reprice_product_item(item: ProductItem, quantity: float, capacity: float | None) -> ProductItem:
    """New quantity for an existing product line, keeping its unit price."""
    q = validate_quantity(quantity)
    converted = q if item.sale_type == SALE_VOLUME else q * effective_capacity(capacity)
    return item.with_changes(
        quantity=q,
        converted_quantity=converted,
        total_price=round2(item.unit_price * q),
    )


def build_fixed_blend_item(template: BlendTemplate, quantity: float = 1) -> FixedBlendItem:
    q = validate_quantity(quantity)
    return FixedBlendItem(
        blend_template_id=template.template_id,
        name=template.name,
        quantity=q,
        unit_price=float(template.selling_price),
        total_price=round2(float(template.selling_price) * q),
        unit_of_measurement_id=template.unit_id,
        base_unit=template.unit_name,
        converted_quantity=q,
    )


def build_custom_blend_item(
    name: str,
    ingredients: Sequence[BlendIngredient],
    container_type: str,
    *,
    pricing_mode: str = PRICING_MARGIN,
    margin_percent: float = 0.0,
    manual_price: float | None = None,
    quantity: float = 1,
    preparation_notes: str = "",
    mixed_by: str | None = None,
    item_id: str | None = None,
) -> CustomBlendItem:
    """
    Validate and price an ad-hoc blend. ``item_id`` keeps the line identity
    when an existing blend is being edited.
    """
    validate_blend(name, ingredients, container_type)
    q = validate_quantity(quantity)
    quote = quote_blend(ingredients, pricing_mode, margin_percent, manual_price)
    margin = quote.margin_percent if quote.margin_percent is not None else float(margin_percent)
    data = CustomBlendData(
        name=name.strip(),
        ingredients=list(ingredients),
        total_ingredient_cost=quote.total_cost,
        margin_percent=margin,
        container_type=container_type,
        preparation_notes=preparation_notes,
        mixed_by=mixed_by,
        created_at=now_iso(),
    )
    first = ingredients[0]
    kw = dict(
        name=data.name,
        quantity=q,
        unit_price=quote.final_price,
        total_price=round2(quote.final_price * q),
        base_unit=first.unit_name,
        converted_quantity=q,
        custom_blend=data,
    )
    if item_id:
        kw["id"] = item_id
    return CustomBlendItem(**kw)


def build_bundle_item(bundle: BundleRecord, quantity: float = 1, price_override: float | None = None) -> BundleItem:
    q = validate_quantity(quantity)
    price = float(bundle.bundle_price if price_override is None else price_override)
    individual = round2(bundle.individual_total_price)
    savings = round2(individual - price)
    savings_pct = round2(savings / individual * 100.0) if individual > 0 else 0.0
    data = BundleData(
        bundle_products=[
            BundleProductLine(c.product_id, c.name, c.quantity, c.unit_price)
            for c in bundle.components
        ],
        individual_total_price=individual,
        savings=savings,
        savings_percentage=savings_pct,
    )
    return BundleItem(
        bundle_id=bundle.bundle_id,
        name=bundle.name,
        quantity=q,
        unit_price=price,
        total_price=round2(price * q),
        base_unit="bundle",
        converted_quantity=q,
        bundle=data,
    )


def build_consultation_item(name: str, fee: float) -> ConsultationItem:
    if not (name or "").strip():
        raise ValidationFailed("Consultation name is required")
    fee = float(fee)
    if fee < 0:
        raise ValidationFailed("Consultation fee cannot be negative")
    return ConsultationItem(
        name=name.strip(),
        quantity=1,
        unit_price=fee,
        total_price=round2(fee),
        base_unit="service",
        converted_quantity=1,
    )


def build_miscellaneous_item(
    name: str,
    category: str,
    amount: float,
    quantity: float = 1,
    is_taxable: bool = True,
    max_amount: float | None = None,
) -> MiscellaneousItem:
    """
    Credits are entered as a positive amount and stored as a negative unit
    price, never taxable, so they net out of the subtotal.
    """
    errors = []
    if not (name or "").strip():
        errors.append("Description is required")
    if category not in MISC_CATEGORIES:
        errors.append("Select a category")
    try:
        amt = float(amount)
    except (TypeError, ValueError):
        amt = -1.0
    if amt <= 0:
        errors.append("Amount must be greater than 0")
    elif max_amount is not None and amt > max_amount:
        errors.append(f"Amount exceeds your limit of {fmt_money(max_amount)}")
    try:
        q = validate_quantity(quantity)
    except ValidationFailed as e:
        errors.extend(e.errors)
        q = 0.0
    if errors:
        raise ValidationFailed(errors)

    label = name.strip()
    if category == "credit":
        amt = -amt
        is_taxable = False
        label = f"Credit: {label}"
    return MiscellaneousItem(
        name=label,
        quantity=q,
        unit_price=amt,
        total_price=round2(amt * q),
        base_unit="unit",
        converted_quantity=q,
        category=category,
        is_taxable=is_taxable,
        is_service=category == "service",
    )


__all__ = [
    "build_product_item",
    "reprice_product_item",
    "build_fixed_blend_item",
    "build_custom_blend_item",
    "build_bundle_item",
    "build_consultation_item",
    "build_miscellaneous_item",
]
