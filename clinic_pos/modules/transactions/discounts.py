"""
Member discount eligibility and calculation.

Every place that can change a line's discount (adding a line, editing its
quantity, switching customer, restoring a draft, refreshing the customer on
focus) goes through :func:`apply_member_discount`, so identical inputs always
give identical lines.

Eligibility is decided by the first failing rule, in this order:

1. no customer, or the customer's discount percentage is not positive
2. the line is a service
3. the line is a partial (volume) sale
4. the line is not a product or a fixed blend
5. product lines need ``discountable_for_members`` on the product record;
   fixed blends get a permissive flag set
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Iterable

from .items import (
    TransactionItem,
    SALE_VOLUME,
    PRODUCT,
    FIXED_BLEND,
)
from .records import DiscountFlags, ProductRecord
from ...utils.helpers import round2

_log = logging.getLogger(__name__)

ProductLookup = Callable[[int], "ProductRecord | None"]

DISCOUNTABLE_TYPES = (PRODUCT, FIXED_BLEND)

# ---- Ineligibility reasons ----
NO_MEMBER_DISCOUNT = "no_member_discount"
SERVICE_ITEM = "service_item"
PARTIAL_SALE = "partial_sale"
EXCLUDED_ITEM_TYPE = "excluded_item_type"
PRODUCT_NOT_DISCOUNTABLE = "product_not_discountable"
PRODUCT_NOT_FOUND = "product_not_found"


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str | None = None


@dataclass(frozen=True)
class DiscountResult:
    discount_amount: float
    final_price: float
    discount_percentage: float


def resolve_flags(item: TransactionItem, lookup: ProductLookup | None) -> DiscountFlags | None:
    """
    Discount flags governing ``item``, or None when the product record is missing.

    A lookup that raises LookupError counts as a missing record.
    """
    if item.item_type == FIXED_BLEND:
        return DiscountFlags.permissive()
    if item.item_type != PRODUCT or lookup is None:
        return None
    try:
        product = lookup(item.product_id)  # type: ignore[attr-defined]
    except LookupError:
        product = None
    return product.discount_flags if product is not None else None


def check_eligibility(
    item: TransactionItem,
    discount_percentage: float | None,
    flags: DiscountFlags | None,
) -> Eligibility:
    pct = float(discount_percentage or 0.0)
    if pct <= 0:
        return Eligibility(False, NO_MEMBER_DISCOUNT)
    if item.is_service:
        return Eligibility(False, SERVICE_ITEM)
    if item.sale_type == SALE_VOLUME:
        return Eligibility(False, PARTIAL_SALE)
    if item.item_type not in DISCOUNTABLE_TYPES:
        return Eligibility(False, EXCLUDED_ITEM_TYPE)
    if item.item_type == FIXED_BLEND and flags is None:
        flags = DiscountFlags.permissive()
    if flags is None:
        return Eligibility(False, PRODUCT_NOT_FOUND)
    if not flags.discountable_for_members:
        return Eligibility(False, PRODUCT_NOT_DISCOUNTABLE)
    return Eligibility(True)


def calculate_discount(unit_price: float, quantity: float, discount_percentage: float) -> DiscountResult:
    gross = float(unit_price) * float(quantity)
    pct = float(discount_percentage)
    amount = round2(gross * (pct / 100.0))
    return DiscountResult(
        discount_amount=amount,
        final_price=round2(gross - amount),
        discount_percentage=pct,
    )


def apply_member_discount(
    item: TransactionItem,
    discount_percentage: float | None,
    lookup: ProductLookup | None = None,
) -> TransactionItem:
    """
    Return ``item`` repriced for the given member rate.

    Ineligible lines always come back with a zero discount and
    ``total_price = unit_price × quantity`` so no stale discount survives a
    customer or quantity change.
    """
    flags = resolve_flags(item, lookup)
    decision = check_eligibility(item, discount_percentage, flags)
    if decision.eligible:
        res = calculate_discount(item.unit_price, item.quantity, discount_percentage or 0.0)
        return item.with_changes(
            discount_amount=res.discount_amount,
            total_price=res.final_price,
        )
    if item.discount_amount:
        _log.debug("Discount reset on %r: %s", item.name, decision.reason)
    return item.with_changes(
        discount_amount=0.0,
        total_price=round2(item.line_subtotal),
    )


def recalculate_items(
    items: Iterable[TransactionItem],
    discount_percentage: float | None,
    lookup: ProductLookup | None = None,
) -> list[TransactionItem]:
    return [apply_member_discount(it, discount_percentage, lookup) for it in items]


__all__ = [
    "Eligibility",
    "DiscountResult",
    "ProductLookup",
    "DISCOUNTABLE_TYPES",
    "NO_MEMBER_DISCOUNT",
    "SERVICE_ITEM",
    "PARTIAL_SALE",
    "EXCLUDED_ITEM_TYPE",
    "PRODUCT_NOT_DISCOUNTABLE",
    "PRODUCT_NOT_FOUND",
    "resolve_flags",
    "check_eligibility",
    "calculate_discount",
    "apply_member_discount",
    "recalculate_items",
]
