"""
Transaction totals.

Totals are never stored on the session; they are recomputed from the line
items and the discount/payment inputs every time they are asked for, so
they cannot go stale.

The additional (manual) discount may be typed as an amount or as a
percentage. A percentage applies to the subtotal net of line discounts, and
switching entry mode converts on that same base.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .items import TransactionItem
from ...utils.helpers import round2
from ...utils.validators import try_parse_float

__all__ = [
    "MODE_AMOUNT",
    "MODE_PERCENTAGE",
    "STATUS_PAID",
    "STATUS_PARTIAL",
    "STATUS_PENDING",
    "AdditionalDiscount",
    "Totals",
    "compute_totals",
    "derive_payment_status",
]

MODE_AMOUNT = "amount"
MODE_PERCENTAGE = "percentage"

STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"

_EPS = 1e-9


def _fmt_exact(v: float) -> str:
    # repr keeps every digit so a toggle back and forth is lossless
    if float(v).is_integer():
        return str(int(v))
    return repr(float(v))


@dataclass(frozen=True)
class AdditionalDiscount:
    """
    The manual discount as the operator typed it.

    ``text`` is kept verbatim (the field never reformats what is being typed);
    unparseable or negative text counts as zero.
    """
    mode: str = MODE_AMOUNT
    text: str = ""

    @property
    def value(self) -> float:
        ok, v = try_parse_float(self.text)
        if not ok or v is None or v < 0:
            return 0.0
        return v

    def amount_on(self, base: float) -> float:
        if self.mode == MODE_PERCENTAGE:
            return max(0.0, float(base) * self.value / 100.0)
        return max(0.0, self.value)

    def toggled(self, base: float) -> "AdditionalDiscount":
        """
        Switch entry mode, converting the current value on ``base``. With
        nothing to convert against (empty or all-credit cart) the typed text
        is carried over as is.
        """
        target = MODE_PERCENTAGE if self.mode == MODE_AMOUNT else MODE_AMOUNT
        if not self.text.strip() or base <= 0:
            return AdditionalDiscount(target, self.text.strip())
        if self.mode == MODE_AMOUNT:
            pct = self.value / base * 100.0
            return AdditionalDiscount(MODE_PERCENTAGE, _fmt_exact(pct))
        return AdditionalDiscount(MODE_AMOUNT, _fmt_exact(float(base) * self.value / 100.0))

    def with_text(self, text: str) -> "AdditionalDiscount":
        return AdditionalDiscount(self.mode, text)


@dataclass(frozen=True)
class Totals:
    subtotal: float
    item_discount_total: float
    discount_base: float
    additional_discount_amount: float
    total_amount: float
    paid_amount: float
    change_amount: float
    payment_status: str

    @property
    def balance_due(self) -> float:
        return max(0.0, round2(self.total_amount - self.paid_amount))


def derive_payment_status(total_amount: float, paid_amount: float, current: str) -> str:
    """
    ``paid`` once the amount paid covers a non-zero total. Otherwise the
    current status stands, except that a stale ``paid`` (say, reloaded from a
    transaction whose total has since grown) falls back to ``pending``.
    """
    if total_amount > 0 and paid_amount + _EPS >= total_amount:
        return STATUS_PAID
    if current == STATUS_PAID:
        return STATUS_PENDING
    return current


def compute_totals(
    items: Iterable[TransactionItem],
    additional: AdditionalDiscount | None = None,
    paid_amount: float = 0.0,
    payment_status: str = STATUS_PENDING,
) -> Totals:
    items = list(items)
    additional = additional or AdditionalDiscount()

    subtotal = round2(sum(it.line_subtotal for it in items))
    item_discounts = round2(sum(float(it.discount_amount) for it in items))
    base = round2(subtotal - item_discounts)
    extra = round2(additional.amount_on(base))
    total = round2(subtotal - item_discounts - extra)
    paid = float(paid_amount or 0.0)

    return Totals(
        subtotal=subtotal,
        item_discount_total=item_discounts,
        discount_base=base,
        additional_discount_amount=extra,
        total_amount=total,
        paid_amount=paid,
        change_amount=max(0.0, round2(paid - total)),
        payment_status=derive_payment_status(total, paid, payment_status),
    )
