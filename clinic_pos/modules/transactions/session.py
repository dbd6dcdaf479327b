"""
The in-progress transaction and every edit an operator can make to it.

One TransactionSession is owned by one open transaction dialog. All edits go
through here so that line discounts are always re-applied through
``discounts.apply_member_discount`` and totals are always derived on demand.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Any

from .blend_pricing import refreshed_unit_price, total_ingredient_cost
from .conversion import validate_quantity, volume_unit_price
from .discounts import ProductLookup, apply_member_discount, recalculate_items
from .errors import ValidationFailed
from .items import (
    CUSTOM_BLEND,
    PRODUCT,
    SALE_VOLUME,
    TransactionItem,
    item_from_dict,
)
from .records import CustomerRecord
from .totals import (
    MODE_AMOUNT,
    MODE_PERCENTAGE,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_PENDING,
    AdditionalDiscount,
    Totals,
    compute_totals,
)
from ...constants import CURRENCY
from ...utils.helpers import round2, today_str

_log = logging.getLogger(__name__)

PRICE_TOLERANCE = 0.001
UNKNOWN_ITEM = "Unknown Item"

STATUS_DRAFT = "draft"
STATUS_COMPLETED = "completed"


@dataclass
class TransactionFormData:
    customer_id: int | None = None
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    items: list[TransactionItem] = field(default_factory=list)
    discount_mode: str = MODE_AMOUNT
    discount_text: str = ""
    paid_amount: float = 0.0
    payment_method: str = "cash"
    payment_status: str = STATUS_PENDING
    status: str = STATUS_PENDING
    notes: str = ""
    transaction_date: str = field(default_factory=today_str)
    currency: str = CURRENCY

    @property
    def additional_discount(self) -> AdditionalDiscount:
        return AdditionalDiscount(self.discount_mode, self.discount_text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "items": [it.to_dict() for it in self.items],
            "discount_mode": self.discount_mode,
            "discount_text": self.discount_text,
            "paid_amount": self.paid_amount,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "transaction_date": self.transaction_date,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "TransactionFormData":
        data = cls()
        for key in (
            "customer_id", "customer_name", "customer_email", "customer_phone",
            "discount_mode", "discount_text", "payment_method", "payment_status",
            "status", "notes", "transaction_date", "currency",
        ):
            if d.get(key) is not None:
                setattr(data, key, d[key])
        data.paid_amount = float(d.get("paid_amount") or 0.0)
        data.items = [item_from_dict(i) for i in d.get("items") or []]
        # saved transactions store the computed amount rather than the typed text
        if not data.discount_text and d.get("discount_amount"):
            data.discount_mode = MODE_AMOUNT
            data.discount_text = str(d["discount_amount"])
        return data


@dataclass(frozen=True)
class PriceMismatch:
    item_id: str
    name: str
    line_price: float
    current_price: float


class TransactionSession:
    def __init__(
        self,
        product_lookup: ProductLookup | None = None,
        form: TransactionFormData | None = None,
        customer: CustomerRecord | None = None,
        transaction_id: str | None = None,
    ):
        self._lookup = product_lookup
        self.form = form or TransactionFormData()
        self.customer: CustomerRecord | None = None
        self._applied_rate = 0.0
        self.transaction_id = transaction_id
        if customer is not None:
            self._bind_customer(customer)
        self._reapply_discounts()

    # ---- Construction ----

    @classmethod
    def restore(
        cls,
        data: dict,
        product_lookup: ProductLookup | None = None,
        customer: CustomerRecord | None = None,
        transaction_id: str | None = None,
    ) -> "TransactionSession":
        """
        Hydrate from a stored draft or transaction. Discounts are recomputed
        against the customer as known now, not trusted from storage.
        """
        form = TransactionFormData.from_dict(data)
        return cls(product_lookup, form, customer, transaction_id)

    # ---- Read side ----

    @property
    def items(self) -> tuple[TransactionItem, ...]:
        return tuple(self.form.items)

    @property
    def discount_percentage(self) -> float:
        return self._applied_rate

    @property
    def is_edit(self) -> bool:
        return self.transaction_id is not None

    def get_item(self, item_id: str) -> TransactionItem:
        for it in self.form.items:
            if it.id == item_id:
                return it
        raise KeyError(item_id)

    def _index(self, item_id: str) -> int:
        for i, it in enumerate(self.form.items):
            if it.id == item_id:
                return i
        raise KeyError(item_id)

    def totals(self) -> Totals:
        return compute_totals(
            self.form.items,
            self.form.additional_discount,
            self.form.paid_amount,
            self.form.payment_status,
        )

    def snapshot(self) -> str:
        """Stable text form of the editable state, for change detection."""
        return json.dumps(self.form.to_dict(), sort_keys=True, default=str)

    # ---- Discount routing ----

    def _priced(self, item: TransactionItem) -> TransactionItem:
        return apply_member_discount(item, self._applied_rate, self._lookup)

    def _reapply_discounts(self) -> None:
        self.form.items = recalculate_items(self.form.items, self._applied_rate, self._lookup)

    def _bind_customer(self, customer: CustomerRecord | None) -> None:
        self.customer = customer
        self._applied_rate = customer.discount_percentage if customer else 0.0
        if customer is None:
            self.form.customer_id = None
            return
        self.form.customer_id = customer.customer_id
        self.form.customer_name = customer.name
        self.form.customer_email = customer.email or ""
        self.form.customer_phone = customer.phone or ""

    # ---- Items ----

    def add_item(self, item: TransactionItem) -> TransactionItem:
        priced = self._priced(item)
        self.form.items.append(priced)
        return priced

    def replace_item(self, item_id: str, item: TransactionItem) -> TransactionItem:
        idx = self._index(item_id)
        priced = self._priced(item.with_changes(id=item_id))
        self.form.items[idx] = priced
        return priced

    def remove_item(self, item_id: str) -> None:
        del self.form.items[self._index(item_id)]

    def update_quantity(self, item_id: str, quantity) -> TransactionItem:
        """
        Change a line's quantity. Whole-container product lines keep their
        container size (read back from the line itself) so the stock figure
        stays in base units.
        """
        idx = self._index(item_id)
        item = self.form.items[idx]
        q = validate_quantity(quantity)
        if item.item_type == PRODUCT and item.sale_type != SALE_VOLUME and item.quantity:
            per_unit = float(item.converted_quantity) / float(item.quantity)
            converted = q * (per_unit or 1.0)
        else:
            converted = q
        updated = item.with_changes(
            quantity=q,
            converted_quantity=converted,
            total_price=round2(item.unit_price * q),
        )
        priced = self._priced(updated)
        self.form.items[idx] = priced
        return priced

    # ---- Customer ----

    def set_customer(self, customer: CustomerRecord | None) -> None:
        self._bind_customer(customer)
        if customer is None:
            self.form.customer_name = ""
            self.form.customer_email = ""
            self.form.customer_phone = ""
        self._reapply_discounts()

    def set_walk_in(self, name: str, email: str = "", phone: str = "") -> None:
        """A customer typed in by hand: no record, so no membership discount."""
        self._bind_customer(None)
        self.form.customer_name = name
        self.form.customer_email = email
        self.form.customer_phone = phone
        self._reapply_discounts()

    def refresh_customer(self, customer: CustomerRecord | None) -> bool:
        """
        Take a freshly fetched copy of the current customer. Lines are repriced
        only when the discount rate actually changed; returns True if they were.
        """
        if customer is None or self.customer is None:
            return False
        if customer.customer_id != self.customer.customer_id:
            return False
        changed = abs(customer.discount_percentage - self._applied_rate) > 1e-9
        self.customer = customer
        if changed:
            _log.info(
                "Member discount for %s changed %.2f%% -> %.2f%%",
                customer.name, self._applied_rate, customer.discount_percentage,
            )
            self._applied_rate = customer.discount_percentage
            self._reapply_discounts()
        return changed

    # ---- Additional discount & payment ----

    def set_discount_text(self, text: str) -> None:
        self.form.discount_text = text or ""

    def toggle_discount_mode(self) -> str:
        t = self.totals()
        toggled = self.form.additional_discount.toggled(t.discount_base)
        self.form.discount_mode = toggled.mode
        self.form.discount_text = toggled.text
        return toggled.mode

    def set_paid_amount(self, amount: float) -> None:
        amount = float(amount or 0.0)
        if amount < 0:
            raise ValidationFailed("Paid amount cannot be negative")
        self.form.paid_amount = amount

    def set_payment_method(self, method: str) -> None:
        self.form.payment_method = method

    def set_payment_status(self, status: str) -> None:
        self.form.payment_status = status

    def set_notes(self, notes: str) -> None:
        self.form.notes = notes or ""

    # ---- Price refresh ----

    def price_mismatch(self, item_id: str) -> PriceMismatch | None:
        """
        Compare a product line's unit price with the product's current selling
        price. Lines whose product cannot be found are not reported.
        """
        item = self.get_item(item_id)
        if item.item_type != PRODUCT or self._lookup is None:
            return None
        try:
            product = self._lookup(item.product_id)  # type: ignore[attr-defined]
        except LookupError:
            product = None
        if product is None:
            return None
        if item.sale_type == SALE_VOLUME:
            current = volume_unit_price(product.selling_price, product.container_capacity)
        else:
            current = float(product.selling_price)
        if abs(current - float(item.unit_price)) <= PRICE_TOLERANCE:
            return None
        return PriceMismatch(item.id, item.name, float(item.unit_price), current)

    def price_mismatches(self) -> list[PriceMismatch]:
        out = []
        for it in self.form.items:
            mm = self.price_mismatch(it.id)
            if mm is not None:
                out.append(mm)
        return out

    def refresh_item_price(self, item_id: str) -> TransactionItem:
        mm = self.price_mismatch(item_id)
        if mm is None:
            return self.get_item(item_id)
        item = self.get_item(item_id)
        updated = item.with_changes(
            unit_price=mm.current_price,
            total_price=round2(mm.current_price * item.quantity),
        )
        return self.replace_item(item_id, updated)

    def refresh_blend_costs(self, item_id: str) -> TransactionItem:
        """
        Re-cost a custom blend from current ingredient prices, keeping its
        price-to-cost ratio. Ingredients no longer in the catalogue keep their
        old cost.
        """
        item = self.get_item(item_id)
        if item.item_type != CUSTOM_BLEND or self._lookup is None:
            return item
        data = item.custom_blend  # type: ignore[attr-defined]
        new_ingredients = []
        for ing in data.ingredients:
            try:
                product = self._lookup(ing.product_id)
            except LookupError:
                product = None
            if product is None:
                new_ingredients.append(ing)
                continue
            new_ingredients.append(type(ing)(
                product_id=ing.product_id,
                name=ing.name,
                quantity=ing.quantity,
                cost_per_unit=float(product.selling_price),
                unit_name=ing.unit_name,
                available_stock=float(product.current_stock),
            ))
        new_cost = total_ingredient_cost(new_ingredients)
        new_unit = refreshed_unit_price(item.unit_price, data.total_ingredient_cost, new_cost)
        new_data = type(data)(
            name=data.name,
            ingredients=new_ingredients,
            total_ingredient_cost=new_cost,
            margin_percent=data.margin_percent,
            container_type=data.container_type,
            preparation_notes=data.preparation_notes,
            mixed_by=data.mixed_by,
            created_at=data.created_at,
        )
        updated = item.with_changes(
            unit_price=new_unit,
            total_price=round2(new_unit * item.quantity),
            custom_blend=new_data,
        )
        return self.replace_item(item_id, updated)

    # ---- Submission ----

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not (self.form.customer_name or "").strip():
            errors.append("Customer name is required")
        if not self.form.items:
            errors.append("At least one item is required")
        for n, it in enumerate(self.form.items, start=1):
            name = (it.name or "").strip()
            if not name or name == UNKNOWN_ITEM:
                errors.append(f"Item {n} has an invalid name")
            if float(it.quantity) <= 0:
                errors.append(f"{name or f'Item {n}'}: Quantity must be greater than 0")
        if self.form.paid_amount < 0:
            errors.append("Paid amount cannot be negative")
        return errors

    def build_payload(self) -> dict[str, Any]:
        """
        Final payload for create/update. Raises ValidationFailed listing every
        problem found.
        """
        errors = self.validation_errors()
        if errors:
            raise ValidationFailed(errors)
        t = self.totals()
        status = t.payment_status
        if status == STATUS_PENDING and 0 < t.paid_amount < t.total_amount:
            status = STATUS_PARTIAL
        payload = self.form.to_dict()
        payload.update(
            subtotal=t.subtotal,
            item_discount_total=t.item_discount_total,
            discount_amount=t.additional_discount_amount,
            total_amount=t.total_amount,
            change_amount=t.change_amount,
            payment_status=status,
            status=STATUS_COMPLETED if status == STATUS_PAID else STATUS_PENDING,
        )
        return payload

    def draft_data(self) -> dict[str, Any]:
        if not self.form.items:
            raise ValidationFailed("Add at least one item before saving a draft")
        data = self.form.to_dict()
        data["status"] = STATUS_DRAFT
        return data


__all__ = [
    "TransactionFormData",
    "TransactionSession",
    "PriceMismatch",
    "STATUS_DRAFT",
    "STATUS_COMPLETED",
    "MODE_AMOUNT",
    "MODE_PERCENTAGE",
]
