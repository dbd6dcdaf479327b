"""
Transaction line items.

A line is one of six variants keyed by ``item_type``. Every variant shares the
pricing attributes on :class:`TransactionItem`; only the variant-specific
payload differs. Items are plain dataclasses; recomputation produces new
instances via ``dataclasses.replace`` so a session never sees a half-updated
line.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, ClassVar
import uuid

from ...utils.helpers import now_iso

SALE_QUANTITY = "quantity"
SALE_VOLUME = "volume"
SALE_TYPES = (SALE_QUANTITY, SALE_VOLUME)

PRODUCT = "product"
FIXED_BLEND = "fixed_blend"
CUSTOM_BLEND = "custom_blend"
BUNDLE = "bundle"
CONSULTATION = "consultation"
MISCELLANEOUS = "miscellaneous"

MISC_CATEGORIES = ("supply", "service", "fee", "credit", "other")


def new_item_id() -> str:
    return uuid.uuid4().hex


# ---- Payloads ----

@dataclass
class BlendIngredient:
    product_id: int
    name: str
    quantity: float
    cost_per_unit: float
    unit_name: str = "ml"
    available_stock: float = 0.0

    @property
    def line_cost(self) -> float:
        return float(self.quantity) * float(self.cost_per_unit)

    @classmethod
    def from_dict(cls, d: dict) -> "BlendIngredient":
        return cls(**{k: d[k] for k in _field_names(cls) if k in d})


@dataclass
class CustomBlendData:
    name: str
    ingredients: list[BlendIngredient]
    total_ingredient_cost: float
    margin_percent: float
    container_type: str
    preparation_notes: str = ""
    mixed_by: str | None = None
    created_at: str = field(default_factory=now_iso)

    @classmethod
    def from_dict(cls, d: dict) -> "CustomBlendData":
        kw = {k: d[k] for k in _field_names(cls) if k in d}
        kw["ingredients"] = [
            i if isinstance(i, BlendIngredient) else BlendIngredient.from_dict(i)
            for i in d.get("ingredients") or []
        ]
        return cls(**kw)


@dataclass
class BundleProductLine:
    product_id: int
    name: str
    quantity: float
    unit_price: float

    @classmethod
    def from_dict(cls, d: dict) -> "BundleProductLine":
        return cls(**{k: d[k] for k in _field_names(cls) if k in d})


@dataclass
class BundleData:
    bundle_products: list[BundleProductLine]
    individual_total_price: float
    savings: float
    savings_percentage: float

    @classmethod
    def from_dict(cls, d: dict) -> "BundleData":
        kw = {k: d[k] for k in _field_names(cls) if k in d}
        kw["bundle_products"] = [
            p if isinstance(p, BundleProductLine) else BundleProductLine.from_dict(p)
            for p in d.get("bundle_products") or []
        ]
        return cls(**kw)


# ---- Line items ----

@dataclass(kw_only=True)
class TransactionItem:
    item_type: ClassVar[str] = ""

    name: str
    quantity: float
    unit_price: float
    total_price: float = 0.0
    discount_amount: float = 0.0
    sale_type: str = SALE_QUANTITY
    unit_of_measurement_id: int | None = None
    base_unit: str = "unit"
    converted_quantity: float = 0.0
    is_service: bool = False
    id: str = field(default_factory=new_item_id)

    def __post_init__(self):
        if self.sale_type not in SALE_TYPES:
            raise ValueError(f"Unknown sale type {self.sale_type!r}")
        self._check_payload()

    def _check_payload(self) -> None:
        pass

    @property
    def line_subtotal(self) -> float:
        """Gross line value before any discount."""
        return float(self.unit_price) * float(self.quantity)

    def with_changes(self, **changes) -> "TransactionItem":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["item_type"] = self.item_type
        return d


@dataclass(kw_only=True)
class ProductItem(TransactionItem):
    item_type: ClassVar[str] = PRODUCT
    product_id: int


@dataclass(kw_only=True)
class FixedBlendItem(TransactionItem):
    item_type: ClassVar[str] = FIXED_BLEND
    blend_template_id: int


@dataclass(kw_only=True)
class CustomBlendItem(TransactionItem):
    item_type: ClassVar[str] = CUSTOM_BLEND
    custom_blend: CustomBlendData | None = None

    def _check_payload(self) -> None:
        if self.custom_blend is None:
            raise ValueError("custom_blend item requires custom blend data")


@dataclass(kw_only=True)
class BundleItem(TransactionItem):
    item_type: ClassVar[str] = BUNDLE
    bundle_id: int
    bundle: BundleData | None = None

    def _check_payload(self) -> None:
        if self.bundle is None:
            raise ValueError("bundle item requires bundle data")


@dataclass(kw_only=True)
class ConsultationItem(TransactionItem):
    item_type: ClassVar[str] = CONSULTATION
    is_service: bool = True


@dataclass(kw_only=True)
class MiscellaneousItem(TransactionItem):
    item_type: ClassVar[str] = MISCELLANEOUS
    category: str = "other"
    is_taxable: bool = True

    def _check_payload(self) -> None:
        if self.category not in MISC_CATEGORIES:
            raise ValueError(f"Unknown miscellaneous category {self.category!r}")


ITEM_TYPES: dict[str, type[TransactionItem]] = {
    cls.item_type: cls
    for cls in (
        ProductItem,
        FixedBlendItem,
        CustomBlendItem,
        BundleItem,
        ConsultationItem,
        MiscellaneousItem,
    )
}


def _field_names(cls) -> list[str]:
    return [f.name for f in fields(cls)]


def item_from_dict(data: dict) -> TransactionItem:
    """
    Rebuild a line from its stored mapping (drafts, saved transactions).

    Raises ValueError for an unknown ``item_type`` or a variant whose payload is
    missing.
    """
    kind = data.get("item_type")
    cls = ITEM_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown item type {kind!r}")
    kw = {k: data[k] for k in _field_names(cls) if k in data}
    if cls is CustomBlendItem and isinstance(kw.get("custom_blend"), dict):
        kw["custom_blend"] = CustomBlendData.from_dict(kw["custom_blend"])
    if cls is BundleItem and isinstance(kw.get("bundle"), dict):
        kw["bundle"] = BundleData.from_dict(kw["bundle"])
    return cls(**kw)


__all__ = [
    "SALE_QUANTITY", "SALE_VOLUME", "SALE_TYPES",
    "PRODUCT", "FIXED_BLEND", "CUSTOM_BLEND", "BUNDLE", "CONSULTATION", "MISCELLANEOUS",
    "MISC_CATEGORIES",
    "BlendIngredient", "CustomBlendData", "BundleProductLine", "BundleData",
    "TransactionItem", "ProductItem", "FixedBlendItem", "CustomBlendItem",
    "BundleItem", "ConsultationItem", "MiscellaneousItem",
    "ITEM_TYPES", "item_from_dict", "new_item_id",
]
