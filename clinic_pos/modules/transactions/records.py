"""
Read-only records supplied by the persistence collaborators.

The engine never mutates these; repositories build them from sqlite rows and
tests build them directly.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DiscountFlags:
    # A product with no stored flags is member-discountable.
    discountable_for_members: bool = True
    discountable_for_all: bool = True
    discountable_in_blends: bool = False

    @classmethod
    def permissive(cls) -> "DiscountFlags":
        return cls(True, True, True)


@dataclass(frozen=True)
class ProductRecord:
    product_id: int
    name: str
    selling_price: float
    current_stock: float = 0.0
    container_capacity: float | None = 1.0
    unit_id: int | None = None
    unit_name: str = "unit"
    discount_flags: DiscountFlags = field(default_factory=DiscountFlags)
    is_active: bool = True
    is_service: bool = False

    @property
    def capacity(self) -> float:
        """Container capacity with absent or zero treated as 1."""
        cap = self.container_capacity
        return float(cap) if cap else 1.0


@dataclass(frozen=True)
class MemberBenefits:
    membership_tier: str = "standard"
    discount_percentage: float = 0.0


@dataclass(frozen=True)
class CustomerRecord:
    customer_id: int
    name: str
    email: str | None = None
    phone: str | None = None
    member_benefits: MemberBenefits | None = None

    @property
    def discount_percentage(self) -> float:
        mb = self.member_benefits
        return float(mb.discount_percentage) if mb else 0.0


@dataclass(frozen=True)
class TemplateIngredient:
    product_id: int
    name: str
    quantity: float
    unit_name: str = "ml"


@dataclass(frozen=True)
class BlendTemplate:
    template_id: int
    name: str
    selling_price: float
    batch_size: float = 1.0
    unit_name: str = "ml"
    unit_id: int | None = None
    ingredients: tuple[TemplateIngredient, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class BundleComponent:
    product_id: int
    name: str
    quantity: float
    unit_price: float


@dataclass(frozen=True)
class BundleRecord:
    bundle_id: int
    name: str
    bundle_price: float
    components: tuple[BundleComponent, ...] = ()
    is_active: bool = True

    @property
    def individual_total_price(self) -> float:
        return sum(c.quantity * c.unit_price for c in self.components)


# ---- Results of backend checks ----

@dataclass(frozen=True)
class BundleAvailabilityLine:
    product_id: int
    name: str
    available: bool
    available_stock: float
    required_stock: float
    reason: str | None = None


@dataclass(frozen=True)
class BundleAvailability:
    all_available: bool
    results: tuple[BundleAvailabilityLine, ...] = ()


@dataclass(frozen=True)
class IngredientCheck:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors
