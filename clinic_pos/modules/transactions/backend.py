"""
What the transaction engine needs from the outside world.

Every call may fail; implementations raise BackendError (or let any other
exception through) and the submission controller reports it without losing
the in-progress transaction.
"""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from .items import BlendIngredient
from .records import (
    BlendTemplate,
    BundleAvailability,
    BundleRecord,
    CustomerRecord,
    IngredientCheck,
    ProductRecord,
)


class PosBackend(Protocol):
    # ---- Persistence ----
    def create_transaction(self, payload: dict[str, Any]) -> str: ...

    def update_transaction(self, transaction_id: str, payload: dict[str, Any]) -> str: ...

    def save_draft(self, draft_id: str, name: str, form_data: dict[str, Any]) -> str: ...

    def delete_draft(self, draft_id: str) -> None: ...

    # ---- Checks ----
    def check_bundle_availability(self, bundle_id: int, quantity: float) -> BundleAvailability: ...

    def validate_blend_ingredients(
        self, ingredients: Sequence[BlendIngredient], batch_multiplier: float = 1.0
    ) -> IngredientCheck: ...

    # ---- Catalogue reads ----
    def fetch_customer(self, customer_id: int) -> CustomerRecord | None: ...

    def get_product(self, product_id: int) -> ProductRecord | None: ...


class CatalogueBackend(PosBackend, Protocol):
    """The wider surface the desktop UI uses for pickers and lists."""

    def list_products(self) -> list[ProductRecord]: ...

    def list_customers(self) -> list[CustomerRecord]: ...

    def list_blend_templates(self) -> list[BlendTemplate]: ...

    def list_bundles(self) -> list[BundleRecord]: ...

    def list_transactions(self) -> list[dict[str, Any]]: ...

    def load_transaction(self, transaction_id: str) -> dict[str, Any] | None: ...

    def list_drafts(self) -> list[dict[str, Any]]: ...

    def load_draft(self, draft_id: str) -> dict[str, Any] | None: ...

    def cancel_transaction(self, transaction_id: str) -> None: ...
