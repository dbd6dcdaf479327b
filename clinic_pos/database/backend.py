"""
sqlite3 implementation of the transaction engine's backend.

Submission jobs call in from a QThreadPool worker while the UI thread keeps
reading the catalogue, so every call holds one re-entrant lock around the
shared connection. Repository and sqlite errors surface as BackendError.
"""
from __future__ import annotations

from functools import wraps
import logging
import sqlite3
import threading
from typing import Any, Sequence

from .repositories import (
    BlendTemplatesRepo,
    BundlesRepo,
    CustomersRepo,
    DomainError,
    DraftsRepo,
    ProductsDomainError,
    ProductsRepo,
    TransactionsRepo,
)
from ..modules.transactions.errors import BackendError
from ..modules.transactions.items import BlendIngredient
from ..modules.transactions.records import (
    BlendTemplate,
    BundleAvailability,
    BundleRecord,
    CustomerRecord,
    IngredientCheck,
    ProductRecord,
)

_log = logging.getLogger(__name__)


def _guarded(fn):
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return fn(self, *args, **kwargs)
            except (DomainError, ProductsDomainError) as e:
                raise BackendError(str(e)) from e
            except sqlite3.Error as e:
                _log.exception("Database error in %s", fn.__name__)
                raise BackendError(f"Database error: {e}") from e
    return wrapper


class SqlitePosBackend:
    def __init__(self, conn: sqlite3.Connection, drafts: DraftsRepo | None = None):
        self.conn = conn
        self._lock = threading.RLock()
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.templates = BlendTemplatesRepo(conn)
        self.bundles = BundlesRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.drafts = drafts or DraftsRepo(conn)

    # ---- Persistence ----

    @_guarded
    def create_transaction(self, payload: dict[str, Any]) -> str:
        return self.transactions.create(payload)

    @_guarded
    def update_transaction(self, transaction_id: str, payload: dict[str, Any]) -> str:
        return self.transactions.update(transaction_id, payload)

    @_guarded
    def cancel_transaction(self, transaction_id: str) -> None:
        self.transactions.cancel(transaction_id)

    @_guarded
    def save_draft(self, draft_id: str, name: str, form_data: dict[str, Any]) -> str:
        return self.drafts.upsert(draft_id, name, form_data)

    @_guarded
    def delete_draft(self, draft_id: str) -> None:
        self.drafts.delete(draft_id)

    # ---- Checks ----

    @_guarded
    def check_bundle_availability(self, bundle_id: int, quantity: float) -> BundleAvailability:
        return self.bundles.check_availability(bundle_id, quantity)

    @_guarded
    def validate_blend_ingredients(
        self, ingredients: Sequence[BlendIngredient], batch_multiplier: float = 1.0
    ) -> IngredientCheck:
        return self.products.validate_ingredients(ingredients, batch_multiplier)

    # ---- Catalogue reads ----

    @_guarded
    def fetch_customer(self, customer_id: int) -> CustomerRecord | None:
        return self.customers.get(customer_id)

    @_guarded
    def get_product(self, product_id: int) -> ProductRecord | None:
        return self.products.get(product_id)

    @_guarded
    def list_products(self) -> list[ProductRecord]:
        return self.products.list_products()

    @_guarded
    def list_customers(self) -> list[CustomerRecord]:
        return self.customers.list_customers()

    @_guarded
    def list_blend_templates(self) -> list[BlendTemplate]:
        return self.templates.list_templates()

    @_guarded
    def list_bundles(self) -> list[BundleRecord]:
        return self.bundles.list_bundles()

    @_guarded
    def list_transactions(self) -> list[dict[str, Any]]:
        return self.transactions.list_transactions()

    @_guarded
    def load_transaction(self, transaction_id: str) -> dict[str, Any] | None:
        return self.transactions.get(transaction_id)

    @_guarded
    def list_drafts(self) -> list[dict[str, Any]]:
        return self.drafts.list_drafts()

    @_guarded
    def load_draft(self, draft_id: str) -> dict[str, Any] | None:
        return self.drafts.get(draft_id)
