# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from clinic_pos.database.repositories import (
        ProductsRepo, CustomersRepo, BlendTemplatesRepo, BundlesRepo,
        TransactionsRepo, DraftsRepo, DomainError,
    )
"""

from .products_repo import ProductsRepo, DomainError as ProductsDomainError
from .customers_repo import CustomersRepo
from .blend_templates_repo import BlendTemplatesRepo
from .bundles_repo import BundlesRepo
from .transactions_repo import TransactionsRepo, DomainError, new_transaction_id
from .drafts_repo import DraftsRepo

__all__ = [
    "ProductsRepo",
    "ProductsDomainError",
    "CustomersRepo",
    "BlendTemplatesRepo",
    "BundlesRepo",
    "TransactionsRepo",
    "DomainError",
    "new_transaction_id",
    "DraftsRepo",
]
