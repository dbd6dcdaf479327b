"""
Transactions module package exports.

Only the engine is exported here. The Qt screens (TransactionsController,
TransactionForm and the pickers) are imported from their own modules, so the
repositories can depend on the item types without pulling in the UI.
"""

from .errors import ValidationFailed, BackendError
from .items import (
    TransactionItem,
    ProductItem,
    FixedBlendItem,
    CustomBlendItem,
    BundleItem,
    ConsultationItem,
    MiscellaneousItem,
    item_from_dict,
)
from .session import TransactionSession, TransactionFormData
from .totals import Totals, compute_totals

__all__ = [
    "ValidationFailed",
    "BackendError",
    "TransactionItem",
    "ProductItem",
    "FixedBlendItem",
    "CustomBlendItem",
    "BundleItem",
    "ConsultationItem",
    "MiscellaneousItem",
    "item_from_dict",
    "TransactionSession",
    "TransactionFormData",
    "Totals",
    "compute_totals",
]
