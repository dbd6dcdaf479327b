from PySide6.QtCore import Qt, QAbstractTableModel, QModelIndex

from .items import TransactionItem, SALE_VOLUME
from ...utils.helpers import fmt_money, fmt_qty

_TYPE_LABELS = {
    "product": "Product",
    "fixed_blend": "Fixed Blend",
    "custom_blend": "Custom Blend",
    "bundle": "Bundle",
    "consultation": "Consultation",
    "miscellaneous": "Misc",
}


class TransactionItemsModel(QAbstractTableModel):
    """Read-only view of the session's lines, in cart order."""
    HEADERS = ["#", "Item", "Type", "Qty", "Unit Price", "Discount", "Line Total"]

    def __init__(self, items: list[TransactionItem] | None = None):
        super().__init__()
        self._rows: list[TransactionItem] = list(items or [])

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return super().headerData(section, orientation, role)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        it = self._rows[index.row()]
        col = index.column()
        if role == Qt.TextAlignmentRole and col >= 3:
            return int(Qt.AlignRight | Qt.AlignVCenter)
        if role == Qt.UserRole:
            return it.id
        if role != Qt.DisplayRole:
            return None

        qty = fmt_qty(it.quantity)
        if it.sale_type == SALE_VOLUME:
            qty = f"{qty} {it.base_unit}"
        cols = [
            index.row() + 1,
            it.name,
            _TYPE_LABELS.get(it.item_type, it.item_type),
            qty,
            fmt_money(it.unit_price, 4 if it.sale_type == SALE_VOLUME else 2),
            fmt_money(it.discount_amount),
            fmt_money(it.total_price),
        ]
        return cols[col]

    def at(self, row: int) -> TransactionItem:
        return self._rows[row]

    def replace(self, items):
        self.beginResetModel()
        self._rows = list(items or [])
        self.endResetModel()


class TransactionsTableModel(QAbstractTableModel):
    HEADERS = ["ID", "Date", "Customer", "Items", "Total", "Paid", "Payment", "Status"]

    def __init__(self, rows: list[dict] | None = None):
        super().__init__()
        self._rows = rows or []

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return super().headerData(section, orientation, role)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid() or role not in (Qt.DisplayRole, Qt.EditRole):
            return None
        r = self._rows[index.row()]
        cols = [
            r.get("transaction_id", ""),
            r.get("transaction_date", ""),
            r.get("customer_name", ""),
            r.get("item_count", 0),
            fmt_money(r.get("total_amount") or 0.0),
            fmt_money(r.get("paid_amount") or 0.0),
            r.get("payment_status", ""),
            r.get("status", ""),
        ]
        return cols[index.column()]

    def at(self, row: int) -> dict:
        return self._rows[row]

    def replace(self, rows: list[dict]):
        self.beginResetModel()
        self._rows = rows or []
        self.endResetModel()


class DraftsTableModel(QAbstractTableModel):
    HEADERS = ["Draft", "Customer", "Items", "Total", "Last Saved"]

    def __init__(self, rows: list[dict] | None = None):
        super().__init__()
        self._rows = rows or []

    def rowCount(self, parent=QModelIndex()):
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()):
        return len(self.HEADERS)

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if orientation == Qt.Horizontal and role == Qt.DisplayRole:
            return self.HEADERS[section]
        return super().headerData(section, orientation, role)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid() or role != Qt.DisplayRole:
            return None
        r = self._rows[index.row()]
        cols = [
            r.get("name", ""),
            r.get("customer_name") or "",
            r.get("item_count", 0),
            fmt_money(r.get("total_amount") or 0.0),
            (r.get("updated_at") or "").replace("T", " "),
        ]
        return cols[index.column()]

    def at(self, row: int) -> dict:
        return self._rows[row]

    def replace(self, rows: list[dict]):
        self.beginResetModel()
        self._rows = rows or []
        self.endResetModel()
