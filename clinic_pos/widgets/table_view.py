from PySide6.QtWidgets import QAbstractItemView, QTableView


class TableView(QTableView):
    """
    Row-selecting, read-only table. Cart tables pass sortable=False so the
    on-screen order always matches line order.
    """

    def __init__(self, parent=None, sortable: bool = True):
        super().__init__(parent)
        self.setSortingEnabled(sortable)
        self.setAlternatingRowColors(True)
        self.setSelectionBehavior(QTableView.SelectRows)
        self.setSelectionMode(QTableView.SingleSelection)
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.verticalHeader().setVisible(False)
        self.horizontalHeader().setStretchLastSection(True)

    def selected_row(self) -> int | None:
        idx = self.selectionModel().selectedRows() if self.selectionModel() else []
        return idx[0].row() if idx else None
