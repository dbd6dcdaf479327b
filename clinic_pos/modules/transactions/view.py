from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel, QTabWidget,
)

from ...widgets.table_view import TableView


class TransactionsView(QWidget):
    """
    Transactions screen:
      - Toolbar: New, Edit, Cancel Transaction, Refresh
      - Tabs: finalised transactions | saved drafts (Resume, Delete)
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        root = QVBoxLayout(self)

        bar = QHBoxLayout()
        self.btn_new = QPushButton("New Transaction")
        self.btn_edit = QPushButton("Edit")
        self.btn_cancel_tx = QPushButton("Cancel Transaction")
        self.btn_refresh = QPushButton("Refresh")
        bar.addWidget(self.btn_new)
        bar.addWidget(self.btn_edit)
        bar.addWidget(self.btn_cancel_tx)
        bar.addStretch(1)
        self.lab_status = QLabel()
        bar.addWidget(self.lab_status)
        bar.addWidget(self.btn_refresh)
        root.addLayout(bar)

        self.tabs = QTabWidget()

        self.tbl_transactions = TableView()
        self.tabs.addTab(self.tbl_transactions, "Transactions")

        drafts = QWidget()
        dv = QVBoxLayout(drafts)
        dbar = QHBoxLayout()
        self.btn_resume = QPushButton("Resume Draft")
        self.btn_delete_draft = QPushButton("Delete Draft")
        dbar.addWidget(self.btn_resume)
        dbar.addWidget(self.btn_delete_draft)
        dbar.addStretch(1)
        dv.addLayout(dbar)
        self.tbl_drafts = TableView()
        dv.addWidget(self.tbl_drafts, 1)
        self.tabs.addTab(drafts, "Drafts")

        root.addWidget(self.tabs, 1)
