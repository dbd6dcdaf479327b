from __future__ import annotations

import logging

from PySide6.QtWidgets import QWidget
from PySide6.QtCore import Qt, QSortFilterProxyModel

from ..base_module import BaseModule
from .backend import CatalogueBackend
from .errors import BackendError
from .form import TransactionForm, product_lookup
from .model import DraftsTableModel, TransactionsTableModel
from .session import TransactionSession
from .view import TransactionsView
from ...utils.ui_helpers import info, error, confirm

_log = logging.getLogger(__name__)


class TransactionsController(BaseModule):
    """
    Lists transactions and drafts and opens the transaction form.

    Only one form is open at a time. It is non-modal so the operator can look
    things up elsewhere in the app while it is open; asking for another form
    just brings the open one to the front.
    """

    def __init__(self, backend: CatalogueBackend):
        super().__init__()
        self.backend = backend
        self.view = TransactionsView()
        self.active_dialog: TransactionForm | None = None

        self.tx_model = TransactionsTableModel([])
        self.tx_proxy = QSortFilterProxyModel(self)
        self.tx_proxy.setSourceModel(self.tx_model)
        self.view.tbl_transactions.setModel(self.tx_proxy)
        self.view.tbl_transactions.sortByColumn(0, Qt.DescendingOrder)

        self.draft_model = DraftsTableModel([])
        self.view.tbl_drafts.setSortingEnabled(False)
        self.view.tbl_drafts.setModel(self.draft_model)

        self._wire()
        self._reload()

    def get_widget(self) -> QWidget:
        return self.view

    # ---- wiring / model ---------------------------------------------------

    def _wire(self):
        self.view.btn_new.clicked.connect(self.new_transaction)
        self.view.btn_edit.clicked.connect(self._edit)
        self.view.btn_cancel_tx.clicked.connect(self._cancel_transaction)
        self.view.btn_refresh.clicked.connect(self._reload)
        self.view.btn_resume.clicked.connect(self._resume_draft)
        self.view.btn_delete_draft.clicked.connect(self._delete_draft)
        self.view.tbl_transactions.doubleClicked.connect(lambda _=None: self._edit())
        self.view.tbl_drafts.doubleClicked.connect(lambda _=None: self._resume_draft())

    def _reload(self):
        try:
            self.tx_model.replace(self.backend.list_transactions())
            self.draft_model.replace(self.backend.list_drafts())
        except BackendError as e:
            error(self.view, "Transactions", str(e))
            return
        self.view.tbl_transactions.resizeColumnsToContents()
        self.view.tbl_drafts.resizeColumnsToContents()
        n = self.draft_model.rowCount()
        self.view.tabs.setTabText(1, f"Drafts ({n})" if n else "Drafts")

    def _selected_transaction(self) -> dict | None:
        r = self.view.tbl_transactions.selected_row()
        if r is None:
            return None
        src = self.tx_proxy.mapToSource(self.tx_proxy.index(r, 0))
        return self.tx_model.at(src.row())

    def _selected_draft(self) -> dict | None:
        r = self.view.tbl_drafts.selected_row()
        return self.draft_model.at(r) if r is not None else None

    # ---- form -------------------------------------------------------------

    def _open_form(self, session: TransactionSession, draft_id: str | None = None) -> TransactionForm | None:
        if self.active_dialog is not None:
            self.active_dialog.raise_()
            self.active_dialog.activateWindow()
            info(self.view, "Transaction", "Finish or close the open transaction first.")
            return None
        dlg = TransactionForm(self.backend, session, self.view, draft_id=draft_id)
        dlg.setWindowModality(Qt.NonModal)
        dlg.submitted.connect(self._on_submitted)
        dlg.draftSaved.connect(lambda _id: self._reload())
        dlg.finished.connect(self._on_form_finished)
        self.active_dialog = dlg
        dlg.show()
        return dlg

    def _on_submitted(self, transaction_id: str):
        _log.info("Transaction %s saved", transaction_id)
        self.view.lab_status.setText(f"Saved {transaction_id}")
        self._reload()

    def _on_form_finished(self, _result: int):
        dlg, self.active_dialog = self.active_dialog, None
        if dlg is not None:
            dlg.deleteLater()
        self._reload()

    def _restore(self, data: dict, transaction_id: str | None = None) -> TransactionSession:
        customer = None
        cid = data.get("customer_id")
        if cid is not None:
            try:
                customer = self.backend.fetch_customer(int(cid))
            except BackendError as e:
                _log.warning("Customer %s could not be loaded: %s", cid, e)
        return TransactionSession.restore(
            data, product_lookup(self.backend), customer=customer, transaction_id=transaction_id
        )

    # ---- actions ----------------------------------------------------------

    def new_transaction(self):
        self._open_form(TransactionSession(product_lookup(self.backend)))

    def _edit(self):
        row = self._selected_transaction()
        if not row:
            info(self.view, "Edit", "Select a transaction to edit.")
            return
        tid = row["transaction_id"]
        if row.get("status") == "cancelled":
            info(self.view, "Edit", f"{tid} is cancelled and cannot be edited.")
            return
        try:
            data = self.backend.load_transaction(tid)
        except BackendError as e:
            error(self.view, "Edit", str(e))
            return
        if data is None:
            info(self.view, "Edit", f"{tid} no longer exists.")
            self._reload()
            return
        self._open_form(self._restore(data, transaction_id=tid))

    def _cancel_transaction(self):
        row = self._selected_transaction()
        if not row:
            info(self.view, "Cancel", "Select a transaction to cancel.")
            return
        tid = row["transaction_id"]
        if not confirm(self.view, "Cancel Transaction",
                       f"Cancel {tid}? Its stock will be returned to inventory."):
            return
        try:
            self.backend.cancel_transaction(tid)
        except BackendError as e:
            error(self.view, "Cancel Transaction", str(e))
            return
        self._reload()

    def _resume_draft(self):
        row = self._selected_draft()
        if not row:
            info(self.view, "Resume", "Select a draft to resume.")
            return
        draft_id = row["draft_id"]
        try:
            data = self.backend.load_draft(draft_id)
        except BackendError as e:
            error(self.view, "Resume", str(e))
            return
        if data is None:
            info(self.view, "Resume", "That draft has expired.")
            self._reload()
            return
        self._open_form(self._restore(data), draft_id=draft_id)

    def _delete_draft(self):
        row = self._selected_draft()
        if not row:
            info(self.view, "Delete Draft", "Select a draft to delete.")
            return
        if not confirm(self.view, "Delete Draft", f"Delete '{row.get('name', '')}'?"):
            return
        try:
            self.backend.delete_draft(row["draft_id"])
        except BackendError as e:
            error(self.view, "Delete Draft", str(e))
            return
        self._reload()

    def shutdown(self) -> None:
        if self.active_dialog is not None:
            self.active_dialog.shutdown()
            self.active_dialog.close()
