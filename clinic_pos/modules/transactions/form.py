from __future__ import annotations

import logging

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QFormLayout, QGridLayout, QComboBox, QLineEdit,
    QLabel, QGroupBox, QPushButton, QInputDialog,
)
from PySide6.QtCore import Qt, QEvent, Signal

from .backend import CatalogueBackend
from .blend_dialog import CustomBlendDialog
from .debounce import Debouncer
from .errors import BackendError, ValidationFailed
from .items import BUNDLE, CUSTOM_BLEND, PRODUCT, TransactionItem
from .model import TransactionItemsModel
from .pickers import BundleDialog, ConsultationDialog, FixedBlendDialog, MiscellaneousDialog
from .quantity_dialog import QuantityDialog, run_override_flow
from .records import CustomerRecord, ProductRecord
from .session import TransactionSession
from .stock import OverrideFlow, bundle_stock_lines, quantity_in_cart
from .submission import SAVE_DRAFT, SUBMIT, SubmissionController
from .totals import MODE_PERCENTAGE
from ... import config
from ...constants import PAYMENT_METHODS
from ...utils.helpers import fmt_money, fmt_qty
from ...utils.ui_helpers import info, error, confirm, bullet_list
from ...utils.validators import try_parse_float
from ...widgets.table_view import TableView

_log = logging.getLogger(__name__)


def product_lookup(backend: CatalogueBackend):
    """Fresh product records for discount and price checks; failures read as missing."""
    def lookup(product_id):
        try:
            return backend.get_product(int(product_id))
        except BackendError as e:
            _log.warning("Product %s lookup failed: %s", product_id, e)
            return None
    return lookup


class TransactionForm(QDialog):
    """
    Create or edit one transaction.

    The dialog owns its TransactionSession, the two debouncers (manual
    discount, autosave) and a SubmissionController. Closing the dialog in any
    way cancels both timers and ends the submission session, so a result that
    arrives afterwards is ignored.
    """

    submitted = Signal(str)     # transaction id
    draftSaved = Signal(str)    # draft id

    def __init__(
        self,
        backend: CatalogueBackend,
        session: TransactionSession | None = None,
        parent=None,
        submission: SubmissionController | None = None,
        draft_id: str | None = None,
        confirm_fn=confirm,
    ):
        super().__init__(parent)
        self.backend = backend
        self.session = session or TransactionSession(product_lookup(backend))
        self._confirm = confirm_fn
        self._closed = False
        self._autosaving = False
        self._result_id: str | None = None

        title = "Edit Transaction" if self.session.is_edit else "New Transaction"
        if self.session.transaction_id:
            title += f" - {self.session.transaction_id}"
        self.setWindowTitle(title)
        self.setModal(True)

        self.submission = submission or SubmissionController(backend, parent=self)
        if draft_id:
            self.submission.adopt_draft(draft_id, self.session.snapshot())
        self.submission.succeeded.connect(self._on_succeeded)
        self.submission.failed.connect(self._on_failed)
        self.submission.blocked.connect(self._on_blocked)
        self.submission.busyChanged.connect(self._on_busy)

        self.discount_debounce = Debouncer(config.DISCOUNT_DEBOUNCE, self._apply_discount_text, self)
        self.autosave = Debouncer(config.AUTOSAVE_DELAY, self._autosave, self)

        self._products: dict[int, ProductRecord] = {}
        self._build_ui()
        self._load_catalogue()
        self._load_from_session()

    # ---------------------------------------------------------------------
    # UI
    # ---------------------------------------------------------------------
    def _build_ui(self):
        # --- customer ---
        cbox = QGroupBox("Customer")
        cf = QFormLayout(cbox)
        self.cmb_customer = QComboBox()
        self.txt_name = QLineEdit()
        self.txt_email = QLineEdit()
        self.txt_phone = QLineEdit()
        self.lab_member = QLabel()
        cf.addRow("Customer", self.cmb_customer)
        cf.addRow("Name*", self.txt_name)
        cf.addRow("Email", self.txt_email)
        cf.addRow("Phone", self.txt_phone)
        cf.addRow("Member", self.lab_member)

        # --- items ---
        ibox = QGroupBox("Items")
        iv = QVBoxLayout(ibox)
        prow = QHBoxLayout()
        self.cmb_product = QComboBox()
        self.btn_add_product = QPushButton("Add Product")
        prow.addWidget(self.cmb_product, 1)
        prow.addWidget(self.btn_add_product)
        iv.addLayout(prow)

        self.tbl = TableView(self, sortable=False)
        self.items_model = TransactionItemsModel([])
        self.tbl.setModel(self.items_model)
        iv.addWidget(self.tbl, 1)

        brow = QHBoxLayout()
        self.btn_fixed_blend = QPushButton("Fixed Blend")
        self.btn_custom_blend = QPushButton("Custom Blend")
        self.btn_bundle = QPushButton("Bundle")
        self.btn_consultation = QPushButton("Consultation")
        self.btn_misc = QPushButton("Misc / Credit")
        self.btn_edit = QPushButton("Edit")
        self.btn_remove = QPushButton("Remove")
        for b in (self.btn_fixed_blend, self.btn_custom_blend, self.btn_bundle,
                  self.btn_consultation, self.btn_misc):
            brow.addWidget(b)
        brow.addStretch(1)
        brow.addWidget(self.btn_edit)
        brow.addWidget(self.btn_remove)
        iv.addLayout(brow)

        mrow = QHBoxLayout()
        self.lab_mismatch = QLabel()
        self.lab_mismatch.setStyleSheet("color: #b45309;")
        self.btn_refresh_prices = QPushButton("Update Prices")
        mrow.addWidget(self.lab_mismatch, 1)
        mrow.addWidget(self.btn_refresh_prices)
        iv.addLayout(mrow)

        # --- payment ---
        pbox = QGroupBox("Payment")
        pf = QFormLayout(pbox)
        drow = QHBoxLayout()
        self.txt_discount = QLineEdit()
        self.txt_discount.setPlaceholderText("0")
        self.btn_discount_mode = QPushButton()
        self.btn_discount_mode.setFixedWidth(40)
        drow.addWidget(self.txt_discount, 1)
        drow.addWidget(self.btn_discount_mode)
        self.txt_paid = QLineEdit()
        self.txt_paid.setPlaceholderText("0.00")
        self.cmb_method = QComboBox()
        for m in PAYMENT_METHODS:
            self.cmb_method.addItem(m.replace("_", " ").title(), m)
        self.txt_notes = QLineEdit()
        pf.addRow("Additional discount", drow)
        pf.addRow("Paid", self.txt_paid)
        pf.addRow("Method", self.cmb_method)
        pf.addRow("Notes", self.txt_notes)

        # --- totals ---
        tbox = QGroupBox("Totals")
        tg = QGridLayout(tbox)
        self.lab_subtotal = QLabel("0.00")
        self.lab_item_disc = QLabel("0.00")
        self.lab_add_disc = QLabel("0.00")
        self.lab_total = QLabel("0.00")
        self.lab_change = QLabel("0.00")
        self.lab_balance = QLabel("0.00")
        self.lab_pay_status = QLabel("")
        rows = [
            ("Subtotal", self.lab_subtotal),
            ("Member discounts", self.lab_item_disc),
            ("Additional discount", self.lab_add_disc),
            ("Total", self.lab_total),
            ("Change", self.lab_change),
            ("Balance due", self.lab_balance),
            ("Status", self.lab_pay_status),
        ]
        for i, (text, lab) in enumerate(rows):
            lab.setAlignment(Qt.AlignRight | Qt.AlignVCenter)
            tg.addWidget(QLabel(text), i, 0)
            tg.addWidget(lab, i, 1)
        self.lab_total.setStyleSheet("font-weight: bold;")

        # --- bottom ---
        self.lab_state = QLabel()
        self.lab_state.setStyleSheet("color: #555;")
        self.btn_submit = QPushButton("Submit")
        self.btn_submit.setDefault(True)
        self.btn_draft = QPushButton("Save Draft")
        self.btn_cancel = QPushButton("Cancel")
        bottom = QHBoxLayout()
        bottom.addWidget(self.lab_state, 1)
        bottom.addWidget(self.btn_draft)
        bottom.addWidget(self.btn_cancel)
        bottom.addWidget(self.btn_submit)

        side = QVBoxLayout()
        side.addWidget(cbox)
        side.addWidget(pbox)
        side.addWidget(tbox)
        side.addStretch(1)
        top = QHBoxLayout()
        top.addWidget(ibox, 3)
        top.addLayout(side, 2)
        root = QVBoxLayout(self)
        root.addLayout(top, 1)
        root.addLayout(bottom)
        self.resize(1100, 640)

        # --- wiring ---
        self.cmb_customer.currentIndexChanged.connect(self._on_customer_selected)
        for w in (self.txt_name, self.txt_email, self.txt_phone):
            w.textEdited.connect(self._on_walk_in_edited)
        self.btn_add_product.clicked.connect(self._add_product)
        self.btn_fixed_blend.clicked.connect(self._add_fixed_blend)
        self.btn_custom_blend.clicked.connect(self._add_custom_blend)
        self.btn_bundle.clicked.connect(self._add_bundle)
        self.btn_consultation.clicked.connect(self._add_consultation)
        self.btn_misc.clicked.connect(self._add_misc)
        self.btn_edit.clicked.connect(self._edit_selected)
        self.btn_remove.clicked.connect(self._remove_selected)
        self.tbl.doubleClicked.connect(lambda _=None: self._edit_selected())
        self.btn_refresh_prices.clicked.connect(self._refresh_prices)
        self.txt_discount.textEdited.connect(self.discount_debounce.schedule)
        self.btn_discount_mode.clicked.connect(self._toggle_discount_mode)
        self.txt_paid.textEdited.connect(self._on_paid_edited)
        self.cmb_method.currentIndexChanged.connect(self._on_method_changed)
        self.txt_notes.textEdited.connect(self._on_notes_edited)
        self.btn_submit.clicked.connect(self.submit)
        self.btn_draft.clicked.connect(lambda: self.save_draft())
        self.btn_cancel.clicked.connect(self.reject)

    def _load_catalogue(self):
        try:
            products = self.backend.list_products()
            customers = self.backend.list_customers()
        except BackendError as e:
            _log.error("Could not load the catalogue: %s", e)
            products, customers = [], []
        self._products = {p.product_id: p for p in products}
        self._products_all = products

        self.cmb_product.blockSignals(True)
        self.cmb_product.clear()
        for p in products:
            if not p.is_active:
                continue
            self.cmb_product.addItem(
                f"{p.name} - {fmt_money(p.selling_price)} ({fmt_qty(p.current_stock)} {p.unit_name})",
                p.product_id,
            )
        self.cmb_product.blockSignals(False)

        self.cmb_customer.blockSignals(True)
        self.cmb_customer.clear()
        self.cmb_customer.addItem("Walk-in (type details)", None)
        for c in customers:
            self.cmb_customer.addItem(c.name, c)
        self.cmb_customer.blockSignals(False)

    def _load_from_session(self):
        s = self.session
        f = s.form
        self.cmb_customer.blockSignals(True)
        idx = 0
        if f.customer_id is not None:
            for i in range(1, self.cmb_customer.count()):
                rec = self.cmb_customer.itemData(i)
                if rec is not None and rec.customer_id == f.customer_id:
                    idx = i
                    break
        self.cmb_customer.setCurrentIndex(idx)
        self.cmb_customer.blockSignals(False)
        if idx and s.customer is None:
            # restored draft: bind the record so the member rate is live
            s.set_customer(self.cmb_customer.itemData(idx))
        self._show_customer()

        self.txt_discount.setText(f.discount_text)
        self.txt_paid.setText(fmt_money(f.paid_amount) if f.paid_amount else "")
        i = self.cmb_method.findData(f.payment_method)
        self.cmb_method.blockSignals(True)
        self.cmb_method.setCurrentIndex(i if i >= 0 else 0)
        self.cmb_method.blockSignals(False)
        self.txt_notes.setText(f.notes)
        self._refresh()

    # ---------------------------------------------------------------------
    # Refresh
    # ---------------------------------------------------------------------
    def _refresh(self):
        """Re-read everything shown from the session."""
        sel = self.tbl.selected_row()
        self.items_model.replace(self.session.items)
        self.tbl.resizeColumnsToContents()
        if sel is not None and sel < self.items_model.rowCount():
            self.tbl.selectRow(sel)

        t = self.session.totals()
        self.lab_subtotal.setText(fmt_money(t.subtotal))
        self.lab_item_disc.setText(fmt_money(t.item_discount_total))
        self.lab_add_disc.setText(fmt_money(t.additional_discount_amount))
        self.lab_total.setText(fmt_money(t.total_amount))
        self.lab_change.setText(fmt_money(t.change_amount))
        self.lab_balance.setText(fmt_money(t.balance_due))
        self.lab_pay_status.setText(t.payment_status.title())
        pct = self.session.form.discount_mode == MODE_PERCENTAGE
        self.btn_discount_mode.setText("%" if pct else "$")
        self.btn_discount_mode.setToolTip(
            "Percentage of the discounted subtotal" if pct else "Fixed amount"
        )

        mismatches = self.session.price_mismatches()
        self.lab_mismatch.setText(
            f"{len(mismatches)} line(s) priced differently from the current catalogue"
            if mismatches else ""
        )
        self.btn_refresh_prices.setVisible(bool(mismatches))

    def _changed(self):
        """After any edit: redraw and restart the autosave countdown."""
        self._refresh()
        if not self._closed:
            self.autosave.schedule()

    def _show_customer(self):
        f = self.session.form
        known = self.session.customer is not None
        for w, v in ((self.txt_name, f.customer_name), (self.txt_email, f.customer_email),
                     (self.txt_phone, f.customer_phone)):
            w.setText(v or "")
            w.setReadOnly(known)
        c = self.session.customer
        if c is not None and c.member_benefits is not None:
            mb = c.member_benefits
            self.lab_member.setText(f"{mb.membership_tier.title()} - {fmt_qty(mb.discount_percentage)}% off")
        else:
            self.lab_member.setText("No membership discount")

    # ---------------------------------------------------------------------
    # Customer
    # ---------------------------------------------------------------------
    def _on_customer_selected(self, idx: int):
        rec: CustomerRecord | None = self.cmb_customer.itemData(idx) if idx >= 0 else None
        if rec is None:
            # details typed for a walk-in never come from the previous record
            self.session.set_customer(None)
        else:
            self.session.set_customer(rec)
        self._show_customer()
        self._changed()

    def _on_walk_in_edited(self, *_):
        if self.session.customer is not None:
            return
        self.session.set_walk_in(self.txt_name.text().strip(), self.txt_email.text().strip(),
                                 self.txt_phone.text().strip())
        self._changed()

    def refresh_customer(self) -> bool:
        """Re-fetch the bound customer; reprices lines if their rate changed."""
        c = self.session.customer
        if c is None:
            return False
        try:
            fresh = self.backend.fetch_customer(c.customer_id)
        except BackendError as e:
            _log.warning("Could not refresh customer %s: %s", c.customer_id, e)
            return False
        if not self.session.refresh_customer(fresh):
            return False
        idx = self.cmb_customer.currentIndex()
        if idx > 0 and fresh is not None:
            self.cmb_customer.setItemData(idx, fresh)
        self._show_customer()
        self._changed()
        return True

    def changeEvent(self, event):
        if event.type() == QEvent.ActivationChange and self.isActiveWindow() and not self._closed:
            self.refresh_customer()
        super().changeEvent(event)

    # ---------------------------------------------------------------------
    # Items
    # ---------------------------------------------------------------------
    def add_item(self, item: TransactionItem) -> TransactionItem:
        priced = self.session.add_item(item)
        self._changed()
        return priced

    def _selected_item(self) -> TransactionItem | None:
        r = self.tbl.selected_row()
        if r is None:
            return None
        return self.items_model.at(r)

    def _add_product(self):
        pid = self.cmb_product.currentData()
        p = self._products.get(pid) if pid is not None else None
        if p is None:
            info(self, "Add Product", "Select a product.")
            return
        dlg = QuantityDialog(p, self, in_cart=quantity_in_cart(self.session.items, p.product_id),
                             confirm_fn=self._confirm)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _add_fixed_blend(self):
        try:
            templates = self.backend.list_blend_templates()
        except BackendError as e:
            error(self, "Fixed Blend", str(e))
            return
        dlg = FixedBlendDialog(templates, self)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _add_custom_blend(self):
        dlg = CustomBlendDialog(self._products_all, self.backend.validate_blend_ingredients, self,
                                confirm_fn=self._confirm)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _add_bundle(self):
        try:
            bundles = self.backend.list_bundles()
        except BackendError as e:
            error(self, "Bundle", str(e))
            return
        dlg = BundleDialog(bundles, self.backend.check_bundle_availability, self, confirm_fn=self._confirm)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _add_consultation(self):
        dlg = ConsultationDialog(self)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _add_misc(self):
        dlg = MiscellaneousDialog(self)
        if dlg.exec() and dlg.item() is not None:
            self.add_item(dlg.item())

    def _edit_selected(self):
        it = self._selected_item()
        if it is None:
            info(self, "Edit", "Select a line to edit.")
            return
        if it.item_type == PRODUCT and it.product_id in self._products:
            p = self._products[it.product_id]
            dlg = QuantityDialog(
                p, self,
                in_cart=quantity_in_cart(self.session.items, p.product_id, exclude_id=it.id),
                sale_type=it.sale_type, quantity=it.quantity, confirm_fn=self._confirm,
            )
            if dlg.exec() and dlg.item() is not None:
                self.session.replace_item(it.id, dlg.item())
                self._changed()
            return
        if it.item_type == CUSTOM_BLEND:
            dlg = CustomBlendDialog(self._products_all, self.backend.validate_blend_ingredients, self,
                                    existing=it, confirm_fn=self._confirm)
            if dlg.exec() and dlg.item() is not None:
                self.session.replace_item(it.id, dlg.item())
                self._changed()
            return

        text, ok = QInputDialog.getText(self, "Quantity", f"Quantity for {it.name}:", text=fmt_qty(it.quantity))
        if not ok:
            return
        self.change_quantity(it.id, text)

    def change_quantity(self, item_id: str, text: str) -> bool:
        it = self.session.get_item(item_id)
        qty: float | str | None = text
        if it.item_type == BUNDLE:
            flow = OverrideFlow(
                lambda q: bundle_stock_lines(self.backend.check_bundle_availability(it.bundle_id, q)),
                label=it.name,
            )
            try:
                qty = run_override_flow(self, flow, text, self._confirm)
            except BackendError as e:
                error(self, "Bundle", f"Could not check bundle stock:\n{e}")
                return False
            if qty is None:
                return False
        try:
            self.session.update_quantity(item_id, qty)
        except ValidationFailed as e:
            info(self, "Quantity", bullet_list(e.errors))
            return False
        self._changed()
        return True

    def _remove_selected(self):
        it = self._selected_item()
        if it is None:
            info(self, "Remove", "Select a line to remove.")
            return
        self.session.remove_item(it.id)
        self._changed()

    def _refresh_prices(self):
        mismatches = self.session.price_mismatches()
        if not mismatches:
            return
        lines = [f"{m.name}: {fmt_money(m.line_price, 4)} -> {fmt_money(m.current_price, 4)}" for m in mismatches]
        if not self._confirm(self, "Update Prices", bullet_list(lines) + "\n\nUse current prices?"):
            return
        for m in mismatches:
            self.session.refresh_item_price(m.item_id)
        self._changed()

    # ---------------------------------------------------------------------
    # Discount & payment
    # ---------------------------------------------------------------------
    def _apply_discount_text(self, text):
        if self._closed:
            return
        self.session.set_discount_text(text or "")
        self._changed()

    def _toggle_discount_mode(self):
        self.discount_debounce.flush()
        self.session.toggle_discount_mode()
        self.txt_discount.setText(self.session.form.discount_text)
        self._changed()

    def _on_paid_edited(self, text: str):
        ok, v = try_parse_float(text) if text.strip() else (True, 0.0)
        bad = not ok or v < 0
        self.txt_paid.setStyleSheet("background: #fee2e2;" if bad else "")
        if bad:
            return
        self.session.set_paid_amount(v)
        self._changed()

    def _on_method_changed(self, *_):
        self.session.set_payment_method(self.cmb_method.currentData())
        self._changed()

    def _on_notes_edited(self, text: str):
        self.session.set_notes(text)
        self._changed()

    # ---------------------------------------------------------------------
    # Submit / drafts
    # ---------------------------------------------------------------------
    def submit(self) -> bool:
        self.discount_debounce.flush()
        self.autosave.cancel()
        return self.submission.submit(self.session)

    def save_draft(self, name: str | None = None) -> bool:
        self.discount_debounce.flush()
        self.autosave.cancel()
        return self.submission.save_draft(self.session, name)

    def _autosave(self, _=None):
        if self._closed:
            return
        self._autosaving = self.submission.save_draft(self.session, autosave=True)

    def _on_busy(self, busy: bool):
        self.btn_submit.setEnabled(not busy)
        self.btn_draft.setEnabled(not busy)
        if busy:
            self.lab_state.setText("Saving…")

    def _on_blocked(self, action: str):
        self.lab_state.setText("A save is already in progress")

    def _on_succeeded(self, action: str, result):
        if action == SAVE_DRAFT:
            self._autosaving = False
            self.lab_state.setText("Draft saved")
            self.draftSaved.emit(str(result))
            return
        self._result_id = str(result)
        self.lab_state.setText(f"Saved {result}")
        self.submitted.emit(self._result_id)
        self.accept()

    def _on_failed(self, action: str, errors):
        messages = list(errors or [])
        if action == SAVE_DRAFT and self._autosaving:
            self._autosaving = False
            _log.warning("Autosave failed: %s", "; ".join(messages))
            self.lab_state.setText("Autosave failed")
            return
        self.lab_state.setText("")
        title = "Cannot Submit" if action == SUBMIT else "Draft Not Saved"
        info(self, title, bullet_list(messages))

    def result_id(self) -> str | None:
        return self._result_id

    # ---------------------------------------------------------------------
    # Close
    # ---------------------------------------------------------------------
    def shutdown(self):
        if self._closed:
            return
        self._closed = True
        self.discount_debounce.cancel()
        self.autosave.cancel()
        self.submission.end_session()

    def done(self, r: int):
        self.shutdown()
        super().done(r)

    def closeEvent(self, event):
        self.shutdown()
        super().closeEvent(event)
