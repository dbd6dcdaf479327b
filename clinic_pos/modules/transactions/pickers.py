from __future__ import annotations

from typing import Callable, Sequence

from PySide6.QtWidgets import (
    QDialog, QFormLayout, QDialogButtonBox, QVBoxLayout, QComboBox, QLineEdit,
    QLabel, QCheckBox,
)

from .builders import (
    build_bundle_item,
    build_consultation_item,
    build_fixed_blend_item,
    build_miscellaneous_item,
)
from .errors import BackendError, ValidationFailed
from .items import MISC_CATEGORIES, TransactionItem
from .quantity_dialog import run_override_flow
from .records import BlendTemplate, BundleAvailability, BundleRecord
from .stock import OverrideFlow, bundle_stock_lines
from ...utils.helpers import fmt_money, fmt_qty
from ...utils.ui_helpers import info, error, confirm, bullet_list
from ...utils.validators import try_parse_float


class _PickerDialog(QDialog):
    """Form + Ok/Cancel; subclasses fill the form and build the line in accept()."""

    def __init__(self, title: str, parent=None):
        super().__init__(parent)
        self.setWindowTitle(title)
        self.setModal(True)
        self._item: TransactionItem | None = None
        self.form = QFormLayout()
        lay = QVBoxLayout(self)
        lay.addLayout(self.form)
        self.buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        self._layout = lay

    def finish_layout(self):
        self._layout.addWidget(self.buttons)

    def item(self) -> TransactionItem | None:
        return self._item

    def _set_item(self, item: TransactionItem):
        self._item = item
        super().accept()


class FixedBlendDialog(_PickerDialog):
    def __init__(self, templates: Sequence[BlendTemplate], parent=None):
        super().__init__("Fixed Blend", parent)
        self.cmb_template = QComboBox()
        for t in templates:
            if t.is_active:
                self.cmb_template.addItem(t.name, t)
        self.txt_qty = QLineEdit("1")
        self.lab_recipe = QLabel()
        self.lab_recipe.setWordWrap(True)
        self.lab_price = QLabel()
        self.form.addRow("Blend*", self.cmb_template)
        self.form.addRow("Quantity*", self.txt_qty)
        self.form.addRow("Recipe", self.lab_recipe)
        self.form.addRow("Price", self.lab_price)
        self.finish_layout()

        self.cmb_template.currentIndexChanged.connect(self._refresh)
        self.txt_qty.textChanged.connect(self._refresh)
        self._refresh()

    def _refresh(self, *_):
        t: BlendTemplate | None = self.cmb_template.currentData()
        if t is None:
            self.lab_recipe.setText("No blend templates")
            self.lab_price.setText("—")
            return
        self.lab_recipe.setText(", ".join(
            f"{i.name} {fmt_qty(i.quantity)} {i.unit_name}" for i in t.ingredients
        ))
        ok, q = try_parse_float(self.txt_qty.text())
        self.lab_price.setText(fmt_money(t.selling_price * q) if ok and q and q > 0 else "—")

    def accept(self):
        t = self.cmb_template.currentData()
        if t is None:
            info(self, "Fixed Blend", "Select a blend.")
            return
        try:
            item = build_fixed_blend_item(t, self.txt_qty.text())
        except ValidationFailed as e:
            info(self, "Fixed Blend", bullet_list(e.errors))
            return
        self._set_item(item)


class BundleDialog(_PickerDialog):
    """
    Pick a bundle. Constituent stock is checked through ``check_availability``
    and a shortage on any constituent goes through the override prompt.
    """

    def __init__(
        self,
        bundles: Sequence[BundleRecord],
        check_availability: Callable[[int, float], BundleAvailability],
        parent=None,
        confirm_fn=confirm,
    ):
        super().__init__("Bundle", parent)
        self._check = check_availability
        self._confirm = confirm_fn
        self.cmb_bundle = QComboBox()
        for b in bundles:
            if b.is_active:
                self.cmb_bundle.addItem(b.name, b)
        self.txt_qty = QLineEdit("1")
        self.txt_price = QLineEdit()
        self.txt_price.setPlaceholderText("Bundle price")
        self.lab_contents = QLabel()
        self.lab_contents.setWordWrap(True)
        self.lab_savings = QLabel()
        self.form.addRow("Bundle*", self.cmb_bundle)
        self.form.addRow("Quantity*", self.txt_qty)
        self.form.addRow("Price override", self.txt_price)
        self.form.addRow("Contents", self.lab_contents)
        self.form.addRow("Savings", self.lab_savings)
        self.finish_layout()

        self.cmb_bundle.currentIndexChanged.connect(self._refresh)
        self._refresh()

    def _refresh(self, *_):
        b: BundleRecord | None = self.cmb_bundle.currentData()
        if b is None:
            self.lab_contents.setText("No bundles")
            self.lab_savings.setText("—")
            return
        self.lab_contents.setText(", ".join(f"{fmt_qty(c.quantity)} × {c.name}" for c in b.components))
        saving = b.individual_total_price - b.bundle_price
        self.lab_savings.setText(
            f"{fmt_money(saving)} off {fmt_money(b.individual_total_price)}"
        )

    def accept(self):
        b: BundleRecord | None = self.cmb_bundle.currentData()
        if b is None:
            info(self, "Bundle", "Select a bundle.")
            return
        override = None
        if self.txt_price.text().strip():
            ok, override = try_parse_float(self.txt_price.text())
            if not ok or override < 0:
                info(self, "Bundle", "Enter a valid bundle price.")
                return

        flow = OverrideFlow(
            lambda q: bundle_stock_lines(self._check(b.bundle_id, q)),
            label=b.name,
        )
        try:
            qty = run_override_flow(self, flow, self.txt_qty.text(), self._confirm)
        except BackendError as e:
            error(self, "Bundle", f"Could not check bundle stock:\n{e}")
            return
        if qty is None:
            return
        self._set_item(build_bundle_item(b, qty, override))


class ConsultationDialog(_PickerDialog):
    def __init__(self, parent=None, name: str = "Consultation", fee: float | None = None):
        super().__init__("Consultation", parent)
        self.txt_name = QLineEdit(name)
        self.txt_fee = QLineEdit("" if fee is None else fmt_money(fee))
        self.form.addRow("Service*", self.txt_name)
        self.form.addRow("Fee*", self.txt_fee)
        self.finish_layout()

    def accept(self):
        ok, fee = try_parse_float(self.txt_fee.text())
        if not ok:
            info(self, "Consultation", "Enter a valid fee.")
            return
        try:
            item = build_consultation_item(self.txt_name.text(), fee)
        except ValidationFailed as e:
            info(self, "Consultation", bullet_list(e.errors))
            return
        self._set_item(item)


class MiscellaneousDialog(_PickerDialog):
    """Supplies, fees and credits. Credits are typed as a positive amount."""

    def __init__(self, parent=None, max_amount: float | None = None):
        super().__init__("Miscellaneous Item", parent)
        self._max = max_amount
        self.txt_name = QLineEdit()
        self.cmb_category = QComboBox()
        for c in MISC_CATEGORIES:
            self.cmb_category.addItem(c.title(), c)
        self.txt_amount = QLineEdit()
        self.txt_qty = QLineEdit("1")
        self.chk_taxable = QCheckBox("Taxable")
        self.chk_taxable.setChecked(True)
        self.form.addRow("Description*", self.txt_name)
        self.form.addRow("Category*", self.cmb_category)
        self.form.addRow("Amount*", self.txt_amount)
        self.form.addRow("Quantity*", self.txt_qty)
        self.form.addRow("", self.chk_taxable)
        self.finish_layout()

        self.cmb_category.currentIndexChanged.connect(self._on_category)

    def _on_category(self, *_):
        credit = self.cmb_category.currentData() == "credit"
        self.chk_taxable.setEnabled(not credit)
        if credit:
            self.chk_taxable.setChecked(False)

    def accept(self):
        ok, amount = try_parse_float(self.txt_amount.text())
        ok_q, qty = try_parse_float(self.txt_qty.text())
        try:
            item = build_miscellaneous_item(
                self.txt_name.text(),
                self.cmb_category.currentData(),
                amount if ok else 0.0,
                qty if ok_q else 0.0,
                self.chk_taxable.isChecked(),
                self._max,
            )
        except ValidationFailed as e:
            info(self, "Miscellaneous Item", bullet_list(e.errors))
            return
        self._set_item(item)
