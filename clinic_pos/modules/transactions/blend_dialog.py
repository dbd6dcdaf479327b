from __future__ import annotations

from typing import Callable, Sequence

from PySide6.QtWidgets import (
    QDialog, QFormLayout, QDialogButtonBox, QVBoxLayout, QHBoxLayout, QComboBox,
    QLineEdit, QLabel, QGroupBox, QTableWidget, QTableWidgetItem, QPushButton,
    QAbstractItemView, QHeaderView,
)
from PySide6.QtCore import Qt

from .blend_pricing import (
    PRICING_MANUAL,
    PRICING_MARGIN,
    derive_margin,
    quote_blend,
    total_ingredient_cost,
)
from .builders import build_custom_blend_item
from .errors import ValidationFailed
from .items import BlendIngredient, CustomBlendItem
from .records import IngredientCheck, ProductRecord
from ...utils.helpers import fmt_money, fmt_qty
from ...utils.ui_helpers import info, confirm, bullet_list
from ...utils.validators import try_parse_float

CONTAINER_TYPES = [
    "Roller Bottle 10ml",
    "Dropper Bottle 15ml",
    "Dropper Bottle 30ml",
    "Spray Bottle 50ml",
    "Jar 50g",
]

DEFAULT_MARGIN = 100.0


class CustomBlendDialog(QDialog):
    """
    Build or edit an ad-hoc blend from catalogue products.

    ``check_ingredients`` is the backend's stock check for the chosen
    ingredients (errors block, warnings ask). Pass ``existing`` to edit a blend
    already on the cart; its line id is kept.
    """

    COLS = ["#", "Ingredient", "Qty", "Unit", "Cost / Unit", "Line Cost", "Available", ""]

    def __init__(
        self,
        products: Sequence[ProductRecord],
        check_ingredients: Callable[[Sequence[BlendIngredient], float], IngredientCheck] | None = None,
        parent=None,
        existing: CustomBlendItem | None = None,
        mixed_by: str | None = None,
        confirm_fn=confirm,
    ):
        super().__init__(parent)
        self.setWindowTitle("Custom Blend")
        self.setModal(True)
        self._products = {p.product_id: p for p in products if p.is_active and not p.is_service}
        self._check = check_ingredients
        self._existing = existing
        self._mixed_by = mixed_by
        self._confirm = confirm_fn
        self._item: CustomBlendItem | None = None

        # --- header ---
        self.txt_name = QLineEdit()
        self.txt_name.setPlaceholderText("e.g. Evening Calm Roller")
        self.cmb_container = QComboBox()
        self.cmb_container.setEditable(True)
        self.cmb_container.addItems(CONTAINER_TYPES)
        self.cmb_container.setCurrentIndex(-1)
        self.txt_batch = QLineEdit("1")
        self.txt_notes = QLineEdit()

        # --- ingredients ---
        box = QGroupBox("Ingredients")
        ib = QVBoxLayout(box)
        self.tbl = QTableWidget(0, len(self.COLS))
        self.tbl.setHorizontalHeaderLabels(self.COLS)
        self.tbl.verticalHeader().setVisible(False)
        self.tbl.setSelectionBehavior(QAbstractItemView.SelectRows)
        header = self.tbl.horizontalHeader()
        header.setSectionResizeMode(1, QHeaderView.Stretch)
        self.tbl.setColumnWidth(0, 30)
        ib.addWidget(self.tbl, 1)
        self.btn_add_ing = QPushButton("Add Ingredient")
        ib.addWidget(self.btn_add_ing, 0, Qt.AlignLeft)

        # --- pricing ---
        pbox = QGroupBox("Pricing")
        pf = QFormLayout(pbox)
        self.cmb_pricing = QComboBox()
        self.cmb_pricing.addItem("Cost + margin", PRICING_MARGIN)
        self.cmb_pricing.addItem("Manual price", PRICING_MANUAL)
        self.txt_margin = QLineEdit(fmt_qty(DEFAULT_MARGIN))
        self.txt_price = QLineEdit()
        self.lab_cost = QLabel("0.00")
        self.lab_price = QLabel("0.00")
        self.lab_minimum = QLabel("0.00")
        self.lab_warn = QLabel()
        self.lab_warn.setStyleSheet("color: #b45309;")
        pf.addRow("Pricing", self.cmb_pricing)
        pf.addRow("Margin %", self.txt_margin)
        pf.addRow("Selling price", self.txt_price)
        pf.addRow("Ingredient cost", self.lab_cost)
        pf.addRow("Price", self.lab_price)
        pf.addRow("Minimum (cost + 10%)", self.lab_minimum)
        pf.addRow("", self.lab_warn)

        form = QFormLayout()
        form.addRow("Blend name*", self.txt_name)
        form.addRow("Container*", self.cmb_container)
        form.addRow("Quantity*", self.txt_batch)
        form.addRow("Preparation notes", self.txt_notes)

        lay = QVBoxLayout(self)
        lay.addLayout(form)
        lay.addWidget(box, 1)
        row = QHBoxLayout()
        row.addWidget(pbox, 1)
        lay.addLayout(row)
        self.buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        lay.addWidget(self.buttons)

        self.btn_add_ing.clicked.connect(lambda: self.add_ingredient_row())
        self.cmb_pricing.currentIndexChanged.connect(self._on_pricing_mode)
        self.txt_margin.textChanged.connect(self._refresh_pricing)
        self.txt_price.textChanged.connect(self._refresh_pricing)
        self.tbl.cellChanged.connect(self._cell_changed)

        if existing is not None:
            self._load(existing)
        self._on_pricing_mode()
        self.resize(760, 560)

    # ---- rows ----

    def add_ingredient_row(self, product_id: int | None = None, quantity: float | None = None) -> int:
        self.tbl.blockSignals(True)
        r = self.tbl.rowCount()
        self.tbl.insertRow(r)

        num = QTableWidgetItem(str(r + 1))
        num.setFlags(Qt.ItemIsSelectable | Qt.ItemIsEnabled)
        self.tbl.setItem(r, 0, num)

        cmb = QComboBox()
        for p in self._products.values():
            cmb.addItem(p.name, p.product_id)
        if product_id is not None:
            i = cmb.findData(product_id)
            if i >= 0:
                cmb.setCurrentIndex(i)
        self.tbl.setCellWidget(r, 1, cmb)

        qty = QTableWidgetItem(fmt_qty(quantity) if quantity is not None else "0")
        qty.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
        self.tbl.setItem(r, 2, qty)
        for c in (3, 4, 5, 6):
            cell = QTableWidgetItem("")
            cell.setFlags(Qt.ItemIsSelectable | Qt.ItemIsEnabled)
            if c != 3:
                cell.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
            self.tbl.setItem(r, c, cell)

        btn = QPushButton("✕")
        btn.clicked.connect(lambda: self._remove_row_of(btn))
        self.tbl.setCellWidget(r, 7, btn)

        cmb.currentIndexChanged.connect(lambda _=None: self._recalc_row(self._row_of(cmb)))
        self.tbl.blockSignals(False)
        self._recalc_row(r)
        return r

    def _row_of(self, widget) -> int:
        for r in range(self.tbl.rowCount()):
            if widget in (self.tbl.cellWidget(r, 1), self.tbl.cellWidget(r, 7)):
                return r
        return -1

    def _remove_row_of(self, widget):
        r = self._row_of(widget)
        if r < 0:
            return
        self.tbl.removeRow(r)
        for i in range(self.tbl.rowCount()):
            self.tbl.item(i, 0).setText(str(i + 1))
        self._refresh_pricing()

    def _cell_changed(self, row: int, col: int):
        if col == 2:
            self._recalc_row(row)

    def _recalc_row(self, r: int):
        if r < 0:
            return
        p = self._row_product(r)
        qty = self._row_qty(r)
        self.tbl.blockSignals(True)
        if p is None:
            for c in (3, 4, 5, 6):
                self.tbl.item(r, c).setText("")
        else:
            self.tbl.item(r, 3).setText(p.unit_name)
            self.tbl.item(r, 4).setText(fmt_money(p.selling_price, 4))
            self.tbl.item(r, 5).setText(fmt_money(qty * p.selling_price))
            avail = self.tbl.item(r, 6)
            avail.setText(fmt_qty(p.current_stock))
            avail.setBackground(Qt.red if qty > p.current_stock else Qt.white)
        self.tbl.blockSignals(False)
        self._refresh_pricing()

    def _row_product(self, r: int) -> ProductRecord | None:
        cmb = self.tbl.cellWidget(r, 1)
        pid = cmb.currentData() if cmb else None
        return self._products.get(pid) if pid is not None else None

    def _row_qty(self, r: int) -> float:
        it = self.tbl.item(r, 2)
        ok, v = try_parse_float(it.text() if it else "")
        return float(v) if ok and v is not None else 0.0

    def ingredients(self) -> list[BlendIngredient]:
        out = []
        for r in range(self.tbl.rowCount()):
            p = self._row_product(r)
            if p is None:
                continue
            out.append(BlendIngredient(
                product_id=p.product_id,
                name=p.name,
                quantity=self._row_qty(r),
                cost_per_unit=float(p.selling_price),
                unit_name=p.unit_name,
                available_stock=float(p.current_stock),
            ))
        return out

    # ---- pricing ----

    def pricing_mode(self) -> str:
        return self.cmb_pricing.currentData()

    def _on_pricing_mode(self, *_):
        manual = self.pricing_mode() == PRICING_MANUAL
        self.txt_margin.setEnabled(not manual)
        self.txt_price.setEnabled(manual)
        self._refresh_pricing()

    def _margin(self) -> float:
        ok, v = try_parse_float(self.txt_margin.text())
        return float(v) if ok and v is not None else 0.0

    def _manual_price(self) -> float | None:
        ok, v = try_parse_float(self.txt_price.text())
        return float(v) if ok else None

    def _refresh_pricing(self, *_):
        ings = self.ingredients()
        cost = total_ingredient_cost(ings)
        self.lab_cost.setText(fmt_money(cost))
        try:
            quote = quote_blend(ings, self.pricing_mode(), self._margin(), self._manual_price())
        except ValidationFailed:
            self.lab_price.setText("—")
            self.lab_warn.setText("")
            return
        self.lab_price.setText(fmt_money(quote.final_price))
        self.lab_minimum.setText(fmt_money(quote.minimum_price))
        if quote.pricing_mode == PRICING_MANUAL and quote.margin_percent is not None:
            self.lab_price.setToolTip(f"Equivalent margin: {quote.margin_percent:.1f}%")
        self.lab_warn.setText("Price is below the recommended minimum" if quote.below_minimum else "")

    # ---- edit ----

    def _load(self, item: CustomBlendItem):
        data = item.custom_blend
        self.txt_name.setText(data.name)
        self.cmb_container.setEditText(data.container_type)
        self.txt_batch.setText(fmt_qty(item.quantity))
        self.txt_notes.setText(data.preparation_notes or "")
        for ing in data.ingredients:
            if ing.product_id not in self._products:
                # keep a line for a product that left the catalogue
                self._products[ing.product_id] = ProductRecord(
                    product_id=ing.product_id,
                    name=ing.name,
                    selling_price=float(ing.cost_per_unit),
                    current_stock=float(ing.available_stock),
                    unit_name=ing.unit_name,
                )
            self.add_ingredient_row(ing.product_id, ing.quantity)
        margin = derive_margin(item.unit_price, data.total_ingredient_cost, data.margin_percent)
        self.txt_margin.setText(fmt_qty(margin))

    # ---- result ----

    def item(self) -> CustomBlendItem | None:
        return self._item

    def accept(self):
        ings = self.ingredients()
        ok, batch = try_parse_float(self.txt_batch.text())
        try:
            item = build_custom_blend_item(
                self.txt_name.text(),
                ings,
                self.cmb_container.currentText(),
                pricing_mode=self.pricing_mode(),
                margin_percent=self._margin(),
                manual_price=self._manual_price(),
                quantity=batch if ok else self.txt_batch.text(),
                preparation_notes=self.txt_notes.text().strip(),
                mixed_by=self._mixed_by,
                item_id=self._existing.id if self._existing is not None else None,
            )
        except ValidationFailed as e:
            info(self, "Custom Blend", bullet_list(e.errors))
            return

        if self._check is not None:
            # advisory: an operator may still mix from short stock
            result = self._check(ings, item.quantity)
            notes = list(result.errors) + list(result.warnings)
            if notes and not self._confirm(
                self, "Ingredient Stock",
                bullet_list(notes) + "\n\nContinue with this blend?",
            ):
                return

        quote = quote_blend(ings, self.pricing_mode(), self._margin(), self._manual_price())
        if quote.below_minimum and not self._confirm(
            self, "Low Price",
            f"The price {fmt_money(quote.final_price)} is below the recommended minimum "
            f"of {fmt_money(quote.minimum_price)}.\n\nUse it anyway?",
        ):
            return
        self._item = item
        super().accept()
