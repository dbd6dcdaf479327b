from PySide6.QtWidgets import (
    QDialog, QFormLayout, QDialogButtonBox, QVBoxLayout, QComboBox, QLineEdit, QLabel,
)
from PySide6.QtCore import Qt

from .builders import build_product_item
from .conversion import compute_quantity, smart_tip
from .errors import ValidationFailed
from .items import SALE_QUANTITY, SALE_VOLUME, ProductItem
from .records import ProductRecord
from .stock import OverrideFlow, StockState, product_stock_lines
from ...utils.helpers import fmt_money, fmt_qty
from ...utils.ui_helpers import info, confirm, bullet_list
from ...utils.validators import try_parse_float


def run_override_flow(parent, flow: OverrideFlow, quantity_text: str, confirm_fn=confirm) -> float | None:
    """
    Drive an OverrideFlow from a dialog. Returns the committed quantity, or
    None when the quantity was invalid or the operator backed out.
    """
    try:
        state = flow.enter(quantity_text)
    except ValidationFailed as e:
        info(parent, "Invalid Quantity", bullet_list(e.errors))
        return None
    if state == StockState.WITHIN_LIMIT:
        return flow.committed_quantity
    prompt = flow.prompt()
    if confirm_fn(parent, "Out-of-Stock Sale", prompt.message):
        return flow.confirm()
    flow.cancel()
    return None


class QuantityDialog(QDialog):
    """
    Pick how much of a product to sell: whole containers or a partial amount.

    ``in_cart`` is the base-unit quantity of this product already on other
    lines, so the stock comparison covers the whole cart.
    """

    def __init__(self, product: ProductRecord, parent=None, in_cart: float = 0.0,
                 sale_type: str = SALE_QUANTITY, quantity: float | None = None, confirm_fn=confirm):
        super().__init__(parent)
        self.setWindowTitle(f"Add {product.name}")
        self.setModal(True)
        self.product = product
        self.in_cart = float(in_cart)
        self._confirm = confirm_fn
        self._item: ProductItem | None = None

        self.cmb_mode = QComboBox()
        self.cmb_mode.addItem("Whole units", SALE_QUANTITY)
        self.cmb_mode.addItem(f"Partial amount ({product.unit_name})", SALE_VOLUME)
        self.cmb_mode.setCurrentIndex(1 if sale_type == SALE_VOLUME else 0)
        self.txt_qty = QLineEdit()
        self.txt_qty.setPlaceholderText("Quantity")
        if quantity is not None:
            self.txt_qty.setText(fmt_qty(quantity))
        self.lbl_stock = QLabel()
        self.lbl_price = QLabel()
        self.lbl_tip = QLabel()
        self.lbl_tip.setStyleSheet("color: #555;")
        self.lbl_warn = QLabel()
        self.lbl_warn.setStyleSheet("color: #b45309;")

        lay = QVBoxLayout(self)
        form = QFormLayout()
        form.addRow("Sell by", self.cmb_mode)
        form.addRow("Quantity*", self.txt_qty)
        form.addRow("Available", self.lbl_stock)
        form.addRow("Price", self.lbl_price)
        lay.addLayout(form)
        lay.addWidget(self.lbl_tip)
        lay.addWidget(self.lbl_warn)
        self.buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        lay.addWidget(self.buttons)

        self.cmb_mode.currentIndexChanged.connect(self._refresh)
        self.txt_qty.textChanged.connect(self._refresh)
        self._refresh()
        self.txt_qty.setFocus(Qt.OtherFocusReason)

    def sale_type(self) -> str:
        return self.cmb_mode.currentData()

    def _refresh(self, *_):
        p = self.product
        available = p.current_stock - self.in_cart
        self.lbl_stock.setText(f"{fmt_qty(available)} {p.unit_name}")
        ok, q = try_parse_float(self.txt_qty.text())
        if not ok or q is None or q <= 0:
            self.lbl_price.setText("—")
            self.lbl_tip.setText("")
            self.lbl_warn.setText("")
            return
        res = compute_quantity(q, p.selling_price, p.container_capacity, self.sale_type())
        self.lbl_price.setText(fmt_money(res.total_price))
        tip = smart_tip(q, p.unit_name, self.sale_type())
        self.lbl_tip.setText(f"Tip: {tip}" if tip else "")
        short = product_stock_lines(p, q, self.sale_type(), self.in_cart)[0]
        self.lbl_warn.setText(
            "Out-of-stock sale - will create negative inventory" if short.is_short else ""
        )

    def item(self) -> ProductItem | None:
        return self._item

    def accept(self):
        flow = OverrideFlow(
            lambda q: product_stock_lines(self.product, q, self.sale_type(), self.in_cart),
            label=self.product.name,
        )
        qty = run_override_flow(self, flow, self.txt_qty.text(), self._confirm)
        if qty is None:
            self.txt_qty.setFocus()
            return
        self._item = build_product_item(self.product, qty, self.sale_type())
        super().accept()
