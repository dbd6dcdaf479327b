from __future__ import annotations

from datetime import datetime
import json
import logging
import sqlite3
from typing import Any, Iterable

from ...modules.transactions.items import (
    BUNDLE,
    CUSTOM_BLEND,
    FIXED_BLEND,
    PRODUCT,
    TransactionItem,
    item_from_dict,
)

_log = logging.getLogger(__name__)


class DomainError(Exception):
    """Domain-level error the controller/UI can surface."""
    pass


def new_transaction_id(conn: sqlite3.Connection, date_str: str) -> str:
    """TXN + yyyymmdd + -NNNN, numbered per day."""
    d = date_str.replace("-", "")
    prefix = f"TXN-{d}-"
    row = conn.execute(
        "SELECT MAX(transaction_id) AS m FROM transactions WHERE transaction_id LIKE ?",
        (prefix + "%",),
    ).fetchone()
    last = int(row["m"].split("-")[-1]) if row and row["m"] else 0
    return f"{prefix}{last+1:04d}"


_HEADER_COLS = (
    "transaction_date", "customer_id", "customer_name", "customer_email", "customer_phone",
    "subtotal", "item_discount_total", "discount_amount", "discount_mode", "discount_text",
    "total_amount", "paid_amount", "change_amount", "payment_method", "payment_status",
    "status", "notes", "currency",
)


class TransactionsRepo:
    """
    Finalised transactions and the stock they consume.

    Stock is deducted in base units through inventory_movements; each
    transaction posts its 'sale' movements exactly once. Updating a
    transaction reverses what was posted before re-posting the new lines.
    Stock is allowed to go negative.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_transactions(self, limit: int = 500) -> list[dict]:
        rows = self.conn.execute(
            "SELECT t.transaction_id, t.transaction_date, t.customer_name, t.total_amount, "
            "       t.paid_amount, t.payment_status, t.status, "
            "       (SELECT COUNT(*) FROM transaction_items i "
            "         WHERE i.transaction_id = t.transaction_id) AS item_count "
            "FROM transactions t "
            "ORDER BY t.transaction_date DESC, t.transaction_id DESC LIMIT ?",
            (int(limit),),
        ).fetchall()
        return [dict(r) for r in rows]

    def get(self, transaction_id: str) -> dict | None:
        """Header plus the stored line payloads, shaped like the form data."""
        row = self.conn.execute(
            "SELECT * FROM transactions WHERE transaction_id = ?", (transaction_id,)
        ).fetchone()
        if row is None:
            return None
        d = dict(row)
        d["items"] = [json.loads(r["payload"]) for r in self.conn.execute(
            "SELECT payload FROM transaction_items WHERE transaction_id = ? ORDER BY line_no",
            (transaction_id,),
        ).fetchall()]
        return d

    def movements(self, transaction_id: str) -> list[dict]:
        rows = self.conn.execute(
            "SELECT product_id, item_id, quantity_change, movement_type "
            "FROM inventory_movements WHERE transaction_id = ? ORDER BY movement_id",
            (transaction_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    @staticmethod
    def _check_payload(payload: dict) -> list[TransactionItem]:
        if not (payload.get("customer_name") or "").strip():
            raise DomainError("Customer name is required.")
        try:
            items = [item_from_dict(i) for i in payload.get("items") or []]
        except (TypeError, ValueError) as e:
            raise DomainError(f"Invalid item: {e}") from e
        if not items:
            raise DomainError("A transaction needs at least one item.")
        return items

    def create(self, payload: dict[str, Any]) -> str:
        items = self._check_payload(payload)
        date_str = payload.get("transaction_date") or datetime.now().date().isoformat()
        with self.conn:
            tid = new_transaction_id(self.conn, date_str)
            values = {c: payload.get(c) for c in _HEADER_COLS}
            values["transaction_date"] = date_str
            cols = ", ".join(("transaction_id",) + _HEADER_COLS)
            marks = ", ".join("?" for _ in range(len(_HEADER_COLS) + 1))
            self.conn.execute(
                f"INSERT INTO transactions({cols}) VALUES ({marks})",
                (tid, *[self._coerce(c, values[c]) for c in _HEADER_COLS]),
            )
            self._insert_items(tid, items)
            self._post_inventory(tid, items)
        _log.info("Transaction %s created (%d items)", tid, len(items))
        return tid

    def update(self, transaction_id: str, payload: dict[str, Any]) -> str:
        items = self._check_payload(payload)
        with self.conn:
            row = self.conn.execute(
                "SELECT status FROM transactions WHERE transaction_id = ?", (transaction_id,)
            ).fetchone()
            if row is None:
                raise DomainError(f"Transaction {transaction_id} not found.")
            if row["status"] == "cancelled":
                raise DomainError("A cancelled transaction cannot be edited.")
            sets = ", ".join(f"{c}=?" for c in _HEADER_COLS)
            values = {c: payload.get(c) for c in _HEADER_COLS}
            values["transaction_date"] = payload.get("transaction_date") or datetime.now().date().isoformat()
            self.conn.execute(
                f"UPDATE transactions SET {sets}, updated_at=CURRENT_TIMESTAMP WHERE transaction_id=?",
                (*[self._coerce(c, values[c]) for c in _HEADER_COLS], transaction_id),
            )
            self.conn.execute("DELETE FROM transaction_items WHERE transaction_id = ?", (transaction_id,))
            self._insert_items(transaction_id, items)
            self._reverse_inventory(transaction_id)
            self._post_inventory(transaction_id, items)
        _log.info("Transaction %s updated (%d items)", transaction_id, len(items))
        return transaction_id

    def cancel(self, transaction_id: str) -> None:
        """Cancel and give the stock back."""
        with self.conn:
            cur = self.conn.execute(
                "UPDATE transactions SET status='cancelled', updated_at=CURRENT_TIMESTAMP "
                "WHERE transaction_id=? AND status <> 'cancelled'",
                (transaction_id,),
            )
            if cur.rowcount == 0:
                raise DomainError(f"Transaction {transaction_id} not found or already cancelled.")
            self._reverse_inventory(transaction_id, keep_history=True)

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------
    @staticmethod
    def _coerce(col: str, value):
        if col in ("customer_name",):
            return (value or "").strip()
        if col in ("discount_mode",):
            return value or "amount"
        if col in ("discount_text", "payment_method", "payment_status", "status", "currency"):
            defaults = {"discount_text": "", "payment_method": "cash", "payment_status": "pending",
                        "status": "pending", "currency": "SGD"}
            return value if value not in (None, "") else defaults[col]
        if col in ("subtotal", "item_discount_total", "discount_amount", "total_amount",
                   "paid_amount", "change_amount"):
            return float(value or 0.0)
        return value

    def _insert_items(self, tid: str, items: Iterable[TransactionItem]) -> None:
        for n, it in enumerate(items, start=1):
            self.conn.execute(
                "INSERT INTO transaction_items(transaction_id, line_no, item_id, item_type, name, "
                "quantity, unit_price, discount_amount, total_price, payload) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    tid, n, it.id, it.item_type, it.name, float(it.quantity),
                    float(it.unit_price), float(it.discount_amount), float(it.total_price),
                    json.dumps(it.to_dict()),
                ),
            )

    def _deductions(self, items: Iterable[TransactionItem]) -> list[tuple[int, str, float]]:
        """(product_id, item_id, base units consumed) for every stock-tracked line."""
        out: list[tuple[int, str, float]] = []
        for it in items:
            if it.item_type == PRODUCT:
                if it.is_service:
                    continue
                out.append((int(it.product_id), it.id, float(it.converted_quantity)))
            elif it.item_type == FIXED_BLEND:
                rows = self.conn.execute(
                    "SELECT product_id, quantity FROM blend_template_ingredients WHERE template_id = ?",
                    (int(it.blend_template_id),),
                ).fetchall()
                for r in rows:
                    out.append((int(r["product_id"]), it.id, float(r["quantity"]) * float(it.quantity)))
            elif it.item_type == CUSTOM_BLEND:
                for ing in it.custom_blend.ingredients:
                    out.append((int(ing.product_id), it.id, float(ing.quantity) * float(it.quantity)))
            elif it.item_type == BUNDLE:
                # bundle components are whole containers
                for bp in it.bundle.bundle_products:
                    r = self.conn.execute(
                        "SELECT container_capacity FROM products WHERE product_id = ?",
                        (int(bp.product_id),),
                    ).fetchone()
                    cap = float(r["container_capacity"] or 0) if r else 0.0
                    out.append((int(bp.product_id), it.id, float(bp.quantity) * (cap or 1.0) * float(it.quantity)))
        return out

    def _post_inventory(self, tid: str, items: list[TransactionItem]) -> None:
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM inventory_movements "
            "WHERE transaction_id = ? AND movement_type = 'sale'",
            (tid,),
        ).fetchone()
        if row and row["n"]:
            _log.warning("Inventory movements already exist for transaction %s. Skipping", tid)
            return
        for product_id, item_id, qty in self._deductions(items):
            self.conn.execute(
                "INSERT INTO inventory_movements(transaction_id, product_id, item_id, quantity_change, movement_type) "
                "VALUES (?, ?, ?, ?, 'sale')",
                (tid, product_id, item_id, -qty),
            )
            self.conn.execute(
                "UPDATE products SET current_stock = current_stock - ? WHERE product_id = ?",
                (qty, product_id),
            )

    def _reverse_inventory(self, tid: str, keep_history: bool = False) -> None:
        """
        Put back everything the transaction consumed. On edit the old rows are
        dropped (they get re-posted); on cancel 'reversal' rows are added.
        """
        rows = self.conn.execute(
            "SELECT product_id, SUM(quantity_change) AS q FROM inventory_movements "
            "WHERE transaction_id = ? GROUP BY product_id",
            (tid,),
        ).fetchall()
        for r in rows:
            q = float(r["q"] or 0.0)
            if not q:
                continue
            self.conn.execute(
                "UPDATE products SET current_stock = current_stock - ? WHERE product_id = ?",
                (q, int(r["product_id"])),
            )
            if keep_history:
                self.conn.execute(
                    "INSERT INTO inventory_movements(transaction_id, product_id, quantity_change, movement_type) "
                    "VALUES (?, ?, ?, 'reversal')",
                    (tid, int(r["product_id"]), -q),
                )
        if not keep_history:
            self.conn.execute("DELETE FROM inventory_movements WHERE transaction_id = ?", (tid,))
