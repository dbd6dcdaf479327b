# clinic_pos/database/repositories/products_repo.py
from __future__ import annotations

from contextlib import contextmanager
import sqlite3
from typing import Iterable, Sequence

from ...modules.transactions.items import BlendIngredient
from ...modules.transactions.records import DiscountFlags, IngredientCheck, ProductRecord
from ...utils.helpers import fmt_qty


class DomainError(Exception):
    """Domain-level error the controller/UI can surface (toast/snackbar)."""
    pass


_SELECT = (
    "SELECT p.product_id, p.name, p.selling_price, p.current_stock, p.container_capacity, "
    "       p.unit_id, COALESCE(u.abbreviation, 'unit') AS unit_name, "
    "       p.discountable_for_members, p.discountable_for_all, p.discountable_in_blends, "
    "       p.is_active, p.is_service "
    "FROM products p LEFT JOIN units u ON u.unit_id = p.unit_id "
)

# warn when what is left would not cover the same request twice
LOW_STOCK_FACTOR = 2.0


def _to_record(r: sqlite3.Row) -> ProductRecord:
    return ProductRecord(
        product_id=int(r["product_id"]),
        name=r["name"],
        selling_price=float(r["selling_price"]),
        current_stock=float(r["current_stock"]),
        container_capacity=float(r["container_capacity"]) if r["container_capacity"] is not None else None,
        unit_id=r["unit_id"],
        unit_name=r["unit_name"],
        discount_flags=DiscountFlags(
            discountable_for_members=bool(r["discountable_for_members"]),
            discountable_for_all=bool(r["discountable_for_all"]),
            discountable_in_blends=bool(r["discountable_in_blends"]),
        ),
        is_active=bool(r["is_active"]),
        is_service=bool(r["is_service"]),
    )


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- TX helper ----------------------------

    @contextmanager
    def _immediate_tx(self):
        """
        Start an IMMEDIATE transaction (write lock once first write happens),
        commit on success, rollback on error.
        """
        cur = self.conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            yield
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    # ---------------------------- Queries ------------------------------

    def list_products(self, active_only: bool = True) -> list[ProductRecord]:
        where = "WHERE p.is_active = 1 " if active_only else ""
        rows = self.conn.execute(_SELECT + where + "ORDER BY p.name").fetchall()
        return [_to_record(r) for r in rows]

    def get(self, product_id: int) -> ProductRecord | None:
        row = self.conn.execute(_SELECT + "WHERE p.product_id = ?", (int(product_id),)).fetchone()
        return _to_record(row) if row else None

    def get_many(self, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        ids = sorted({int(i) for i in product_ids})
        if not ids:
            return {}
        marks = ",".join("?" for _ in ids)
        rows = self.conn.execute(_SELECT + f"WHERE p.product_id IN ({marks})", ids).fetchall()
        return {int(r["product_id"]): _to_record(r) for r in rows}

    def stock_of(self, product_id: int) -> float:
        row = self.conn.execute(
            "SELECT current_stock FROM products WHERE product_id = ?", (int(product_id),)
        ).fetchone()
        if row is None:
            raise DomainError(f"Product #{product_id} not found.")
        return float(row["current_stock"])

    # ---------------------------- Writes -------------------------------

    def create(
        self,
        name: str,
        selling_price: float,
        *,
        current_stock: float = 0.0,
        container_capacity: float = 1.0,
        unit_id: int | None = None,
        category: str | None = None,
        discountable_for_members: bool = True,
        is_service: bool = False,
    ) -> int:
        if not (name or "").strip():
            raise DomainError("Product name cannot be empty.")
        with self._immediate_tx():
            cur = self.conn.execute(
                "INSERT INTO products(name, category, unit_id, container_capacity, selling_price, "
                "current_stock, discountable_for_members, is_service) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    name.strip(), category, unit_id, container_capacity, selling_price,
                    current_stock, int(discountable_for_members), int(is_service),
                ),
            )
            return int(cur.lastrowid)

    def set_selling_price(self, product_id: int, price: float) -> None:
        """Catalogue maintenance; the sales screens only read prices."""
        with self._immediate_tx():
            self.conn.execute(
                "UPDATE products SET selling_price = ? WHERE product_id = ?",
                (float(price), int(product_id)),
            )

    def deactivate(self, product_id: int) -> None:
        """Catalogue maintenance; inactive products drop out of the pickers."""
        with self._immediate_tx():
            self.conn.execute("UPDATE products SET is_active = 0 WHERE product_id = ?", (int(product_id),))

    # ---------------------------- Blend ingredient check ---------------

    def validate_ingredients(
        self,
        ingredients: Sequence[BlendIngredient],
        batch_multiplier: float = 1.0,
    ) -> IngredientCheck:
        """
        Advisory stock check for blend ingredients.

        Errors: product missing, product inactive, not enough stock for
        ``quantity × batch_multiplier``. Warnings: stock would not cover the
        same request twice. The caller decides whether to go ahead.
        """
        products = self.get_many(i.product_id for i in ingredients)
        errors: list[str] = []
        warnings: list[str] = []
        for ing in ingredients:
            p = products.get(int(ing.product_id))
            if p is None:
                errors.append(f"{ing.name}: product not found")
                continue
            if not p.is_active:
                errors.append(f"{p.name}: product is inactive")
                continue
            required = float(ing.quantity) * float(batch_multiplier)
            if p.current_stock < required:
                errors.append(
                    f"{p.name}: insufficient stock (required {fmt_qty(required)} {p.unit_name}, "
                    f"available {fmt_qty(p.current_stock)} {p.unit_name})"
                )
            elif p.current_stock < required * LOW_STOCK_FACTOR:
                warnings.append(f"{p.name}: Low stock - consider reordering soon")
        return IngredientCheck(tuple(errors), tuple(warnings))
