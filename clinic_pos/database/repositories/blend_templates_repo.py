from __future__ import annotations

import sqlite3

from ...modules.transactions.records import BlendTemplate, TemplateIngredient


class BlendTemplatesRepo:
    """Fixed blend recipes: a name, a batch price and the ingredients one batch uses."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _ingredients(self, template_id: int) -> tuple[TemplateIngredient, ...]:
        rows = self.conn.execute(
            "SELECT i.product_id, p.name, i.quantity, COALESCE(u.abbreviation, 'unit') AS unit_name "
            "FROM blend_template_ingredients i "
            "JOIN products p ON p.product_id = i.product_id "
            "LEFT JOIN units u ON u.unit_id = p.unit_id "
            "WHERE i.template_id = ? ORDER BY i.ingredient_id",
            (int(template_id),),
        ).fetchall()
        return tuple(
            TemplateIngredient(int(r["product_id"]), r["name"], float(r["quantity"]), r["unit_name"])
            for r in rows
        )

    def _to_record(self, r: sqlite3.Row) -> BlendTemplate:
        return BlendTemplate(
            template_id=int(r["template_id"]),
            name=r["name"],
            selling_price=float(r["selling_price"]),
            batch_size=float(r["batch_size"]),
            unit_id=r["unit_id"],
            unit_name=r["unit_name"],
            ingredients=self._ingredients(r["template_id"]),
            is_active=bool(r["is_active"]),
        )

    def list_templates(self, active_only: bool = True) -> list[BlendTemplate]:
        sql = (
            "SELECT t.*, COALESCE(u.abbreviation, 'ml') AS unit_name "
            "FROM blend_templates t LEFT JOIN units u ON u.unit_id = t.unit_id "
        )
        if active_only:
            sql += "WHERE t.is_active = 1 "
        rows = self.conn.execute(sql + "ORDER BY t.name").fetchall()
        return [self._to_record(r) for r in rows]

    def get(self, template_id: int) -> BlendTemplate | None:
        row = self.conn.execute(
            "SELECT t.*, COALESCE(u.abbreviation, 'ml') AS unit_name "
            "FROM blend_templates t LEFT JOIN units u ON u.unit_id = t.unit_id "
            "WHERE t.template_id = ?",
            (int(template_id),),
        ).fetchone()
        return self._to_record(row) if row else None

    def create(self, name: str, selling_price: float, ingredients: list[tuple[int, float]],
               batch_size: float = 1.0, unit_id: int | None = None) -> int:
        cur = self.conn.execute(
            "INSERT INTO blend_templates(name, selling_price, batch_size, unit_id) VALUES (?, ?, ?, ?)",
            (name, float(selling_price), float(batch_size), unit_id),
        )
        tid = int(cur.lastrowid)
        self.conn.executemany(
            "INSERT INTO blend_template_ingredients(template_id, product_id, quantity) VALUES (?, ?, ?)",
            [(tid, int(pid), float(q)) for pid, q in ingredients],
        )
        self.conn.commit()
        return tid
