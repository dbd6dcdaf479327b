from __future__ import annotations

import sqlite3

from ...modules.transactions.records import (
    BundleAvailability,
    BundleAvailabilityLine,
    BundleComponent,
    BundleRecord,
)


class BundlesRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _components(self, bundle_id: int) -> tuple[BundleComponent, ...]:
        rows = self.conn.execute(
            "SELECT bp.product_id, p.name, bp.quantity, p.selling_price "
            "FROM bundle_products bp JOIN products p ON p.product_id = bp.product_id "
            "WHERE bp.bundle_id = ? ORDER BY bp.bundle_product_id",
            (int(bundle_id),),
        ).fetchall()
        return tuple(
            BundleComponent(int(r["product_id"]), r["name"], float(r["quantity"]), float(r["selling_price"]))
            for r in rows
        )

    def _to_record(self, r: sqlite3.Row) -> BundleRecord:
        return BundleRecord(
            bundle_id=int(r["bundle_id"]),
            name=r["name"],
            bundle_price=float(r["bundle_price"]),
            components=self._components(r["bundle_id"]),
            is_active=bool(r["is_active"]),
        )

    def list_bundles(self, active_only: bool = True) -> list[BundleRecord]:
        sql = "SELECT * FROM bundles "
        if active_only:
            sql += "WHERE is_active = 1 "
        return [self._to_record(r) for r in self.conn.execute(sql + "ORDER BY name").fetchall()]

    def get(self, bundle_id: int) -> BundleRecord | None:
        row = self.conn.execute("SELECT * FROM bundles WHERE bundle_id = ?", (int(bundle_id),)).fetchone()
        return self._to_record(row) if row else None

    def check_availability(self, bundle_id: int, quantity: float) -> BundleAvailability:
        """
        Per-constituent stock check for ``quantity`` bundles, in base units.
        Component quantities are whole containers, so a constituent needs
        ``component quantity × capacity × quantity``; it is unavailable when
        inactive or short.
        """
        rows = self.conn.execute(
            "SELECT bp.product_id, p.name, bp.quantity, p.container_capacity, p.current_stock, p.is_active "
            "FROM bundle_products bp JOIN products p ON p.product_id = bp.product_id "
            "WHERE bp.bundle_id = ? ORDER BY bp.bundle_product_id",
            (int(bundle_id),),
        ).fetchall()
        results = []
        for r in rows:
            cap = float(r["container_capacity"] or 0) or 1.0
            required = float(r["quantity"]) * cap * float(quantity)
            stock = float(r["current_stock"])
            reason = None
            if not r["is_active"]:
                reason = "Product inactive"
            elif stock < required:
                reason = "Insufficient stock"
            results.append(BundleAvailabilityLine(
                product_id=int(r["product_id"]),
                name=r["name"],
                available=reason is None,
                available_stock=stock,
                required_stock=required,
                reason=reason,
            ))
        return BundleAvailability(all(x.available for x in results), tuple(results))
