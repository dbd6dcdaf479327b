from __future__ import annotations
import sqlite3

from ...modules.transactions.records import CustomerRecord, MemberBenefits


_SELECT = (
    "SELECT customer_id, name, email, phone, membership_tier, discount_percentage "
    "FROM customers "
)


def _to_record(r: sqlite3.Row) -> CustomerRecord:
    benefits = None
    if r["membership_tier"]:
        benefits = MemberBenefits(
            membership_tier=r["membership_tier"],
            discount_percentage=float(r["discount_percentage"] or 0.0),
        )
    return CustomerRecord(
        customer_id=int(r["customer_id"]),
        name=r["name"],
        email=r["email"],
        phone=r["phone"],
        member_benefits=benefits,
    )


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Queries ----------------------------------------------------------

    def list_customers(self, active_only: bool = True) -> list[CustomerRecord]:
        where = "WHERE is_active = 1 " if active_only else ""
        rows = self.conn.execute(_SELECT + where + "ORDER BY name").fetchall()
        return [_to_record(r) for r in rows]

    def get(self, customer_id: int) -> CustomerRecord | None:
        row = self.conn.execute(_SELECT + "WHERE customer_id = ?", (int(customer_id),)).fetchone()
        return _to_record(row) if row else None

    def search(self, term: str, active_only: bool = True) -> list[CustomerRecord]:
        """
        LIKE match over name, email and phone.
        """
        pattern = f"%{term.strip()}%"
        sql = _SELECT + "WHERE (name LIKE ? OR email LIKE ? OR phone LIKE ?) "
        if active_only:
            sql += "AND is_active = 1 "
        rows = self.conn.execute(sql + "ORDER BY name", (pattern, pattern, pattern)).fetchall()
        return [_to_record(r) for r in rows]

    # ---- Writes -----------------------------------------------------------

    def create(
        self,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        membership_tier: str | None = None,
        discount_percentage: float = 0.0,
    ) -> int:
        cur = self.conn.execute(
            "INSERT INTO customers(name, email, phone, membership_tier, discount_percentage) "
            "VALUES (?, ?, ?, ?, ?)",
            (name.strip(), email, phone, membership_tier, float(discount_percentage)),
        )
        self.conn.commit()
        return int(cur.lastrowid)

    def set_discount(self, customer_id: int, discount_percentage: float, membership_tier: str | None = None) -> None:
        """Membership maintenance; open forms pick the new rate up on refresh."""
        self.conn.execute(
            "UPDATE customers SET discount_percentage = ?, "
            "membership_tier = COALESCE(?, membership_tier) WHERE customer_id = ?",
            (float(discount_percentage), membership_tier, int(customer_id)),
        )
        self.conn.commit()
