from pathlib import Path
import sqlite3
import sys

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CATALOGUE ======================== */

CREATE TABLE IF NOT EXISTS units (
    unit_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    unit_name    TEXT NOT NULL UNIQUE,
    abbreviation TEXT NOT NULL
);

/* current_stock is in base units and may go negative after an override */
CREATE TABLE IF NOT EXISTS products (
    product_id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name                     TEXT NOT NULL,
    category                 TEXT,
    unit_id                  INTEGER,
    container_capacity       REAL NOT NULL DEFAULT 1 CHECK (container_capacity >= 0),
    selling_price            REAL NOT NULL DEFAULT 0 CHECK (selling_price >= 0),
    current_stock            REAL NOT NULL DEFAULT 0,
    discountable_for_members INTEGER NOT NULL DEFAULT 1 CHECK (discountable_for_members IN (0,1)),
    discountable_for_all     INTEGER NOT NULL DEFAULT 1 CHECK (discountable_for_all IN (0,1)),
    discountable_in_blends   INTEGER NOT NULL DEFAULT 0 CHECK (discountable_in_blends IN (0,1)),
    is_service               INTEGER NOT NULL DEFAULT 0 CHECK (is_service IN (0,1)),
    is_active                INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    FOREIGN KEY (unit_id) REFERENCES units(unit_id)
);
CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);

CREATE TABLE IF NOT EXISTS customers (
    customer_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL,
    email               TEXT,
    phone               TEXT,
    membership_tier     TEXT,
    discount_percentage REAL NOT NULL DEFAULT 0
                        CHECK (discount_percentage >= 0 AND discount_percentage <= 100),
    is_active           INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

CREATE TABLE IF NOT EXISTS blend_templates (
    template_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    name          TEXT NOT NULL,
    selling_price REAL NOT NULL CHECK (selling_price >= 0),
    batch_size    REAL NOT NULL DEFAULT 1 CHECK (batch_size > 0),
    unit_id       INTEGER,
    is_active     INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    FOREIGN KEY (unit_id) REFERENCES units(unit_id)
);

CREATE TABLE IF NOT EXISTS blend_template_ingredients (
    ingredient_id INTEGER PRIMARY KEY AUTOINCREMENT,
    template_id   INTEGER NOT NULL,
    product_id    INTEGER NOT NULL,
    quantity      REAL NOT NULL CHECK (quantity > 0),
    FOREIGN KEY (template_id) REFERENCES blend_templates(template_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id)  REFERENCES products(product_id)
);

CREATE TABLE IF NOT EXISTS bundles (
    bundle_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    bundle_price REAL NOT NULL CHECK (bundle_price >= 0),
    is_active    INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

CREATE TABLE IF NOT EXISTS bundle_products (
    bundle_product_id INTEGER PRIMARY KEY AUTOINCREMENT,
    bundle_id         INTEGER NOT NULL,
    product_id        INTEGER NOT NULL,
    quantity          REAL NOT NULL CHECK (quantity > 0),
    FOREIGN KEY (bundle_id)  REFERENCES bundles(bundle_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);

/* ======================== TRANSACTIONS ======================== */

CREATE TABLE IF NOT EXISTS transactions (
    transaction_id      TEXT PRIMARY KEY,
    transaction_date    DATE NOT NULL DEFAULT CURRENT_DATE,
    customer_id         INTEGER,
    customer_name       TEXT NOT NULL,
    customer_email      TEXT,
    customer_phone      TEXT,
    subtotal            REAL NOT NULL DEFAULT 0,
    item_discount_total REAL NOT NULL DEFAULT 0,
    discount_amount     REAL NOT NULL DEFAULT 0,
    discount_mode       TEXT NOT NULL DEFAULT 'amount' CHECK (discount_mode IN ('amount','percentage')),
    discount_text       TEXT NOT NULL DEFAULT '',
    total_amount        REAL NOT NULL DEFAULT 0,
    paid_amount         REAL NOT NULL DEFAULT 0 CHECK (paid_amount >= 0),
    change_amount       REAL NOT NULL DEFAULT 0,
    payment_method      TEXT NOT NULL DEFAULT 'cash',
    payment_status      TEXT NOT NULL DEFAULT 'pending'
                        CHECK (payment_status IN ('pending','partial','paid')),
    status              TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending','completed','cancelled')),
    notes               TEXT,
    currency            TEXT NOT NULL DEFAULT 'SGD',
    created_at          TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at          TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(customer_id)
);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(transaction_date);

/* one row per line; `payload` keeps the full line (variant data included) as JSON */
CREATE TABLE IF NOT EXISTS transaction_items (
    row_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id  TEXT NOT NULL,
    line_no         INTEGER NOT NULL,
    item_id         TEXT NOT NULL,
    item_type       TEXT NOT NULL CHECK (item_type IN
                    ('product','fixed_blend','custom_blend','bundle','consultation','miscellaneous')),
    name            TEXT NOT NULL,
    quantity        REAL NOT NULL CHECK (quantity > 0),
    unit_price      REAL NOT NULL,
    discount_amount REAL NOT NULL DEFAULT 0,
    total_price     REAL NOT NULL,
    payload         TEXT NOT NULL,
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_transaction_items_tx ON transaction_items(transaction_id);

CREATE TABLE IF NOT EXISTS inventory_movements (
    movement_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_id  TEXT NOT NULL,
    product_id      INTEGER NOT NULL,
    item_id         TEXT,
    quantity_change REAL NOT NULL,
    movement_type   TEXT NOT NULL CHECK (movement_type IN ('sale','reversal')),
    created_at      TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (transaction_id) REFERENCES transactions(transaction_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id)     REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_movements_tx ON inventory_movements(transaction_id);

CREATE TABLE IF NOT EXISTS drafts (
    draft_id      TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    customer_name TEXT,
    item_count    INTEGER NOT NULL DEFAULT 0,
    total_amount  REAL NOT NULL DEFAULT 0,
    form_data     TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_drafts_updated ON drafts(updated_at);
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema on an open connection, e.g. ':memory:' in tests."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "clinic_pos.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
        conn.commit()


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "clinic_pos.db"
    init_schema(target)
    print(f"Schema applied to {target}")
