"""Demo catalogue for a fresh database. Safe to run repeatedly."""


def seed(conn):
    row = conn.execute("SELECT COUNT(*) AS n FROM units").fetchone()
    if row and row["n"] == 0:
        conn.executemany(
            "INSERT INTO units(unit_name, abbreviation) VALUES (?, ?)",
            [
                ("millilitre", "ml"),
                ("drops", "drops"),
                ("milligram", "mg"),
                ("gram", "g"),
                ("capsule", "caps"),
                ("piece", "pc"),
            ],
        )

    row = conn.execute("SELECT COUNT(*) AS n FROM products").fetchone()
    if row and row["n"] == 0:
        units = {r["abbreviation"]: r["unit_id"] for r in conn.execute("SELECT unit_id, abbreviation FROM units")}
        conn.executemany(
            "INSERT INTO products(name, category, unit_id, container_capacity, selling_price, "
            "current_stock, discountable_for_members) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                ("Lavender Oil 30ml", "essential_oil", units["ml"], 30, 50.00, 300, 1),
                ("Peppermint Oil 10ml", "essential_oil", units["ml"], 10, 22.00, 120, 1),
                ("Chamomile Tincture 50ml", "tincture", units["ml"], 50, 38.00, 250, 1),
                ("Magnesium Glycinate", "supplement", units["caps"], 60, 32.00, 600, 1),
                ("Fish Oil Softgels", "supplement", units["caps"], 90, 45.00, 270, 0),
                ("Rosehip Carrier Oil 100ml", "carrier_oil", units["ml"], 100, 28.00, 500, 1),
            ],
        )
        conn.executemany(
            "INSERT INTO customers(name, email, phone, membership_tier, discount_percentage) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                ("Walk-in Customer", None, None, None, 0),
                ("Alex Tan", "alex@example.com", "91234567", "gold", 20),
                ("Sam Lee", "sam@example.com", "98765432", "silver", 10),
            ],
        )
        pid = {r["name"]: r["product_id"] for r in conn.execute("SELECT product_id, name FROM products")}
        cur = conn.execute(
            "INSERT INTO blend_templates(name, selling_price, batch_size, unit_id) VALUES (?, ?, ?, ?)",
            ("Calm Sleep Blend", 35.00, 1, units["ml"]),
        )
        conn.executemany(
            "INSERT INTO blend_template_ingredients(template_id, product_id, quantity) VALUES (?, ?, ?)",
            [
                (cur.lastrowid, pid["Lavender Oil 30ml"], 5),
                (cur.lastrowid, pid["Chamomile Tincture 50ml"], 10),
                (cur.lastrowid, pid["Rosehip Carrier Oil 100ml"], 15),
            ],
        )
        cur = conn.execute(
            "INSERT INTO bundles(name, bundle_price) VALUES (?, ?)",
            ("Wellness Starter Pack", 89.00),
        )
        conn.executemany(
            "INSERT INTO bundle_products(bundle_id, product_id, quantity) VALUES (?, ?, ?)",
            [
                (cur.lastrowid, pid["Magnesium Glycinate"], 1),
                (cur.lastrowid, pid["Fish Oil Softgels"], 1),
                (cur.lastrowid, pid["Peppermint Oil 10ml"], 1),
            ],
        )
    conn.commit()
