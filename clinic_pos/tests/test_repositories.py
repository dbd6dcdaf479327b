# tests/test_repositories.py

import logging
import re
from datetime import datetime, timedelta

import pytest

from clinic_pos.database import get_connection
from clinic_pos.database.repositories import DomainError, DraftsRepo, new_transaction_id
from clinic_pos.modules.transactions.builders import (
    build_bundle_item,
    build_consultation_item,
    build_custom_blend_item,
    build_fixed_blend_item,
    build_product_item,
)
from clinic_pos.modules.transactions.errors import BackendError
from clinic_pos.modules.transactions.items import BlendIngredient
from clinic_pos.modules.transactions.session import TransactionSession


def _stock(backend, pid):
    return backend.products.stock_of(pid)


def _session(backend, customer_id=None, walk_in="Pat Lim"):
    s = TransactionSession(backend.get_product)
    if customer_id is not None:
        s.set_customer(backend.fetch_customer(customer_id))
    else:
        s.set_walk_in(walk_in)
    return s


# ---------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------

def test_seeded_catalogue(backend, ids):
    names = [p.name for p in backend.list_products()]
    assert "Lavender Oil 30ml" in names and len(names) == 6

    lavender = backend.get_product(ids["lavender"])
    assert (lavender.selling_price, lavender.container_capacity, lavender.unit_name) == (50.0, 30.0, "ml")
    assert backend.get_product(ids["fish_oil"]).discount_flags.discountable_for_members is False
    assert backend.get_product(99999) is None


def test_customers_and_membership(backend, ids):
    assert backend.fetch_customer(ids["walk_in"]).member_benefits is None
    gold = backend.fetch_customer(ids["gold"])
    assert gold.member_benefits.membership_tier == "gold"
    assert gold.discount_percentage == 20.0
    assert [c.name for c in backend.customers.search("lee")] == ["Sam Lee"]

    backend.customers.set_discount(ids["gold"], 25)
    assert backend.fetch_customer(ids["gold"]).discount_percentage == 25.0


def test_templates_and_bundles(backend):
    [tpl] = backend.list_blend_templates()
    assert tpl.name == "Calm Sleep Blend"
    assert [(i.name, i.quantity) for i in tpl.ingredients] == [
        ("Lavender Oil 30ml", 5.0),
        ("Chamomile Tincture 50ml", 10.0),
        ("Rosehip Carrier Oil 100ml", 15.0),
    ]
    [bundle] = backend.list_bundles()
    assert bundle.bundle_price == 89.0
    assert bundle.individual_total_price == 99.0


def test_inactive_products_are_hidden_from_lists(backend, ids):
    backend.products.deactivate(ids["peppermint"])
    assert "Peppermint Oil 10ml" not in [p.name for p in backend.list_products()]
    assert backend.get_product(ids["peppermint"]).is_active is False


def test_get_connection_is_idempotent(tmp_path):
    path = tmp_path / "pos.db"
    first = get_connection(path)
    first.close()
    again = get_connection(path)
    try:
        assert again.execute("SELECT COUNT(*) FROM products").fetchone()[0] == 6
        assert again.execute("SELECT version FROM schema_version").fetchone()[0] == "1.0.0"
    finally:
        again.close()


def test_init_schema_creates_empty_tables(tmp_path):
    import sqlite3

    from clinic_pos.database.schema import init_schema

    path = tmp_path / "nested" / "pos.db"
    init_schema(path)
    init_schema(path)
    with sqlite3.connect(path) as conn:
        names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"products", "transactions", "inventory_movements", "drafts"} <= names
        assert conn.execute("SELECT COUNT(*) FROM products").fetchone()[0] == 0


# ---------------------------------------------------------------------
# Transactions and stock
# ---------------------------------------------------------------------

def test_create_deducts_stock_in_base_units(backend, ids):
    s = _session(backend, ids["gold"])
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 2))
    tid = backend.create_transaction(s.build_payload())

    assert re.fullmatch(r"TXN-\d{8}-0001", tid)
    assert _stock(backend, ids["lavender"]) == 240
    [mv] = backend.transactions.movements(tid)
    assert (mv["quantity_change"], mv["movement_type"]) == (-60, "sale")

    stored = backend.load_transaction(tid)
    assert stored["customer_name"] == "Alex Tan"
    assert stored["item_discount_total"] == 20.0
    assert stored["total_amount"] == 80.0
    assert stored["items"][0]["product_id"] == ids["lavender"]


def test_partial_sale_deducts_the_measured_amount(backend, ids):
    s = _session(backend)
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 7.5, "volume"))
    backend.create_transaction(s.build_payload())
    assert _stock(backend, ids["lavender"]) == 292.5


def test_stock_may_go_negative(backend, ids):
    s = _session(backend)
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 11))
    backend.create_transaction(s.build_payload())
    assert _stock(backend, ids["lavender"]) == -30


def test_blends_bundles_and_services(backend, ids):
    s = _session(backend)
    s.add_item(build_fixed_blend_item(backend.templates.get(ids["sleep_blend"]), 2))
    s.add_item(build_bundle_item(backend.bundles.get(ids["starter_pack"])))
    s.add_item(build_custom_blend_item(
        "Focus Roller",
        [BlendIngredient(ids["peppermint"], "Peppermint Oil 10ml", 3, 2.2)],
        "Roller 10ml", margin_percent=100, quantity=2,
    ))
    s.add_item(build_consultation_item("Initial consultation", 60))
    backend.create_transaction(s.build_payload())

    assert _stock(backend, ids["lavender"]) == 290
    assert _stock(backend, ids["chamomile"]) == 230
    assert _stock(backend, ids["rosehip"]) == 470
    # bundle constituents are whole containers
    assert _stock(backend, ids["magnesium"]) == 540
    assert _stock(backend, ids["fish_oil"]) == 180
    # 10 ml bottle from the bundle plus 2 × 3 ml in the custom blend
    assert _stock(backend, ids["peppermint"]) == 104


def test_numbering_is_per_day(backend, ids):
    lavender = backend.get_product(ids["lavender"])
    made = []
    for day in ("2026-01-05", "2026-01-05", "2026-01-06"):
        s = _session(backend)
        s.form.transaction_date = day
        s.add_item(build_product_item(lavender, 1))
        made.append(backend.create_transaction(s.build_payload()))
    assert made == ["TXN-20260105-0001", "TXN-20260105-0002", "TXN-20260106-0001"]
    assert new_transaction_id(backend.conn, "2026-01-05") == "TXN-20260105-0003"


def test_inventory_is_posted_once(backend, ids, caplog):
    s = _session(backend)
    item = s.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    tid = backend.create_transaction(s.build_payload())

    with caplog.at_level(logging.WARNING):
        with backend.conn:
            backend.transactions._post_inventory(tid, [item])
    assert "already exist" in caplog.text
    assert _stock(backend, ids["lavender"]) == 270
    assert len(backend.transactions.movements(tid)) == 1


def test_update_reverses_and_reposts(backend, ids):
    lavender = backend.get_product(ids["lavender"])
    s = _session(backend)
    line = s.add_item(build_product_item(lavender, 2))
    tid = backend.create_transaction(s.build_payload())

    edit = TransactionSession.restore(backend.load_transaction(tid), backend.get_product, transaction_id=tid)
    edit.update_quantity(line.id, 1)
    edit.add_item(build_product_item(backend.get_product(ids["peppermint"]), 1))
    assert backend.update_transaction(tid, edit.build_payload()) == tid

    assert _stock(backend, ids["lavender"]) == 270
    assert _stock(backend, ids["peppermint"]) == 110
    assert sorted(m["quantity_change"] for m in backend.transactions.movements(tid)) == [-30, -10]
    assert len(backend.load_transaction(tid)["items"]) == 2


def test_cancel_returns_stock_and_keeps_history(backend, ids):
    s = _session(backend)
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 2))
    tid = backend.create_transaction(s.build_payload())

    backend.cancel_transaction(tid)
    assert _stock(backend, ids["lavender"]) == 300
    kinds = [(m["movement_type"], m["quantity_change"]) for m in backend.transactions.movements(tid)]
    assert kinds == [("sale", -60), ("reversal", 60)]
    assert backend.load_transaction(tid)["status"] == "cancelled"

    with pytest.raises(BackendError):
        backend.cancel_transaction(tid)
    with pytest.raises(BackendError, match="cancelled"):
        backend.update_transaction(tid, s.build_payload())


def test_invalid_payloads_are_rejected(backend, ids):
    s = _session(backend)
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    payload = s.build_payload()

    with pytest.raises(BackendError, match="Customer name is required"):
        backend.create_transaction(dict(payload, customer_name="  "))
    with pytest.raises(BackendError, match="at least one item"):
        backend.create_transaction(dict(payload, items=[]))
    with pytest.raises(BackendError, match="Database error"):
        backend.create_transaction(dict(payload, paid_amount=-1))
    with pytest.raises(BackendError, match="not found"):
        backend.update_transaction("TXN-20990101-0001", payload)
    # nothing partially written
    assert backend.list_transactions() == []
    assert _stock(backend, ids["lavender"]) == 300


def test_list_transactions_summary(backend, ids):
    s = _session(backend, ids["silver"])
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    s.add_item(build_consultation_item("Follow-up", 30))
    s.set_paid_amount(200)
    tid = backend.create_transaction(s.build_payload())

    [row] = backend.list_transactions()
    assert row["transaction_id"] == tid
    assert row["item_count"] == 2
    assert row["total_amount"] == 75.0
    assert (row["payment_status"], row["status"]) == ("paid", "completed")


# ---------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------

def test_bundle_availability(backend, ids):
    ok = backend.check_bundle_availability(ids["starter_pack"], 1)
    assert ok.all_available
    assert [r.required_stock for r in ok.results] == [60, 90, 10]

    short = backend.check_bundle_availability(ids["starter_pack"], 4)
    assert not short.all_available
    fish = next(r for r in short.results if r.product_id == ids["fish_oil"])
    assert (fish.available, fish.reason, fish.required_stock, fish.available_stock) == (
        False, "Insufficient stock", 360, 270,
    )

    backend.products.deactivate(ids["peppermint"])
    mint = next(r for r in backend.check_bundle_availability(ids["starter_pack"], 1).results
                if r.product_id == ids["peppermint"])
    assert mint.reason == "Product inactive"


def test_ingredient_validation(backend, ids):
    lav = ids["lavender"]

    plenty = backend.validate_blend_ingredients([BlendIngredient(lav, "Lavender", 100, 1.0)])
    assert plenty.ok and plenty.warnings == ()

    low = backend.validate_blend_ingredients([BlendIngredient(lav, "Lavender", 100, 1.0)], 3)
    assert low.ok
    assert low.warnings == ("Lavender Oil 30ml: Low stock - consider reordering soon",)

    short = backend.validate_blend_ingredients([BlendIngredient(lav, "Lavender", 400, 1.0)])
    assert short.errors == (
        "Lavender Oil 30ml: insufficient stock (required 400 ml, available 300 ml)",
    )

    backend.products.deactivate(ids["rosehip"])
    odd = backend.validate_blend_ingredients([
        BlendIngredient(99999, "Mystery Oil", 1, 1.0),
        BlendIngredient(ids["rosehip"], "Rosehip", 1, 1.0),
    ])
    assert odd.errors == (
        "Mystery Oil: product not found",
        "Rosehip Carrier Oil 100ml: product is inactive",
    )


# ---------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------

class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)


def test_draft_upsert_overwrites_same_id(backend, ids):
    s = _session(backend)
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    backend.save_draft("draft_a", "First", s.draft_data())
    s.add_item(build_product_item(backend.get_product(ids["peppermint"]), 1))
    backend.save_draft("draft_a", "Second", s.draft_data())

    [row] = backend.list_drafts()
    assert (row["draft_id"], row["name"], row["item_count"]) == ("draft_a", "Second", 2)
    assert row["total_amount"] == 72.0
    assert row["customer_name"] == "Pat Lim"

    restored = TransactionSession.restore(backend.load_draft("draft_a"), backend.get_product)
    assert [it.name for it in restored.items] == ["Lavender Oil 30ml", "Peppermint Oil 10ml"]

    backend.delete_draft("draft_a")
    assert backend.list_drafts() == []
    assert backend.load_draft("draft_a") is None


def test_only_the_newest_drafts_are_kept(conn):
    clock = Clock()
    repo = DraftsRepo(conn, clock=clock, max_drafts=3)
    for n in range(5):
        repo.upsert(f"draft_{n}", f"Draft {n}", {"items": []})
        clock.advance(minutes=1)
    assert repo.count() == 3
    assert [d["draft_id"] for d in repo.list_drafts()] == ["draft_4", "draft_3", "draft_2"]


def test_drafts_expire(conn):
    clock = Clock()
    repo = DraftsRepo(conn, clock=clock, expiry_days=7)
    repo.upsert("old", "Old", {"items": []})
    clock.advance(days=5)
    repo.upsert("recent", "Recent", {"items": []})
    clock.advance(days=3)

    assert [d["draft_id"] for d in repo.list_drafts()] == ["recent"]
    assert repo.get("old") is None


def test_draft_needs_an_id(conn):
    with pytest.raises(DomainError):
        DraftsRepo(conn).upsert(" ", "Nameless", {"items": []})
