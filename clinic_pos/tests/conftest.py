# clinic_pos/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns QApplication (use qapp/qtbot fixtures)
# - Every test gets its own in-memory database: schema + demo seed
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Handy ids + record fixtures for the pure engine suites
# - Silence benign Qt signal warnings
# ---------------------------------------------------------------------

from __future__ import annotations

import os
import re
import sqlite3

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6 import QtCore

from clinic_pos.database import get_connection
from clinic_pos.database.backend import SqlitePosBackend
from clinic_pos.modules.transactions.records import (
    BlendTemplate,
    BundleComponent,
    BundleRecord,
    CustomerRecord,
    DiscountFlags,
    MemberBenefits,
    ProductRecord,
    TemplateIngredient,
)


# ---------- Qt: let pytest-qt own the app ----------
@pytest.fixture(scope="session")
def app(qapp):
    return qapp


# ---------- Silence benign Qt warnings ----------
_BENIGN_QT_PATTERNS = [
    r"^QObject::connect: .* already connected",
    r"^QBasicTimer::stop: Failed\. Platform timer not running\.",
    r"^This plugin does not support",
]


@pytest.fixture(autouse=True, scope="session")
def _silence_benign_qt():
    """Filter common harmless Qt messages during tests."""
    original = QtCore.qInstallMessageHandler(None)
    rx = [re.compile(p) for p in _BENIGN_QT_PATTERNS]

    def handler(msg_type, context, message):
        text = str(message)
        for r in rx:
            if r.search(text):
                return
        QtCore.qInstallMessageHandler(None)
        try:
            QtCore.qDebug(message)
        finally:
            QtCore.qInstallMessageHandler(handler)

    QtCore.qInstallMessageHandler(handler)
    try:
        yield
    finally:
        QtCore.qInstallMessageHandler(original)


# ---------- Database ----------
@pytest.fixture()
def conn():
    """Fresh in-memory database with schema and demo catalogue."""
    con = get_connection(":memory:")
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def backend(conn: sqlite3.Connection) -> SqlitePosBackend:
    return SqlitePosBackend(conn)


@pytest.fixture()
def ids(conn: sqlite3.Connection) -> dict:
    """Seeded ids looked up by name."""
    def one(sql: str, *p):
        r = conn.execute(sql, p).fetchone()
        return None if r is None else r[0]

    return {
        "lavender": one("SELECT product_id FROM products WHERE name='Lavender Oil 30ml'"),
        "peppermint": one("SELECT product_id FROM products WHERE name='Peppermint Oil 10ml'"),
        "chamomile": one("SELECT product_id FROM products WHERE name='Chamomile Tincture 50ml'"),
        "magnesium": one("SELECT product_id FROM products WHERE name='Magnesium Glycinate'"),
        "fish_oil": one("SELECT product_id FROM products WHERE name='Fish Oil Softgels'"),
        "rosehip": one("SELECT product_id FROM products WHERE name='Rosehip Carrier Oil 100ml'"),
        "walk_in": one("SELECT customer_id FROM customers WHERE name='Walk-in Customer'"),
        "gold": one("SELECT customer_id FROM customers WHERE name='Alex Tan'"),
        "silver": one("SELECT customer_id FROM customers WHERE name='Sam Lee'"),
        "sleep_blend": one("SELECT template_id FROM blend_templates WHERE name='Calm Sleep Blend'"),
        "starter_pack": one("SELECT bundle_id FROM bundles WHERE name='Wellness Starter Pack'"),
    }


# ---------- Records for the engine suites ----------
@pytest.fixture()
def oil() -> ProductRecord:
    """30 ml bottle at 50.00, 300 ml on hand."""
    return ProductRecord(
        product_id=1, name="Lavender Oil 30ml", selling_price=50.0,
        current_stock=300.0, container_capacity=30.0, unit_name="ml",
    )


@pytest.fixture()
def non_discountable() -> ProductRecord:
    return ProductRecord(
        product_id=2, name="Fish Oil Softgels", selling_price=45.0,
        current_stock=270.0, container_capacity=90.0, unit_name="caps",
        discount_flags=DiscountFlags(discountable_for_members=False),
    )


@pytest.fixture()
def catalogue(oil, non_discountable) -> dict[int, ProductRecord]:
    return {oil.product_id: oil, non_discountable.product_id: non_discountable}


@pytest.fixture()
def lookup(catalogue):
    return catalogue.get


@pytest.fixture()
def gold_member() -> CustomerRecord:
    return CustomerRecord(
        customer_id=7, name="Alex Tan", email="alex@example.com", phone="91234567",
        member_benefits=MemberBenefits("gold", 20.0),
    )


@pytest.fixture()
def template() -> BlendTemplate:
    return BlendTemplate(
        template_id=3, name="Calm Sleep Blend", selling_price=35.0,
        ingredients=(TemplateIngredient(1, "Lavender Oil 30ml", 5.0),),
    )


@pytest.fixture()
def bundle() -> BundleRecord:
    return BundleRecord(
        bundle_id=4, name="Wellness Starter Pack", bundle_price=89.0,
        components=(
            BundleComponent(10, "Magnesium Glycinate", 1, 32.0),
            BundleComponent(11, "Fish Oil Softgels", 1, 45.0),
            BundleComponent(12, "Peppermint Oil 10ml", 1, 22.0),
        ),
    )
