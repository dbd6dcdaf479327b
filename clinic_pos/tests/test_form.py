# tests/test_form.py

import pytest

pytest.importorskip("PySide6")

from clinic_pos import config
from clinic_pos.modules.transactions import form as form_module
from clinic_pos.modules.transactions.builders import (
    build_bundle_item,
    build_consultation_item,
    build_product_item,
)
from clinic_pos.modules.transactions.form import TransactionForm
from clinic_pos.modules.transactions.session import TransactionSession


@pytest.fixture()
def shown(monkeypatch):
    """Capture message boxes instead of blocking on them."""
    seen = []
    monkeypatch.setattr(form_module, "info", lambda parent, title, text: seen.append((title, text)))
    monkeypatch.setattr(form_module, "error", lambda parent, title, text: seen.append((title, text)))
    return seen


@pytest.fixture()
def make_form(qtbot, backend, monkeypatch, shown):
    answers = []

    def _make(discount_ms=60000, autosave_ms=60000, answer=True, **kw):
        monkeypatch.setattr(config, "DISCOUNT_DEBOUNCE", discount_ms)
        monkeypatch.setattr(config, "AUTOSAVE_DELAY", autosave_ms)

        def confirm_fn(parent, title, text):
            answers.append(title)
            return answer

        f = TransactionForm(backend, confirm_fn=confirm_fn, **kw)
        qtbot.addWidget(f)
        f.confirm_titles = answers
        return f

    return _make


def _pick_customer(form, name):
    idx = form.cmb_customer.findText(name)
    assert idx > 0
    form.cmb_customer.setCurrentIndex(idx)


def _type(line_edit, text):
    line_edit.setText(text)
    line_edit.textEdited.emit(text)


def test_member_selection_and_back_to_walk_in(make_form, backend, ids):
    form = make_form()
    _pick_customer(form, "Alex Tan")
    assert form.txt_name.text() == "Alex Tan"
    assert form.txt_name.isReadOnly()
    assert form.lab_member.text() == "Gold - 20% off"

    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 2))
    assert form.lab_item_disc.text() == "20.00"
    assert form.lab_total.text() == "80.00"

    form.cmb_customer.setCurrentIndex(0)
    assert form.txt_name.text() == ""
    assert not form.txt_name.isReadOnly()
    assert form.lab_member.text() == "No membership discount"
    assert form.lab_total.text() == "100.00"


def test_discount_entry_is_debounced(qtbot, make_form, backend, ids):
    form = make_form(discount_ms=40)
    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    _type(form.txt_discount, "1")
    _type(form.txt_discount, "10")
    assert form.session.form.discount_text == ""
    assert form.discount_debounce.pending
    qtbot.waitUntil(lambda: form.session.form.discount_text == "10", timeout=2000)
    assert form.lab_add_disc.text() == "10.00"
    assert form.lab_total.text() == "40.00"


def test_mode_toggle_converts_typed_value(make_form, backend, ids):
    form = make_form()
    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 2))
    _type(form.txt_discount, "25")
    form.btn_discount_mode.click()
    assert form.btn_discount_mode.text() == "%"
    assert form.txt_discount.text() == "25"
    assert form.lab_total.text() == "75.00"

    _type(form.txt_discount, "50")
    form.btn_discount_mode.click()
    assert form.btn_discount_mode.text() == "$"
    assert form.txt_discount.text() == "50"


def test_submit_flushes_pending_discount(qtbot, make_form, backend, ids):
    form = make_form()
    _type(form.txt_name, "Pat Lim")
    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    _type(form.txt_discount, "5")

    with qtbot.waitSignal(form.submitted, timeout=5000) as sig:
        assert form.submit() is True
    tid = sig.args[0]
    assert form.result_id() == tid
    stored = backend.load_transaction(tid)
    assert stored["customer_name"] == "Pat Lim"
    assert stored["discount_amount"] == 5.0
    assert stored["total_amount"] == 45.0


def test_submit_problems_are_listed(make_form, shown):
    form = make_form()
    assert form.submit() is False
    [(title, text)] = shown
    assert title == "Cannot Submit"
    assert "• Customer name is required" in text
    assert "• At least one item is required" in text
    assert form.btn_submit.isEnabled()


def test_closing_cancels_pending_work(qtbot, make_form, backend, ids):
    form = make_form(discount_ms=30, autosave_ms=30)
    _type(form.txt_name, "Pat Lim")
    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    _type(form.txt_discount, "5")
    form.reject()

    assert not form.discount_debounce.pending
    assert not form.autosave.pending
    qtbot.wait(120)
    assert form.session.form.discount_text == ""
    assert backend.list_drafts() == []


def test_autosave_keeps_one_draft_per_session(qtbot, make_form, backend, ids):
    form = make_form(autosave_ms=30)
    _type(form.txt_name, "Pat Lim")
    with qtbot.waitSignal(form.draftSaved, timeout=5000) as first:
        form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    draft_id = first.args[0]
    assert draft_id == form.submission.draft_id

    with qtbot.waitSignal(form.draftSaved, timeout=5000) as second:
        _type(form.txt_notes, "Collect Friday")
    assert second.args[0] == draft_id
    [row] = backend.list_drafts()
    assert row["draft_id"] == draft_id
    assert backend.load_draft(draft_id)["notes"] == "Collect Friday"


def test_resumed_draft_keeps_its_id(make_form, backend, ids):
    s = TransactionSession(backend.get_product)
    s.set_walk_in("Pat Lim")
    s.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    backend.save_draft("draft_1700000000000_resumeabc", "Earlier", s.draft_data())

    restored = TransactionSession.restore(backend.load_draft("draft_1700000000000_resumeabc"), backend.get_product)
    form = make_form(session=restored, draft_id="draft_1700000000000_resumeabc")
    assert form.submission.draft_id == "draft_1700000000000_resumeabc"
    assert form.items_model.rowCount() == 1
    assert form.txt_name.text() == "Pat Lim"


def test_restored_member_draft_rebinds_customer(make_form, backend, ids):
    data = {
        "customer_id": ids["gold"],
        "customer_name": "Alex Tan",
        "items": [build_product_item(backend.get_product(ids["lavender"]), 1).to_dict()],
    }
    form = make_form(session=TransactionSession.restore(data, backend.get_product))
    assert form.cmb_customer.currentText() == "Alex Tan"
    assert form.session.items[0].discount_amount == 10.0


def test_bad_quantity_is_rejected(make_form, backend, ids, shown):
    form = make_form()
    item = form.add_item(build_product_item(backend.get_product(ids["lavender"]), 2))
    assert form.change_quantity(item.id, "0") is False
    assert shown[-1][0] == "Quantity"
    assert "Quantity must be greater than 0" in shown[-1][1]
    assert form.session.get_item(item.id).quantity == 2

    assert form.change_quantity(item.id, "3") is True
    assert form.lab_subtotal.text() == "150.00"


@pytest.mark.parametrize("answer,expected_qty", [(False, 1), (True, 4)])
def test_bundle_over_stock_needs_confirmation(make_form, backend, ids, answer, expected_qty):
    form = make_form(answer=answer)
    item = form.add_item(build_bundle_item(backend.bundles.get(ids["starter_pack"])))
    assert form.change_quantity(item.id, "4") is answer
    assert form.confirm_titles == ["Out-of-Stock Sale"]
    assert form.session.get_item(item.id).quantity == expected_qty


def test_refresh_customer_picks_up_new_rate(make_form, backend, ids):
    form = make_form()
    _pick_customer(form, "Alex Tan")
    form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    assert form.refresh_customer() is False

    backend.customers.set_discount(ids["gold"], 30)
    assert form.refresh_customer() is True
    assert form.session.items[0].discount_amount == 15.0
    assert form.lab_member.text() == "Gold - 30% off"


def test_price_change_is_flagged_and_refreshed(make_form, backend, ids):
    form = make_form()
    item = form.add_item(build_product_item(backend.get_product(ids["lavender"]), 1))
    assert form.lab_mismatch.text() == ""

    backend.products.set_selling_price(ids["lavender"], 55)
    form.add_item(build_consultation_item("Follow-up", 30))
    assert form.lab_mismatch.text().startswith("1 line(s)")

    form.btn_refresh_prices.click()
    assert form.confirm_titles == ["Update Prices"]
    assert form.session.get_item(item.id).unit_price == 55.0
    assert form.lab_mismatch.text() == ""
