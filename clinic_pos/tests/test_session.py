# tests/test_session.py

import dataclasses

import pytest

from clinic_pos.modules.transactions.builders import (
    build_consultation_item,
    build_custom_blend_item,
    build_product_item,
)
from clinic_pos.modules.transactions.errors import ValidationFailed
from clinic_pos.modules.transactions.items import SALE_VOLUME, BlendIngredient
from clinic_pos.modules.transactions.records import CustomerRecord, MemberBenefits
from clinic_pos.modules.transactions.session import STATUS_DRAFT, TransactionSession
from clinic_pos.modules.transactions.totals import MODE_AMOUNT, MODE_PERCENTAGE


@pytest.fixture()
def session(lookup, gold_member):
    return TransactionSession(lookup, customer=gold_member)


def test_customer_binding_fills_details_and_discounts_lines(session, oil):
    assert session.form.customer_name == "Alex Tan"
    assert session.form.customer_email == "alex@example.com"
    item = session.add_item(build_product_item(oil, 2))
    assert item.discount_amount == 20.0
    assert session.totals().total_amount == 80.0


def test_clearing_the_customer_drops_discounts_and_details(session, oil):
    session.add_item(build_product_item(oil, 2))
    session.set_customer(None)
    assert session.form.customer_id is None
    assert session.form.customer_name == ""
    assert session.items[0].discount_amount == 0.0
    assert session.totals().total_amount == 100.0


def test_walk_in_never_gets_member_discount(session, oil):
    session.add_item(build_product_item(oil, 1))
    session.set_walk_in("Pat Lim", phone="81112222")
    assert session.customer is None
    assert session.form.customer_name == "Pat Lim"
    assert session.items[0].discount_amount == 0.0


def test_switching_customer_reprices_every_line(lookup, oil):
    s = TransactionSession(lookup)
    s.add_item(build_product_item(oil, 1))
    s.add_item(build_consultation_item("Initial", 60))
    s.set_customer(CustomerRecord(9, "Sam Lee", member_benefits=MemberBenefits("silver", 10)))
    assert [it.discount_amount for it in s.items] == [5.0, 0.0]


def test_refresh_customer_only_reprices_on_rate_change(session, gold_member, oil):
    session.add_item(build_product_item(oil, 1))
    assert session.refresh_customer(gold_member) is False

    promoted = dataclasses.replace(gold_member, member_benefits=MemberBenefits("platinum", 30))
    assert session.refresh_customer(promoted) is True
    assert session.discount_percentage == 30
    assert session.items[0].discount_amount == 15.0

    stranger = CustomerRecord(99, "Someone Else", member_benefits=MemberBenefits("gold", 50))
    assert session.refresh_customer(stranger) is False
    assert session.refresh_customer(None) is False


def test_update_quantity_keeps_container_size(session, oil):
    item = session.add_item(build_product_item(oil, 1))
    updated = session.update_quantity(item.id, 3)
    assert updated.converted_quantity == 90
    assert updated.total_price == 120.0
    assert updated.discount_amount == 30.0


def test_update_quantity_on_partial_line(session, oil):
    item = session.add_item(build_product_item(oil, 5, SALE_VOLUME))
    updated = session.update_quantity(item.id, 12)
    assert updated.converted_quantity == 12
    assert updated.discount_amount == 0.0


@pytest.mark.parametrize("q", [0, -2, "x"])
def test_update_quantity_rejects_bad_values(session, oil, q):
    item = session.add_item(build_product_item(oil, 1))
    with pytest.raises(ValidationFailed):
        session.update_quantity(item.id, q)
    assert session.get_item(item.id).quantity == 1


def test_remove_and_replace(session, oil):
    a = session.add_item(build_product_item(oil, 1))
    b = session.add_item(build_product_item(oil, 2))
    session.replace_item(a.id, build_product_item(oil, 4))
    assert session.get_item(a.id).quantity == 4
    session.remove_item(b.id)
    assert [it.id for it in session.items] == [a.id]
    with pytest.raises(KeyError):
        session.remove_item(b.id)


def test_toggle_discount_mode_uses_net_subtotal(session, oil):
    session.add_item(build_product_item(oil, 2))
    session.set_discount_text("8")
    assert session.toggle_discount_mode() == MODE_PERCENTAGE
    assert session.form.discount_text == "10"
    assert session.totals().total_amount == 72.0
    assert session.toggle_discount_mode() == MODE_AMOUNT
    assert session.form.discount_text == "8"


def test_negative_paid_amount_is_rejected(session):
    with pytest.raises(ValidationFailed):
        session.set_paid_amount(-1)


def test_payload_lists_every_problem(lookup):
    s = TransactionSession(lookup)
    with pytest.raises(ValidationFailed) as exc:
        s.build_payload()
    assert exc.value.errors == ["Customer name is required", "At least one item is required"]


def test_payload_flags_unknown_items(session, oil):
    session.add_item(build_product_item(oil, 1).with_changes(name="Unknown Item"))
    with pytest.raises(ValidationFailed) as exc:
        session.build_payload()
    assert exc.value.errors == ["Item 1 has an invalid name"]


def test_partial_payment_payload(session, oil):
    session.add_item(build_product_item(oil, 2))
    session.set_paid_amount(50)
    payload = session.build_payload()
    assert payload["total_amount"] == 80.0
    assert payload["payment_status"] == "partial"
    assert payload["status"] == "pending"
    assert payload["item_discount_total"] == 20.0
    assert payload["items"][0]["item_type"] == "product"


def test_full_payment_completes(session, oil):
    session.add_item(build_product_item(oil, 2))
    session.set_paid_amount(100)
    payload = session.build_payload()
    assert payload["payment_status"] == "paid"
    assert payload["status"] == "completed"
    assert payload["change_amount"] == 20.0


def test_manual_status_stands_until_fully_paid(session, oil):
    session.add_item(build_product_item(oil, 1))
    session.set_payment_status("overdue")
    assert session.totals().payment_status == "overdue"
    session.set_paid_amount(40)
    assert session.totals().payment_status == "paid"


def test_draft_needs_an_item(session, oil):
    with pytest.raises(ValidationFailed):
        session.draft_data()
    session.add_item(build_product_item(oil, 1))
    assert session.draft_data()["status"] == STATUS_DRAFT


def test_restore_recomputes_discounts_for_current_customer(session, lookup, oil):
    session.add_item(build_product_item(oil, 2))
    session.set_discount_text("5")
    data = session.draft_data()
    assert data["items"][0]["discount_amount"] == 20.0

    walk_in = TransactionSession.restore(data, lookup)
    assert walk_in.items[0].discount_amount == 0.0
    assert walk_in.form.discount_text == "5"
    assert walk_in.form.customer_name == "Alex Tan"


def test_restore_from_saved_transaction_uses_stored_discount_amount(lookup, oil):
    data = {
        "customer_name": "Pat",
        "discount_amount": 12.5,
        "items": [build_product_item(oil, 1).to_dict()],
    }
    s = TransactionSession.restore(data, lookup, transaction_id="TXN-20260101-0001")
    assert s.is_edit
    assert s.form.discount_mode == MODE_AMOUNT
    assert s.form.discount_text == "12.5"
    assert s.totals().total_amount == 37.5


def test_restored_paid_transaction_is_rederived_after_growing(lookup, oil):
    data = {
        "customer_name": "Pat",
        "paid_amount": 50.0,
        "payment_status": "paid",
        "status": "completed",
        "items": [build_product_item(oil, 1).to_dict()],
    }
    s = TransactionSession.restore(data, lookup, transaction_id="TXN-20260101-0001")
    assert s.totals().payment_status == "paid"

    s.add_item(build_consultation_item("Follow-up", 50))
    payload = s.build_payload()
    assert payload["total_amount"] == 100.0
    assert payload["payment_status"] == "partial"
    assert payload["status"] == "pending"


def test_price_mismatch_and_refresh(session, catalogue, oil):
    item = session.add_item(build_product_item(oil, 2))
    assert session.price_mismatches() == []

    catalogue[oil.product_id] = dataclasses.replace(oil, selling_price=55.0)
    [mm] = session.price_mismatches()
    assert (mm.line_price, mm.current_price) == (50.0, 55.0)

    refreshed = session.refresh_item_price(item.id)
    assert refreshed.unit_price == 55.0
    assert refreshed.discount_amount == 22.0
    assert session.price_mismatches() == []


def test_price_mismatch_ignores_missing_products(session, catalogue, oil):
    session.add_item(build_product_item(oil, 1))
    catalogue.clear()
    assert session.price_mismatches() == []


def test_refresh_blend_costs_keeps_price_ratio(session, catalogue, oil):
    blend = session.add_item(build_custom_blend_item(
        "Calm", [BlendIngredient(oil.product_id, oil.name, 2, 10.0)], "Roller 10ml",
        margin_percent=100,
    ))
    assert blend.unit_price == 40.0

    catalogue[oil.product_id] = dataclasses.replace(oil, selling_price=15.0)
    refreshed = session.refresh_blend_costs(blend.id)
    assert refreshed.custom_blend.total_ingredient_cost == 30.0
    assert refreshed.unit_price == 60.0
    assert refreshed.custom_blend.ingredients[0].cost_per_unit == 15.0


def test_snapshot_changes_with_state(session, oil):
    before = session.snapshot()
    session.add_item(build_product_item(oil, 1))
    assert session.snapshot() != before
    assert session.snapshot() == session.snapshot()
