# tests/test_stock.py

import pytest

from clinic_pos.modules.transactions.builders import build_product_item
from clinic_pos.modules.transactions.errors import ValidationFailed
from clinic_pos.modules.transactions.items import SALE_QUANTITY, SALE_VOLUME
from clinic_pos.modules.transactions.records import BundleAvailability, BundleAvailabilityLine
from clinic_pos.modules.transactions.stock import (
    InvalidTransition,
    OverrideFlow,
    StockState,
    bundle_stock_lines,
    product_stock_lines,
    quantity_in_cart,
)


def _flow(product, sale_type=SALE_QUANTITY, in_cart=0.0):
    return OverrideFlow(
        lambda q: product_stock_lines(product, q, sale_type, in_cart), label=product.name
    )


def test_stock_lines_compare_in_base_units(oil):
    [line] = product_stock_lines(oil, 2, SALE_QUANTITY)
    assert (line.requested, line.available, line.unit) == (60, 300, "ml")
    assert not line.is_short

    [line] = product_stock_lines(oil, 25, SALE_VOLUME, in_cart=290)
    assert line.available == 10
    assert line.shortfall == 15


def test_quantity_in_cart_counts_product_lines_only(oil):
    a = build_product_item(oil, 2)
    b = build_product_item(oil, 5, SALE_VOLUME)
    assert quantity_in_cart([a, b], oil.product_id) == 65
    assert quantity_in_cart([a, b], oil.product_id, exclude_id=a.id) == 5
    assert quantity_in_cart([a, b], 999) == 0


def test_within_limit_commits_immediately(oil):
    flow = _flow(oil)
    assert flow.enter(2) == StockState.WITHIN_LIMIT
    assert flow.is_committed
    assert flow.committed_quantity == 2


def test_over_limit_needs_confirmation(oil):
    """11 bottles need 330 ml against 300 ml on hand."""
    flow = _flow(oil)
    assert flow.enter(11) == StockState.OVER_LIMIT
    assert not flow.is_committed

    prompt = flow.prompt()
    assert flow.state == StockState.CONFIRMATION_PENDING
    assert prompt.shortfall == 30
    assert "short by 30 ml" in prompt.message
    assert "negative inventory" in prompt.message

    assert flow.confirm() == 11.0
    assert flow.state == StockState.CONFIRMED
    assert flow.is_committed
    assert flow.history == [
        StockState.ENTERING,
        StockState.OVER_LIMIT,
        StockState.CONFIRMATION_PENDING,
        StockState.CONFIRMED,
    ]


def test_cancel_returns_to_entering_and_allows_retry(oil):
    flow = _flow(oil)
    flow.enter(20)
    flow.prompt()
    assert flow.cancel() == StockState.ENTERING
    assert StockState.CANCELLED in flow.history
    assert flow.quantity is None
    assert flow.enter(1) == StockState.WITHIN_LIMIT


def test_invalid_transitions_raise(oil):
    flow = _flow(oil)
    with pytest.raises(InvalidTransition):
        flow.confirm()
    with pytest.raises(InvalidTransition):
        flow.prompt()
    flow.enter(1)
    with pytest.raises(InvalidTransition):
        flow.enter(2)
    with pytest.raises(InvalidTransition):
        flow.cancel()


def test_bad_quantity_stays_in_entering(oil):
    flow = _flow(oil)
    with pytest.raises(ValidationFailed):
        flow.enter(0)
    assert flow.state == StockState.ENTERING
    assert flow.history == [StockState.ENTERING]


def test_bundle_is_short_when_any_constituent_is():
    availability = BundleAvailability(
        all_available=False,
        results=(
            BundleAvailabilityLine(1, "Magnesium Glycinate", True, 600, 60),
            BundleAvailabilityLine(2, "Fish Oil Softgels", False, 50, 90, "Insufficient stock"),
        ),
    )
    flow = OverrideFlow(lambda q: bundle_stock_lines(availability), label="Starter Pack")
    assert flow.enter(1) == StockState.OVER_LIMIT
    prompt = flow.prompt()
    assert "Fish Oil Softgels" in prompt.message
    assert "Magnesium" not in prompt.message
    assert prompt.shortfall == 40
