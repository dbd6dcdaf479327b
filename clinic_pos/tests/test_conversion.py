# tests/test_conversion.py

import pytest

from clinic_pos.modules.transactions.conversion import (
    compute_quantity,
    convert_units,
    effective_capacity,
    smart_tip,
    volume_unit_price,
)
from clinic_pos.modules.transactions.errors import ValidationFailed
from clinic_pos.modules.transactions.items import SALE_QUANTITY, SALE_VOLUME


def test_whole_units_price_by_container_and_consume_capacity():
    """Two 30 ml bottles at 50.00: priced 100.00, consume 60 ml of stock."""
    res = compute_quantity(2, 50.0, 30, SALE_QUANTITY)
    assert res.total_quantity == 2
    assert res.total_price == 100.0
    assert res.converted_quantity == 60


def test_partial_sale_prices_the_fraction_of_a_container():
    """5 ml out of a 30 ml bottle at 50.00 is 8.33 and consumes 5 ml."""
    res = compute_quantity(5, 50.0, 30, SALE_VOLUME)
    assert res.total_price == 8.33
    assert res.converted_quantity == 5


@pytest.mark.parametrize("cap", [None, 0, -4, "n/a"])
def test_missing_or_bad_capacity_counts_as_one(cap):
    assert effective_capacity(cap) == 1.0
    assert compute_quantity(3, 10.0, cap, SALE_VOLUME).total_price == 30.0


@pytest.mark.parametrize("q", [0, -1, "abc", None])
def test_quantity_must_be_a_positive_number(q):
    with pytest.raises(ValidationFailed):
        compute_quantity(q, 10.0, 1)


def test_unknown_sale_type_is_rejected():
    with pytest.raises(ValidationFailed) as exc:
        compute_quantity(1, 10.0, 1, "weight")
    assert "Unknown sale type" in exc.value.errors[0]


def test_volume_unit_price_is_per_base_unit():
    assert volume_unit_price(50.0, 25) == 2.0


def test_convert_units_direct_inverse_and_via_hub():
    assert convert_units(2, "ml", "drops") == 40
    assert convert_units(40, "drops", "ml") == pytest.approx(2.0)
    assert convert_units(500, "mg", "drops") == pytest.approx(10.0)
    # litre -> ml -> drops
    assert convert_units(1, "litre", "drops") == pytest.approx(20000.0)
    assert convert_units(1, "ml", "caps") is None


def test_smart_tip_texts():
    assert smart_tip(2, "ml") == "2 ml ≈ 40.0 drops"
    assert smart_tip(10, "drops") == "10 drops ≈ 0.50 ml"
    assert smart_tip(500, "mg") == "500 mg ≈ 10.0 drops"


def test_smart_tip_only_for_partial_sales_of_known_units():
    assert smart_tip(2, "ml", SALE_QUANTITY) is None
    assert smart_tip(2, "caps") is None
    assert smart_tip(0, "ml") is None
    assert smart_tip("", "ml") is None
