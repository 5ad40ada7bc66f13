"""
Tests for discount computation
"""

from decimal import Decimal

import pytest

from offer_engine.computation_engine import ComputationEngine


def test_percentage_clamped_by_max_discount(make_offer):
    """10% of 5000 is 500, capped at 300"""
    engine = ComputationEngine()
    offer = make_offer(discount_value="10", min_amount="1000", max_discount="300")

    discount = engine.compute_discount(offer, "5000")
    assert discount == Decimal("300.00")
    assert engine.compute_final_amount("5000", discount) == Decimal("4700.00")


def test_flat_clamped_to_amount(make_offer):
    engine = ComputationEngine()
    offer = make_offer(discount_type="flat", discount_value="150")

    discount = engine.compute_discount(offer, 100)
    assert discount == Decimal("100.00")
    assert engine.compute_final_amount(100, discount) == Decimal("0")


def test_cashback_bounded_by_amount(make_offer):
    engine = ComputationEngine()
    assert engine.compute_discount(make_offer(discount_type="cashback", discount_value="500"), "200") == Decimal("200.00")
    assert engine.compute_discount(make_offer(discount_type="cashback", discount_value="50"), "200") == Decimal("50.00")


def test_rounding_is_half_up(make_offer):
    engine = ComputationEngine()
    # 12.5% of 99.99 = 12.49875
    assert engine.compute_discount(make_offer(discount_value="12.5"), "99.99") == Decimal("12.50")
    # 10% of 0.05 = 0.005
    assert engine.compute_discount(make_offer(discount_value="10"), "0.05") == Decimal("0.01")


def test_huge_amounts_keep_currency_precision(make_offer):
    engine = ComputationEngine()
    flat = engine.compute_discount(make_offer(discount_type="flat", discount_value="150"), "1e27")

    assert flat == Decimal("150.00")
    assert engine.compute_discount(make_offer(discount_value="10"), "1e27") == Decimal("1e26")
    assert engine.compute_final_amount("1e27", flat) == Decimal("999999999999999999999999850.00")
    assert engine.round_amount(Decimal("123456789012345678901234567.895")) == Decimal("123456789012345678901234567.90")


def test_precision_is_configurable(make_offer):
    engine = ComputationEngine(precision=0)
    assert engine.compute_discount(make_offer(discount_value="12.5"), "99.99") == Decimal("12")


def test_unknown_discount_type_gives_zero(make_offer):
    offer = make_offer(discount_type="buy-one-get-one")
    assert ComputationEngine().compute_discount(offer, "1000") == Decimal("0.00")


@pytest.mark.parametrize("amount", ["0.01", "1", "99.99", "250", "1000", "123456.78"])
@pytest.mark.parametrize(
    "discount_type, value, cap",
    [
        ("percentage", "10", None),
        ("percentage", "100", None),
        ("percentage", "35", "200"),
        ("flat", "150", None),
        ("flat", "500", "75"),
        ("cashback", "1000", "400"),
    ],
)
def test_discount_never_exceeds_amount_or_cap(make_offer, amount, discount_type, value, cap):
    offer = make_offer(discount_type=discount_type, discount_value=value, max_discount=cap)
    discount = ComputationEngine().compute_discount(offer, amount)

    assert discount <= Decimal(amount)
    if cap is not None:
        assert discount <= Decimal(cap)


@pytest.mark.parametrize("amount, value", [("1000", "10"), ("2499.50", "7.5"), ("1", "33")])
def test_uncapped_percentage(make_offer, amount, value):
    expected = (Decimal(amount) * Decimal(value) / 100).quantize(Decimal("0.01"), rounding="ROUND_HALF_UP")
    assert ComputationEngine().compute_discount(make_offer(discount_value=value), amount) == expected
