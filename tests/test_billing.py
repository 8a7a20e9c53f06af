"""
Tests for the bill calculator and voucher validation.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from restobook.exceptions import VoucherInvalid
from restobook.models.schemas import DishLine, OrderType, Voucher
from restobook.services.billing import Pricing, compute_bill, validate_voucher


def lines_totalling(amount):
    return [DishLine(dish_id="d1", name="Pho bo", unit_price=amount, quantity=1)]


def voucher(percent=10, **kwargs):
    data = dict(
        voucher_id="V1",
        code="SAVE",
        discount_percent=percent,
        expires_at=datetime.now() + timedelta(days=1),
    )
    data.update(kwargs)
    return Voucher(**data)


class TestScenarios:
    def test_large_delivery_with_voucher(self, pricing):
        bill = compute_bill(lines_totalling(1_000_000), OrderType.DELIVERY, voucher(10), pricing)
        assert bill.shipping_fee == 0
        assert bill.voucher_discount == 100_000
        assert bill.total == 900_000
        assert bill.amount_due_now == 900_000

    def test_small_delivery_pays_shipping(self, pricing):
        bill = compute_bill(lines_totalling(200_000), OrderType.DELIVERY, None, pricing)
        assert bill.shipping_fee == 25_000
        assert bill.total == 225_000

    def test_dine_in_deposit(self, pricing):
        bill = compute_bill(lines_totalling(500_000), OrderType.DINE_IN, None, pricing)
        assert bill.prepaid_deposit == 150_000
        assert bill.total == 500_000
        assert bill.amount_due_now == 150_000
        assert bill.remaining_balance == 350_000


class TestBillRules:
    def test_subtotal_sums_lines(self, pricing):
        lines = [
            DishLine(dish_id="a", name="Goi cuon", unit_price=45_000, quantity=2),
            DishLine(dish_id="b", name="Bun cha", unit_price=60_000, quantity=3),
        ]
        assert compute_bill(lines, OrderType.DINE_IN, None, pricing).subtotal == 270_000

    def test_threshold_is_inclusive(self, pricing):
        bill = compute_bill(lines_totalling(800_000), OrderType.DELIVERY, None, pricing)
        assert bill.shipping_fee == 0

    def test_just_below_threshold(self, pricing):
        bill = compute_bill(lines_totalling(799_999), OrderType.DELIVERY, None, pricing)
        assert bill.shipping_fee == 25_000

    def test_zero_priced_lines_ship_free(self, pricing):
        bill = compute_bill(lines_totalling(0), OrderType.DELIVERY, None, pricing)
        assert bill.shipping_fee == 0
        assert bill.total == 0

    def test_empty_lines_ignore_voucher(self, pricing):
        bill = compute_bill([], OrderType.DINE_IN, voucher(50), pricing)
        assert bill.voucher_discount == 0
        assert bill.prepaid_deposit == 0
        assert bill.total == 0

    def test_empty_delivery_lines_ignore_voucher(self, pricing):
        assert compute_bill([], OrderType.DELIVERY, voucher(50), pricing).voucher_discount == 0

    def test_deposit_rounds_half_up(self, pricing):
        # 30% of 5 = 1.5
        bill = compute_bill(lines_totalling(5), OrderType.DINE_IN, None, pricing)
        assert bill.prepaid_deposit == 2

    def test_dine_in_voucher_reduces_remaining(self, pricing):
        bill = compute_bill(lines_totalling(500_000), OrderType.DINE_IN, voucher(20), pricing)
        assert bill.voucher_discount == 100_000
        assert bill.total == 500_000
        assert bill.remaining_balance == 250_000

    def test_deposit_capped_by_voucher(self, pricing):
        bill = compute_bill(lines_totalling(100_000), OrderType.DINE_IN, voucher(90), pricing)
        assert bill.voucher_discount == 90_000
        assert bill.prepaid_deposit == 10_000
        assert bill.amount_due_now == 10_000
        assert bill.remaining_balance == 0

    def test_full_voucher_leaves_nothing_due(self, pricing):
        bill = compute_bill(lines_totalling(100_000), OrderType.DINE_IN, voucher(100), pricing)
        assert bill.amount_due_now == 0
        assert bill.remaining_balance == 0

    def test_pricing_is_configurable(self):
        pricing = Pricing(deposit_rate=Decimal("0.5"), free_shipping_threshold=100, shipping_fee=7)
        assert compute_bill(lines_totalling(50), OrderType.DELIVERY, None, pricing).shipping_fee == 7
        assert compute_bill(lines_totalling(50), OrderType.DINE_IN, None, pricing).prepaid_deposit == 25

    def test_pure(self, pricing):
        lines = lines_totalling(321_000)
        v = voucher(15)
        first = compute_bill(lines, OrderType.DELIVERY, v, pricing)
        second = compute_bill(lines, OrderType.DELIVERY, v, pricing)
        assert first == second
        assert lines == lines_totalling(321_000)


class TestVoucherValidation:
    def test_valid(self):
        v = voucher()
        assert validate_voucher(v, "u1") is v

    def test_not_found(self):
        with pytest.raises(VoucherInvalid) as exc:
            validate_voucher(None, "u1", code="NOPE")
        assert exc.value.reason == "not_found"
        assert exc.value.voucher_code == "NOPE"

    def test_expired(self):
        with pytest.raises(VoucherInvalid) as exc:
            validate_voucher(voucher(expires_at=datetime.now() - timedelta(minutes=1)), "u1")
        assert exc.value.reason == "expired"

    def test_used(self):
        with pytest.raises(VoucherInvalid) as exc:
            validate_voucher(voucher(is_used=True), "u1")
        assert exc.value.reason == "used"

    def test_wrong_owner(self):
        with pytest.raises(VoucherInvalid) as exc:
            validate_voucher(voucher(bound_user_id="u2"), "u1")
        assert exc.value.reason == "wrong_owner"

    def test_bound_voucher_for_guest(self):
        with pytest.raises(VoucherInvalid):
            validate_voucher(voucher(bound_user_id="u2"), None)

    def test_bound_to_owner(self):
        assert validate_voucher(voucher(bound_user_id="u1"), "u1").code == "SAVE"
