"""
Tests for booking status parsing and the role transition table.
"""

import pytest

from restobook.exceptions import ConflictError
from restobook.models.schemas import BookingStatus, PaymentStatus, Role
from restobook.services.status import (
    TRANSITIONS,
    can_transition,
    ensure_payment_transition,
    ensure_transition,
    valid_next_statuses,
)

S = BookingStatus


class TestStatusParsing:
    @pytest.mark.parametrize("wire,expected", [
        ("pending", S.PENDING),
        ("CONFIRMED", S.CONFIRMED),
        (" Cooking ", S.COOKING),
        ("ready", S.READY),
        ("completed", S.COMPLETED),
        ("canceled", S.CANCELED),
        ("cancelled", S.CANCELED),
    ])
    def test_known_values_case_insensitive(self, wire, expected):
        assert BookingStatus.parse(wire) == expected

    @pytest.mark.parametrize("wire", ["", "shipped", None, 42, "pending!"])
    def test_unknown_values_never_coerced(self, wire):
        assert BookingStatus.parse(wire) == S.UNKNOWN

    def test_payment_status_unknown_is_not_settled(self):
        assert PaymentStatus.parse("success") == PaymentStatus.SUCCESS
        assert PaymentStatus.parse("garbage") == PaymentStatus.DEPOSITED


class TestKitchenRules:
    @pytest.mark.parametrize("status", [S.PENDING, S.READY, S.COMPLETED, S.CANCELED, S.UNKNOWN])
    def test_locked_statuses(self, status):
        assert valid_next_statuses(status) == frozenset()

    def test_confirmed_moves_forward(self):
        assert valid_next_statuses(S.CONFIRMED) == {S.COOKING, S.READY}

    def test_cooking_only_to_ready(self):
        assert valid_next_statuses(S.COOKING) == {S.READY}

    def test_confirmed_back_to_pending_rejected(self):
        with pytest.raises(ConflictError) as exc:
            ensure_transition(S.CONFIRMED, S.PENDING, Role.KITCHEN)
        assert exc.value.current_status == "Confirmed"

    def test_kitchen_cannot_cancel(self):
        assert not can_transition(S.CONFIRMED, S.CANCELED, Role.KITCHEN)


class TestFrontDeskRules:
    def test_pending_confirm_or_cancel(self):
        assert valid_next_statuses(S.PENDING, Role.FRONT_DESK) == {S.CONFIRMED, S.CANCELED}

    def test_confirmed_cancel(self):
        assert can_transition("confirmed", "canceled", Role.FRONT_DESK)

    def test_ready_completes(self):
        assert ensure_transition(S.READY, "Completed", Role.FRONT_DESK) == S.COMPLETED

    def test_front_desk_cannot_cook(self):
        assert not can_transition(S.CONFIRMED, S.COOKING, Role.FRONT_DESK)

    def test_closed_statuses_locked_for_everyone(self):
        for role in Role:
            for status in (S.COMPLETED, S.CANCELED, S.UNKNOWN):
                assert valid_next_statuses(status, role) == frozenset()


def test_no_rule_targets_unknown_or_pending():
    for targets in TRANSITIONS.values():
        assert S.UNKNOWN not in targets
        assert S.PENDING not in targets


def test_customer_cannot_touch_confirmed():
    assert valid_next_statuses(S.CONFIRMED, Role.CUSTOMER) == frozenset()


class TestPaymentTransitions:
    def test_deposited_to_success(self):
        assert ensure_payment_transition(PaymentStatus.DEPOSITED, PaymentStatus.SUCCESS) == PaymentStatus.SUCCESS

    def test_no_reverse(self):
        with pytest.raises(ConflictError):
            ensure_payment_transition(PaymentStatus.SUCCESS, PaymentStatus.DEPOSITED)

    def test_success_is_final(self):
        with pytest.raises(ConflictError):
            ensure_payment_transition(PaymentStatus.SUCCESS, PaymentStatus.SUCCESS)
