"""Unit tests for payment reconciliation"""

import pytest
from decimal import Decimal
from itertools import permutations
from pawn_desk.domain.exceptions import InputValidationError
from pawn_desk.domain.models import OperationKind, PaymentSplit, TransactionBatch
from pawn_desk.domain.reconciliation import payment_errors, reconcile
from pawn_desk.utils.money import MONEY_TOLERANCE

RENEW = OperationKind.RENEW
REDEEM = OperationKind.REDEEM


def test_scenario_single_renewal_exact_cash(make_batch):
    """Renew one ticket for 24.00, paid exactly in cash"""
    batch = make_batch([("B/0125/1234", RENEW, "24.00")])

    result = reconcile(batch, PaymentSplit(cash_amount=Decimal("24.00")))

    assert result.is_sufficient is True
    assert result.change == Decimal("0.00")
    assert result.amount_due == Decimal("24.00")


def test_net_amount_is_insertion_order_independent(make_operation):
    """netAmount = renewals - redemptions whatever order tickets were added in"""
    operations = [
        make_operation("B/0125/0001", RENEW, "24.00"),
        make_operation("B/0125/0002", REDEEM, "475.00"),
        make_operation("S/0125/0003", RENEW, "60.50"),
        make_operation("T/0125/0004", REDEEM, "1308.00"),
    ]

    nets = {TransactionBatch(list(order)).net_amount for order in permutations(operations)}

    assert nets == {Decimal("84.50") - Decimal("1783.00")}


def test_net_amount_tracks_removal(make_batch):
    """Totals are derived, so removing a ticket updates them immediately"""
    batch = make_batch([("B/0125/0001", RENEW, "24.00"), ("B/0125/0002", REDEEM, "475.00")])
    assert batch.net_amount == Decimal("-451.00")

    batch.remove("B/0125/0002")

    assert batch.net_amount == Decimal("24.00")
    assert batch.total_redemption_amount == Decimal("0.00")


def test_reconcile_is_idempotent(make_batch):
    batch = make_batch([("B/0125/0001", RENEW, "24.00"), ("B/0125/0002", REDEEM, "475.00")])
    split = PaymentSplit(cash_amount=Decimal("400.00"), digital_amount=Decimal("60.00"), digital_reference="PN-1")

    assert reconcile(batch, split) == reconcile(batch, split)


@pytest.mark.parametrize(
    "cash,digital,expected_change,expected_sufficient",
    [
        ("0.00", "0.00", "0.00", False),
        ("100.00", "0.00", "0.00", False),
        ("150.98", "0.00", "0.00", False),
        ("150.99", "0.00", "0.00", True),  # within tolerance
        ("151.00", "0.00", "0.00", True),
        ("100.00", "51.00", "0.00", True),
        ("200.00", "0.00", "49.00", True),
        ("100.00", "100.00", "49.00", True),
    ],
)
def test_change_and_sufficiency(make_batch, cash, digital, expected_change, expected_sufficient):
    """change = max(0, collected - |net|); sufficient iff collected >= |net| - 0.01"""
    batch = make_batch([("B/0125/0001", RENEW, "151.00")])

    result = reconcile(batch, PaymentSplit(cash_amount=Decimal(cash), digital_amount=Decimal(digital)))

    assert result.change == Decimal(expected_change)
    assert result.is_sufficient is expected_sufficient
    collected = Decimal(cash) + Decimal(digital)
    assert result.is_sufficient == (collected >= abs(batch.net_amount) - MONEY_TOLERANCE)


def test_redemption_dominant_batch_uses_absolute_net(make_batch):
    """Negative net still means the absolute amount must be tendered"""
    batch = make_batch([("B/0125/0001", RENEW, "24.00"), ("S/0125/0002", REDEEM, "1308.00")])
    assert batch.net_amount == Decimal("-1284.00")

    short = reconcile(batch, PaymentSplit(cash_amount=Decimal("1000.00")))
    exact = reconcile(batch, PaymentSplit(cash_amount=Decimal("1284.00")))

    assert short.is_sufficient is False
    assert exact.is_sufficient is True
    assert exact.change == Decimal("0.00")


def test_float_noise_is_absorbed():
    """Inputs arriving as floats are quantized before comparison"""
    split = PaymentSplit(cash_amount=0.1 + 0.2, digital_amount=0)

    assert split.cash_amount == Decimal("0.30")


def test_negative_tender_rejected():
    with pytest.raises(InputValidationError) as exc_info:
        PaymentSplit(cash_amount=Decimal("-1"), digital_amount=Decimal("-2"))

    assert exc_info.value.fields == ["cash_amount", "digital_amount"]


def test_payment_errors_lists_every_problem(make_batch):
    """Short tender, oversized digital part and missing reference are all reported"""
    batch = make_batch([("B/0125/0001", RENEW, "24.00")])
    split = PaymentSplit(cash_amount=Decimal("0.00"), digital_amount=Decimal("30.00"))

    errors = payment_errors(batch, split)

    assert [e.field for e in errors] == ["digital_amount", "digital_reference"]

    split = PaymentSplit(cash_amount=Decimal("0.00"), digital_amount=Decimal("10.00"))
    assert [e.field for e in payment_errors(batch, split)] == ["collected_amount", "digital_reference"]


def test_payment_errors_missing_split(make_batch):
    batch = make_batch([("B/0125/0001", RENEW, "24.00")])

    assert [e.field for e in payment_errors(batch, None)] == ["payment"]


def test_digital_with_reference_and_cash_change(make_batch):
    """Change comes back in cash only; digital up to the amount due is fine"""
    batch = make_batch([("B/0125/0001", RENEW, "24.00")])
    split = PaymentSplit(cash_amount=Decimal("10.00"), digital_amount=Decimal("20.00"), digital_reference="PN-77")

    assert payment_errors(batch, split) == []
    result = reconcile(batch, split)
    assert result.change == Decimal("6.00")
    assert result.collected - result.change == abs(batch.net_amount)
