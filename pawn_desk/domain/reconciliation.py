"""Payment reconciliation arithmetic for a ticket batch"""

from typing import List

from pawn_desk.domain.exceptions import FieldError
from pawn_desk.domain.models import PaymentSplit, ReconciliationResult, TransactionBatch
from pawn_desk.utils.money import ZERO, format_money, money_ge


def reconcile(batch: TransactionBatch, split: PaymentSplit) -> ReconciliationResult:
    """
    Compute collected amount, change and sufficiency.

    A combined batch nets renewals against redemptions, so only the signed
    remainder is settled, in one direction. Whatever the sign, the absolute
    net amount is what the tender has to cover.

    Rules:
    - collected = cash + digital
    - change = max(0, collected - |net|)
    - sufficient when collected >= |net| - MONEY_TOLERANCE

    Pure: no state is kept between calls, so it can run on every keystroke.
    """
    amount_due = abs(batch.net_amount)
    collected = split.collected_amount
    change = max(ZERO, collected - amount_due)

    return ReconciliationResult(
        amount_due=amount_due,
        collected=collected,
        change=change,
        is_sufficient=money_ge(collected, amount_due),
    )


def payment_errors(batch: TransactionBatch, split: PaymentSplit | None) -> List[FieldError]:
    """
    Every reason the split cannot settle the batch.

    Change is only ever handed back in cash, so the digital part may not exceed
    the amount due; with sufficiency that makes collected - change == |net|.
    """
    if split is None:
        return [FieldError("payment", "Payment details are required")]

    errors = []
    result = reconcile(batch, split)

    if not result.is_sufficient:
        shortfall = result.amount_due - result.collected
        errors.append(
            FieldError(
                "collected_amount",
                f"Collected {format_money(result.collected)} is short of {format_money(result.amount_due)} "
                f"by {format_money(shortfall)}",
            )
        )

    if not money_ge(result.amount_due, split.digital_amount):
        errors.append(
            FieldError("digital_amount", f"Digital amount cannot exceed the amount due of {format_money(result.amount_due)}")
        )

    if split.digital_amount > ZERO and not split.has_reference:
        errors.append(FieldError("digital_reference", "Reference number is required for digital payment"))

    return errors
