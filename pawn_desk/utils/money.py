"""Money parsing and formatting helpers"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Amounts are tracked to the cent; every sufficiency/change comparison goes through this tolerance
MONEY_TOLERANCE = Decimal("0.01")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

_AMOUNT_PATTERN = re.compile(r"^[0-9]*\.?[0-9]{0,2}$")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a numeric value to 2 decimal places (half-up)"""
    if isinstance(value, float):
        # Go through repr so 0.1 stays 0.1 rather than its binary expansion
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(text: str) -> Decimal:
    """
    Parse user-entered amount text.

    Accepts digits with at most 2 decimal places ("24", "24.5", "24.50", ".5").
    Blank input is treated as zero, the way an untouched amount field reads.

    Raises:
        ValueError: On negative, malformed, or over-precise input
    """
    cleaned = text.strip()
    if cleaned == "":
        return ZERO
    if not _AMOUNT_PATTERN.match(cleaned) or cleaned == ".":
        raise ValueError(f"Invalid amount format: {text!r}")
    try:
        return to_money(cleaned)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount format: {text!r}") from e


def format_money(amount: Decimal) -> str:
    """Serialize an amount with exactly 2 decimal digits"""
    return f"{to_money(amount):.2f}"


def money_ge(left: Decimal, right: Decimal) -> bool:
    """left >= right, absorbing differences smaller than MONEY_TOLERANCE"""
    return left >= right - MONEY_TOLERANCE

