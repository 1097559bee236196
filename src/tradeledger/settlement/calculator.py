"""Profit percentage calculation for settlement snapshots."""

from decimal import ROUND_HALF_UP, Decimal

PERCENT_QUANTIZE = Decimal("0.01")
_HUNDRED = Decimal("100")


def calculate_percentage(profit: Decimal, previous_balance: Decimal) -> Decimal:
    """Return profit as a percentage of the pre-settlement balance, 2 dp, half-up.

    A zero previous balance has no meaningful ratio, so the sign of the
    profit is reported as +100 / -100 (0 for zero profit).

    Examples:
        calculate_percentage(Decimal("10"), Decimal("200")) -> Decimal("5.00")
        calculate_percentage(Decimal("10"), Decimal("150")) -> Decimal("6.67")
    """
    if profit == 0:
        return Decimal("0.00")
    if previous_balance == 0:
        return _HUNDRED.quantize(PERCENT_QUANTIZE) if profit > 0 else (-_HUNDRED).quantize(
            PERCENT_QUANTIZE
        )
    return (profit / previous_balance * _HUNDRED).quantize(
        PERCENT_QUANTIZE, rounding=ROUND_HALF_UP
    )
