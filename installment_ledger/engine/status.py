"""Payment status classification."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from installment_ledger.exceptions import ValidationError
from installment_ledger.models import ZERO, PaymentStatus

DEFAULT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class PaymentCalculation:
    """Classification of one receipt against one expected amount."""

    status: PaymentStatus
    actual_amount: Decimal  # Including any prepaid balance drawn
    prepaid_used: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    excess_amount: Decimal = ZERO


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce an inbound amount to ``Decimal`` without float artifacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


def calculate_payment_status(
    actual: Decimal,
    expected: Decimal,
    prepaid_balance: Decimal = ZERO,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> PaymentCalculation:
    """Classify a receipt as PAID, UNDERPAID or OVERPAID.

    A short receipt is first topped up from the prepaid balance. A difference
    within ``tolerance`` either way counts as PAID.

    Parameters
    ----------
    actual : Decimal
        Money just received.
    expected : Decimal
        Amount the slot still expects.
    prepaid_balance : Decimal
        Contract's banked surplus available to cover a shortage.
    tolerance : Decimal
        Rounding slack.

    Returns
    -------
    PaymentCalculation
        Status with the derived amounts. No state is changed.
    """
    prepaid_used = ZERO
    if prepaid_balance > tolerance and actual < expected:
        prepaid_used = min(expected - actual, prepaid_balance)
        actual = actual + prepaid_used

    diff = actual - expected
    if diff < -tolerance:
        return PaymentCalculation(
            status=PaymentStatus.UNDERPAID,
            actual_amount=actual,
            prepaid_used=prepaid_used,
            remaining_amount=-diff,
        )
    if diff > tolerance:
        return PaymentCalculation(
            status=PaymentStatus.OVERPAID,
            actual_amount=actual,
            prepaid_used=prepaid_used,
            excess_amount=diff,
        )
    return PaymentCalculation(
        status=PaymentStatus.PAID,
        actual_amount=actual,
        prepaid_used=prepaid_used,
    )
