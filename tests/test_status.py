"""Tests for payment status classification and schedule arithmetic."""

from datetime import date
from decimal import Decimal

import pytest

from installment_ledger.engine.schedule import (
    add_months,
    monthly_due_date,
    months_between,
    schedule_end,
    virtual_due_date,
)
from installment_ledger.engine.status import calculate_payment_status, to_money
from installment_ledger.exceptions import ValidationError
from installment_ledger.models import PaymentStatus


class TestCalculatePaymentStatus:
    """Tests for calculate_payment_status."""

    def test_exact_amount_is_paid(self) -> None:
        calc = calculate_payment_status(Decimal("100"), Decimal("100"))

        assert calc.status == PaymentStatus.PAID
        assert calc.actual_amount == Decimal("100")
        assert calc.remaining_amount == 0
        assert calc.excess_amount == 0

    def test_within_tolerance_above_is_paid(self) -> None:
        calc = calculate_payment_status(Decimal("100.009"), Decimal("100"))
        assert calc.status == PaymentStatus.PAID

    def test_tolerance_boundary_below_is_paid(self) -> None:
        calc = calculate_payment_status(Decimal("99.99"), Decimal("100"))
        assert calc.status == PaymentStatus.PAID

    def test_tolerance_boundary_above_is_paid(self) -> None:
        calc = calculate_payment_status(Decimal("100.01"), Decimal("100"))
        assert calc.status == PaymentStatus.PAID

    def test_short_beyond_tolerance_is_underpaid(self) -> None:
        calc = calculate_payment_status(Decimal("99.98"), Decimal("100"))

        assert calc.status == PaymentStatus.UNDERPAID
        assert calc.remaining_amount == Decimal("0.02")

    def test_surplus_is_overpaid(self) -> None:
        calc = calculate_payment_status(Decimal("105"), Decimal("100"))

        assert calc.status == PaymentStatus.OVERPAID
        assert calc.excess_amount == Decimal("5")
        assert calc.actual_amount == Decimal("105")

    def test_prepaid_covers_shortage(self) -> None:
        calc = calculate_payment_status(Decimal("60"), Decimal("100"), Decimal("50"))

        assert calc.status == PaymentStatus.PAID
        assert calc.prepaid_used == Decimal("40")
        assert calc.actual_amount == Decimal("100")

    def test_prepaid_partially_covers_shortage(self) -> None:
        calc = calculate_payment_status(Decimal("30"), Decimal("100"), Decimal("20"))

        assert calc.status == PaymentStatus.UNDERPAID
        assert calc.prepaid_used == Decimal("20")
        assert calc.remaining_amount == Decimal("50")

    def test_prepaid_at_tolerance_is_not_drawn(self) -> None:
        calc = calculate_payment_status(Decimal("50"), Decimal("100"), Decimal("0.01"))

        assert calc.status == PaymentStatus.UNDERPAID
        assert calc.prepaid_used == 0

    def test_prepaid_not_drawn_when_amount_covers(self) -> None:
        calc = calculate_payment_status(Decimal("120"), Decimal("100"), Decimal("50"))

        assert calc.status == PaymentStatus.OVERPAID
        assert calc.prepaid_used == 0

    def test_custom_tolerance(self) -> None:
        calc = calculate_payment_status(Decimal("99.5"), Decimal("100"), tolerance=Decimal("1"))
        assert calc.status == PaymentStatus.PAID


class TestToMoney:
    """Tests for to_money."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(100, Decimal("100")), ("99.99", Decimal("99.99")), (0.1, Decimal("0.1"))],
    )
    def test_coerces(self, value: object, expected: Decimal) -> None:
        assert to_money(value) == expected

    def test_decimal_passes_through(self) -> None:
        value = Decimal("12.34")
        assert to_money(value) is value

    def test_invalid_raises_validation(self) -> None:
        with pytest.raises(ValidationError, match="Invalid amount"):
            to_money("twelve")


class TestSchedule:
    """Tests for schedule arithmetic."""

    def test_add_months_simple(self) -> None:
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)

    def test_add_months_clamps_to_month_end(self) -> None:
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_crosses_year(self) -> None:
        assert add_months(date(2024, 11, 10), 3) == date(2025, 2, 10)

    def test_add_months_negative(self) -> None:
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)

    def test_add_months_explicit_day(self) -> None:
        assert add_months(date(2024, 1, 5), 1, day=31) == date(2024, 2, 29)

    def test_monthly_due_date(self) -> None:
        assert monthly_due_date(date(2024, 6, 15), 3) == date(2024, 9, 15)

    def test_schedule_end(self) -> None:
        assert schedule_end(date(2024, 6, 15), 12) == date(2025, 6, 15)

    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            (date(2024, 1, 15), date(2024, 3, 15), 2),
            (date(2024, 1, 15), date(2024, 3, 14), 1),
            (date(2024, 3, 15), date(2024, 1, 15), -2),
            (date(2024, 3, 15), date(2024, 1, 16), -1),
            (date(2024, 3, 15), date(2024, 3, 1), 0),
        ],
    )
    def test_months_between(self, old: date, new: date, expected: int) -> None:
        assert months_between(old, new) == expected

    def test_virtual_due_date_clamps(self) -> None:
        assert virtual_due_date(date(2024, 2, 10), 31) == date(2024, 2, 29)
        assert virtual_due_date(date(2024, 6, 1), 15) == date(2024, 6, 15)
