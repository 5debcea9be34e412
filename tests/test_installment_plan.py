"""
Procurement Orders - Installment Plan Tests

Tests for monthly debit-order schedules:
- Installment count by order month
- Due dates and day clamping
- Amount rounding and the final-installment residual
"""

from datetime import date
from decimal import Decimal

import pytest

from app.services.installment_plan import InstallmentPlanCalculator
from app.utils.error_handling import ErrorCode, InvalidPaymentPlanException


# =============================================================================
# INSTALLMENT COUNT
# =============================================================================

class TestInstallmentCount:
    """Months from the month after ordering through November."""

    @pytest.mark.parametrize("order_month,expected", [
        (1, 10),
        (2, 9),
        (3, 8),
        (10, 1),
    ])
    def test_count_by_order_month(self, order_month, expected):
        assert InstallmentPlanCalculator.installment_count(date(2026, order_month, 5)) == expected

    @pytest.mark.parametrize("order_month", [11, 12])
    def test_no_month_left(self, order_month):
        """Orders placed in or after the period-end month cannot use a plan."""
        with pytest.raises(InvalidPaymentPlanException) as exc_info:
            InstallmentPlanCalculator.installment_count(date(2026, order_month, 5))
        assert exc_info.value.code == ErrorCode.INVALID_PAYMENT_PLAN

    def test_custom_period_end(self):
        assert InstallmentPlanCalculator.installment_count(date(2026, 3, 1), period_end_month=6) == 3


# =============================================================================
# DUE DATES
# =============================================================================

class TestDueDates:
    """Debit dates clamp to the month length."""

    def test_regular_day(self):
        assert InstallmentPlanCalculator.due_date(2026, 4, 15) == date(2026, 4, 15)

    def test_day_31_means_last_day(self):
        assert InstallmentPlanCalculator.due_date(2026, 4, 31) == date(2026, 4, 30)
        assert InstallmentPlanCalculator.due_date(2026, 2, 31) == date(2026, 2, 28)

    def test_day_30_clamps_in_february(self):
        assert InstallmentPlanCalculator.due_date(2026, 2, 30) == date(2026, 2, 28)
        assert InstallmentPlanCalculator.due_date(2028, 2, 30) == date(2028, 2, 29)

    def test_schedule_first_and_last_dates(self):
        schedule = InstallmentPlanCalculator.build_schedule(Decimal("800.00"), date(2026, 3, 10))
        assert schedule.first_due_date == date(2026, 4, 15)
        assert schedule.last_due_date == date(2026, 11, 15)
        assert schedule.debit_day == 15

    def test_schedule_lists_every_due_date(self):
        schedule = InstallmentPlanCalculator.build_schedule(
            Decimal("800.00"), date(2026, 8, 1), debit_day=31
        )
        assert schedule.due_dates() == [
            date(2026, 9, 30),
            date(2026, 10, 31),
            date(2026, 11, 30),
        ]

    @pytest.mark.parametrize("debit_day", [0, 32, -1])
    def test_invalid_debit_day(self, debit_day):
        with pytest.raises(InvalidPaymentPlanException):
            InstallmentPlanCalculator.build_schedule(Decimal("100.00"), date(2026, 3, 1), debit_day=debit_day)


# =============================================================================
# AMOUNTS
# =============================================================================

class TestInstallmentAmounts:
    """Amount per installment and the rounding residual."""

    def test_even_split(self):
        """900 over 9 installments is exactly 100 each."""
        schedule = InstallmentPlanCalculator.build_schedule(Decimal("900.00"), date(2026, 2, 10))
        assert schedule.installment_count == 9
        assert schedule.installment_amount == Decimal("100.00")
        assert schedule.final_installment_amount == Decimal("100.00")

    def test_final_installment_absorbs_residual(self):
        schedule = InstallmentPlanCalculator.build_schedule(Decimal("1000.00"), date(2026, 2, 10))
        assert schedule.installment_amount == Decimal("111.11")
        assert schedule.final_installment_amount == Decimal("111.12")
        total = schedule.installment_amount * (schedule.installment_count - 1) + schedule.final_installment_amount
        assert total == Decimal("1000.00")

    def test_amount_rounds_half_up(self):
        """100.00 / 8 = 12.5 exactly; 100.01 / 8 = 12.50125 -> 12.50."""
        schedule = InstallmentPlanCalculator.build_schedule(Decimal("100.01"), date(2026, 3, 1))
        assert schedule.installment_amount == Decimal("12.50")
        assert schedule.final_installment_amount == Decimal("12.51")
