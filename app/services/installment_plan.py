"""
Procurement Orders - Installment Plan Calculator

Monthly debit-order schedules for INSTALLMENT orders.

Installments run from the month after the order is placed through the
configured period-end month of the same year (November by default), so an
order placed in March pays 8 installments (April..November).

The installment amount is grand_total / count rounded half-up to the cent.
The last installment absorbs the rounding residual so the installments always
sum to the grand total exactly.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from app.config import settings
from app.models.order import Order
from app.services.pricing import quantize_money
from app.utils.error_handling import InvalidPaymentPlanException

logger = logging.getLogger(__name__)


# Debit day 31 means "last day of the month"
LAST_DAY_OF_MONTH = 31


@dataclass(frozen=True)
class InstallmentSchedule:
    installment_count: int
    installment_amount: Decimal
    final_installment_amount: Decimal
    debit_day: int
    first_due_date: date
    last_due_date: date

    def due_dates(self) -> List[date]:
        """Every due date in the schedule, first to last."""
        year = self.first_due_date.year
        start = self.first_due_date.month
        return [
            InstallmentPlanCalculator.due_date(year, month, self.debit_day)
            for month in range(start, start + self.installment_count)
        ]


class InstallmentPlanCalculator:
    """Pure schedule arithmetic; nothing here touches the database."""

    @staticmethod
    def installment_count(order_date: date, period_end_month: Optional[int] = None) -> int:
        """
        Months from the month after `order_date` through the period end, inclusive.

        Raises:
            InvalidPaymentPlanException: when no month remains in the period
        """
        end_month = settings.installment_period_end_month if period_end_month is None else period_end_month
        start_month = order_date.month + 1
        if start_month > end_month:
            raise InvalidPaymentPlanException(
                f"No installment months remain: orders placed in month {order_date.month} "
                f"cannot be paid off by month {end_month}",
                details={"order_month": order_date.month, "period_end_month": end_month},
            )
        return end_month - start_month + 1

    @staticmethod
    def due_date(year: int, month: int, debit_day: int) -> date:
        """Debit date in a month, clamped to the month's length."""
        month_length = calendar.monthrange(year, month)[1]
        if debit_day == LAST_DAY_OF_MONTH:
            return date(year, month, month_length)
        return date(year, month, min(debit_day, month_length))

    @staticmethod
    def validate_debit_day(debit_day: int) -> None:
        if not 1 <= debit_day <= LAST_DAY_OF_MONTH:
            raise InvalidPaymentPlanException(
                "Debit order day must be between 1 and 31",
                details={"debit_day": debit_day},
            )

    @staticmethod
    def build_schedule(
        grand_total: Decimal,
        order_date: date,
        debit_day: Optional[int] = None,
        period_end_month: Optional[int] = None,
    ) -> InstallmentSchedule:
        """Construct the full schedule for an order placed on `order_date`."""
        day = settings.default_debit_day if debit_day is None else debit_day
        InstallmentPlanCalculator.validate_debit_day(day)

        count = InstallmentPlanCalculator.installment_count(order_date, period_end_month)
        amount = quantize_money(grand_total / count)
        start_month = order_date.month + 1

        return InstallmentSchedule(
            installment_count=count,
            installment_amount=amount,
            final_installment_amount=grand_total - amount * (count - 1),
            debit_day=day,
            first_due_date=InstallmentPlanCalculator.due_date(order_date.year, start_month, day),
            last_due_date=InstallmentPlanCalculator.due_date(
                order_date.year, start_month + count - 1, day
            ),
        )

    @staticmethod
    def apply_schedule(order: Order, schedule: InstallmentSchedule) -> None:
        order.installment_count = schedule.installment_count
        order.installment_amount = schedule.installment_amount
        order.debit_day = schedule.debit_day
        order.first_due_date = schedule.first_due_date
        order.last_due_date = schedule.last_due_date

    @staticmethod
    def recompute_amount(order: Order) -> None:
        """
        Refresh the installment amount after the grand total changed.

        Count, due dates and installments received are left as they are.
        """
        if not order.installment_count:
            return
        order.installment_amount = quantize_money(order.grand_total / order.installment_count)
        logger.debug(
            f"Order {order.order_number}: installment amount now {order.installment_amount} "
            f"x {order.installment_count}"
        )
