"""
Procurement Orders - Order Pricing

Line subtotals, VAT and grand totals for the order aggregate.

VAT is a single jurisdictional rate applied to the subtotal and rounded
half-up to 2 decimal places. Shipping is added on top of the taxed subtotal.
All arithmetic stays in Decimal.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from app.config import settings
from app.models.order import Order


TWO_PLACES = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    """Round a monetary amount half-up to 2 decimal places."""
    return Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    grand_total: Decimal


class PricingCalculator:
    """
    Order pricing utilities.

    grand_total = subtotal + tax_amount + shipping_cost holds for every
    OrderTotals this class produces.
    """

    @staticmethod
    def line_subtotal(unit_price: Decimal, quantity: int) -> Decimal:
        return quantize_money(unit_price * quantity)

    @staticmethod
    def calculate_tax(subtotal: Decimal, vat_rate: Optional[Decimal] = None) -> Decimal:
        """VAT on a subtotal, half-up to the cent."""
        rate = settings.vat_rate if vat_rate is None else vat_rate
        return quantize_money(subtotal * rate)

    @staticmethod
    def calculate_totals(
        lines: Iterable[Tuple[Decimal, int]],
        shipping_cost: Optional[Decimal] = None,
        vat_rate: Optional[Decimal] = None,
    ) -> OrderTotals:
        """
        Price a set of (unit_price, quantity) lines.

        Args:
            lines: unit price snapshot and quantity per line
            shipping_cost: flat shipping (defaults to settings.default_shipping_cost)
            vat_rate: VAT fraction (defaults to settings.vat_rate)
        """
        subtotal = sum(
            (PricingCalculator.line_subtotal(price, qty) for price, qty in lines),
            Decimal("0.00"),
        )
        subtotal = quantize_money(subtotal)
        tax_amount = PricingCalculator.calculate_tax(subtotal, vat_rate)
        shipping = quantize_money(
            settings.default_shipping_cost if shipping_cost is None else shipping_cost
        )
        return OrderTotals(
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_cost=shipping,
            grand_total=subtotal + tax_amount + shipping,
        )

    @staticmethod
    def reprice_order(order: Order, vat_rate: Optional[Decimal] = None) -> OrderTotals:
        """Recompute line subtotals and header totals from the order's items."""
        for item in order.items:
            item.line_subtotal = PricingCalculator.line_subtotal(item.unit_price, item.quantity)

        totals = PricingCalculator.calculate_totals(
            ((item.unit_price, item.quantity) for item in order.items),
            shipping_cost=order.shipping_cost,
            vat_rate=vat_rate,
        )
        order.subtotal = totals.subtotal
        order.tax_amount = totals.tax_amount
        order.shipping_cost = totals.shipping_cost
        order.grand_total = totals.grand_total
        return totals
