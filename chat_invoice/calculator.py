"""Invoice arithmetic: subtotal, discount, tax, shipping, total and payment schedule."""
from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from .schemas import (
    DiscountSpec,
    DownPayment,
    FixedDiscount,
    Invoice,
    InvoiceCalculations,
    ParsedLineItem,
    PaymentSchedule,
    PaymentTerms,
    PercentageDiscount,
    RemainingBalance,
)
from .utils import DATE_PATTERN, parse_date, round_half_up

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = {
    "NET_15": 15,
    "NET_30": 30,
    "NET_45": 45,
    "NET_60": 60,
    "DUE_ON_RECEIPT": 0,
}

DOWN_PAYMENT_PATTERN = r"\b(?:dp|down\s*payment|uang\s+muka|bayar\s+muka|bayar\s+dulu)\b"
REMAINING_PATTERN = r"\b(?:sisa(?:nya)?|pelunasan|final\s+payment|lunas)\b"
IMMEDIATE_PATTERN = r"\b(?:dulu|first|sekarang|langsung)\b"
PERCENT_PATTERN = r"(\d+(?:[.,]\d+)?)\s*(?:%|persen\b|percent\b)"


class InvoiceCalculator:
    def __init__(
        self,
        default_down_payment_percentage: float = 30,
        down_payment_days: int = 15,
        final_payment_days: int = 30,
        currency: str = "IDR",
    ) -> None:
        self.default_down_payment_percentage = default_down_payment_percentage
        self.down_payment_days = down_payment_days
        self.final_payment_days = final_payment_days
        self.currency = currency
        self._down_payment_re = re.compile(DOWN_PAYMENT_PATTERN, re.IGNORECASE)
        self._remaining_re = re.compile(REMAINING_PATTERN, re.IGNORECASE)
        self._immediate_re = re.compile(IMMEDIATE_PATTERN, re.IGNORECASE)
        self._percent_re = re.compile(PERCENT_PATTERN, re.IGNORECASE)
        self._date_re = re.compile(DATE_PATTERN)

    def compute(
        self,
        items: Sequence[ParsedLineItem],
        discount: DiscountSpec,
        tax_enabled: bool = False,
        tax_rate: float = 0,
        shipping: int = 0,
        payment: Optional[PaymentTerms] = None,
        invoice_date: Optional[date] = None,
    ) -> Tuple[InvoiceCalculations, Optional[PaymentSchedule]]:
        """Derive the invoice figures.

        The discount is taken from the summed subtotal, tax from the
        discounted subtotal, and the grand total never goes below zero.
        A down payment, when requested, is a share of the grand total.
        """
        subtotal = sum(item.line_total for item in items)
        discount_amount = discount.amount_for(subtotal)
        tax = self._tax(subtotal - discount_amount, tax_rate) if tax_enabled else 0
        grand_total = max(0, subtotal - discount_amount + tax + shipping)

        calculations = InvoiceCalculations(
            subtotal=subtotal,
            discount=discount_amount,
            discount_type=discount.discount_type,
            discount_value=self._discount_value(discount),
            tax=tax,
            tax_rate=tax_rate if tax_enabled else 0,
            shipping=shipping,
            grand_total=grand_total,
            currency=self.currency,
        )

        schedule = None
        if payment is not None and payment.down_payment_requested:
            schedule = self.schedule(grand_total, payment, invoice_date or date.today())
        return calculations, schedule

    def schedule(self, grand_total: int, payment: PaymentTerms, invoice_date: date) -> PaymentSchedule:
        percentage = payment.down_payment_percentage or self.default_down_payment_percentage
        down_amount = round_half_up(Decimal(grand_total) * Decimal(str(percentage)) / 100)

        if payment.down_payment_due:
            down_due = payment.down_payment_due
        elif payment.immediate:
            down_due = invoice_date
        else:
            down_due = invoice_date + timedelta(days=self.down_payment_days)
        final_due = payment.final_due or invoice_date + timedelta(days=self.final_payment_days)

        return PaymentSchedule(
            total_amount=grand_total,
            down_payment=DownPayment(percentage=percentage, amount=down_amount, due_date=down_due),
            remaining_balance=RemainingBalance(amount=grand_total - down_amount, due_date=final_due),
        )

    def parse_payment(self, directive: Optional[str]) -> Optional[PaymentTerms]:
        """Read ``DP 30%``, ``DP dulu 10%`` or ``sisanya tanggal 20/08/2025`` style directives."""
        if not directive or not directive.strip():
            return None

        terms = PaymentTerms()
        for fragment in directive.splitlines():
            down_payment = self._down_payment_re.search(fragment)
            if down_payment:
                terms.down_payment_requested = True
                percent = self._percent_re.search(fragment)
                if percent and terms.down_payment_percentage is None:
                    value = float(percent.group(1).replace(",", "."))
                    if 0 < value <= 100:
                        terms.down_payment_percentage = value
                if self._immediate_re.search(fragment):
                    terms.immediate = True

            for date_match in self._date_re.finditer(fragment):
                parsed = parse_date(date_match.group(0))
                if parsed is None:
                    continue
                if self._refers_to_remaining(fragment, date_match.start()):
                    terms.final_due = terms.final_due or parsed
                else:
                    terms.down_payment_due = terms.down_payment_due or parsed

        return terms

    @staticmethod
    def due_date(invoice_date: date, payment_terms: str = "NET_30") -> date:
        days = PAYMENT_TERM_DAYS.get((payment_terms or "").upper(), 30)
        return invoice_date + timedelta(days=days)

    def verify(self, invoice: Invoice) -> List[str]:
        """Recompute an invoice's figures and list every disagreement."""
        errors: list[str] = []
        calc = invoice.calculations

        for item in invoice.items:
            if item.unit_price is None:
                errors.append(f"missing_field: unit_price ({item.product_name})")

        subtotal = sum(item.line_total for item in invoice.items)
        if subtotal != calc.subtotal:
            errors.append("business: subtotal_mismatch")

        if calc.discount_type == "percentage":
            expected_discount = PercentageDiscount(value=calc.discount_value).amount_for(calc.subtotal)
        else:
            expected_discount = min(calc.discount, calc.subtotal)
        if calc.discount != expected_discount:
            errors.append("business: discount_mismatch")

        if calc.tax != self._tax(calc.subtotal - calc.discount, calc.tax_rate) and calc.tax_rate:
            errors.append("business: tax_mismatch")
        if calc.tax and not calc.tax_rate:
            errors.append("business: tax_without_rate")

        expected_total = max(0, calc.subtotal - calc.discount + calc.tax + calc.shipping)
        if calc.grand_total != expected_total:
            errors.append("business: totals_mismatch")

        schedule = invoice.payment_schedule
        if schedule is not None:
            expected_down = round_half_up(Decimal(calc.grand_total) * Decimal(str(schedule.down_payment.percentage)) / 100)
            if schedule.down_payment.amount != expected_down:
                errors.append("business: down_payment_mismatch")
            if schedule.down_payment.amount + schedule.remaining_balance.amount != calc.grand_total:
                errors.append("business: payment_schedule_sum_mismatch")
            if schedule.remaining_balance.due_date < schedule.down_payment.due_date:
                errors.append("business: final_payment_before_down_payment")

        if invoice.header.due_date < invoice.header.invoice_date:
            errors.append("business: due_before_invoice_date")
        return errors

    # Internals
    @staticmethod
    def _tax(taxable: int, tax_rate: float) -> int:
        return round_half_up(Decimal(taxable) * Decimal(str(tax_rate)) / 100)

    @staticmethod
    def _discount_value(discount: DiscountSpec) -> float:
        if isinstance(discount, PercentageDiscount):
            return discount.value
        if isinstance(discount, FixedDiscount):
            return discount.amount
        return 0

    def _refers_to_remaining(self, fragment: str, position: int) -> bool:
        before = fragment[:position]
        remaining = [m.start() for m in self._remaining_re.finditer(before)]
        down = [m.start() for m in self._down_payment_re.finditer(before)]
        if remaining or down:
            return max(remaining, default=-1) > max(down, default=-1)
        return bool(self._remaining_re.search(fragment)) or not self._down_payment_re.search(fragment)
