# services/totals.py
"""
Invoice totals engine.

Deterministic recomputation of subtotal, tax, total and balance from an
invoice's line items and (optionally) its recorded payments.

Rounding: every currency value is quantized to 2 decimal places with
ROUND_HALF_UP.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
     """Round any numeric input to a 2-decimal currency amount."""
     if not isinstance(value, Decimal):
          value = Decimal(str(value))
     return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity, unit_price, discount) -> Decimal:
     """quantity * unit_price - discount, floored at zero."""
     gross = Decimal(quantity or 0) * Decimal(str(unit_price or 0))
     line = gross - Decimal(str(discount or 0))
     return max(ZERO, line)


def counted_amount(payments: Iterable) -> Decimal:
     """Sum of payments that still count toward the invoice (not refunded or failed)."""
     return sum(
          (Decimal(str(p.amount)) for p in payments if p.status.counts_toward_balance),
          ZERO,
     )


class InvoiceTotals(NamedTuple):
     subtotal: Decimal
     tax: Decimal
     total: Decimal
     balance: Optional[Decimal]


def compute_totals(
     line_items: Iterable,
     tax_rate,
     payments: Optional[Iterable] = None,
     current_balance: Optional[Decimal] = None,
) -> InvoiceTotals:
     """
     Pure totals computation.

     Args:
          line_items: objects exposing quantity, unit_price and discount
          tax_rate: fraction, e.g. Decimal("0.12")
          payments: loaded payments; when given, balance is derived from them
          current_balance: stored balance, kept when payments are not supplied

     Returns:
          InvoiceTotals with every amount rounded to 2 decimals
     """
     subtotal = sum(
          (line_subtotal(li.quantity, li.unit_price, li.discount) for li in line_items),
          ZERO,
     )
     tax = max(ZERO, subtotal * Decimal(str(tax_rate or 0)))
     total = subtotal + tax

     if payments is not None:
          balance = max(ZERO, to_money(total - counted_amount(payments)))
     elif current_balance is None:
          balance = to_money(total)
     else:
          balance = current_balance

     return InvoiceTotals(
          subtotal=to_money(subtotal),
          tax=to_money(tax),
          total=to_money(total),
          balance=balance,
     )


def recalculate(invoice, payments: Optional[Iterable] = None):
     """
     Apply compute_totals to an invoice and return it.

     Must run before every write of an invoice whose line items changed.
     A void invoice is recalculated the same way; its balance is informational.
     """
     totals = compute_totals(
          invoice.line_items or [],
          invoice.tax_rate,
          payments=list(payments) if payments is not None else None,
          current_balance=invoice.balance,
     )
     invoice.subtotal = totals.subtotal
     invoice.tax = totals.tax
     invoice.total = totals.total
     invoice.balance = totals.balance
     return invoice
