# services/ledger_service.py
"""
Invoice/payment ledger.

The only code allowed to change an invoice's balance, status or payment list.
Every operation runs as one database transaction spanning the invoice and
payment writes:

1. The invoice row is loaded FOR UPDATE and carries a version counter, so two
   writers on the same invoice either serialize or the second one fails with
   a conflict instead of computing from a stale read.
2. The balance is always re-derived from the invoice's counted payments.
3. Conflict-class failures are retried a bounded number of times.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from config import LEDGER_MAX_RETRIES, PAYPAL_USD_RATE
from database import Database
from exceptions import (
     GatewayError,
     InvalidStateError,
     NotFoundError,
     TransactionFailure,
     ValidationError,
)
from models import Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from services.totals import ZERO, recalculate, to_money

logger = logging.getLogger(__name__)

T = TypeVar("T")

CAPTURE_COMPLETED = "COMPLETED"


def run_with_retry(db: Database, work: Callable[[Session], T], max_retries: int = LEDGER_MAX_RETRIES) -> T:
     """
     Run ``work`` inside ``db.transaction()``.

     Only conflict-class TransactionFailures are retried; every other error
     propagates on the first attempt.
     """
     attempt = 0
     while True:
          try:
               with db.transaction() as session:
                    return work(session)
          except TransactionFailure as e:
               if not e.conflict or attempt >= max_retries:
                    raise
               attempt += 1
               logger.warning("Ledger transaction conflict, retrying (%d/%d): %s", attempt, max_retries, e)


def _parse_amount(amount) -> Decimal:
     try:
          value = to_money(amount)
     except (InvalidOperation, TypeError, ValueError):
          raise ValidationError("amount must be a number", {"amount": str(amount)})
     if value <= ZERO:
          raise ValidationError("amount must be greater than zero", {"amount": str(value)})
     return value


def load_invoice_for_update(session: Session, invoice_id: str) -> Invoice:
     invoice = (
          session.query(Invoice)
          .filter(Invoice.id == invoice_id)
          .with_for_update()
          .first()
     )
     if invoice is None:
          raise NotFoundError("Invoice", invoice_id)
     return invoice


def _has_counted_payments(invoice: Invoice) -> bool:
     return any(p.status.counts_toward_balance for p in invoice.payments)


def _apply_payment(session: Session, invoice: Invoice, payment: Payment, now: datetime) -> Payment:
     """Attach a new payment to a locked invoice and settle balance and status."""
     if invoice.status == InvoiceStatus.VOID:
          raise InvalidStateError("Cannot pay a void invoice", {"invoice_id": invoice.id})

     payment.sequence = len(invoice.payments)
     invoice.payments.append(payment)
     session.add(payment)

     recalculate(invoice, invoice.payments)
     if invoice.balance == ZERO:
          invoice.mark_paid(now)
     elif invoice.status == InvoiceStatus.DRAFT:
          invoice.mark_issued(now)
     invoice.updated_at = now  # always bump the version, even when nothing else changed

     session.flush()
     logger.info(
          "Payment %s of %s applied to invoice %s: balance=%s status=%s",
          payment.id, payment.amount, invoice.number, invoice.balance, invoice.status.value,
     )
     return payment


def create_payment(
     db: Database,
     invoice_id: str,
     amount,
     method,
     reference: Optional[str] = None,
     notes: Optional[str] = None,
     paid_at: Optional[datetime] = None,
) -> Payment:
     """
     Record a posted payment against an invoice and adjust its balance.

     Raises:
          ValidationError: non-positive amount or unknown method
          NotFoundError: invoice does not exist
          InvalidStateError: invoice is void
     """
     value = _parse_amount(amount)
     try:
          payment_method = PaymentMethod(method)
     except ValueError:
          raise ValidationError(f"Unknown payment method '{method}'", {"method": method})

     def work(session: Session) -> Payment:
          invoice = load_invoice_for_update(session, invoice_id)
          now = utcnow()
          payment = Payment(
               invoice_id=invoice.id,
               method=payment_method,
               amount=value,
               status=PaymentStatus.POSTED,
               paid_at=paid_at or now,
               reference=reference,
               notes=notes,
          )
          return _apply_payment(session, invoice, payment, now)

     return run_with_retry(db, work)


def refund_payment(db: Database, payment_id: str) -> dict:
     """
     Reverse a counted payment and reopen its invoice if it was paid.

     Raises:
          NotFoundError: payment (or its invoice) does not exist
          InvalidStateError: payment already refunded or failed
     """

     def work(session: Session) -> dict:
          payment = (
               session.query(Payment)
               .filter(Payment.id == payment_id)
               .with_for_update()
               .first()
          )
          if payment is None:
               raise NotFoundError("Payment", payment_id)
          if payment.status == PaymentStatus.REFUNDED:
               raise InvalidStateError("Payment already refunded", {"payment_id": payment_id})
          if not payment.status.counts_toward_balance:
               raise InvalidStateError(
                    f"Cannot refund a {payment.status.value} payment", {"payment_id": payment_id}
               )

          try:
               invoice = load_invoice_for_update(session, payment.invoice_id)
          except NotFoundError:
               logger.error(
                    "Data integrity error: payment %s references missing invoice %s",
                    payment_id, payment.invoice_id,
               )
               raise

          payment.status = PaymentStatus.REFUNDED
          recalculate(invoice, invoice.payments)
          if invoice.balance > ZERO and invoice.status == InvoiceStatus.PAID:
               invoice.status = InvoiceStatus.SENT  # reopen
          invoice.updated_at = utcnow()
          session.flush()

          logger.info(
               "Payment %s refunded; invoice %s balance=%s status=%s",
               payment_id, invoice.number, invoice.balance, invoice.status.value,
          )
          return {"ok": True}

     return run_with_retry(db, work)


def set_invoice_status(db: Database, invoice_id: str, status) -> Invoice:
     """
     Move an invoice to ``status``.

     void is terminal; paid requires a zero balance; draft requires no
     counted payments; sent stamps issued_at.
     """
     try:
          target = InvoiceStatus(status)
     except ValueError:
          raise ValidationError(f"Unknown invoice status '{status}'", {"status": status})

     def work(session: Session) -> Invoice:
          invoice = load_invoice_for_update(session, invoice_id)
          recalculate(invoice, invoice.payments)
          if target == invoice.status:
               return invoice
          if invoice.status == InvoiceStatus.VOID:
               raise InvalidStateError("Void invoices cannot change status", {"invoice_id": invoice_id})

          now = utcnow()
          if target == InvoiceStatus.VOID:
               invoice.status = InvoiceStatus.VOID
          elif target == InvoiceStatus.PAID:
               if invoice.balance > ZERO:
                    raise InvalidStateError(
                         "Invoice has an outstanding balance",
                         {"invoice_id": invoice_id, "balance": str(invoice.balance)},
                    )
               invoice.mark_paid(now)
          elif target == InvoiceStatus.SENT:
               if invoice.balance == ZERO and _has_counted_payments(invoice):
                    raise InvalidStateError("Invoice is fully paid", {"invoice_id": invoice_id})
               invoice.mark_issued(now)
          else:
               if _has_counted_payments(invoice):
                    raise InvalidStateError(
                         "Invoice with payments cannot return to draft", {"invoice_id": invoice_id}
                    )
               invoice.status = InvoiceStatus.DRAFT

          invoice.updated_at = now
          session.flush()
          logger.info("Invoice %s status set to %s", invoice.number, invoice.status.value)
          return invoice

     return run_with_retry(db, work)


def apply_gateway_capture(db: Database, capture, usd_rate: Decimal = PAYPAL_USD_RATE) -> Payment:
     """
     Record a completed gateway capture as a verified payment.

     ``capture`` is a services.paypal_client.GatewayCapture. Nothing changes
     locally unless the capture status is COMPLETED. A capture whose order id
     already has a payment returns that payment without applying it again.
     """
     if capture.status != CAPTURE_COMPLETED:
          raise InvalidStateError(
               "Capture not completed", {"status": capture.status, "order_id": capture.order_id}
          )
     if not capture.reference_id or capture.amount_usd is None:
          raise GatewayError("Missing capture data", {"order_id": capture.order_id})

     amount_usd = to_money(capture.amount_usd)
     amount_php = _parse_amount(amount_usd * Decimal(str(usd_rate)))

     def work(session: Session) -> Payment:
          existing = find_gateway_payment(session, capture.order_id)
          if existing is not None:
               logger.info("Order %s already captured as payment %s", capture.order_id, existing.id)
               return existing

          invoice = load_invoice_for_update(session, capture.reference_id)
          now = utcnow()
          payment = Payment(
               invoice_id=invoice.id,
               method=PaymentMethod.PAYPAL,
               amount=amount_php,
               amount_usd=amount_usd,
               status=PaymentStatus.VERIFIED,
               paid_at=now,
               reference=capture.capture_id,
               external_reference=capture.order_id,
               raw=capture.raw,
          )
          return _apply_payment(session, invoice, payment, now)

     try:
          return run_with_retry(db, work)
     except TransactionFailure:
          # A concurrent capture of the same order won the unique external_reference
          with db.transaction() as session:
               existing = find_gateway_payment(session, capture.order_id)
          if existing is None:
               raise
          logger.info("Order %s captured concurrently as payment %s", capture.order_id, existing.id)
          return existing


def find_gateway_payment(session: Session, order_id: str) -> Optional[Payment]:
     """Payment already recorded for a gateway order, if any."""
     return (
          session.query(Payment)
          .filter(Payment.external_reference == order_id)
          .first()
     )


def get_payment(session: Session, payment_id: str) -> Payment:
     payment = session.query(Payment).filter(Payment.id == payment_id).first()
     if payment is None:
          raise NotFoundError("Payment", payment_id)
     return payment


def list_payments(
     session: Session,
     page: int = 1,
     limit: int = 20,
     invoice_id: Optional[str] = None,
     method: Optional[PaymentMethod] = None,
     status: Optional[PaymentStatus] = None,
) -> tuple[list[Payment], int]:
     """Newest payments first; returns (items, total)."""
     query = session.query(Payment)
     if invoice_id:
          query = query.filter(Payment.invoice_id == invoice_id)
     if method:
          query = query.filter(Payment.method == method)
     if status:
          query = query.filter(Payment.status == status)

     total = query.count()
     items = (
          query.order_by(Payment.paid_at.desc())
          .offset((page - 1) * limit)
          .limit(limit)
          .all()
     )
     return items, total
