# services/invoice_service.py
"""
Invoice Service - Business logic layer for invoice operations.

This service handles invoice creation, updates, and business rules
separate from the API layer. Every write recalculates totals before the
invoice is flushed; balance and status changes caused by payments belong
to services.ledger_service.
"""
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from exceptions import InvalidStateError, NotFoundError, ValidationError
from models import Invoice, InvoiceLineItem, InvoiceStatus, utcnow
from services.ledger_service import load_invoice_for_update
from services.totals import ZERO, recalculate

logger = logging.getLogger(__name__)

NUMBER_PREFIX = "INV"
SEQUENCE_DIGITS = 6
NUMBER_PATTERN = re.compile(r"^INV-(\d{4})-(\d{6})$")
EDITABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)
UPDATABLE_FIELDS = (
     "billed_to_user_id",
     "guardian_id",
     "enrollment_id",
     "due_date",
     "notes",
)


def _build_line_items(line_items: Iterable[dict]) -> list[InvoiceLineItem]:
     items = []
     for position, data in enumerate(line_items):
          if not data.get("description"):
               raise ValidationError("Line item description is required")
          if int(data.get("quantity", 1)) < 1:
               raise ValidationError("Line item quantity must be at least 1", {"line_item": data.get("description")})
          items.append(
               InvoiceLineItem(
                    position=position,
                    description=data["description"],
                    quantity=int(data.get("quantity", 1)),
                    unit_price=Decimal(str(data["unit_price"])),
                    discount=Decimal(str(data.get("discount") or 0)),
                    package_id=data.get("package_id"),
                    course_id=data.get("course_id"),
               )
          )
     return items


class InvoiceService:
     """Service class for invoice-related business logic."""

     @staticmethod
     def generate_invoice_number(db: Session, when: Optional[datetime] = None) -> str:
          """
          Next human-readable number for the year, e.g. INV-2025-000123.
          """
          year = (when or utcnow()).year
          prefix = f"{NUMBER_PREFIX}-{year}-"
          # Only generated-format numbers take part; client numbers like INV-2026-3 are skipped
          candidates = (
               db.query(Invoice.number)
               .filter(
                    Invoice.number.like(f"{prefix}%"),
                    func.char_length(Invoice.number) == len(prefix) + SEQUENCE_DIGITS,
               )
               .order_by(Invoice.number.desc())
          )
          for (number,) in candidates:
               match = NUMBER_PATTERN.match(number)
               if match:
                    return f"{prefix}{int(match.group(2)) + 1:06d}"
          return f"{prefix}000001"

     @staticmethod
     def create_invoice(
          db: Session,
          billed_to_user_id: str,
          line_items: Iterable[dict] = (),
          tax_rate: Decimal = Decimal("0"),
          number: Optional[str] = None,
          guardian_id: Optional[str] = None,
          enrollment_id: Optional[str] = None,
          due_date: Optional[date] = None,
          notes: Optional[str] = None,
     ) -> Invoice:
          """
          Create a draft invoice with computed totals.

          Args:
               db: SQLAlchemy database session
               billed_to_user_id: user (guardian or student) being billed
               line_items: dicts with description, quantity, unit_price, discount
               tax_rate: fraction, e.g. 0.12
               number: client-supplied number; generated when omitted

          Returns:
               Created Invoice object (balance == total)

          Raises:
               InvalidStateError: If the number is already taken
          """
          if number:
               taken = db.query(Invoice.id).filter(Invoice.number == number).first()
               if taken:
                    raise InvalidStateError(f"Invoice number {number} already exists", {"number": number})
          else:
               number = InvoiceService.generate_invoice_number(db)

          invoice = Invoice(
               number=number,
               billed_to_user_id=billed_to_user_id,
               guardian_id=guardian_id,
               enrollment_id=enrollment_id,
               tax_rate=Decimal(str(tax_rate or 0)),
               due_date=due_date,
               notes=notes,
               status=InvoiceStatus.DRAFT,
               line_items=_build_line_items(line_items),
               payments=[],
          )
          recalculate(invoice, [])

          db.add(invoice)
          db.flush()  # Flush to get the ID without committing
          logger.info("Invoice %s created for user %s: total=%s", invoice.number, billed_to_user_id, invoice.total)
          return invoice

     @staticmethod
     def get_invoice(db: Session, invoice_id: str) -> Invoice:
          invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
          if invoice is None:
               raise NotFoundError("Invoice", invoice_id)
          return invoice

     @staticmethod
     def list_invoices(
          db: Session,
          page: int = 1,
          limit: int = 20,
          user_id: Optional[str] = None,
          status: Optional[InvoiceStatus] = None,
          search: Optional[str] = None,
     ) -> tuple[list[Invoice], int]:
          """
          Newest invoices first, optionally filtered.

          Returns:
               (invoices on the requested page, total matching count)
          """
          query = db.query(Invoice)
          if user_id:
               query = query.filter(Invoice.billed_to_user_id == user_id)
          if status:
               query = query.filter(Invoice.status == status)
          if search:
               query = query.filter(Invoice.number.ilike(f"%{search}%"))

          total = query.count()
          invoices = (
               query.order_by(Invoice.created_at.desc())
               .offset((page - 1) * limit)
               .limit(limit)
               .all()
          )
          return invoices, total

     @staticmethod
     def update_invoice(db: Session, invoice_id: str, changes: dict) -> Invoice:
          """
          Apply field and line item changes to a draft or sent invoice.

          Totals are recalculated against the invoice's payments; a sent invoice
          whose new balance is zero becomes paid.
          """
          invoice = load_invoice_for_update(db, invoice_id)
          if invoice.status not in EDITABLE_STATUSES:
               raise InvalidStateError(
                    f"Cannot edit a {invoice.status.value} invoice", {"invoice_id": invoice_id}
               )

          for field in UPDATABLE_FIELDS:
               if field in changes and not (field == "billed_to_user_id" and changes[field] is None):
                    setattr(invoice, field, changes[field])
          if changes.get("tax_rate") is not None:
               invoice.tax_rate = Decimal(str(changes["tax_rate"]))
          if changes.get("line_items") is not None:
               invoice.line_items = _build_line_items(changes["line_items"])

          recalculate(invoice, invoice.payments)
          now = utcnow()
          if invoice.balance == ZERO and any(p.status.counts_toward_balance for p in invoice.payments):
               invoice.mark_paid(now)
          invoice.updated_at = now

          db.flush()
          logger.info("Invoice %s updated: total=%s balance=%s", invoice.number, invoice.total, invoice.balance)
          return invoice

     @staticmethod
     def delete_invoice(db: Session, invoice_id: str) -> None:
          """Delete an invoice that has no payments recorded against it."""
          invoice = load_invoice_for_update(db, invoice_id)
          if invoice.payments:
               raise InvalidStateError(
                    "Cannot delete an invoice with payments", {"invoice_id": invoice_id}
               )
          db.delete(invoice)
          db.flush()
          logger.info("Invoice %s deleted", invoice.number)
