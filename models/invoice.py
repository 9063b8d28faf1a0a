# models/invoice.py
import enum
from decimal import Decimal

from sqlalchemy import (
     CheckConstraint, Column, Integer, String, Numeric, Date, DateTime, Text, ForeignKey, Enum, Index, UniqueConstraint,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, generate_id


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice lifecycle status."""
     DRAFT = "draft"
     SENT = "sent"
     PAID = "paid"
     VOID = "void"


class Invoice(TimestampMixin, Base):
     """
     Invoice model - billing document for tutoring packages and courses.

     Totals and balance are derived by the totals engine
     (services.totals.recalculate); only the ledger service mutates
     balance, status and the payment list.
     """
     __tablename__ = "invoices"
     __table_args__ = (
          UniqueConstraint("number", name="uq_invoices_number"),
          Index("ix_invoices_user_status", "billed_to_user_id", "status"),
     )

     id = Column(String(36), primary_key=True, default=generate_id)
     number = Column(String(32), nullable=False, index=True)  # e.g. INV-2025-000123

     # Billed parties (opaque references owned by other services)
     billed_to_user_id = Column(String(64), nullable=False, index=True)
     guardian_id = Column(String(64), nullable=True)
     enrollment_id = Column(String(64), nullable=True)

     # Derived amounts
     tax_rate = Column(Numeric(6, 4), nullable=False, default=Decimal("0"))  # 0.12 for 12%
     subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
     tax = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
     total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
     balance = Column(Numeric(12, 2), nullable=True)

     status = Column(
          Enum(
               InvoiceStatus,
               name="invoice_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=InvoiceStatus.DRAFT,
          nullable=False,
          index=True
     )
     due_date = Column(Date, nullable=True)
     issued_at = Column(DateTime(timezone=True), nullable=True)
     paid_at = Column(DateTime(timezone=True), nullable=True)
     notes = Column(Text, nullable=True)

     # Optimistic concurrency counter
     version = Column(Integer, nullable=False, default=1)

     # Relationships
     line_items = relationship(
          "InvoiceLineItem",
          back_populates="invoice",
          order_by="InvoiceLineItem.position",
          collection_class=ordering_list("position"),
          cascade="all, delete-orphan",
          lazy="selectin",
     )
     payments = relationship(
          "Payment",
          back_populates="invoice",
          order_by="Payment.sequence",
          lazy="selectin",
     )

     __mapper_args__ = {"version_id_col": version}

     def __repr__(self):
          return f"<Invoice(id={self.id}, number='{self.number}', total={self.total}, status='{self.status.value}')>"

     @property
     def payment_ids(self) -> list[str]:
          """Payment ids in the order they were recorded."""
          return [p.id for p in self.payments]

     def mark_issued(self, when) -> None:
          """Move draft to sent, stamping issued_at once."""
          self.status = InvoiceStatus.SENT
          if self.issued_at is None:
               self.issued_at = when

     def mark_paid(self, when) -> None:
          """Mark the invoice as paid, stamping paid_at once."""
          self.status = InvoiceStatus.PAID
          if self.paid_at is None:
               self.paid_at = when


class InvoiceLineItem(Base):
     """One billable entry on an invoice."""
     __tablename__ = "invoice_line_items"
     __table_args__ = (
          CheckConstraint("quantity >= 1", name="ck_invoice_line_items_quantity"),
          CheckConstraint("unit_price >= 0", name="ck_invoice_line_items_unit_price"),
          CheckConstraint("discount >= 0", name="ck_invoice_line_items_discount"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)
     invoice_id = Column(
          String(36),
          ForeignKey("invoices.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     position = Column(Integer, nullable=False, default=0)
     description = Column(String(255), nullable=False)
     quantity = Column(Integer, nullable=False, default=1)
     unit_price = Column(Numeric(12, 2), nullable=False)
     discount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
     package_id = Column(String(64), nullable=True)
     course_id = Column(String(64), nullable=True)

     invoice = relationship("Invoice", back_populates="line_items")

     def __repr__(self):
          return f"<InvoiceLineItem(description='{self.description}', quantity={self.quantity}, unit_price={self.unit_price})>"
