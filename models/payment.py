# models/payment.py
"""
Payment model - capture record against an invoice.

Records are immutable once created; the only permitted change is the
status transition to REFUNDED, performed by the ledger service.
"""
import enum

from sqlalchemy import (
     CheckConstraint, Column, Integer, String, Numeric, DateTime, Text, JSON, ForeignKey, Enum, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, generate_id, utcnow


class PaymentMethod(str, enum.Enum):
     CASH = "cash"
     GCASH = "gcash"
     BANK = "bank"
     CARD = "card"
     PAYPAL = "paypal"


class PaymentStatus(str, enum.Enum):
     POSTED = "posted"
     VERIFIED = "verified"  # confirmed by an external gateway
     REFUNDED = "refunded"
     FAILED = "failed"

     @property
     def counts_toward_balance(self) -> bool:
          return self in (PaymentStatus.POSTED, PaymentStatus.VERIFIED)


class Payment(Base):
     __tablename__ = "payments"
     __table_args__ = (
          CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
          UniqueConstraint("external_reference", name="uq_payments_external_reference"),
     )

     id = Column(String(36), primary_key=True, default=generate_id)
     invoice_id = Column(
          String(36),
          ForeignKey("invoices.id", ondelete="RESTRICT"),  # Prevent delete while payments exist
          nullable=False,
          index=True
     )
     sequence = Column(Integer, nullable=False, default=0)  # Position in the invoice's payment list
     method = Column(
          Enum(PaymentMethod, name="payment_method", values_callable=lambda e: [m.value for m in e]),
          nullable=False
     )
     amount = Column(Numeric(12, 2), nullable=False)  # PHP
     amount_usd = Column(Numeric(12, 2), nullable=True)
     status = Column(
          Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
          default=PaymentStatus.POSTED,
          nullable=False,
          index=True
     )
     paid_at = Column(DateTime(timezone=True), nullable=False)
     reference = Column(String(255), nullable=True)  # e.g. GCash ref #
     external_reference = Column(String(64), nullable=True)  # PayPal order id
     raw = Column(JSON, nullable=True)
     notes = Column(Text, nullable=True)
     created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

     invoice = relationship("Invoice", back_populates="payments")

     def __repr__(self):
          return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount}, status='{self.status.value}')>"
