# models/__init__.py
from .base import Base, generate_id, utcnow
from .invoice import Invoice, InvoiceLineItem, InvoiceStatus
from .payment import Payment, PaymentMethod, PaymentStatus

__all__ = [
     "Base",
     "generate_id",
     "utcnow",
     "Invoice",
     "InvoiceLineItem",
     "InvoiceStatus",
     "Payment",
     "PaymentMethod",
     "PaymentStatus",
]
