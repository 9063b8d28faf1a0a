# services/__init__.py
from .invoice_service import InvoiceService
from .ledger_service import (
     apply_gateway_capture,
     create_payment,
     get_payment,
     list_payments,
     refund_payment,
     run_with_retry,
     set_invoice_status,
)
from .paypal_client import GatewayCapture, PayPalClient
from .totals import compute_totals, recalculate

__all__ = [
     "InvoiceService",
     "apply_gateway_capture",
     "create_payment",
     "get_payment",
     "list_payments",
     "refund_payment",
     "run_with_retry",
     "set_invoice_status",
     "GatewayCapture",
     "PayPalClient",
     "compute_totals",
     "recalculate",
]
