# schemas/__init__.py
from .invoice import (
     LineItemIn,
     LineItemResponse,
     InvoiceCreate,
     InvoiceUpdate,
     InvoiceStatusUpdate,
     InvoiceResponse,
     InvoiceListResponse,
)
from .payment import (
     PaymentCreate,
     PaymentResponse,
     PaymentListResponse,
     RefundResponse,
)
from .paypal import PayPalOrderCreate, PayPalCapture, PayPalConfigResponse

__all__ = [
     "LineItemIn",
     "LineItemResponse",
     "InvoiceCreate",
     "InvoiceUpdate",
     "InvoiceStatusUpdate",
     "InvoiceResponse",
     "InvoiceListResponse",
     "PaymentCreate",
     "PaymentResponse",
     "PaymentListResponse",
     "RefundResponse",
     "PayPalOrderCreate",
     "PayPalCapture",
     "PayPalConfigResponse",
]
