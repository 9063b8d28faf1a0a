# schemas/payment.py
"""
Pydantic schemas for the payment API.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from models.payment import PaymentMethod, PaymentStatus
from schemas.invoice import Money


class PaymentCreate(BaseModel):
     """Request body for POST /api/payments."""

     invoice_id: str = Field(..., min_length=1, description="Invoice to apply the payment to")
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount paid in PHP")
     method: PaymentMethod
     reference: Optional[str] = Field(None, max_length=255, description="e.g. GCash reference number")
     paid_at: Optional[datetime] = None
     notes: Optional[str] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "invoice_id": "4f1c2a9e-1d7b-4d2c-9a57-0c3f1f0c8e11",
                    "amount": 1120.00,
                    "method": "gcash",
                    "reference": "GC-0091234",
               }
          }
     )


class PaymentResponse(BaseModel):
     id: str
     invoice_id: str
     method: PaymentMethod
     amount: Money
     amount_usd: Optional[Money] = None
     status: PaymentStatus
     paid_at: datetime
     reference: Optional[str] = None
     external_reference: Optional[str] = None
     notes: Optional[str] = None
     created_at: datetime

     model_config = ConfigDict(from_attributes=True)


class PaymentListResponse(BaseModel):
     items: List[PaymentResponse]
     page: int = 1
     limit: int = 20
     total: int
     pages: int


class RefundResponse(BaseModel):
     ok: bool = True
