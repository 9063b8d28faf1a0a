# schemas/invoice.py
"""
Pydantic schemas for Invoice API request/response validation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional, List

from pydantic import BaseModel, Field, ConfigDict, PlainSerializer

from models.invoice import InvoiceStatus

# Currency amounts leave the API as 2-decimal JSON numbers
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


class LineItemIn(BaseModel):
     """One billable entry on an invoice."""
     description: str = Field(..., min_length=1, max_length=255)
     quantity: int = Field(default=1, ge=1)
     unit_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
     discount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
     package_id: Optional[str] = None
     course_id: Optional[str] = None


class LineItemResponse(BaseModel):
     description: str
     quantity: int
     unit_price: Money
     discount: Money
     package_id: Optional[str] = None
     course_id: Optional[str] = None

     model_config = ConfigDict(from_attributes=True)


class InvoiceCreate(BaseModel):
     """Schema for creating a new invoice. Invoices always start as draft."""
     number: Optional[str] = Field(None, max_length=32, description="Generated when omitted")
     billed_to_user_id: str = Field(..., min_length=1, description="User (guardian or student) billed")
     guardian_id: Optional[str] = None
     enrollment_id: Optional[str] = None
     line_items: List[LineItemIn] = Field(default_factory=list)
     tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1, description="Fraction, e.g. 0.12")
     due_date: Optional[date] = None
     notes: Optional[str] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "billed_to_user_id": "u-1001",
                    "line_items": [
                         {"description": "Math tutoring (10 sessions)", "quantity": 2, "unit_price": 500.00}
                    ],
                    "tax_rate": 0.12,
                    "due_date": "2026-02-28",
               }
          }
     )


class InvoiceUpdate(BaseModel):
     """Schema for updating an existing draft or sent invoice."""
     billed_to_user_id: Optional[str] = Field(None, min_length=1)
     guardian_id: Optional[str] = None
     enrollment_id: Optional[str] = None
     line_items: Optional[List[LineItemIn]] = None
     tax_rate: Optional[Decimal] = Field(None, ge=0, le=1)
     due_date: Optional[date] = None
     notes: Optional[str] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "line_items": [
                         {"description": "Math tutoring (10 sessions)", "quantity": 1, "unit_price": 500.00}
                    ]
               }
          }
     )


class InvoiceStatusUpdate(BaseModel):
     status: InvoiceStatus

     model_config = ConfigDict(json_schema_extra={"example": {"status": "sent"}})


class InvoiceResponse(BaseModel):
     """Schema for invoice response."""
     id: str
     number: str
     billed_to_user_id: str
     guardian_id: Optional[str] = None
     enrollment_id: Optional[str] = None
     line_items: List[LineItemResponse]
     tax_rate: Money
     subtotal: Money
     tax: Money
     total: Money
     balance: Money
     status: InvoiceStatus
     due_date: Optional[date] = None
     issued_at: Optional[datetime] = None
     paid_at: Optional[datetime] = None
     payment_ids: List[str]
     notes: Optional[str] = None
     created_at: datetime
     updated_at: datetime

     model_config = ConfigDict(
          from_attributes=True,
          json_schema_extra={
               "example": {
                    "id": "4f1c2a9e-1d7b-4d2c-9a57-0c3f1f0c8e11",
                    "number": "INV-2026-000123",
                    "billed_to_user_id": "u-1001",
                    "line_items": [
                         {"description": "Math tutoring (10 sessions)", "quantity": 2, "unit_price": 500.00, "discount": 0}
                    ],
                    "tax_rate": 0.12,
                    "subtotal": 1000.00,
                    "tax": 120.00,
                    "total": 1120.00,
                    "balance": 1120.00,
                    "status": "draft",
                    "payment_ids": [],
                    "created_at": "2026-01-31T10:30:00",
                    "updated_at": "2026-01-31T10:30:00",
               }
          }
     )


class InvoiceListResponse(BaseModel):
     """Schema for paginated invoice list response."""
     items: List[InvoiceResponse]
     page: int = 1
     limit: int = 20
     total: int
     pages: int
