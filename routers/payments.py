# routers/payments.py
"""
Payment API (admin only).

POST /api/payments records a payment and adjusts the invoice balance in the
same transaction; POST /api/payments/{id}/refund reverses it.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import Database, get_database, get_session
from dependencies import require_roles
from models import PaymentMethod, PaymentStatus
from schemas.payment import PaymentCreate, PaymentResponse, PaymentListResponse, RefundResponse
from services.ledger_service import create_payment, get_payment, list_payments, refund_payment

router = APIRouter(
     prefix="/api/payments",
     tags=["payments"],
     dependencies=[Depends(require_roles("admin"))],
)


@router.get("", response_model=PaymentListResponse, summary="List payments")
def list_payments_route(
     page: int = Query(1, ge=1),
     limit: int = Query(20, ge=1, le=100),
     invoice_id: Optional[str] = Query(None),
     method: Optional[PaymentMethod] = Query(None),
     status: Optional[PaymentStatus] = Query(None),
     db: Session = Depends(get_session),
):
     items, total = list_payments(
          db, page=page, limit=limit, invoice_id=invoice_id, method=method, status=status
     )
     return PaymentListResponse(
          items=[PaymentResponse.model_validate(p) for p in items],
          page=page,
          limit=limit,
          total=total,
          pages=math.ceil(total / limit),
     )


@router.get("/{payment_id}", response_model=PaymentResponse, summary="Get a payment")
def get_payment_route(payment_id: str, db: Session = Depends(get_session)):
     return get_payment(db, payment_id)


@router.post(
     "",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a payment",
)
def create_payment_route(body: PaymentCreate, database: Database = Depends(get_database)):
     """
     Record a payment against an invoice.

     1. Rejects missing or void invoices.
     2. Creates the payment with status ``posted``.
     3. Reduces the invoice balance; a zero balance marks it paid, otherwise
        a draft invoice becomes sent.
     """
     return create_payment(
          database,
          invoice_id=body.invoice_id,
          amount=body.amount,
          method=body.method,
          reference=body.reference,
          notes=body.notes,
          paid_at=body.paid_at,
     )


@router.post("/{payment_id}/refund", response_model=RefundResponse, summary="Refund a payment")
def refund_payment_route(payment_id: str, database: Database = Depends(get_database)):
     return refund_payment(database, payment_id)
