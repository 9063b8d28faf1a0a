# routers/invoices.py
"""
Invoice API routes.

Any authenticated user can read invoices; creating, editing, changing
status and deleting are admin-only.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import Database, get_database, get_session
from dependencies import require_roles, verify_token
from models import InvoiceStatus
from schemas.invoice import (
     InvoiceCreate,
     InvoiceUpdate,
     InvoiceStatusUpdate,
     InvoiceResponse,
     InvoiceListResponse,
)
from services.invoice_service import InvoiceService
from services.ledger_service import run_with_retry, set_invoice_status

router = APIRouter(prefix="/api/invoices", tags=["invoices"])

admin_only = require_roles("admin")


@router.get("", response_model=InvoiceListResponse, summary="List invoices")
def list_invoices(
     page: int = Query(1, ge=1, description="Page number"),
     limit: int = Query(20, ge=1, le=100, description="Items per page"),
     user_id: Optional[str] = Query(None, description="Filter by billed user"),
     status: Optional[InvoiceStatus] = Query(None, description="Filter by status"),
     search: Optional[str] = Query(None, description="Match against the invoice number"),
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token),
):
     invoices, total = InvoiceService.list_invoices(
          db, page=page, limit=limit, user_id=user_id, status=status, search=search
     )
     return InvoiceListResponse(
          items=[InvoiceResponse.model_validate(inv) for inv in invoices],
          page=page,
          limit=limit,
          total=total,
          pages=math.ceil(total / limit),
     )


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Get an invoice")
def get_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     token: dict = Depends(verify_token),
):
     return InvoiceService.get_invoice(db, invoice_id)


@router.post(
     "",
     response_model=InvoiceResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Create a new invoice"
)
def create_invoice(
     body: InvoiceCreate,
     database: Database = Depends(get_database),
     token: dict = Depends(admin_only),
):
     """
     Create a draft invoice.

     - **number**: optional; generated as INV-<year>-<sequence> when omitted
     - **line_items**: description, quantity (>= 1), unit_price, discount
     - **tax_rate**: fraction applied to the subtotal
     """
     data = body.model_dump()
     line_items = data.pop("line_items")
     return run_with_retry(
          database, lambda session: InvoiceService.create_invoice(session, line_items=line_items, **data)
     )


@router.patch("/{invoice_id}", response_model=InvoiceResponse, summary="Update an invoice")
def update_invoice(
     invoice_id: str,
     body: InvoiceUpdate,
     database: Database = Depends(get_database),
     token: dict = Depends(admin_only),
):
     changes = body.model_dump(exclude_unset=True)
     return run_with_retry(
          database, lambda session: InvoiceService.update_invoice(session, invoice_id, changes)
     )


@router.patch("/{invoice_id}/status", response_model=InvoiceResponse, summary="Set invoice status")
def update_invoice_status(
     invoice_id: str,
     body: InvoiceStatusUpdate,
     database: Database = Depends(get_database),
     token: dict = Depends(admin_only),
):
     return set_invoice_status(database, invoice_id, body.status)


@router.delete("/{invoice_id}", summary="Delete an invoice")
def delete_invoice(
     invoice_id: str,
     database: Database = Depends(get_database),
     token: dict = Depends(admin_only),
):
     run_with_retry(database, lambda session: InvoiceService.delete_invoice(session, invoice_id))
     return {"ok": True}
