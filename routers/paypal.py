# routers/paypal.py
"""
PayPal checkout.

POST /create-order: create a PayPal order for (part of) an invoice balance.
POST /capture: capture an approved order; only a COMPLETED capture is
recorded, as a verified payment that reduces the invoice balance.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import Database, get_database, get_session
from dependencies import get_paypal_client, require_roles, verify_token
from exceptions import InvalidStateError
from models import InvoiceStatus
from schemas.payment import PaymentResponse
from schemas.paypal import PayPalCapture, PayPalConfigResponse, PayPalOrderCreate
from services.invoice_service import InvoiceService
from services.ledger_service import apply_gateway_capture, find_gateway_payment
from services.paypal_client import PayPalClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments/paypal", tags=["paypal"])


@router.post("/create-order")
def create_order(
     body: PayPalOrderCreate,
     db: Session = Depends(get_session),
     paypal: PayPalClient = Depends(get_paypal_client),
     token: dict = Depends(verify_token),
):
     invoice = InvoiceService.get_invoice(db, body.invoice_id)
     if invoice.status == InvoiceStatus.VOID:
          raise InvalidStateError("Cannot pay a void invoice", {"invoice_id": invoice.id})
     if invoice.status == InvoiceStatus.PAID:
          raise InvalidStateError("Invoice already paid", {"invoice_id": invoice.id})

     return paypal.create_order(body.amount, reference_id=invoice.id)


@router.post("/capture", response_model=PaymentResponse)
def capture_order(
     body: PayPalCapture,
     database: Database = Depends(get_database),
     paypal: PayPalClient = Depends(get_paypal_client),
     token: dict = Depends(verify_token),
):
     # Repeated captures are answered from the ledger; PayPal rejects them with ORDER_ALREADY_CAPTURED
     with database.transaction() as session:
          existing = find_gateway_payment(session, body.order_id)
     if existing is not None:
          logger.info("PayPal order %s already recorded as payment %s", body.order_id, existing.id)
          return existing

     capture = paypal.capture_order(body.order_id)
     if capture.status != "COMPLETED":
          logger.warning("PayPal order %s not completed: %s", body.order_id, capture.status)
     return apply_gateway_capture(database, capture, usd_rate=paypal.usd_rate)


@router.get("/config", response_model=PayPalConfigResponse)
def get_config(
     paypal: PayPalClient = Depends(get_paypal_client),
     token: dict = Depends(require_roles("admin")),
):
     return paypal.masked_config()


@router.post("/config")
def set_config(token: dict = Depends(require_roles("admin"))):
     # Credentials come from the environment only
     return {"ok": True}
