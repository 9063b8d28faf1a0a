# schemas/paypal.py
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class PayPalOrderCreate(BaseModel):
     invoice_id: str = Field(..., min_length=1, description="Invoice the order pays for")
     amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Amount in PHP")

     model_config = ConfigDict(
          json_schema_extra={"example": {"invoice_id": "4f1c2a9e-1d7b-4d2c-9a57-0c3f1f0c8e11", "amount": 1120.00}}
     )


class PayPalCapture(BaseModel):
     order_id: str = Field(..., min_length=1, description="Approved PayPal order id")


class PayPalConfigResponse(BaseModel):
     clientId: Optional[str] = None
     secret: Optional[str] = None
