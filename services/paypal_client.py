# services/paypal_client.py
"""
PayPal Orders v2 client.

Creates CAPTURE-intent orders for invoice balances (PHP converted to USD at a
fixed rate) and captures approved orders. Every call has a bounded timeout;
no response, a non-2xx response or an unreadable body is a GatewayError and
never treated as success.
"""
import base64
import logging
from decimal import Decimal
from typing import Any, NamedTuple, Optional

import requests

import config
from exceptions import GatewayError, ValidationError
from services.totals import ZERO, to_money

logger = logging.getLogger(__name__)


class GatewayCapture(NamedTuple):
     """Outcome of capturing an order, reduced to what the ledger needs."""
     status: str
     order_id: str
     reference_id: Optional[str]  # invoice id sent as the purchase unit reference
     amount_usd: Optional[Decimal]
     capture_id: Optional[str]
     raw: dict


def parse_capture(order_id: str, payload: dict) -> GatewayCapture:
     """Extract the first purchase unit capture from an Orders v2 capture response."""
     units = payload.get("purchase_units") or []
     unit = units[0] if units else {}
     captures = ((unit.get("payments") or {}).get("captures")) or []
     capture = captures[0] if captures else {}

     amount_usd = None
     value = (capture.get("amount") or {}).get("value")
     if value is not None:
          try:
               amount_usd = Decimal(str(value))
          except ArithmeticError:
               raise GatewayError("Malformed capture amount", {"order_id": order_id, "value": value})

     return GatewayCapture(
          status=payload.get("status", ""),
          order_id=payload.get("id") or order_id,
          reference_id=unit.get("reference_id"),
          amount_usd=amount_usd,
          capture_id=capture.get("id"),
          raw=payload,
     )


class PayPalClient:
     """Thin wrapper over the PayPal REST API using ``requests``."""

     def __init__(
          self,
          client_id: Optional[str] = None,
          secret: Optional[str] = None,
          base_url: Optional[str] = None,
          usd_rate: Optional[Decimal] = None,
          timeout: Optional[float] = None,
          app_base_url: Optional[str] = None,
          session: Optional[requests.Session] = None,
     ):
          self.client_id = client_id if client_id is not None else config.PAYPAL_CLIENT_ID
          self.secret = secret if secret is not None else config.PAYPAL_SECRET
          self.base_url = (base_url or config.PAYPAL_BASE_URL).rstrip("/")
          self.usd_rate = Decimal(str(usd_rate or config.PAYPAL_USD_RATE))
          self.timeout = timeout or config.PAYPAL_TIMEOUT_SECONDS
          app_base_url = (app_base_url or config.APP_BASE_URL).rstrip("/")
          self.return_url = f"{app_base_url}/payments/paypal/return"
          self.cancel_url = f"{app_base_url}/payments/paypal/cancel"
          self.http = session or requests.Session()

     @property
     def configured(self) -> bool:
          return bool(self.client_id and self.secret)

     def masked_config(self) -> dict:
          return {
               "clientId": "********" if self.client_id else None,
               "secret": "********" if self.secret else None,
          }

     def php_to_usd(self, amount_php) -> Decimal:
          return to_money(Decimal(str(amount_php)) / self.usd_rate)

     def usd_to_php(self, amount_usd) -> Decimal:
          return to_money(Decimal(str(amount_usd)) * self.usd_rate)

     def _request(self, method: str, path: str, **kwargs) -> dict:
          url = f"{self.base_url}{path}"
          try:
               response = self.http.request(method, url, timeout=self.timeout, **kwargs)
          except requests.Timeout as e:
               logger.error("PayPal %s %s timed out after %ss", method, path, self.timeout)
               raise GatewayError("Payment gateway timed out", {"path": path}) from e
          except requests.RequestException as e:
               logger.error("PayPal %s %s failed: %s", method, path, e)
               raise GatewayError("Payment gateway unreachable", {"path": path}) from e

          try:
               data = response.json()
          except ValueError as e:
               raise GatewayError(
                    "Malformed gateway response", {"path": path, "status_code": response.status_code}
               ) from e

          if response.status_code not in (200, 201):
               logger.warning("PayPal %s %s returned %s", method, path, response.status_code)
               raise GatewayError(
                    "Payment gateway rejected the request",
                    {"path": path, "status_code": response.status_code, "response": data},
               )
          if not isinstance(data, dict):
               raise GatewayError("Malformed gateway response", {"path": path})
          return data

     def get_access_token(self) -> str:
          if not self.configured:
               raise GatewayError("PayPal credentials are not configured")
          auth = base64.b64encode(f"{self.client_id}:{self.secret}".encode()).decode()
          data = self._request(
               "POST",
               "/v1/oauth2/token",
               data={"grant_type": "client_credentials"},
               headers={
                    "Authorization": f"Basic {auth}",
                    "Content-Type": "application/x-www-form-urlencoded",
               },
          )
          token = data.get("access_token")
          if not token:
               raise GatewayError("PayPal returned no access token")
          return token

     def _headers(self) -> dict[str, str]:
          return {
               "Authorization": f"Bearer {self.get_access_token()}",
               "Content-Type": "application/json",
          }

     def create_order(self, amount_php, reference_id: str) -> dict[str, Any]:
          """
          Create a CAPTURE order for ``amount_php`` against invoice ``reference_id``.

          Returns the PayPal order payload (id, status, approval links).
          """
          amount_usd = self.php_to_usd(amount_php)
          if amount_usd <= ZERO:
               raise ValidationError("Order amount is too small", {"amount_php": str(amount_php)})

          payload = {
               "intent": "CAPTURE",
               "purchase_units": [
                    {
                         "reference_id": reference_id,
                         "amount": {"currency_code": "USD", "value": f"{amount_usd:.2f}"},
                    }
               ],
               "application_context": {
                    "return_url": self.return_url,
                    "cancel_url": self.cancel_url,
                    "user_action": "PAY_NOW",
               },
          }
          order = self._request("POST", "/v2/checkout/orders", json=payload, headers=self._headers())
          logger.info("PayPal order %s created for invoice %s (USD %s)", order.get("id"), reference_id, amount_usd)
          return order

     def capture_order(self, order_id: str) -> GatewayCapture:
          data = self._request(
               "POST", f"/v2/checkout/orders/{order_id}/capture", headers=self._headers()
          )
          capture = parse_capture(order_id, data)
          logger.info("PayPal order %s capture status %s", order_id, capture.status)
          return capture
