# exceptions.py
"""
Typed errors raised by the ledger and its collaborators.

Each error carries a stable ``code`` and an ``http_status`` so API consumers
can branch on the kind of failure without matching message text.

    LedgerError
    +-- NotFoundError          NOT_FOUND           404
    +-- InvalidStateError      INVALID_STATE       409
    +-- ValidationError        VALIDATION_ERROR    422
    +-- TransactionFailure     TRANSACTION_FAILED  409 (conflict) / 500
    +-- GatewayError           GATEWAY_ERROR       502
"""
from typing import Any, Optional


class LedgerError(Exception):
     """Base class for all ledger errors."""

     code = "LEDGER_ERROR"
     http_status = 500

     def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
          super().__init__(message)
          self.message = message
          self.details = details or {}

     def to_dict(self) -> dict:
          return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(LedgerError):
     code = "NOT_FOUND"
     http_status = 404

     def __init__(self, entity: str, entity_id: str):
          super().__init__(f"{entity} not found", {"entity": entity, "id": entity_id})
          self.entity = entity
          self.entity_id = entity_id


class InvalidStateError(LedgerError):
     code = "INVALID_STATE"
     http_status = 409


class ValidationError(LedgerError):
     code = "VALIDATION_ERROR"
     http_status = 422


class TransactionFailure(LedgerError):
     """
     Store-level abort. ``conflict`` marks optimistic-concurrency failures,
     the only kind that is safe to retry.
     """

     code = "TRANSACTION_FAILED"

     def __init__(self, message: str, conflict: bool = False, details: Optional[dict[str, Any]] = None):
          super().__init__(message, details)
          self.conflict = conflict

     @property
     def http_status(self) -> int:
          return 409 if self.conflict else 500

     def to_dict(self) -> dict:
          data = super().to_dict()
          data["conflict"] = self.conflict
          return data


class GatewayError(LedgerError):
     code = "GATEWAY_ERROR"
     http_status = 502
