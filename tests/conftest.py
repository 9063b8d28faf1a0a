"""
Pytest fixtures for the billing backend test suite.

Provides:
- An in-memory SQLite ``Database`` with all tables created
- Invoice/payment factories that go through the real services
- A FastAPI TestClient with a mocked PayPal client and signed tokens
"""
import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-billing-tests")

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt

import config
from database import Database
from main import create_app
from services.invoice_service import InvoiceService
from services.paypal_client import PayPalClient


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def make_invoice(database):
    """Create a draft invoice through InvoiceService and return it (detached)."""

    def _make(line_items=None, tax_rate=Decimal("0.12"), **kwargs):
        if line_items is None:
            line_items = [{"description": "Math tutoring", "quantity": 2, "unit_price": Decimal("500")}]
        kwargs.setdefault("billed_to_user_id", "user-1")
        with database.transaction() as session:
            return InvoiceService.create_invoice(session, line_items=line_items, tax_rate=tax_rate, **kwargs)

    return _make


@pytest.fixture
def reload_invoice(database):
    def _reload(invoice_id):
        with database.transaction() as session:
            return InvoiceService.get_invoice(session, invoice_id)

    return _reload


@pytest.fixture
def paypal():
    client = MagicMock(spec=PayPalClient)
    client.usd_rate = Decimal("58")
    client.masked_config.return_value = {"clientId": "********", "secret": None}
    return client


@pytest.fixture
def client(database, paypal):
    app = create_app(database=database, paypal=paypal)
    with TestClient(app) as test_client:
        yield test_client


def _token(role: str, user_id: str = "user-1") -> str:
    return jwt.encode({"id": user_id, "role": role}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {_token('admin', 'admin-1')}"}


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {_token('guardian')}"}
