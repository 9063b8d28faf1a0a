"""Model metadata must match what the migrations create."""
from sqlalchemy import UniqueConstraint, inspect

from models import Base


def _unique_constraints(table_name):
    table = Base.metadata.tables[table_name]
    return {c.name: [col.name for col in c.columns] for c in table.constraints if isinstance(c, UniqueConstraint)}


def test_invoice_constraints_and_indexes():
    indexes = {ix.name: [col.name for col in ix.columns] for ix in Base.metadata.tables["invoices"].indexes}

    assert _unique_constraints("invoices") == {"uq_invoices_number": ["number"]}
    assert indexes["ix_invoices_user_status"] == ["billed_to_user_id", "status"]
    assert indexes["ix_invoices_number"] == ["number"]


def test_payment_external_reference_is_named_unique():
    assert _unique_constraints("payments") == {"uq_payments_external_reference": ["external_reference"]}


def test_created_schema_has_named_objects(database):
    inspector = inspect(database.engine)

    index_names = {ix["name"] for ix in inspector.get_indexes("invoices")}
    assert "ix_invoices_user_status" in index_names
    unique_names = {uc["name"] for uc in inspector.get_unique_constraints("payments")}
    assert "uq_payments_external_reference" in unique_names
