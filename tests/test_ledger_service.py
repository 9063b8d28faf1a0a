"""
Tests for the invoice/payment ledger.

Every operation runs against a real SQLite database through the same
transactional entry points the API uses.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm.exc import StaleDataError

from database import Database
from exceptions import (
    GatewayError,
    InvalidStateError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from models import InvoiceStatus, Payment, PaymentMethod, PaymentStatus, utcnow
from services import ledger_service
from services.invoice_service import InvoiceService
from services.ledger_service import (
    _apply_payment,
    apply_gateway_capture,
    create_payment,
    get_payment,
    list_payments,
    load_invoice_for_update,
    refund_payment,
    run_with_retry,
    set_invoice_status,
)
from services.paypal_client import GatewayCapture


def _payment_count(database):
    with database.transaction() as session:
        return session.query(Payment).count()


class TestCreatePayment:
    def test_exact_payment_marks_invoice_paid(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()
        assert invoice.balance == Decimal("1120.00")

        payment = create_payment(database, invoice.id, Decimal("1120"), "gcash")

        assert payment.status == PaymentStatus.POSTED
        reloaded = reload_invoice(invoice.id)
        assert reloaded.balance == Decimal("0")
        assert reloaded.status == InvoiceStatus.PAID
        assert reloaded.paid_at is not None
        assert reloaded.payment_ids == [payment.id]

    def test_partial_payment_from_draft_issues_invoice(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        create_payment(database, invoice.id, "400.50", PaymentMethod.CASH)

        reloaded = reload_invoice(invoice.id)
        assert reloaded.balance == Decimal("719.50")
        assert reloaded.status == InvoiceStatus.SENT
        assert reloaded.issued_at is not None
        assert reloaded.paid_at is None

    def test_payments_append_in_order(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        first = create_payment(database, invoice.id, 100, "cash")
        second = create_payment(database, invoice.id, 200, "bank")
        third = create_payment(database, invoice.id, 820, "card")

        reloaded = reload_invoice(invoice.id)
        assert reloaded.payment_ids == [first.id, second.id, third.id]
        assert reloaded.balance == Decimal("0")
        assert reloaded.status == InvoiceStatus.PAID

    def test_overpayment_floors_balance_at_zero(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        create_payment(database, invoice.id, 2000, "cash")

        assert reload_invoice(invoice.id).balance == Decimal("0")

    def test_void_invoice_rejected_and_unchanged(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()
        set_invoice_status(database, invoice.id, "void")

        with pytest.raises(InvalidStateError):
            create_payment(database, invoice.id, 100, "cash")

        reloaded = reload_invoice(invoice.id)
        assert reloaded.balance == Decimal("1120.00")
        assert reloaded.payment_ids == []
        assert _payment_count(database) == 0

    def test_missing_invoice(self, database):
        with pytest.raises(NotFoundError) as exc_info:
            create_payment(database, "no-such-invoice", 100, "cash")
        assert exc_info.value.code == "NOT_FOUND"

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_non_positive_amount(self, database, make_invoice, amount):
        invoice = make_invoice()

        with pytest.raises(ValidationError):
            create_payment(database, invoice.id, amount, "cash")
        assert _payment_count(database) == 0

    def test_unknown_method(self, database, make_invoice):
        invoice = make_invoice()

        with pytest.raises(ValidationError):
            create_payment(database, invoice.id, 100, "bitcoin")


class TestRefundPayment:
    def test_refund_round_trip_reopens_invoice(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()
        payment = create_payment(database, invoice.id, 1120, "gcash")

        assert refund_payment(database, payment.id) == {"ok": True}

        reloaded = reload_invoice(invoice.id)
        assert reloaded.balance == Decimal("1120.00")
        assert reloaded.status == InvoiceStatus.SENT
        assert reloaded.paid_at is not None  # never cleared
        with database.transaction() as session:
            assert get_payment(session, payment.id).status == PaymentStatus.REFUNDED

    def test_refund_restores_pre_payment_balance(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()
        create_payment(database, invoice.id, 300, "cash")
        before = reload_invoice(invoice.id).balance
        payment = create_payment(database, invoice.id, "250.25", "cash")

        refund_payment(database, payment.id)

        assert reload_invoice(invoice.id).balance == before

    def test_refund_twice_rejected(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()
        payment = create_payment(database, invoice.id, 500, "cash")
        refund_payment(database, payment.id)
        balance = reload_invoice(invoice.id).balance

        with pytest.raises(InvalidStateError):
            refund_payment(database, payment.id)

        assert reload_invoice(invoice.id).balance == balance

    def test_refund_failed_payment_rejected(self, database, make_invoice):
        invoice = make_invoice()
        payment = create_payment(database, invoice.id, 500, "cash")
        with database.transaction() as session:
            session.query(Payment).filter(Payment.id == payment.id).update({"status": PaymentStatus.FAILED})

        with pytest.raises(InvalidStateError):
            refund_payment(database, payment.id)

    def test_missing_payment(self, database):
        with pytest.raises(NotFoundError):
            refund_payment(database, "no-such-payment")


class TestSetInvoiceStatus:
    def test_sent_stamps_issued_at_once(self, database, make_invoice):
        invoice = make_invoice()

        sent = set_invoice_status(database, invoice.id, "sent")
        again = set_invoice_status(database, invoice.id, InvoiceStatus.SENT)

        assert sent.status == InvoiceStatus.SENT
        assert sent.issued_at is not None
        # SQLite hands back naive datetimes
        assert again.issued_at.replace(tzinfo=None) == sent.issued_at.replace(tzinfo=None)

    def test_paid_requires_zero_balance(self, database, make_invoice):
        invoice = make_invoice()

        with pytest.raises(InvalidStateError):
            set_invoice_status(database, invoice.id, "paid")

    def test_void_is_terminal(self, database, make_invoice):
        invoice = make_invoice()
        set_invoice_status(database, invoice.id, "void")

        with pytest.raises(InvalidStateError):
            set_invoice_status(database, invoice.id, "sent")

    def test_draft_rejected_once_payments_exist(self, database, make_invoice):
        invoice = make_invoice()
        create_payment(database, invoice.id, 100, "cash")

        with pytest.raises(InvalidStateError):
            set_invoice_status(database, invoice.id, "draft")

    def test_unknown_status(self, database, make_invoice):
        invoice = make_invoice()

        with pytest.raises(ValidationError):
            set_invoice_status(database, invoice.id, "archived")


class TestGatewayCapture:
    def _capture(self, invoice_id, status="COMPLETED", amount="19.31", order_id="ORDER-1"):
        return GatewayCapture(
            status=status,
            order_id=order_id,
            reference_id=invoice_id,
            amount_usd=Decimal(amount) if amount is not None else None,
            capture_id="CAPTURE-1",
            raw={"id": order_id, "status": status},
        )

    def test_completed_capture_records_verified_payment(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        payment = apply_gateway_capture(database, self._capture(invoice.id), usd_rate=Decimal("58"))

        assert payment.method == PaymentMethod.PAYPAL
        assert payment.status == PaymentStatus.VERIFIED
        assert payment.amount == Decimal("1119.98")
        assert payment.amount_usd == Decimal("19.31")
        assert payment.external_reference == "ORDER-1"
        reloaded = reload_invoice(invoice.id)
        assert reloaded.balance == Decimal("0.02")
        assert reloaded.status == InvoiceStatus.SENT

    def test_incomplete_capture_changes_nothing(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        with pytest.raises(InvalidStateError):
            apply_gateway_capture(database, self._capture(invoice.id, status="PENDING"))

        assert reload_invoice(invoice.id).balance == Decimal("1120.00")
        assert _payment_count(database) == 0

    def test_repeated_capture_is_not_applied_twice(self, database, make_invoice, reload_invoice):
        invoice = make_invoice()

        first = apply_gateway_capture(database, self._capture(invoice.id, amount="10"), usd_rate=Decimal("58"))
        second = apply_gateway_capture(database, self._capture(invoice.id, amount="10"), usd_rate=Decimal("58"))

        assert first.id == second.id
        assert reload_invoice(invoice.id).balance == Decimal("540.00")
        assert _payment_count(database) == 1

    def test_capture_racing_another_writer_returns_recorded_payment(
        self, database, make_invoice, reload_invoice, monkeypatch
    ):
        invoice = make_invoice()
        first = apply_gateway_capture(database, self._capture(invoice.id, amount="10"), usd_rate=Decimal("58"))

        # The racing writer's lookup ran before the other capture committed
        real_lookup = ledger_service.find_gateway_payment
        lookups = []

        def miss_first_lookup(session, order_id):
            lookups.append(order_id)
            return None if len(lookups) == 1 else real_lookup(session, order_id)

        monkeypatch.setattr(ledger_service, "find_gateway_payment", miss_first_lookup)

        second = apply_gateway_capture(database, self._capture(invoice.id, amount="10"), usd_rate=Decimal("58"))

        assert second.id == first.id
        assert len(lookups) == 2
        assert reload_invoice(invoice.id).balance == Decimal("540.00")
        assert _payment_count(database) == 1

    def test_missing_capture_amount(self, database, make_invoice):
        invoice = make_invoice()

        with pytest.raises(GatewayError):
            apply_gateway_capture(database, self._capture(invoice.id, amount=None))


class TestRunWithRetry:
    def test_retries_conflicts_then_succeeds(self, database):
        work = MagicMock(side_effect=[TransactionFailure("busy", conflict=True), "done"])

        assert run_with_retry(database, work, max_retries=3) == "done"
        assert work.call_count == 2

    def test_gives_up_after_bounded_attempts(self, database):
        work = MagicMock(side_effect=TransactionFailure("busy", conflict=True))

        with pytest.raises(TransactionFailure):
            run_with_retry(database, work, max_retries=2)
        assert work.call_count == 3

    def test_non_conflict_failures_are_not_retried(self, database):
        work = MagicMock(side_effect=NotFoundError("Invoice", "x"))

        with pytest.raises(NotFoundError):
            run_with_retry(database, work, max_retries=3)
        assert work.call_count == 1

    def test_stale_write_surfaces_as_conflict(self, database):
        with pytest.raises(TransactionFailure) as exc_info:
            with database.transaction():
                raise StaleDataError("version mismatch")

        assert exc_info.value.conflict is True
        assert exc_info.value.http_status == 409


class TestConcurrentPayments:
    @pytest.fixture
    def file_database(self, tmp_path):
        db = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
        db.create_all()
        yield db
        db.dispose()

    def _cash(self, invoice, amount):
        return Payment(
            invoice_id=invoice.id,
            method=PaymentMethod.CASH,
            amount=Decimal(amount),
            status=PaymentStatus.POSTED,
            paid_at=utcnow(),
        )

    def test_payment_from_stale_read_is_rejected(self, file_database):
        with file_database.transaction() as session:
            invoice = InvoiceService.create_invoice(
                session,
                billed_to_user_id="user-1",
                line_items=[{"description": "Math tutoring", "quantity": 2, "unit_price": Decimal("500")}],
                tax_rate=Decimal("0.12"),
            )

        with pytest.raises(TransactionFailure) as exc_info:
            with file_database.transaction() as session_a:
                invoice_a = load_invoice_for_update(session_a, invoice.id)
                with file_database.transaction() as session_b:
                    invoice_b = load_invoice_for_update(session_b, invoice.id)
                    _apply_payment(session_b, invoice_b, self._cash(invoice_b, "300"), utcnow())
                # invoice_a still holds the balance read before the other payment committed
                _apply_payment(session_a, invoice_a, self._cash(invoice_a, "500"), utcnow())

        assert exc_info.value.conflict is True
        with file_database.transaction() as session:
            stored = InvoiceService.get_invoice(session, invoice.id)
            assert stored.balance == Decimal("820.00")
            assert [p.amount for p in stored.payments] == [Decimal("300.00")]
            assert session.query(Payment).count() == 1

    def test_retry_reapplies_on_fresh_read(self, file_database):
        with file_database.transaction() as session:
            invoice = InvoiceService.create_invoice(
                session,
                billed_to_user_id="user-1",
                line_items=[{"description": "Math tutoring", "quantity": 2, "unit_price": Decimal("500")}],
                tax_rate=Decimal("0.12"),
            )
        attempts = []

        def work(session_a):
            invoice_a = load_invoice_for_update(session_a, invoice.id)
            if not attempts:
                with file_database.transaction() as session_b:
                    invoice_b = load_invoice_for_update(session_b, invoice.id)
                    _apply_payment(session_b, invoice_b, self._cash(invoice_b, "300"), utcnow())
            attempts.append(invoice_a.balance)
            return _apply_payment(session_a, invoice_a, self._cash(invoice_a, "500"), utcnow())

        run_with_retry(file_database, work, max_retries=3)

        assert attempts == [Decimal("1120.00"), Decimal("820.00")]
        with file_database.transaction() as session:
            assert InvoiceService.get_invoice(session, invoice.id).balance == Decimal("320.00")


def test_list_payments_filters(database, make_invoice):
    first = make_invoice()
    second = make_invoice()
    create_payment(database, first.id, 100, "cash")
    create_payment(database, first.id, 100, "gcash")
    create_payment(database, second.id, 100, "cash")

    with database.transaction() as session:
        items, total = list_payments(session, invoice_id=first.id)
        assert total == 2
        assert {p.invoice_id for p in items} == {first.id}

        items, total = list_payments(session, method=PaymentMethod.CASH, limit=1)
        assert total == 2
        assert len(items) == 1
