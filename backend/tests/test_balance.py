from decimal import Decimal

import pytest

from gstbook.core.errors import (
    OverpaymentRejected, ExceedsAvailableBalance, InvalidState, ErrorCode
)
from gstbook.core.results import run_operation
from gstbook.models import InvoiceStatus, PaymentStatus, NoteStatus, Payment
from gstbook.schemas import (
    PaymentCreate, AdjustmentCreate, AdjustmentTypeEnum, CreditNoteCreate, NoteItemCreate
)
from gstbook.services.adjustment_service import InvoiceAdjustmentService
from gstbook.services.invoice_service import InvoiceService
from gstbook.services.note_service import CreditNoteService
from gstbook.services.payment_service import PaymentService

from conftest import line


def assert_consistent(invoice):
    """amount_due always equals total - paid - credited"""
    assert invoice.amount_due == invoice.total_amount - invoice.amount_paid - invoice.amount_credited
    assert (invoice.payment_status == PaymentStatus.PAID.value) == (invoice.amount_due <= 0)


def issued_credit_note(db, team, customer, amount="50.00"):
    service = CreditNoteService(db)
    note = service.create(
        CreditNoteCreate(
            customer_id=customer.id,
            reason="Returned goods",
            items=[NoteItemCreate(description="Return", quantity=Decimal("1"),
                                  unit_price=Decimal(amount), gst_rate=Decimal("0"))],
        ),
        team,
    )
    service.issue(note.id, team.id)
    db.commit()
    return note


def test_payment_above_balance_is_rejected(db, team, make_invoice):
    invoice = make_invoice(items=[line(unit_price="10.00", gst_rate="0")])
    payments = PaymentService(db)

    result = run_operation(db, lambda: payments.record_payment(
        invoice.id, team.id, PaymentCreate(amount=Decimal("15.00"))
    ))

    assert not result.ok
    assert result.code == ErrorCode.OVERPAYMENT_REJECTED
    db.refresh(invoice)
    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.amount_due == Decimal("10.00")
    assert db.query(Payment).count() == 0


def test_exact_payment_marks_invoice_paid_and_locked(db, team, make_invoice):
    invoice = make_invoice(items=[line(unit_price="10.00", gst_rate="0")])

    PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("10.00")))
    db.commit()

    assert invoice.amount_due == Decimal("0.00")
    assert invoice.payment_status == PaymentStatus.PAID.value
    assert invoice.status == InvoiceStatus.PAID.value
    assert invoice.is_locked
    assert_consistent(invoice)


def test_partial_payments_accumulate(db, team, make_invoice):
    invoice = make_invoice()
    payments = PaymentService(db)

    payments.record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("40.00")))
    assert invoice.payment_status == PaymentStatus.PARTIAL.value
    assert invoice.status == InvoiceStatus.SENT.value

    payments.record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("65.00")))
    db.commit()

    assert invoice.amount_paid == Decimal("105.00")
    assert invoice.status == InvoiceStatus.PAID.value
    assert_consistent(invoice)


def test_clamped_payment_returns_change(db, team, make_invoice):
    invoice = make_invoice(items=[line(unit_price="10.00", gst_rate="0")])

    payment, change = PaymentService(db).record_clamped_payment(invoice, Decimal("15.00"), "cash")
    db.commit()

    assert payment.amount == Decimal("10.00")
    assert change == Decimal("5.00")
    assert invoice.amount_due == Decimal("0.00")
    assert invoice.status == InvoiceStatus.PAID.value


def test_clamped_payment_on_settled_invoice_is_rejected(db, team, make_invoice):
    invoice = make_invoice(items=[line(unit_price="10.00", gst_rate="0")])
    payments = PaymentService(db)
    payments.record_clamped_payment(invoice, Decimal("10.00"), "cash")

    with pytest.raises(OverpaymentRejected):
        payments.record_clamped_payment(invoice, Decimal("1.00"), "cash")


def test_payment_on_draft_is_rejected(db, team, make_invoice):
    invoice = make_invoice(send=False)

    with pytest.raises(InvalidState):
        PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("1.00")))


def test_deleting_payment_reopens_invoice_but_keeps_lock(db, team, make_invoice):
    invoice = make_invoice()
    payments = PaymentService(db)
    payment = payments.record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("105.00")))
    db.commit()
    assert invoice.status == InvoiceStatus.PAID.value

    payments.delete_payment(invoice.id, payment.id, team.id)
    db.commit()

    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.amount_due == Decimal("105.00")
    assert invoice.payment_status == PaymentStatus.UNPAID.value
    assert invoice.status == InvoiceStatus.SENT.value
    assert invoice.is_locked


def test_credit_note_application_is_capped_by_both_balances(db, team, customer, make_invoice):
    invoice = make_invoice(items=[line(unit_price="30.00", gst_rate="0")])
    note = issued_credit_note(db, team, customer, "50.00")
    notes = CreditNoteService(db)

    with pytest.raises(ExceedsAvailableBalance):
        notes.apply(note.id, invoice.id, Decimal("40.00"), team.id)

    notes.apply(note.id, invoice.id, Decimal("30.00"), team.id)
    db.commit()

    assert invoice.amount_due == Decimal("0.00")
    assert invoice.amount_credited == Decimal("30.00")
    assert invoice.status == InvoiceStatus.PAID.value
    assert note.unapplied_amount == Decimal("20.00")
    assert note.status == NoteStatus.PARTIAL.value
    assert_consistent(invoice)


def test_credit_note_spreads_across_invoices(db, team, customer, make_invoice):
    first = make_invoice(items=[line(unit_price="30.00", gst_rate="0")])
    second = make_invoice(items=[line(unit_price="30.00", gst_rate="0")])
    note = issued_credit_note(db, team, customer, "50.00")
    notes = CreditNoteService(db)

    notes.apply(note.id, first.id, Decimal("30.00"), team.id)
    notes.apply(note.id, second.id, Decimal("20.00"), team.id)
    db.commit()

    assert note.unapplied_amount == Decimal("0.00")
    assert note.status == NoteStatus.APPLIED.value
    assert second.amount_due == Decimal("10.00")
    assert second.payment_status == PaymentStatus.PARTIAL.value


def test_removing_application_restores_both_sides(db, team, customer, make_invoice):
    invoice = make_invoice(items=[line(unit_price="30.00", gst_rate="0")])
    note = issued_credit_note(db, team, customer, "50.00")
    notes = CreditNoteService(db)
    application = notes.apply(note.id, invoice.id, Decimal("30.00"), team.id)
    db.commit()

    notes.remove_application(note.id, application.id, team.id)
    db.commit()

    assert note.unapplied_amount == Decimal("50.00")
    assert note.status == NoteStatus.ISSUED.value
    assert invoice.amount_credited == Decimal("0.00")
    assert invoice.amount_due == Decimal("30.00")
    assert invoice.status == InvoiceStatus.SENT.value


def test_adjustment_moves_total_and_due_together(db, team, make_invoice):
    invoice = make_invoice()
    adjustments = InvoiceAdjustmentService(db)

    adjustment = adjustments.create(invoice.id, team.id, AdjustmentCreate(
        adjustment_type=AdjustmentTypeEnum.LATE_FEE, amount=Decimal("20.00"), description="Late fee"
    ))
    db.commit()
    assert invoice.total_amount == Decimal("125.00")
    assert invoice.amount_due == Decimal("125.00")

    adjustments.delete(invoice.id, adjustment.id, team.id)
    db.commit()
    assert invoice.total_amount == Decimal("105.00")
    assert invoice.amount_due == Decimal("105.00")


def test_negative_adjustment_can_leave_amount_due_below_zero(db, team, make_invoice):
    invoice = make_invoice()
    PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("100.00")))
    InvoiceAdjustmentService(db).create(invoice.id, team.id, AdjustmentCreate(
        adjustment_type=AdjustmentTypeEnum.DISCOUNT, amount=Decimal("-10.00"), description="Loyalty"
    ))
    db.commit()

    assert invoice.amount_due == Decimal("-5.00")
    assert invoice.display_amount_due == Decimal("0.00")
    assert invoice.payment_status == PaymentStatus.PAID.value
    assert_consistent(invoice)


def test_adjusting_cancelled_invoice_is_rejected(db, team, make_invoice):
    invoice = make_invoice()

    InvoiceService(db).cancel(invoice.id, team.id)

    with pytest.raises(InvalidState):
        InvoiceAdjustmentService(db).create(invoice.id, team.id, AdjustmentCreate(
            adjustment_type=AdjustmentTypeEnum.OTHER, amount=Decimal("5.00"), description="Fee"
        ))


def test_failed_payment_insert_rolls_back_balance(db, team, make_invoice, monkeypatch):
    invoice = make_invoice()
    payments = PaymentService(db)
    payments.record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("40.00"), transaction_id="TXN-1"))
    db.commit()
    # a concurrent writer recorded the same transaction between the check and the insert
    monkeypatch.setattr(PaymentService, "find_by_transaction", lambda self, invoice_id, transaction_id: None)

    result = run_operation(db, lambda: payments.record_payment(
        invoice.id, team.id, PaymentCreate(amount=Decimal("25.00"), transaction_id="TXN-1")
    ))

    assert not result.ok
    assert result.code == ErrorCode.INTERNAL_ERROR
    db.refresh(invoice)
    assert invoice.amount_paid == Decimal("40.00")
    assert invoice.amount_due == Decimal("65.00")
    assert invoice.payment_status == PaymentStatus.PARTIAL.value
    assert db.query(Payment).count() == 1
    assert_consistent(invoice)
