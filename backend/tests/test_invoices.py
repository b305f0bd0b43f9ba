from datetime import date, timedelta
from decimal import Decimal

import pytest

from gstbook.core.errors import InvoiceLocked, InvalidState, ValidationError, NotFound
from gstbook.models import InvoiceStatus, PaymentStatus, NoteStatus, Team
from gstbook.schemas import (
    InvoiceCreate, InvoiceUpdate, PaymentCreate, CreditNoteCreate, NoteItemCreate, CurrencyEnum
)
from gstbook.services.calculations import tax_breakdown
from gstbook.services.invoice_service import InvoiceService
from gstbook.services.note_service import CreditNoteService
from gstbook.services.payment_service import PaymentService

from conftest import line


def test_create_computes_totals_and_numbers(db, team, make_invoice):
    invoice = make_invoice(send=False, items=[
        line(quantity="2", unit_price="100.00", gst_rate="5", discount_percent="10"),
        line(description="Books", unit_price="50.00", is_exempt=True),
    ])
    second = make_invoice(send=False)

    year = date.today().year
    assert invoice.invoice_number == f"INV-{year}-0001"
    assert second.invoice_number == f"INV-{year}-0002"
    assert invoice.subtotal == Decimal("250.00")
    assert invoice.total_discount == Decimal("20.00")
    assert invoice.total_tax == Decimal("9.00")
    assert invoice.total_amount == Decimal("239.00")
    assert invoice.amount_due == Decimal("239.00")
    assert invoice.status == InvoiceStatus.DRAFT.value
    assert not invoice.is_locked


def test_tax_breakdown_counts_exempt_lines_at_zero_rate(db, make_invoice):
    invoice = make_invoice(send=False, items=[
        line(unit_price="100.00", gst_rate="5"),
        line(unit_price="40.00", gst_rate="0"),
        line(unit_price="30.00", is_exempt=True),
    ])

    assert tax_breakdown(invoice.items) == [
        {"gst_rate": Decimal("0.00"), "taxable_amount": Decimal("70.00"), "tax_amount": Decimal("0.00")},
        {"gst_rate": Decimal("5.00"), "taxable_amount": Decimal("100.00"), "tax_amount": Decimal("5.00")},
    ]


def test_draft_can_be_edited_until_sent(db, team, make_invoice):
    invoice = make_invoice(send=False)
    service = InvoiceService(db)

    service.update(invoice.id, team, InvoiceUpdate(items=[line(unit_price="200.00")], notes="Revised"))
    db.commit()
    assert invoice.total_amount == Decimal("210.00")
    assert invoice.notes == "Revised"

    service.send(invoice.id, team.id)
    db.commit()
    assert invoice.is_locked
    assert invoice.locked_at is not None

    with pytest.raises(InvoiceLocked):
        service.update(invoice.id, team, InvoiceUpdate(notes="Too late"))


def test_due_date_before_invoice_date_is_rejected(db, team, customer):
    with pytest.raises(ValidationError):
        InvoiceService(db).create(InvoiceCreate(
            customer_id=customer.id,
            invoice_date=date.today(),
            due_date=date.today() - timedelta(days=1),
            items=[line()],
        ), team)


def test_foreign_currency_requires_feature(db, team, customer):
    with pytest.raises(ValidationError):
        InvoiceService(db).create(
            InvoiceCreate(customer_id=customer.id, currency=CurrencyEnum.USD, items=[line()]), team
        )


def test_only_drafts_can_be_deleted(db, team, make_invoice):
    service = InvoiceService(db)
    draft = make_invoice(send=False)
    sent = make_invoice()

    service.delete(draft.id, team.id)
    with pytest.raises(InvalidState):
        service.delete(sent.id, team.id)
    with pytest.raises(NotFound):
        service.get_or_404(draft.id, team.id)


def test_cancel_reverses_payments_and_credits(db, team, customer, make_invoice):
    invoice = make_invoice()
    PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("50.00")))
    notes = CreditNoteService(db)
    note = notes.create(CreditNoteCreate(
        customer_id=customer.id,
        items=[NoteItemCreate(description="Goodwill", quantity=Decimal("1"), unit_price=Decimal("20.00"),
                              gst_rate=Decimal("0"))],
    ), team)
    notes.issue(note.id, team.id)
    notes.apply(note.id, invoice.id, Decimal("20.00"), team.id)
    db.commit()

    InvoiceService(db).cancel(invoice.id, team.id)
    db.commit()

    assert invoice.status == InvoiceStatus.CANCELLED.value
    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.amount_credited == Decimal("0.00")
    assert invoice.amount_due == Decimal("105.00")
    assert invoice.payments == []
    assert note.unapplied_amount == Decimal("20.00")
    assert note.status == NoteStatus.ISSUED.value


def test_paid_invoice_cannot_be_cancelled(db, team, make_invoice):
    invoice = make_invoice()
    PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("105.00")))

    with pytest.raises(InvalidState):
        InvoiceService(db).cancel(invoice.id, team.id)


def test_overdue_is_derived_from_due_date(db, team, make_invoice, yesterday):
    invoice = make_invoice(invoice_date=yesterday - timedelta(days=30), due_date=yesterday)

    assert invoice.status == InvoiceStatus.SENT.value
    assert invoice.display_status == InvoiceStatus.OVERDUE.value
    assert [i.id for i in InvoiceService(db).get_by_team(team.id, status="overdue")] == [invoice.id]

    PaymentService(db).record_payment(invoice.id, team.id, PaymentCreate(amount=Decimal("105.00")))
    assert invoice.display_status == InvoiceStatus.PAID.value
    assert invoice.payment_status == PaymentStatus.PAID.value


def test_invoices_are_isolated_per_team(db, team, make_invoice):
    other = Team(name="Other Co")
    db.add(other)
    db.commit()
    invoice = make_invoice()

    with pytest.raises(NotFound):
        InvoiceService(db).get_or_404(invoice.id, other.id)
    with pytest.raises(NotFound):
        PaymentService(db).record_payment(invoice.id, other.id, PaymentCreate(amount=Decimal("1.00")))


# ---------- HTTP ----------

def test_invoice_api_flow(client, auth_headers, customer):
    created = client.post("/api/v1/invoices", headers=auth_headers, json={
        "customer_id": customer.id,
        "items": [{"description": "Consulting", "quantity": "1", "unit_price": "100.00", "gst_rate": "5"}],
    })
    assert created.status_code == 201
    invoice_id = created.json()["id"]
    assert created.json()["tax_breakdown"][0]["tax_amount"] == "5.00"

    sent = client.post(f"/api/v1/invoices/{invoice_id}/send", headers=auth_headers)
    assert sent.json()["status"] == "sent"

    locked = client.put(f"/api/v1/invoices/{invoice_id}", headers=auth_headers, json={"notes": "x"})
    assert locked.status_code == 409

    over = client.post(f"/api/v1/invoices/{invoice_id}/payments", headers=auth_headers,
                       json={"amount": "150.00"})
    assert over.status_code == 400

    paid = client.post(f"/api/v1/invoices/{invoice_id}/payments", headers=auth_headers,
                       json={"amount": "105.00", "payment_method": "bank_transfer"})
    assert paid.status_code == 201

    detail = client.get(f"/api/v1/invoices/{invoice_id}", headers=auth_headers).json()
    assert detail["status"] == "paid"
    assert detail["payment_status"] == "paid"
    assert detail["amount_due"] == "0.00"
    assert len(detail["payments"]) == 1


def test_unknown_invoice_is_404(client, auth_headers):
    assert client.get("/api/v1/invoices/999", headers=auth_headers).status_code == 404


def test_adjustment_api(client, auth_headers, make_invoice):
    invoice = make_invoice()

    response = client.post(f"/api/v1/invoices/{invoice.id}/adjustments", headers=auth_headers, json={
        "adjustment_type": "late_fee", "amount": "10.00", "description": "Late payment fee",
    })
    assert response.status_code == 201

    detail = client.get(f"/api/v1/invoices/{invoice.id}", headers=auth_headers).json()
    assert detail["total_amount"] == "115.00"
    assert detail["amount_due"] == "115.00"

    blank = client.post(f"/api/v1/invoices/{invoice.id}/adjustments", headers=auth_headers, json={
        "adjustment_type": "other", "amount": "0", "description": " ",
    })
    assert blank.status_code == 422
    fields = {error["field"] for error in blank.json()["errors"]}
    assert fields == {"amount", "description"}


def test_reused_transaction_id_is_a_field_error(client, auth_headers, make_invoice):
    invoice = make_invoice()
    payment = {"amount": "10.00", "payment_method": "bank_transfer", "transaction_id": "CHQ-1"}

    first = client.post(f"/api/v1/invoices/{invoice.id}/payments", headers=auth_headers, json=payment)
    assert first.status_code == 201

    again = client.post(f"/api/v1/invoices/{invoice.id}/payments", headers=auth_headers, json=payment)
    assert again.status_code == 422
    assert again.json()["detail"]["errors"][0]["field"] == "transaction_id"

    detail = client.get(f"/api/v1/invoices/{invoice.id}", headers=auth_headers).json()
    assert detail["amount_paid"] == "10.00"
    assert len(detail["payments"]) == 1


def test_update_rejects_null_for_required_fields(client, auth_headers, make_invoice):
    invoice = make_invoice(send=False)

    for field in ("invoice_date", "customer_id"):
        response = client.put(f"/api/v1/invoices/{invoice.id}", headers=auth_headers, json={field: None})
        assert response.status_code == 422
        assert [error["field"] for error in response.json()["errors"]] == [field]

    # omitting a field still leaves it alone
    kept = client.put(f"/api/v1/invoices/{invoice.id}", headers=auth_headers, json={"notes": "Net 30"})
    assert kept.status_code == 200
    assert kept.json()["invoice_date"] == invoice.invoice_date.isoformat()
