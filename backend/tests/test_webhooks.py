import hashlib
import hmac
import json
from decimal import Decimal

import pytest

from gstbook.core.config import settings
from gstbook.core.errors import InvalidState, NotFound, ValidationError
from gstbook.models import Payment, PaymentQR, InvoiceStatus, QRStatus, ActivityLog
from gstbook.services.bank_service import BankService, DKBankProvider, verify_webhook_signature
from gstbook.services.invoice_service import InvoiceService

from conftest import line

WEBHOOK_URL = "/api/v1/webhooks/bank/dk_bank"


@pytest.fixture
def bank(db):
    return BankService(db, providers={"dk_bank": DKBankProvider(merchant_id="M-100")})


@pytest.fixture
def qr(db, team, bank, make_invoice):
    invoice = make_invoice()
    qr = bank.generate_payment_qr(invoice.id, team.id)
    db.commit()
    return qr


def test_generate_qr_for_amount_due(db, team, qr):
    assert qr.amount == Decimal("105.00")
    assert qr.status == QRStatus.PENDING.value
    assert qr.reference_id.startswith("DK-")
    assert qr.qr_payload.startswith("DKBANK://pay?merchant=M-100&amount=105.00")
    assert f"txn={qr.reference_id}" in qr.qr_payload


def test_pending_qr_is_reused(db, team, bank, qr):
    again = bank.generate_payment_qr(qr.invoice_id, team.id)

    assert again.id == qr.id
    assert db.query(PaymentQR).count() == 1


def test_qr_for_draft_invoice_is_rejected(db, team, bank, make_invoice):
    invoice = make_invoice(send=False)

    with pytest.raises(InvalidState):
        bank.generate_payment_qr(invoice.id, team.id)


def test_unknown_provider(db, team, bank, qr):
    with pytest.raises(NotFound):
        bank.generate_payment_qr(qr.invoice_id, team.id, provider_code="other_bank")


def test_paid_notification_records_payment(db, team, bank, qr):
    outcome = bank.handle_webhook("dk_bank", {
        "referenceId": qr.reference_id, "status": "PAID", "amount": "105.00", "transactionId": "TXN-1",
    })
    db.commit()

    payment = db.query(Payment).one()
    assert outcome == {"status": "ok", "payment_id": payment.id}
    assert payment.amount == Decimal("105.00")
    assert payment.payment_method == "bank_qr"
    assert payment.transaction_id == "TXN-1"
    assert qr.status == QRStatus.PAID.value
    assert qr.invoice.status == InvoiceStatus.PAID.value
    assert db.query(ActivityLog).filter(ActivityLog.action == "BANK_PAYMENT_RECEIVED").count() == 1


def test_repeated_notification_is_a_no_op(db, team, bank, qr):
    payload = {"referenceId": qr.reference_id, "status": "paid", "transactionId": "TXN-1"}
    bank.handle_webhook("dk_bank", payload)
    db.commit()

    outcome = bank.handle_webhook("dk_bank", payload)
    db.commit()

    assert outcome == {"status": "ok", "duplicate": True}
    assert db.query(Payment).count() == 1
    assert qr.invoice.amount_paid == Decimal("105.00")


def test_transaction_already_recorded_on_invoice_is_a_no_op(db, team, bank, qr):
    bank.handle_webhook("dk_bank", {"referenceId": qr.reference_id, "status": "paid", "amount": "50.00",
                                    "transactionId": "TXN-7"})
    db.commit()
    other = bank.generate_payment_qr(qr.invoice_id, team.id)
    db.commit()

    outcome = bank.handle_webhook("dk_bank", {"referenceId": other.reference_id, "status": "paid",
                                              "transactionId": "TXN-7"})

    assert outcome == {"status": "ok", "duplicate": True}
    assert db.query(Payment).count() == 1
    assert other.status == QRStatus.PAID.value


def test_surplus_is_clamped_to_amount_due(db, team, bank, qr):
    bank.handle_webhook("dk_bank", {"referenceId": qr.reference_id, "status": "paid", "amount": "120.00"})
    db.commit()

    payment = db.query(Payment).one()
    assert payment.amount == Decimal("105.00")
    assert payment.transaction_id == qr.reference_id
    assert qr.paid_amount == Decimal("120.00")


def test_non_paid_status_only_updates_qr(db, team, bank, qr):
    outcome = bank.handle_webhook("dk_bank", {"referenceId": qr.reference_id, "status": "failed"})
    db.commit()

    assert outcome == {"status": "ok"}
    assert qr.status == QRStatus.FAILED.value
    assert db.query(Payment).count() == 0


def test_missing_and_unknown_references_are_ignored(db, bank, qr):
    assert bank.handle_webhook("dk_bank", {"status": "paid"}) == {
        "status": "ignored", "reason": "missing reference"
    }
    assert bank.handle_webhook("dk_bank", {"referenceId": "DK-0-nothing", "status": "paid"}) == {
        "status": "ignored", "reason": "reference not found"
    }
    assert db.query(Payment).count() == 0


def test_unknown_status_is_rejected(db, bank, qr):
    with pytest.raises(ValidationError):
        bank.handle_webhook("dk_bank", {"referenceId": qr.reference_id, "status": "refunded"})


def test_payment_for_cancelled_invoice_is_not_applied(db, team, bank, qr):
    InvoiceService(db).cancel(qr.invoice_id, team.id)
    db.commit()

    outcome = bank.handle_webhook("dk_bank", {"referenceId": qr.reference_id, "status": "paid"})
    db.commit()

    assert outcome == {"status": "ok", "reason": "invoice not payable"}
    assert qr.status == QRStatus.PAID.value
    assert db.query(Payment).count() == 0


def test_signature_verification():
    body = b'{"referenceId": "DK-1"}'
    signature = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    assert verify_webhook_signature("s3cret", body, signature)
    assert verify_webhook_signature("s3cret", body, signature.upper())
    assert not verify_webhook_signature("s3cret", body, "deadbeef")
    assert not verify_webhook_signature("s3cret", body, None)
    assert verify_webhook_signature(None, body, None)


# ---------- HTTP ----------

def test_webhook_endpoint_records_payment(client, db, qr):
    response = client.post(WEBHOOK_URL, json={"referenceId": qr.reference_id, "status": "paid"})

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["payment_id"] is not None

    repeat = client.post(WEBHOOK_URL, json={"referenceId": qr.reference_id, "status": "paid"})
    assert repeat.status_code == 200
    assert repeat.json()["duplicate"] is True
    assert db.query(Payment).count() == 1


def test_webhook_endpoint_acknowledges_unknown_reference(client):
    response = client.post(WEBHOOK_URL, json={"referenceId": "DK-unknown", "status": "paid"})

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_webhook_endpoint_rejects_bad_input(client):
    assert client.post(WEBHOOK_URL, content=b"not json",
                       headers={"Content-Type": "application/json"}).status_code == 400
    assert client.post("/api/v1/webhooks/bank/nobank", json={"referenceId": "X"}).status_code == 404


def test_webhook_endpoint_checks_signature(client, qr, monkeypatch):
    monkeypatch.setattr(settings, "BANK_WEBHOOK_SECRET", "s3cret")
    body = json.dumps({"referenceId": qr.reference_id, "status": "paid"}).encode()

    unsigned = client.post(WEBHOOK_URL, content=body, headers={"Content-Type": "application/json"})
    assert unsigned.status_code == 401

    signature = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    signed = client.post(WEBHOOK_URL, content=body, headers={
        "Content-Type": "application/json", "X-Webhook-Signature": signature,
    })
    assert signed.status_code == 200
    assert signed.json()["payment_id"] is not None


def test_webhook_limit_is_per_provider_and_client(client, rate_limiter):
    for _ in range(60):
        rate_limiter.check("webhook:dk_bank:testclient", 60, 60)

    limited = client.post(WEBHOOK_URL, json={"referenceId": "DK-unknown", "status": "paid"})
    assert limited.status_code == 429
    assert "Retry-After" in limited.headers

    other_client = client.post(WEBHOOK_URL, json={"referenceId": "DK-unknown", "status": "paid"},
                               headers={"X-Forwarded-For": "10.0.0.9"})
    assert other_client.status_code == 200
