from datetime import date, datetime, timedelta
from decimal import Decimal

from gstbook.core.mailer import LogMailer, EmailDeliveryError
from gstbook.models import Customer, InvoiceStatus, ActivityLog
from gstbook.schemas import PaymentCreate
from gstbook.services.payment_service import PaymentService
from gstbook.services.reminder_service import ReminderService, build_reminder_message

CRON_URL = "/api/v1/cron/payment-reminders"
CRON_HEADERS = {"Authorization": "Bearer cron-test-secret"}


class FlakyMailer(LogMailer):
    """Fails for one recipient, delivers the rest"""

    def __init__(self, failing_address):
        super().__init__()
        self.failing_address = failing_address

    def send(self, to, subject, body, reply_to=None):
        if to == self.failing_address:
            raise EmailDeliveryError(f"Mailbox unavailable: {to}")
        super().send(to, subject, body, reply_to)


def overdue_invoice(make_invoice, days=10, **kwargs):
    issued = date.today() - timedelta(days=days + 30)
    return make_invoice(invoice_date=issued, due_date=date.today() - timedelta(days=days), **kwargs)


def test_reminder_message(db, make_invoice):
    invoice = overdue_invoice(make_invoice, days=12)

    subject, body = build_reminder_message(invoice, date.today())

    assert subject == f"Payment reminder: invoice {invoice.invoice_number} is 12 days overdue"
    assert "Dear Tashi Enterprises" in body
    assert "BTN 105.00" in body
    assert "Druk Traders Pvt Ltd" in body


def test_sends_reminder_and_marks_invoice(db, team, make_invoice):
    invoice = overdue_invoice(make_invoice)
    mailer = LogMailer()

    result = ReminderService(db, mailer).send_reminders()

    assert result["success"] is True
    assert (result["total"], result["sent"], result["failed"]) == (1, 1, 0)
    assert mailer.outbox[0]["to"] == "tashi@example.bt"
    assert mailer.outbox[0]["reply_to"] == "accounts@druktraders.bt"
    db.refresh(invoice)
    assert invoice.status == InvoiceStatus.OVERDUE.value
    assert invoice.last_reminder_sent_at is not None
    assert db.query(ActivityLog).filter(ActivityLog.action == "PAYMENT_REMINDER_SENT").count() == 1


def test_recently_reminded_invoice_is_skipped(db, make_invoice):
    invoice = overdue_invoice(make_invoice)
    invoice.last_reminder_sent_at = datetime.utcnow() - timedelta(days=3)
    db.commit()

    assert ReminderService(db, LogMailer()).get_due_reminders() == []

    invoice.last_reminder_sent_at = datetime.utcnow() - timedelta(days=8)
    db.commit()

    assert [i.id for i in ReminderService(db, LogMailer()).get_due_reminders()] == [invoice.id]


def test_ineligible_invoices_are_skipped(db, team, customer, make_invoice):
    overdue_invoice(make_invoice, send=False)
    make_invoice(due_date=date.today())
    paid = overdue_invoice(make_invoice)
    PaymentService(db).record_payment(paid.id, team.id, PaymentCreate(amount=Decimal("105.00")))
    no_email = Customer(team_id=team.id, name="Cash Customer")
    db.add(no_email)
    db.commit()
    overdue_invoice(make_invoice, customer_id=no_email.id)

    assert ReminderService(db, LogMailer()).get_due_reminders() == []


def test_one_failure_does_not_stop_the_batch(db, team, customer, make_invoice):
    other = Customer(team_id=team.id, name="Pema Stores", email="pema@example.bt")
    db.add(other)
    db.commit()
    failing = overdue_invoice(make_invoice, days=20)
    delivered = overdue_invoice(make_invoice, days=10, customer_id=other.id)
    failing_number = failing.invoice_number
    mailer = FlakyMailer("tashi@example.bt")

    result = ReminderService(db, mailer).send_reminders()

    assert (result["total"], result["sent"], result["failed"]) == (2, 1, 1)
    assert result["errors"][0].startswith(f"{failing_number}:")
    assert [m["to"] for m in mailer.outbox] == ["pema@example.bt"]
    db.refresh(failing)
    db.refresh(delivered)
    assert failing.last_reminder_sent_at is None
    assert delivered.last_reminder_sent_at is not None


def test_batch_is_capped_oldest_first(db, make_invoice):
    invoices = [overdue_invoice(make_invoice, days=days) for days in (5, 15, 25)]

    result = ReminderService(db, LogMailer()).send_reminders(limit=2)

    assert result["sent"] == 2
    db.refresh(invoices[0])
    assert invoices[0].last_reminder_sent_at is None


def test_cron_endpoint_requires_secret(client, make_invoice, mailer):
    overdue_invoice(make_invoice)

    assert client.post(CRON_URL).status_code == 401
    assert client.post(CRON_URL, headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = client.post(CRON_URL, headers=CRON_HEADERS)
    assert response.status_code == 200
    assert response.json()["sent"] == 1
    assert len(mailer.outbox) == 1

    again = client.post(CRON_URL, headers=CRON_HEADERS)
    assert again.json()["total"] == 0
