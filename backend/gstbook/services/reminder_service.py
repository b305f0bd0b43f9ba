"""
Reminder Service - overdue invoice reminder sweep
"""
from datetime import datetime, date, timedelta
from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from gstbook.core.config import settings
from gstbook.core.mailer import Mailer
from gstbook.models import Invoice, Customer, InvoiceStatus, PaymentStatus
from gstbook.services.activity_service import ActivityService, ActivityType

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (InvoiceStatus.SENT.value, InvoiceStatus.VIEWED.value, InvoiceStatus.OVERDUE.value)


def build_reminder_message(invoice: Invoice, today: date) -> tuple:
    days_overdue = (today - invoice.due_date).days
    team_name = invoice.team.display_name if invoice.team else "Your supplier"
    subject = f"Payment reminder: invoice {invoice.invoice_number} is {days_overdue} days overdue"
    body = (
        f"Dear {invoice.customer.name},\n\n"
        f"This is a reminder that invoice {invoice.invoice_number} dated {invoice.invoice_date:%d %b %Y} "
        f"was due on {invoice.due_date:%d %b %Y}.\n\n"
        f"Amount due: {invoice.currency} {invoice.display_amount_due:,.2f}\n\n"
        f"If you have already paid, please disregard this message.\n\n"
        f"Regards,\n{team_name}\n"
    )
    return subject, body


class ReminderService:
    def __init__(self, db: Session, mailer: Mailer):
        self.db = db
        self.mailer = mailer

    def get_due_reminders(self, today: Optional[date] = None, limit: Optional[int] = None) -> List[Invoice]:
        """Sent, unpaid invoices past due whose customer has an email and was not reminded recently"""
        today = today or date.today()
        limit = limit or settings.REMINDER_BATCH_LIMIT
        cutoff = datetime.combine(today, datetime.min.time()) - timedelta(days=settings.REMINDER_INTERVAL_DAYS)
        return self.db.query(Invoice).join(Customer, Invoice.customer_id == Customer.id).options(
            joinedload(Invoice.customer),
            joinedload(Invoice.team)
        ).filter(
            Invoice.status.in_(REMINDABLE_STATUSES),
            Invoice.payment_status != PaymentStatus.PAID.value,
            Invoice.due_date < today,
            Customer.email.isnot(None),
            Customer.email != "",
            or_(
                Invoice.last_reminder_sent_at.is_(None),
                Invoice.last_reminder_sent_at < cutoff
            )
        ).order_by(Invoice.due_date.asc(), Invoice.id.asc()).limit(limit).all()

    def send_reminders(self, today: Optional[date] = None, limit: Optional[int] = None) -> dict:
        """
        Email one reminder per eligible invoice.

        Each invoice is committed on its own so that a delivery or database
        failure only affects that row.
        """
        today = today or date.today()
        invoices = self.get_due_reminders(today, limit)
        sent = 0
        errors = []

        for invoice in invoices:
            invoice_number = invoice.invoice_number
            try:
                subject, body = build_reminder_message(invoice, today)
                self.mailer.send(
                    to=invoice.customer.email,
                    subject=subject,
                    body=body,
                    reply_to=invoice.team.email if invoice.team else None,
                )
                invoice.last_reminder_sent_at = datetime.utcnow()
                invoice.status = InvoiceStatus.OVERDUE.value
                ActivityService(self.db).log(
                    team_id=invoice.team_id,
                    action=ActivityType.PAYMENT_REMINDER_SENT,
                    resource_type="Invoice",
                    resource_id=invoice.id,
                    description=f"Reminder for {invoice_number} sent to {invoice.customer.email}",
                )
                self.db.commit()
                sent += 1
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to send reminder for invoice {invoice_number}: {e}", exc_info=True)
                errors.append(f"{invoice_number}: {e}")

        logger.info(f"Payment reminders: {sent} sent, {len(errors)} failed of {len(invoices)}")
        return {
            "success": True,
            "total": len(invoices),
            "sent": sent,
            "failed": len(errors),
            "errors": errors,
            "timestamp": datetime.utcnow(),
        }
