"""
POS Service - counter sales that are invoiced, sent and settled in one step
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from gstbook.core.config import settings
from gstbook.models import Team
from gstbook.schemas import POSSaleRequest, InvoiceCreate
from gstbook.services.calculations import money, ZERO
from gstbook.services.crm_service import CustomerService
from gstbook.services.invoice_service import InvoiceService
from gstbook.services.payment_service import PaymentService

POS_CASH_TERMS = "POS Cash Sale"
POS_CREDIT_TERMS = "POS Credit Sale"


class POSService:
    def __init__(self, db: Session):
        self.db = db

    def create_sale(self, sale: POSSaleRequest, team: Team, user_id: Optional[int] = None) -> dict:
        """
        Create a sent invoice for the sale and settle it.

        Credit sales stay unpaid with a due date. Otherwise the tendered amount
        (default: the invoice total) is applied up to the balance due and the
        rest is returned as change.
        """
        customers = CustomerService(self.db)
        if sale.customer_id is not None:
            customer = customers.get_or_404(sale.customer_id, team.id)
        else:
            customer = customers.get_or_create_walk_in(team.id)

        today = date.today()
        invoice_service = InvoiceService(self.db)
        invoice = invoice_service.create(
            InvoiceCreate(
                customer_id=customer.id,
                invoice_date=today,
                due_date=today + timedelta(days=settings.POS_CREDIT_DAYS) if sale.is_credit else today,
                currency=sale.currency,
                payment_terms=POS_CREDIT_TERMS if sale.is_credit else POS_CASH_TERMS,
                notes=sale.notes,
                items=sale.items,
            ),
            team,
            user_id=user_id,
        )
        invoice_service.send(invoice.id, team.id)

        if sale.is_credit:
            return {
                "invoice": invoice,
                "payment": None,
                "amount_tendered": ZERO,
                "amount_applied": ZERO,
                "change": ZERO,
            }

        tendered: Decimal = money(sale.amount_tendered) if sale.amount_tendered is not None else money(invoice.total_amount)
        if money(invoice.amount_due) <= 0:
            # Nothing to collect on a zero-value sale
            return {
                "invoice": invoice,
                "payment": None,
                "amount_tendered": tendered,
                "amount_applied": ZERO,
                "change": tendered,
            }

        payment, change = PaymentService(self.db).record_clamped_payment(
            invoice,
            tendered,
            sale.payment_method.value,
            transaction_id=sale.transaction_id,
            notes="Point of sale",
            user_id=user_id,
        )
        return {
            "invoice": invoice,
            "payment": payment,
            "amount_tendered": tendered,
            "amount_applied": money(payment.amount),
            "change": change,
        }
