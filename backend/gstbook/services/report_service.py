"""
Report Service - receivables, payables and GST summaries
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.orm import Session, joinedload

from gstbook.models import (
    Invoice, InvoiceItem, SupplierBill, SupplierBillItem, InvoiceStatus, PaymentStatus
)
from gstbook.services.calculations import money, to_decimal, gst_label, ZERO

EXCLUDED_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value)


def _summarize_items(items) -> list:
    groups = defaultdict(lambda: {"taxable_amount": ZERO, "tax_amount": ZERO})
    for item in items:
        rate = ZERO if item.is_exempt else to_decimal(item.gst_rate)
        key = (item.gst_classification, rate)
        groups[key]["taxable_amount"] += to_decimal(item.line_subtotal) - to_decimal(item.discount_amount)
        groups[key]["tax_amount"] += to_decimal(item.tax_amount)

    return [
        {
            "classification": classification,
            "label": gst_label(classification),
            "gst_rate": rate,
            "taxable_amount": money(values["taxable_amount"]),
            "tax_amount": money(values["tax_amount"]),
        }
        for (classification, rate), values in sorted(groups.items())
    ]


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def unpaid_invoices(self, team_id: int, as_of: Optional[date] = None) -> dict:
        as_of = as_of or date.today()
        invoices = self.db.query(Invoice).options(joinedload(Invoice.customer)).filter(
            Invoice.team_id == team_id,
            Invoice.status.notin_(EXCLUDED_STATUSES),
            Invoice.payment_status.in_([PaymentStatus.UNPAID.value, PaymentStatus.PARTIAL.value])
        ).order_by(Invoice.due_date.asc(), Invoice.id.asc()).all()

        lines = []
        total_outstanding = ZERO
        total_overdue = ZERO
        for invoice in invoices:
            due = money(invoice.amount_due)
            days_overdue = 0
            if invoice.due_date and invoice.due_date < as_of:
                days_overdue = (as_of - invoice.due_date).days
                total_overdue += due
            total_outstanding += due
            lines.append({
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "customer_id": invoice.customer_id,
                "customer_name": invoice.customer.name if invoice.customer else "N/A",
                "invoice_date": invoice.invoice_date,
                "due_date": invoice.due_date,
                "total_amount": money(invoice.total_amount),
                "amount_paid": money(invoice.amount_paid),
                "amount_due": due,
                "payment_status": invoice.payment_status,
                "days_overdue": days_overdue,
            })

        return {
            "invoices": lines,
            "total_outstanding": money(total_outstanding),
            "total_overdue": money(total_overdue),
            "count": len(lines),
        }

    def unpaid_bills(self, team_id: int, as_of: Optional[date] = None) -> dict:
        """Payables still open on received bills, oldest due date first"""
        as_of = as_of or date.today()
        bills = self.db.query(SupplierBill).options(joinedload(SupplierBill.supplier)).filter(
            SupplierBill.team_id == team_id,
            SupplierBill.status.notin_(EXCLUDED_STATUSES),
            SupplierBill.payment_status.in_([PaymentStatus.UNPAID.value, PaymentStatus.PARTIAL.value])
        ).order_by(SupplierBill.due_date.asc(), SupplierBill.id.asc()).all()

        lines = []
        total_outstanding = ZERO
        total_overdue = ZERO
        overdue_days = []
        for bill in bills:
            due = money(bill.amount_due)
            days_overdue = 0
            if bill.due_date and bill.due_date < as_of:
                days_overdue = (as_of - bill.due_date).days
                total_overdue += due
                overdue_days.append(days_overdue)
            total_outstanding += due
            lines.append({
                "bill_id": bill.id,
                "bill_number": bill.bill_number,
                "supplier_id": bill.supplier_id,
                "supplier_name": bill.supplier.name if bill.supplier else "N/A",
                "bill_date": bill.bill_date,
                "due_date": bill.due_date,
                "total_amount": money(bill.total_amount),
                "amount_paid": money(bill.amount_paid),
                "amount_due": due,
                "payment_status": bill.payment_status,
                "days_overdue": days_overdue,
            })

        average_days = 0
        if overdue_days:
            average_days = int((Decimal(sum(overdue_days)) / len(overdue_days)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            ))
        return {
            "bills": lines,
            "total_outstanding": money(total_outstanding),
            "total_overdue": money(total_overdue),
            "count": len(lines),
            "overdue_count": len(overdue_days),
            "average_days_overdue": average_days,
        }

    def gst_summary(self, team_id: int, start_date: date, end_date: date) -> dict:
        """Output GST on issued invoices against input GST on received bills for the period"""
        sales_items = self.db.query(InvoiceItem).join(Invoice).filter(
            Invoice.team_id == team_id,
            Invoice.status.notin_(EXCLUDED_STATUSES),
            Invoice.invoice_date >= start_date,
            Invoice.invoice_date <= end_date
        ).all()
        purchase_items = self.db.query(SupplierBillItem).join(SupplierBill).filter(
            SupplierBill.team_id == team_id,
            SupplierBill.status.notin_(EXCLUDED_STATUSES),
            SupplierBill.bill_date >= start_date,
            SupplierBill.bill_date <= end_date
        ).all()

        output = _summarize_items(sales_items)
        input_ = _summarize_items(purchase_items)
        output_tax = money(sum((line["tax_amount"] for line in output), ZERO))
        input_tax = money(sum((line["tax_amount"] for line in input_), ZERO))
        return {
            "start_date": start_date,
            "end_date": end_date,
            "output": output,
            "input": input_,
            "output_tax": output_tax,
            "input_tax": input_tax,
            "net_payable": money(output_tax - input_tax),
        }
