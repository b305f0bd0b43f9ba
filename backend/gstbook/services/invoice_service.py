"""
Invoice Service - GST invoice lifecycle
draft (editable) -> sent (locked) -> paid / cancelled
"""
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload

from gstbook.core.errors import NotFound, ValidationError, InvalidState, InvoiceLocked
from gstbook.models import (
    Invoice, InvoiceItem, Team, Product,
    InvoiceStatus, PaymentStatus, Currency
)
from gstbook.schemas import InvoiceCreate, InvoiceUpdate
from gstbook.services.balance_service import BalanceService
from gstbook.services.calculations import calculate_line_item, calculate_document_totals, money, ZERO
from gstbook.services.crm_service import CustomerService
from gstbook.services.feature_service import FeatureService
from gstbook.services.gst_service import GstService
from gstbook.services.numbering import NumberingService, DocType


def build_line_items(db: Session, item_cls, items_data, team_id: int) -> list:
    """Compute GST amounts for each submitted line and return unsaved item rows"""
    rows = []
    for index, item_data in enumerate(items_data):
        if item_data.product_id is not None:
            product = db.query(Product.id).filter(
                Product.id == item_data.product_id,
                Product.team_id == team_id
            ).first()
            if not product:
                raise NotFound("Product", item_data.product_id)

        computed = calculate_line_item(
            item_data.quantity,
            item_data.unit_price,
            item_data.discount_percent,
            item_data.gst_rate,
            item_data.is_exempt,
        )
        rows.append(item_cls(
            product_id=item_data.product_id,
            description=item_data.description,
            quantity=item_data.quantity,
            unit_price=money(item_data.unit_price),
            discount_percent=item_data.discount_percent,
            gst_rate=item_data.gst_rate,
            is_exempt=item_data.is_exempt,
            gst_classification=computed["gst_classification"],
            line_subtotal=computed["line_subtotal"],
            discount_amount=computed["discount_amount"],
            tax_amount=computed["tax_amount"],
            line_total=computed["line_total"],
            sort_order=index,
        ))
    return rows


def apply_document_totals(document, items: list) -> None:
    """Set header amounts from line items on a document with no settlements"""
    totals = calculate_document_totals(
        {
            "line_subtotal": item.line_subtotal,
            "discount_amount": item.discount_amount,
            "tax_amount": item.tax_amount,
        }
        for item in items
    )
    adjustments = sum((money(a.amount) for a in document.adjustments), ZERO)
    document.subtotal = totals["subtotal"]
    document.total_discount = totals["total_discount"]
    document.total_tax = totals["total_tax"]
    document.total_amount = money(totals["total_amount"] + adjustments)
    if document.amount_paid is None:
        document.amount_paid = ZERO
    if document.amount_credited is None:
        document.amount_credited = ZERO
    BalanceService().recalculate(document)


def validate_currency(db: Session, team: Team, currency: Optional[str]) -> str:
    currency = currency or team.default_currency or Currency.BTN.value
    if currency != team.default_currency and not FeatureService(db).has_feature(team.id, "multi_currency"):
        raise ValidationError(
            f"Invoicing in {currency} requires the multi-currency feature",
            [{"field": "currency", "message": "Currency not available on your plan"}]
        )
    return currency


def validate_dates(issue_date: date, due_date: Optional[date]) -> None:
    if due_date is not None and due_date < issue_date:
        raise ValidationError(
            "Due date cannot be before the document date",
            [{"field": "due_date", "message": "Due date cannot be before the document date"}]
        )


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    def get_by_id(self, invoice_id: int, team_id: int, for_update: bool = False) -> Optional[Invoice]:
        query = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.team_id == team_id
        )
        if for_update:
            return query.with_for_update().first()
        return query.options(
            joinedload(Invoice.items),
            joinedload(Invoice.customer)
        ).first()

    def get_or_404(self, invoice_id: int, team_id: int, for_update: bool = False) -> Invoice:
        invoice = self.get_by_id(invoice_id, team_id, for_update=for_update)
        if not invoice:
            raise NotFound("Invoice", invoice_id)
        return invoice

    def get_by_team(self, team_id: int, status: str = None, customer_id: int = None) -> List[Invoice]:
        query = self.db.query(Invoice).options(
            joinedload(Invoice.customer)
        ).filter(Invoice.team_id == team_id)

        if status == InvoiceStatus.OVERDUE.value:
            query = query.filter(
                Invoice.status.in_([InvoiceStatus.SENT.value, InvoiceStatus.VIEWED.value, InvoiceStatus.OVERDUE.value]),
                Invoice.payment_status != PaymentStatus.PAID.value,
                Invoice.due_date < date.today()
            )
        elif status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    def create(self, invoice_data: InvoiceCreate, team: Team, user_id: Optional[int] = None) -> Invoice:
        FeatureService(self.db).enforce_usage_limit(team.id, "invoices")
        customer = CustomerService(self.db).get_or_404(invoice_data.customer_id, team.id)
        if not customer.is_active:
            raise ValidationError("Customer is inactive",
                                  [{"field": "customer_id", "message": "Customer is inactive"}])

        invoice_date = invoice_data.invoice_date or date.today()
        validate_dates(invoice_date, invoice_data.due_date)
        currency = validate_currency(
            self.db, team, invoice_data.currency.value if invoice_data.currency else None
        )

        invoice = Invoice(
            team_id=team.id,
            customer_id=customer.id,
            invoice_number=NumberingService(self.db).next_number(
                team.id, DocType.INVOICE, prefix=team.invoice_prefix, on_date=invoice_date
            ),
            invoice_date=invoice_date,
            due_date=invoice_data.due_date,
            currency=currency,
            payment_terms=invoice_data.payment_terms,
            notes=invoice_data.notes,
            status=InvoiceStatus.DRAFT.value,
            payment_status=PaymentStatus.UNPAID.value,
            is_locked=False,
            amount_paid=ZERO,
            amount_credited=ZERO,
            created_by=user_id,
        )
        invoice.items = build_line_items(self.db, InvoiceItem, invoice_data.items, team.id)
        apply_document_totals(invoice, invoice.items)

        self.db.add(invoice)
        self.db.flush()
        return invoice

    def update(self, invoice_id: int, team: Team, invoice_data: InvoiceUpdate) -> Invoice:
        invoice = self.get_or_404(invoice_id, team.id, for_update=True)
        if invoice.is_locked or invoice.status != InvoiceStatus.DRAFT.value:
            raise InvoiceLocked()

        update_data = invoice_data.model_dump(exclude_unset=True, exclude={"items"})
        if "customer_id" in update_data:
            CustomerService(self.db).get_or_404(update_data["customer_id"], team.id)
        if "currency" in update_data:
            update_data["currency"] = validate_currency(
                self.db, team, update_data["currency"].value if update_data["currency"] else None
            )
        for key, value in update_data.items():
            setattr(invoice, key, value)
        validate_dates(invoice.invoice_date, invoice.due_date)

        if invoice_data.items is not None:
            invoice.items = build_line_items(self.db, InvoiceItem, invoice_data.items, team.id)
            apply_document_totals(invoice, invoice.items)

        self.db.flush()
        return invoice

    def delete(self, invoice_id: int, team_id: int) -> None:
        invoice = self.get_or_404(invoice_id, team_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidState("Only draft invoices can be deleted")
        self.db.delete(invoice)
        self.db.flush()

    def send(self, invoice_id: int, team_id: int) -> Invoice:
        """Lock the invoice; line items are frozen from here on"""
        invoice = self.get_or_404(invoice_id, team_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvalidState(f"Invoice is already {invoice.status}")
        invoice.status = InvoiceStatus.SENT.value
        invoice.is_locked = True
        invoice.locked_at = datetime.utcnow()
        self.balance.recalculate(invoice)
        self.db.flush()
        return invoice

    def cancel(self, invoice_id: int, team_id: int) -> Invoice:
        """Cancel and undo every settlement; credit notes get their balance back"""
        invoice = self.get_or_404(invoice_id, team_id, for_update=True)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState("Invoice is already cancelled")
        if invoice.status == InvoiceStatus.PAID.value:
            raise InvalidState("Paid invoices cannot be cancelled. Issue a credit note instead.")
        GstService(self.db).ensure_cancellable(team_id, invoice.invoice_date, "invoice", "Credit Note")

        for payment in list(invoice.payments):
            self.balance.reverse_payment(invoice, payment.amount)
            self.db.delete(payment)

        for application in list(invoice.credit_applications):
            self.balance.reverse_note_application(application.credit_note, invoice, application.amount)
            self.db.delete(application)

        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.amount_paid = ZERO
        invoice.amount_credited = ZERO
        invoice.amount_due = money(invoice.total_amount)
        invoice.payment_status = PaymentStatus.UNPAID.value
        invoice.is_locked = True
        if invoice.locked_at is None:
            invoice.locked_at = datetime.utcnow()
        self.db.flush()
        return invoice
