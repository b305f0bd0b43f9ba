"""
Supplier Bill Service - purchases recorded against suppliers
"""
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload

from gstbook.core.errors import NotFound, ValidationError, InvalidState
from gstbook.models import SupplierBill, SupplierBillItem, Team, InvoiceStatus, PaymentStatus
from gstbook.schemas import SupplierBillCreate, SupplierBillUpdate
from gstbook.services.balance_service import BalanceService
from gstbook.services.calculations import money, ZERO
from gstbook.services.crm_service import SupplierService
from gstbook.services.gst_service import GstService
from gstbook.services.invoice_service import build_line_items, apply_document_totals, validate_currency, validate_dates
from gstbook.services.numbering import NumberingService, DocType


class SupplierBillService:
    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    def get_by_id(self, bill_id: int, team_id: int, for_update: bool = False) -> Optional[SupplierBill]:
        query = self.db.query(SupplierBill).filter(
            SupplierBill.id == bill_id,
            SupplierBill.team_id == team_id
        )
        if for_update:
            return query.with_for_update().first()
        return query.options(
            joinedload(SupplierBill.items),
            joinedload(SupplierBill.supplier)
        ).first()

    def get_or_404(self, bill_id: int, team_id: int, for_update: bool = False) -> SupplierBill:
        bill = self.get_by_id(bill_id, team_id, for_update=for_update)
        if not bill:
            raise NotFound("Supplier bill", bill_id)
        return bill

    def get_by_team(self, team_id: int, status: str = None, supplier_id: int = None) -> List[SupplierBill]:
        query = self.db.query(SupplierBill).filter(SupplierBill.team_id == team_id)
        if status:
            query = query.filter(SupplierBill.status == status)
        if supplier_id:
            query = query.filter(SupplierBill.supplier_id == supplier_id)
        return query.order_by(SupplierBill.bill_date.desc(), SupplierBill.id.desc()).all()

    def create(self, bill_data: SupplierBillCreate, team: Team, user_id: Optional[int] = None) -> SupplierBill:
        supplier = SupplierService(self.db).get_or_404(bill_data.supplier_id, team.id)
        if not supplier.is_active:
            raise ValidationError("Supplier is inactive",
                                  [{"field": "supplier_id", "message": "Supplier is inactive"}])

        bill_date = bill_data.bill_date or date.today()
        validate_dates(bill_date, bill_data.due_date)
        currency = validate_currency(self.db, team, bill_data.currency.value if bill_data.currency else None)

        bill = SupplierBill(
            team_id=team.id,
            supplier_id=supplier.id,
            bill_number=NumberingService(self.db).next_number(
                team.id, DocType.BILL, prefix=team.bill_prefix, on_date=bill_date
            ),
            supplier_reference=bill_data.supplier_reference,
            bill_date=bill_date,
            due_date=bill_data.due_date,
            currency=currency,
            notes=bill_data.notes,
            status=InvoiceStatus.DRAFT.value,
            payment_status=PaymentStatus.UNPAID.value,
            is_locked=False,
            amount_paid=ZERO,
            amount_credited=ZERO,
            created_by=user_id,
        )
        bill.items = build_line_items(self.db, SupplierBillItem, bill_data.items, team.id)
        apply_document_totals(bill, bill.items)

        self.db.add(bill)
        self.db.flush()
        return bill

    def update(self, bill_id: int, team: Team, bill_data: SupplierBillUpdate) -> SupplierBill:
        bill = self.get_or_404(bill_id, team.id, for_update=True)
        if bill.is_locked or bill.status != InvoiceStatus.DRAFT.value:
            raise InvalidState("Cannot edit a bill that has been received")

        update_data = bill_data.model_dump(exclude_unset=True, exclude={"items"})
        if "supplier_id" in update_data:
            SupplierService(self.db).get_or_404(update_data["supplier_id"], team.id)
        if "currency" in update_data:
            update_data["currency"] = validate_currency(
                self.db, team, update_data["currency"].value if update_data["currency"] else None
            )
        for key, value in update_data.items():
            setattr(bill, key, value)
        validate_dates(bill.bill_date, bill.due_date)

        if bill_data.items is not None:
            bill.items = build_line_items(self.db, SupplierBillItem, bill_data.items, team.id)
            apply_document_totals(bill, bill.items)

        self.db.flush()
        return bill

    def delete(self, bill_id: int, team_id: int) -> None:
        bill = self.get_or_404(bill_id, team_id, for_update=True)
        if bill.status != InvoiceStatus.DRAFT.value:
            raise InvalidState("Only draft bills can be deleted")
        self.db.delete(bill)
        self.db.flush()

    def receive(self, bill_id: int, team_id: int) -> SupplierBill:
        """Accept the bill as owed; its lines are frozen afterwards"""
        bill = self.get_or_404(bill_id, team_id, for_update=True)
        if bill.status != InvoiceStatus.DRAFT.value:
            raise InvalidState(f"Bill is already {bill.status}")
        bill.status = InvoiceStatus.SENT.value
        bill.is_locked = True
        bill.locked_at = datetime.utcnow()
        self.balance.recalculate(bill)
        self.db.flush()
        return bill

    def cancel(self, bill_id: int, team_id: int) -> SupplierBill:
        bill = self.get_or_404(bill_id, team_id, for_update=True)
        if bill.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState("Bill is already cancelled")
        if bill.status == InvoiceStatus.PAID.value:
            raise InvalidState("Paid bills cannot be cancelled. Raise a debit note instead.")
        GstService(self.db).ensure_cancellable(team_id, bill.bill_date, "bill", "Debit Note")

        for payment in list(bill.payments):
            self.balance.reverse_payment(bill, payment.amount)
            self.db.delete(payment)

        for application in list(bill.debit_applications):
            self.balance.reverse_note_application(application.debit_note, bill, application.amount)
            self.db.delete(application)

        bill.status = InvoiceStatus.CANCELLED.value
        bill.amount_paid = ZERO
        bill.amount_credited = ZERO
        bill.amount_due = money(bill.total_amount)
        bill.payment_status = PaymentStatus.UNPAID.value
        bill.is_locked = True
        if bill.locked_at is None:
            bill.locked_at = datetime.utcnow()
        self.db.flush()
        return bill
