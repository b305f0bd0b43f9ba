"""
Note Service - Credit Notes (customers) and Debit Notes (suppliers)

A note is drafted, issued, then applied in parts against one or more
documents of the same counterparty until its unapplied amount reaches zero.
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload
import logging

from gstbook.core.errors import NotFound, ValidationError, InvalidState
from gstbook.models import (
    CreditNote, CreditNoteItem, CreditNoteApplication, Invoice, Customer,
    DebitNote, DebitNoteItem, DebitNoteApplication, SupplierBill, Supplier,
    NoteStatus, InvoiceStatus, Team
)
from gstbook.services.balance_service import BalanceService
from gstbook.services.calculations import calculate_note_line, money, ZERO
from gstbook.services.numbering import NumberingService, DocType

logger = logging.getLogger(__name__)

APPLICABLE_STATUSES = (NoteStatus.ISSUED.value, NoteStatus.PARTIAL.value)


class _NoteService:
    """Shared note behaviour; subclasses bind the models for one side of the ledger"""

    note_model = None
    item_model = None
    application_model = None
    document_model = None
    counterparty_model = None
    counterparty_fk = None       # customer_id / supplier_id
    original_fk = None           # original_invoice_id / original_bill_id
    application_note_fk = None   # credit_note_id / debit_note_id
    application_document_fk = None  # invoice_id / bill_id
    doc_type = None
    label = None
    document_label = None

    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    # ---------- lookups ----------

    def get_by_id(self, note_id: int, team_id: int, for_update: bool = False):
        query = self.db.query(self.note_model).filter(
            self.note_model.id == note_id,
            self.note_model.team_id == team_id
        )
        if for_update:
            return query.with_for_update().first()
        return query.options(joinedload(self.note_model.items)).first()

    def get_or_404(self, note_id: int, team_id: int, for_update: bool = False):
        note = self.get_by_id(note_id, team_id, for_update=for_update)
        if not note:
            raise NotFound(self.label, note_id)
        return note

    def get_by_team(self, team_id: int, status: Optional[str] = None) -> List:
        query = self.db.query(self.note_model).filter(self.note_model.team_id == team_id)
        if status:
            query = query.filter(self.note_model.status == status)
        return query.order_by(self.note_model.created_at.desc(), self.note_model.id.desc()).all()

    def _get_document(self, document_id: int, team_id: int):
        document = self.db.query(self.document_model).filter(
            self.document_model.id == document_id,
            self.document_model.team_id == team_id
        ).with_for_update().first()
        if not document:
            raise NotFound(self.document_label, document_id)
        return document

    def _get_counterparty(self, counterparty_id: int, team_id: int):
        counterparty = self.db.query(self.counterparty_model).filter(
            self.counterparty_model.id == counterparty_id,
            self.counterparty_model.team_id == team_id
        ).first()
        if not counterparty:
            raise NotFound(self.counterparty_model.__name__, counterparty_id)
        return counterparty

    # ---------- drafting ----------

    def _set_items(self, note, items_data) -> None:
        items = []
        for index, item_data in enumerate(items_data):
            computed = calculate_note_line(item_data.quantity, item_data.unit_price, item_data.gst_rate)
            items.append(self.item_model(
                description=item_data.description,
                quantity=item_data.quantity,
                unit_price=money(item_data.unit_price),
                gst_rate=item_data.gst_rate,
                line_subtotal=computed["line_subtotal"],
                tax_amount=computed["tax_amount"],
                line_total=computed["line_total"],
                sort_order=index,
            ))
        note.items = items
        note.subtotal = money(sum((i.line_subtotal for i in items), ZERO))
        note.total_tax = money(sum((i.tax_amount for i in items), ZERO))
        note.total_amount = money(note.subtotal + note.total_tax)
        note.unapplied_amount = note.total_amount

    def _check_original(self, note, team_id: int) -> None:
        """A linked original document must share the counterparty and cover the note total"""
        original_id = getattr(note, self.original_fk)
        if original_id is None:
            return
        original = self.db.query(self.document_model).filter(
            self.document_model.id == original_id,
            self.document_model.team_id == team_id
        ).first()
        if not original:
            raise NotFound(self.document_label, original_id)
        if getattr(original, self.counterparty_fk) != getattr(note, self.counterparty_fk):
            raise ValidationError(
                f"{self.document_label} belongs to a different {self.counterparty_model.__name__.lower()}",
                [{"field": self.original_fk, "message": "Counterparty does not match"}]
            )
        if money(note.total_amount) > money(original.total_amount):
            raise ValidationError(
                f"{self.label} total ({note.total_amount}) cannot exceed "
                f"{self.document_label.lower()} total ({original.total_amount})",
                [{"field": "items", "message": "Total exceeds the original document"}]
            )

    def create(self, data, team: Team, user_id: Optional[int] = None):
        counterparty = self._get_counterparty(getattr(data, self.counterparty_fk), team.id)
        note_date = data.note_date or date.today()
        note = self.note_model(
            team_id=team.id,
            note_number=NumberingService(self.db).next_number(team.id, self.doc_type, on_date=note_date),
            note_date=note_date,
            reason=data.reason,
            currency=data.currency.value if data.currency else team.default_currency,
            notes=data.notes,
            status=NoteStatus.DRAFT.value,
            created_by=user_id,
        )
        setattr(note, self.counterparty_fk, counterparty.id)
        setattr(note, self.original_fk, getattr(data, self.original_fk))
        self._set_items(note, data.items)
        self._check_original(note, team.id)

        self.db.add(note)
        self.db.flush()
        return note

    def update(self, note_id: int, team_id: int, data):
        note = self.get_or_404(note_id, team_id, for_update=True)
        if note.status != NoteStatus.DRAFT.value:
            raise InvalidState(f"Only draft {self.label.lower()}s can be edited")

        update_data = data.model_dump(exclude_unset=True, exclude={"items"})
        for key, value in update_data.items():
            setattr(note, key, value)
        if data.items is not None:
            self._set_items(note, data.items)
        self._check_original(note, team_id)
        self.db.flush()
        return note

    def delete(self, note_id: int, team_id: int) -> None:
        note = self.get_or_404(note_id, team_id, for_update=True)
        if note.status != NoteStatus.DRAFT.value:
            raise InvalidState(f"Only draft {self.label.lower()}s can be deleted")
        self.db.delete(note)
        self.db.flush()

    def issue(self, note_id: int, team_id: int):
        note = self.get_or_404(note_id, team_id, for_update=True)
        if note.status != NoteStatus.DRAFT.value:
            raise InvalidState(f"{self.label} is already {note.status}")
        if money(note.total_amount) <= 0:
            raise ValidationError(f"{self.label} total must be greater than zero")
        note.status = NoteStatus.ISSUED.value
        note.unapplied_amount = money(note.total_amount)
        note.issued_at = datetime.utcnow()
        self.db.flush()
        return note

    def cancel(self, note_id: int, team_id: int):
        note = self.get_or_404(note_id, team_id, for_update=True)
        if note.status == NoteStatus.CANCELLED.value:
            raise InvalidState(f"{self.label} is already cancelled")
        has_applications = self.db.query(self.application_model.id).filter(
            getattr(self.application_model, self.application_note_fk) == note.id
        ).first()
        if has_applications:
            raise InvalidState(f"Remove all applications before cancelling this {self.label.lower()}")
        note.status = NoteStatus.CANCELLED.value
        note.unapplied_amount = ZERO
        self.db.flush()
        return note

    # ---------- application ----------

    def apply(self, note_id: int, document_id: int, amount: Decimal, team_id: int,
              user_id: Optional[int] = None):
        """Consume part of the note against a document of the same counterparty"""
        note = self.get_or_404(note_id, team_id, for_update=True)
        if note.status not in APPLICABLE_STATUSES:
            raise InvalidState(f"Only issued {self.label.lower()}s can be applied")

        document = self._get_document(document_id, team_id)
        if getattr(document, self.counterparty_fk) != getattr(note, self.counterparty_fk):
            raise ValidationError(f"{self.label} and {self.document_label.lower()} must be for the same "
                                  f"{self.counterparty_model.__name__.lower()}")
        if document.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value):
            raise InvalidState(f"Cannot apply a {self.label.lower()} to a {document.status} "
                               f"{self.document_label.lower()}")

        applied = self.balance.apply_note(note, document, amount)
        application = self.application_model(team_id=team_id, amount=applied, created_by=user_id)
        setattr(application, self.application_note_fk, note.id)
        setattr(application, self.application_document_fk, document.id)
        self.db.add(application)
        self.db.flush()
        logger.info(f"Applied {applied} of {note.note_number} to {self.document_label.lower()} {document.id}")
        return application

    def remove_application(self, note_id: int, application_id: int, team_id: int):
        note = self.get_or_404(note_id, team_id, for_update=True)
        application = self.db.query(self.application_model).filter(
            self.application_model.id == application_id,
            getattr(self.application_model, self.application_note_fk) == note.id,
            self.application_model.team_id == team_id
        ).first()
        if not application:
            raise NotFound("Application", application_id)

        document = self._get_document(getattr(application, self.application_document_fk), team_id)
        self.balance.reverse_note_application(note, document, application.amount)
        self.db.delete(application)
        self.db.flush()
        return note


class CreditNoteService(_NoteService):
    note_model = CreditNote
    item_model = CreditNoteItem
    application_model = CreditNoteApplication
    document_model = Invoice
    counterparty_model = Customer
    counterparty_fk = "customer_id"
    original_fk = "original_invoice_id"
    application_note_fk = "credit_note_id"
    application_document_fk = "invoice_id"
    doc_type = DocType.CREDIT_NOTE
    label = "Credit note"
    document_label = "Invoice"


class DebitNoteService(_NoteService):
    note_model = DebitNote
    item_model = DebitNoteItem
    application_model = DebitNoteApplication
    document_model = SupplierBill
    counterparty_model = Supplier
    counterparty_fk = "supplier_id"
    original_fk = "original_bill_id"
    application_note_fk = "debit_note_id"
    application_document_fk = "bill_id"
    doc_type = DocType.DEBIT_NOTE
    label = "Debit note"
    document_label = "Supplier bill"
