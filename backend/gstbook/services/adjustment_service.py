"""
Adjustment Service - signed changes to invoice and bill totals
"""
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session

from gstbook.core.errors import NotFound, InvalidState, ValidationError
from gstbook.models import (
    Invoice, InvoiceAdjustment, SupplierBill, SupplierBillAdjustment, InvoiceStatus, AdjustmentType
)
from gstbook.schemas import AdjustmentCreate
from gstbook.services.balance_service import BalanceService
from gstbook.services.calculations import money

ADJUSTMENT_TYPES = {t.value for t in AdjustmentType}


class _AdjustmentService:
    """Shared behaviour; subclasses name the document and adjustment models"""

    document_model = None
    adjustment_model = None
    document_fk = None
    label = None

    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    def _get_document(self, document_id: int, team_id: int):
        model = self.document_model
        document = self.db.query(model).filter(
            model.id == document_id,
            model.team_id == team_id
        ).with_for_update().first()
        if not document:
            raise NotFound(self.label, document_id)
        return document

    def list(self, document_id: int, team_id: int) -> List:
        model = self.adjustment_model
        return self.db.query(model).filter(
            getattr(model, self.document_fk) == document_id,
            model.team_id == team_id
        ).order_by(model.adjustment_date, model.id).all()

    def create(self, document_id: int, team_id: int, data: AdjustmentCreate, user_id: Optional[int] = None):
        document = self._get_document(document_id, team_id)
        if document.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState(f"Cannot adjust a cancelled {self.label.lower()}")

        adjustment_type = data.adjustment_type.value
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise ValidationError(f"Unknown adjustment type: {adjustment_type}")
        if not data.description or not data.description.strip():
            raise ValidationError("Description is required",
                                  [{"field": "description", "message": "Description is required"}])

        amount = money(data.amount)
        self.balance.apply_adjustment(document, amount)

        adjustment = self.adjustment_model(
            team_id=team_id,
            adjustment_type=adjustment_type,
            amount=amount,
            description=data.description.strip(),
            adjustment_date=data.adjustment_date or date.today(),
            reference=data.reference,
            created_by=user_id,
        )
        setattr(adjustment, self.document_fk, document.id)
        self.db.add(adjustment)
        self.db.flush()
        return adjustment

    def delete(self, document_id: int, adjustment_id: int, team_id: int):
        document = self._get_document(document_id, team_id)
        model = self.adjustment_model
        adjustment = self.db.query(model).filter(
            model.id == adjustment_id,
            getattr(model, self.document_fk) == document_id,
            model.team_id == team_id
        ).first()
        if not adjustment:
            raise NotFound("Adjustment", adjustment_id)
        if document.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState(f"Cannot adjust a cancelled {self.label.lower()}")

        self.balance.reverse_adjustment(document, adjustment.amount)
        self.db.delete(adjustment)
        self.db.flush()
        return document


class InvoiceAdjustmentService(_AdjustmentService):
    document_model = Invoice
    adjustment_model = InvoiceAdjustment
    document_fk = "invoice_id"
    label = "Invoice"


class BillAdjustmentService(_AdjustmentService):
    document_model = SupplierBill
    adjustment_model = SupplierBillAdjustment
    document_fk = "bill_id"
    label = "Supplier bill"
