"""
Invoice API Routes - lifecycle, payments, adjustments and bank QR
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, FeatureGate
from gstbook.models import Invoice, TeamMember
from gstbook.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceResponse, InvoiceDetail, TaxBreakdownLine,
    PaymentCreate, PaymentResponse, AdjustmentCreate, AdjustmentResponse,
    PaymentQRRequest, PaymentQRResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.adjustment_service import InvoiceAdjustmentService
from gstbook.services.bank_service import BankService
from gstbook.services.calculations import tax_breakdown
from gstbook.services.invoice_service import InvoiceService
from gstbook.services.payment_service import PaymentService

router = APIRouter(prefix="/invoices", tags=["Invoices"], dependencies=[Depends(FeatureGate("invoices"))])


def invoice_detail(invoice: Invoice) -> InvoiceDetail:
    detail = InvoiceDetail.model_validate(invoice)
    detail.tax_breakdown = [TaxBreakdownLine(**line) for line in tax_breakdown(invoice.items)]
    return detail


def _log(db: Session, member: TeamMember, action: str, invoice: Invoice, description: str) -> None:
    ActivityService(db).log(
        team_id=member.team_id,
        action=action,
        resource_type="Invoice",
        resource_id=invoice.id,
        description=description,
        user_id=member.user_id,
    )


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """List invoices; status=overdue selects past-due unpaid invoices"""
    return InvoiceService(db).get_by_team(member.team_id, status, customer_id)


@router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        invoice = InvoiceService(db).create(invoice_data, member.team, user_id=member.user_id)
        _log(db, member, ActivityType.CREATE_INVOICE, invoice, f"Invoice {invoice.invoice_number} created")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


@router.get("/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    invoice = raise_for_result(run_operation(db, lambda: InvoiceService(db).get_or_404(invoice_id, member.team_id)))
    return invoice_detail(invoice)


@router.put("/{invoice_id}", response_model=InvoiceDetail)
async def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Edit a draft invoice; sent invoices are locked"""
    def operation():
        invoice = InvoiceService(db).update(invoice_id, member.team, invoice_data)
        _log(db, member, ActivityType.UPDATE_INVOICE, invoice, f"Invoice {invoice.invoice_number} updated")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


@router.delete("/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        InvoiceService(db).delete(invoice_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.DELETE_INVOICE,
            resource_type="Invoice",
            resource_id=invoice_id,
            user_id=member.user_id,
        )

    raise_for_result(run_operation(db, operation))
    return {"message": "Invoice deleted"}


@router.post("/{invoice_id}/send", response_model=InvoiceDetail)
async def send_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        invoice = InvoiceService(db).send(invoice_id, member.team_id)
        _log(db, member, ActivityType.SEND_INVOICE, invoice, f"Invoice {invoice.invoice_number} sent")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetail)
async def cancel_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        invoice = InvoiceService(db).cancel(invoice_id, member.team_id)
        _log(db, member, ActivityType.CANCEL_INVOICE, invoice, f"Invoice {invoice.invoice_number} cancelled")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


# ==================== PAYMENTS ====================

@router.get("/{invoice_id}/payments", response_model=List[PaymentResponse])
async def list_payments(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return PaymentService(db).get_by_invoice(invoice_id, member.team_id)


@router.post("/{invoice_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(FeatureGate("payments"))])
async def record_payment(
    invoice_id: int,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Record a payment; amounts above the balance due are rejected"""
    def operation():
        payment = PaymentService(db).record_payment(invoice_id, member.team_id, payment_data, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.RECORD_PAYMENT,
            resource_type="Invoice",
            resource_id=invoice_id,
            description=f"Payment {payment.receipt_number} of {payment.amount}",
            user_id=member.user_id,
        )
        return payment

    return raise_for_result(run_operation(db, operation))


@router.delete("/{invoice_id}/payments/{payment_id}", response_model=InvoiceDetail,
               dependencies=[Depends(FeatureGate("payments"))])
async def delete_payment(
    invoice_id: int,
    payment_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        invoice = PaymentService(db).delete_payment(invoice_id, payment_id, member.team_id)
        _log(db, member, ActivityType.DELETE_PAYMENT, invoice, f"Payment {payment_id} removed")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


# ==================== ADJUSTMENTS ====================

@router.get("/{invoice_id}/adjustments", response_model=List[AdjustmentResponse])
async def list_adjustments(
    invoice_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return InvoiceAdjustmentService(db).list(invoice_id, member.team_id)


@router.post("/{invoice_id}/adjustments", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    invoice_id: int,
    adjustment_data: AdjustmentCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Apply a signed change to the invoice total"""
    def operation():
        adjustment = InvoiceAdjustmentService(db).create(
            invoice_id, member.team_id, adjustment_data, user_id=member.user_id
        )
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CREATE_ADJUSTMENT,
            resource_type="Invoice",
            resource_id=invoice_id,
            description=f"{adjustment.adjustment_type} adjustment of {adjustment.amount}",
            user_id=member.user_id,
        )
        return adjustment

    return raise_for_result(run_operation(db, operation))


@router.delete("/{invoice_id}/adjustments/{adjustment_id}", response_model=InvoiceDetail)
async def delete_adjustment(
    invoice_id: int,
    adjustment_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        invoice = InvoiceAdjustmentService(db).delete(invoice_id, adjustment_id, member.team_id)
        _log(db, member, ActivityType.DELETE_ADJUSTMENT, invoice, f"Adjustment {adjustment_id} removed")
        return invoice

    return invoice_detail(raise_for_result(run_operation(db, operation)))


# ==================== BANK QR ====================

@router.post("/{invoice_id}/qr", response_model=PaymentQRResponse,
             dependencies=[Depends(FeatureGate("bank_qr"))])
async def generate_payment_qr(
    invoice_id: int,
    qr_request: PaymentQRRequest = PaymentQRRequest(),
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Get a QR payment request for the amount due, reusing a pending one"""
    return raise_for_result(run_operation(
        db, lambda: BankService(db).generate_payment_qr(invoice_id, member.team_id, qr_request.provider)
    ))
