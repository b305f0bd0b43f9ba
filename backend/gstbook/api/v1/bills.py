"""
Supplier Bill API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, FeatureGate
from gstbook.models import SupplierBill, TeamMember
from gstbook.schemas import (
    SupplierBillCreate, SupplierBillUpdate, SupplierBillResponse, SupplierBillDetail, TaxBreakdownLine,
    PaymentCreate, SupplierPaymentResponse, AdjustmentCreate, AdjustmentResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.adjustment_service import BillAdjustmentService
from gstbook.services.bill_service import SupplierBillService
from gstbook.services.calculations import tax_breakdown
from gstbook.services.payment_service import SupplierPaymentService

router = APIRouter(prefix="/bills", tags=["Purchases"], dependencies=[Depends(FeatureGate("supplier_bills"))])


def bill_detail(bill: SupplierBill) -> SupplierBillDetail:
    detail = SupplierBillDetail.model_validate(bill)
    detail.tax_breakdown = [TaxBreakdownLine(**line) for line in tax_breakdown(bill.items)]
    return detail


@router.get("", response_model=List[SupplierBillResponse])
async def list_bills(
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return SupplierBillService(db).get_by_team(member.team_id, status, supplier_id)


@router.post("", response_model=SupplierBillDetail, status_code=status.HTTP_201_CREATED)
async def create_bill(
    bill_data: SupplierBillCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        bill = SupplierBillService(db).create(bill_data, member.team, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CREATE_BILL,
            resource_type="SupplierBill",
            resource_id=bill.id,
            description=f"Bill {bill.bill_number} recorded",
            user_id=member.user_id,
        )
        return bill

    return bill_detail(raise_for_result(run_operation(db, operation)))


@router.get("/{bill_id}", response_model=SupplierBillDetail)
async def get_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    bill = raise_for_result(run_operation(db, lambda: SupplierBillService(db).get_or_404(bill_id, member.team_id)))
    return bill_detail(bill)


@router.put("/{bill_id}", response_model=SupplierBillDetail)
async def update_bill(
    bill_id: int,
    bill_data: SupplierBillUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    bill = raise_for_result(run_operation(
        db, lambda: SupplierBillService(db).update(bill_id, member.team, bill_data)
    ))
    return bill_detail(bill)


@router.delete("/{bill_id}", response_model=MessageResponse)
async def delete_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: SupplierBillService(db).delete(bill_id, member.team_id)))
    return {"message": "Bill deleted"}


@router.post("/{bill_id}/receive", response_model=SupplierBillDetail)
async def receive_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        bill = SupplierBillService(db).receive(bill_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.RECEIVE_BILL,
            resource_type="SupplierBill",
            resource_id=bill.id,
            description=f"Bill {bill.bill_number} received",
            user_id=member.user_id,
        )
        return bill

    return bill_detail(raise_for_result(run_operation(db, operation)))


@router.post("/{bill_id}/cancel", response_model=SupplierBillDetail)
async def cancel_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        bill = SupplierBillService(db).cancel(bill_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CANCEL_BILL,
            resource_type="SupplierBill",
            resource_id=bill.id,
            description=f"Bill {bill.bill_number} cancelled",
            user_id=member.user_id,
        )
        return bill

    return bill_detail(raise_for_result(run_operation(db, operation)))


# ==================== PAYMENTS ====================

@router.post("/{bill_id}/payments", response_model=SupplierPaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_bill_payment(
    bill_id: int,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        payment = SupplierPaymentService(db).record_payment(bill_id, member.team_id, payment_data,
                                                            user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.RECORD_SUPPLIER_PAYMENT,
            resource_type="SupplierBill",
            resource_id=bill_id,
            description=f"Paid {payment.amount}",
            user_id=member.user_id,
        )
        return payment

    return raise_for_result(run_operation(db, operation))


@router.delete("/{bill_id}/payments/{payment_id}", response_model=SupplierBillDetail)
async def delete_bill_payment(
    bill_id: int,
    payment_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    bill = raise_for_result(run_operation(
        db, lambda: SupplierPaymentService(db).delete_payment(bill_id, payment_id, member.team_id)
    ))
    return bill_detail(bill)


# ==================== ADJUSTMENTS ====================

@router.get("/{bill_id}/adjustments", response_model=List[AdjustmentResponse])
async def list_bill_adjustments(
    bill_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return BillAdjustmentService(db).list(bill_id, member.team_id)


@router.post("/{bill_id}/adjustments", response_model=AdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_bill_adjustment(
    bill_id: int,
    adjustment_data: AdjustmentCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: BillAdjustmentService(db).create(bill_id, member.team_id, adjustment_data,
                                                     user_id=member.user_id)
    ))


@router.delete("/{bill_id}/adjustments/{adjustment_id}", response_model=SupplierBillDetail)
async def delete_bill_adjustment(
    bill_id: int,
    adjustment_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    bill = raise_for_result(run_operation(
        db, lambda: BillAdjustmentService(db).delete(bill_id, adjustment_id, member.team_id)
    ))
    return bill_detail(bill)
