"""
Report API Routes
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from gstbook.core.database import get_db
from gstbook.core.security import get_current_member, FeatureGate
from gstbook.models import TeamMember
from gstbook.schemas import UnpaidInvoicesReport, UnpaidBillsReport, GSTSummaryReport
from gstbook.services.activity_service import ActivityService
from gstbook.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/unpaid-invoices", response_model=UnpaidInvoicesReport)
async def unpaid_invoices(
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return ReportService(db).unpaid_invoices(member.team_id, as_of)


@router.get("/unpaid-bills", response_model=UnpaidBillsReport)
async def unpaid_bills(
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return ReportService(db).unpaid_bills(member.team_id, as_of)


@router.get("/gst-summary", response_model=GSTSummaryReport)
async def gst_summary(
    start_date: date,
    end_date: date,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(FeatureGate("gst_reports"))
):
    """Output and input GST by classification and rate for the period"""
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            detail="end_date cannot be before start_date")
    return ReportService(db).gst_summary(member.team_id, start_date, end_date)


@router.get("/activity", response_model=List[dict])
async def activity_log(
    limit: int = 100,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    entries = ActivityService(db).get_by_team(member.team_id, limit=limit)
    return [
        {
            "id": entry.id,
            "timestamp": entry.timestamp,
            "action": entry.action,
            "resource_type": entry.resource_type,
            "resource_id": entry.resource_id,
            "description": entry.description,
            "user_id": entry.user_id,
        }
        for entry in entries
    ]
