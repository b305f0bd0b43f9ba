"""
GST Compliance API Routes - returns and period locks
"""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, require_owner, FeatureGate
from gstbook.models import TeamMember
from gstbook.schemas import (
    GstReturnCreate, GstReturnFile, GstReturnAmend, GstReturnResponse,
    GstPeriodLockCreate, GstPeriodLockResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.gst_service import GstService

router = APIRouter(prefix="/gst", tags=["GST Compliance"],
                   dependencies=[Depends(FeatureGate("gst_returns"))])


# ==================== RETURNS ====================

@router.get("/returns", response_model=List[GstReturnResponse])
async def list_returns(
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return GstService(db).get_returns(member.team_id)


@router.post("/returns", response_model=GstReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_return(
    return_data: GstReturnCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Draft a return from the period's invoices and bills"""
    def operation():
        gst_return = GstService(db).create_return(member.team_id, return_data, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CREATE_GST_RETURN,
            resource_type="GstReturn",
            resource_id=gst_return.id,
            description=f"GST return {gst_return.return_number} drafted, net payable {gst_return.net_gst_payable}",
            user_id=member.user_id,
        )
        return gst_return

    return raise_for_result(run_operation(db, operation))


@router.get("/returns/{return_id}", response_model=GstReturnResponse)
async def get_return(
    return_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: GstService(db).get_return_or_404(return_id, member.team_id)))


@router.post("/returns/{return_id}/file", response_model=GstReturnResponse)
async def file_return(
    return_id: int,
    file_data: GstReturnFile,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(require_owner)
):
    def operation():
        gst_return = GstService(db).file_return(return_id, member.team_id, file_data, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.FILE_GST_RETURN,
            resource_type="GstReturn",
            resource_id=gst_return.id,
            description=f"GST return {gst_return.return_number} filed, total payable {gst_return.total_payable}",
            user_id=member.user_id,
        )
        return gst_return

    return raise_for_result(run_operation(db, operation))


@router.post("/returns/{return_id}/amend", response_model=GstReturnResponse)
async def amend_return(
    return_id: int,
    amend_data: GstReturnAmend,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(require_owner)
):
    def operation():
        gst_return = GstService(db).amend_return(return_id, member.team_id, amend_data, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.AMEND_GST_RETURN,
            resource_type="GstReturn",
            resource_id=gst_return.id,
            description=f"GST return {gst_return.return_number} amended: {amend_data.reason}",
            user_id=member.user_id,
        )
        return gst_return

    return raise_for_result(run_operation(db, operation))


@router.delete("/returns/{return_id}", response_model=MessageResponse)
async def delete_return(
    return_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: GstService(db).delete_return(return_id, member.team_id)))
    return {"message": "GST return deleted"}


# ==================== PERIOD LOCKS ====================

@router.get("/locks", response_model=List[GstPeriodLockResponse])
async def list_locks(
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return GstService(db).get_locks(member.team_id)


@router.get("/locks/check")
async def check_lock(
    on_date: date,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return {"date": on_date, "locked": GstService(db).is_date_locked(member.team_id, on_date)}


@router.post("/locks", response_model=GstPeriodLockResponse, status_code=status.HTTP_201_CREATED)
async def create_lock(
    lock_data: GstPeriodLockCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(require_owner)
):
    def operation():
        lock = GstService(db).create_lock(member.team_id, lock_data, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.LOCK_GST_PERIOD,
            resource_type="GstPeriodLock",
            resource_id=lock.id,
            description=f"GST period {lock.period_start} to {lock.period_end} locked",
            user_id=member.user_id,
        )
        return lock

    return raise_for_result(run_operation(db, operation))


@router.delete("/locks/{lock_id}", response_model=MessageResponse)
async def remove_lock(
    lock_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(require_owner)
):
    def operation():
        GstService(db).remove_lock(lock_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.UNLOCK_GST_PERIOD,
            resource_type="GstPeriodLock",
            resource_id=lock_id,
            description=f"GST period lock {lock_id} removed",
            user_id=member.user_id,
        )

    raise_for_result(run_operation(db, operation))
    return {"message": "GST period unlocked"}
