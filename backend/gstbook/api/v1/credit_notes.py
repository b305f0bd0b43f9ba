"""
Credit Note API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, FeatureGate
from gstbook.models import TeamMember
from gstbook.schemas import (
    CreditNoteCreate, CreditNoteUpdate, CreditNoteResponse, CreditNoteDetail,
    ApplyCreditNoteRequest, CreditApplicationResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.note_service import CreditNoteService

router = APIRouter(prefix="/credit-notes", tags=["Credit Notes"],
                   dependencies=[Depends(FeatureGate("credit_notes"))])


@router.get("", response_model=List[CreditNoteResponse])
async def list_credit_notes(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return CreditNoteService(db).get_by_team(member.team_id, status)


@router.post("", response_model=CreditNoteDetail, status_code=status.HTTP_201_CREATED)
async def create_credit_note(
    note_data: CreditNoteCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        note = CreditNoteService(db).create(note_data, member.team, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CREATE_CREDIT_NOTE,
            resource_type="CreditNote",
            resource_id=note.id,
            description=f"Credit note {note.note_number} drafted for {note.total_amount}",
            user_id=member.user_id,
        )
        return note

    return raise_for_result(run_operation(db, operation))


@router.get("/{note_id}", response_model=CreditNoteDetail)
async def get_credit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: CreditNoteService(db).get_or_404(note_id, member.team_id)))


@router.put("/{note_id}", response_model=CreditNoteDetail)
async def update_credit_note(
    note_id: int,
    note_data: CreditNoteUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: CreditNoteService(db).update(note_id, member.team_id, note_data)
    ))


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_credit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: CreditNoteService(db).delete(note_id, member.team_id)))
    return {"message": "Credit note deleted"}


@router.post("/{note_id}/issue", response_model=CreditNoteDetail)
async def issue_credit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        note = CreditNoteService(db).issue(note_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.ISSUE_CREDIT_NOTE,
            resource_type="CreditNote",
            resource_id=note.id,
            description=f"Credit note {note.note_number} issued",
            user_id=member.user_id,
        )
        return note

    return raise_for_result(run_operation(db, operation))


@router.post("/{note_id}/cancel", response_model=CreditNoteDetail)
async def cancel_credit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: CreditNoteService(db).cancel(note_id, member.team_id)))


@router.post("/{note_id}/apply", response_model=CreditApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_credit_note(
    note_id: int,
    apply_data: ApplyCreditNoteRequest,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Apply part of the credit note to an invoice of the same customer"""
    def operation():
        application = CreditNoteService(db).apply(
            note_id, apply_data.invoice_id, apply_data.amount, member.team_id, user_id=member.user_id
        )
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.APPLY_CREDIT_NOTE,
            resource_type="Invoice",
            resource_id=apply_data.invoice_id,
            description=f"Credit note {note_id} applied for {application.amount}",
            user_id=member.user_id,
        )
        return application

    return raise_for_result(run_operation(db, operation))


@router.delete("/{note_id}/applications/{application_id}", response_model=CreditNoteDetail)
async def remove_credit_application(
    note_id: int,
    application_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: CreditNoteService(db).remove_application(note_id, application_id, member.team_id)
    ))
