"""
Debit Note API Routes
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, FeatureGate
from gstbook.models import TeamMember
from gstbook.schemas import (
    DebitNoteCreate, DebitNoteUpdate, DebitNoteResponse, DebitNoteDetail,
    ApplyDebitNoteRequest, DebitApplicationResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.note_service import DebitNoteService

router = APIRouter(prefix="/debit-notes", tags=["Debit Notes"],
                   dependencies=[Depends(FeatureGate("debit_notes"))])


@router.get("", response_model=List[DebitNoteResponse])
async def list_debit_notes(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return DebitNoteService(db).get_by_team(member.team_id, status)


@router.post("", response_model=DebitNoteDetail, status_code=status.HTTP_201_CREATED)
async def create_debit_note(
    note_data: DebitNoteCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        note = DebitNoteService(db).create(note_data, member.team, user_id=member.user_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.CREATE_DEBIT_NOTE,
            resource_type="DebitNote",
            resource_id=note.id,
            description=f"Debit note {note.note_number} drafted for {note.total_amount}",
            user_id=member.user_id,
        )
        return note

    return raise_for_result(run_operation(db, operation))


@router.get("/{note_id}", response_model=DebitNoteDetail)
async def get_debit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: DebitNoteService(db).get_or_404(note_id, member.team_id)))


@router.put("/{note_id}", response_model=DebitNoteDetail)
async def update_debit_note(
    note_id: int,
    note_data: DebitNoteUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: DebitNoteService(db).update(note_id, member.team_id, note_data)
    ))


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_debit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: DebitNoteService(db).delete(note_id, member.team_id)))
    return {"message": "Debit note deleted"}


@router.post("/{note_id}/issue", response_model=DebitNoteDetail)
async def issue_debit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    def operation():
        note = DebitNoteService(db).issue(note_id, member.team_id)
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.ISSUE_DEBIT_NOTE,
            resource_type="DebitNote",
            resource_id=note.id,
            description=f"Debit note {note.note_number} issued",
            user_id=member.user_id,
        )
        return note

    return raise_for_result(run_operation(db, operation))


@router.post("/{note_id}/cancel", response_model=DebitNoteDetail)
async def cancel_debit_note(
    note_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: DebitNoteService(db).cancel(note_id, member.team_id)))


@router.post("/{note_id}/apply", response_model=DebitApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_debit_note(
    note_id: int,
    apply_data: ApplyDebitNoteRequest,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Apply part of the debit note to a received bill of the same supplier"""
    def operation():
        application = DebitNoteService(db).apply(
            note_id, apply_data.bill_id, apply_data.amount, member.team_id, user_id=member.user_id
        )
        ActivityService(db).log(
            team_id=member.team_id,
            action=ActivityType.APPLY_DEBIT_NOTE,
            resource_type="SupplierBill",
            resource_id=apply_data.bill_id,
            description=f"Debit note {note_id} applied for {application.amount}",
            user_id=member.user_id,
        )
        return application

    return raise_for_result(run_operation(db, operation))


@router.delete("/{note_id}/applications/{application_id}", response_model=DebitNoteDetail)
async def remove_debit_application(
    note_id: int,
    application_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: DebitNoteService(db).remove_application(note_id, application_id, member.team_id)
    ))
