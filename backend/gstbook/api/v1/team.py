"""
Team Settings API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, require_admin
from gstbook.models import TeamMember
from gstbook.schemas import TeamUpdate, TeamResponse
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.team_service import TeamService

router = APIRouter(prefix="/team", tags=["Team"])


@router.get("/settings", response_model=TeamResponse)
async def get_team_settings(member: TeamMember = Depends(get_current_member)):
    return member.team


@router.put("/settings", response_model=TeamResponse)
async def update_team_settings(
    team_data: TeamUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(require_admin)
):
    """Update business details, GST registration and numbering prefixes"""
    def operation():
        team = TeamService(db).update(member.team_id, team_data)
        ActivityService(db).log(
            team_id=team.id,
            action=ActivityType.UPDATE_TEAM,
            resource_type="Team",
            resource_id=team.id,
            description="Team settings updated",
            user_id=member.user_id,
        )
        return team

    return raise_for_result(run_operation(db, operation))
