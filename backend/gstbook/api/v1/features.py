"""
Feature and Plan API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member, require_platform_admin
from gstbook.models import TeamMember, User
from gstbook.schemas import (
    TeamFeaturesResponse, FeatureOverrideRequest, FeatureOverrideResponse,
    AssignPlanRequest, UsageResponse, UsageResourceEnum, PlanResponse, TeamResponse, MessageResponse
)
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.feature_service import FeatureService

router = APIRouter(prefix="/features", tags=["Features"])


@router.get("", response_model=TeamFeaturesResponse)
async def get_team_features(
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Features enabled for the current team after plan and overrides"""
    feature_service = FeatureService(db)
    plan = feature_service.get_effective_plan(member.team)
    return {
        "team_id": member.team_id,
        "plan_id": plan.id if plan else None,
        "plan_name": plan.name if plan else None,
        "features": sorted(feature_service.get_team_features(member.team_id)),
    }


@router.get("/usage/{resource}", response_model=UsageResponse)
async def get_usage(
    resource: UsageResourceEnum,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    usage = raise_for_result(run_operation(
        db, lambda: FeatureService(db).check_usage_limit(member.team_id, resource.value)
    ))
    return {"resource": resource.value, **usage}


@router.get("/plans", response_model=List[PlanResponse])
async def list_plans(db: Session = Depends(get_db)):
    return FeatureService(db).list_plans()


# ==================== PLATFORM ADMIN ====================

@router.put("/admin/teams/{team_id}/overrides", response_model=FeatureOverrideResponse)
async def set_feature_override(
    team_id: int,
    override_data: FeatureOverrideRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_platform_admin)
):
    """Grant or revoke one feature for a team regardless of its plan"""
    def operation():
        override = FeatureService(db).set_override(
            team_id, override_data.feature_code, override_data.enabled,
            reason=override_data.reason, user_id=admin.id
        )
        ActivityService(db).log(
            team_id=team_id,
            action=ActivityType.FEATURE_OVERRIDE,
            resource_type="Team",
            resource_id=team_id,
            description=f"{override_data.feature_code} {'enabled' if override_data.enabled else 'disabled'}",
            user_id=admin.id,
        )
        return override

    return raise_for_result(run_operation(db, operation))


@router.delete("/admin/teams/{team_id}/overrides/{feature_code}", response_model=MessageResponse)
async def remove_feature_override(
    team_id: int,
    feature_code: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_platform_admin)
):
    raise_for_result(run_operation(db, lambda: FeatureService(db).remove_override(team_id, feature_code)))
    return {"message": f"Override for {feature_code} removed"}


@router.put("/admin/teams/{team_id}/plan", response_model=TeamResponse)
async def assign_plan(
    team_id: int,
    plan_data: AssignPlanRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_platform_admin)
):
    def operation():
        team = FeatureService(db).assign_plan(team_id, plan_data.plan_id)
        ActivityService(db).log(
            team_id=team_id,
            action=ActivityType.PLAN_ASSIGNED,
            resource_type="Team",
            resource_id=team_id,
            description=f"Plan {plan_data.plan_id} assigned",
            user_id=admin.id,
        )
        return team

    return raise_for_result(run_operation(db, operation))


@router.post("/admin/seed")
async def seed_catalog(
    db: Session = Depends(get_db),
    admin: User = Depends(require_platform_admin)
):
    """Create the feature catalogue and default plans if missing"""
    return raise_for_result(run_operation(db, lambda: FeatureService(db).seed_catalog()))
