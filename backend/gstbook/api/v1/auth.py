"""
Authentication API Routes
"""
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status, Response, Request
from sqlalchemy.orm import Session

from gstbook.core.config import settings
from gstbook.core.database import get_db
from gstbook.core.rate_limit import RateLimitStore, get_rate_limiter, enforce_rate_limit, get_client_ip
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_user, get_current_member
from gstbook.models import User, TeamMember
from gstbook.schemas import LoginRequest, SignupRequest, Token, MeResponse
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.user_service import UserService, AuthenticationFailed

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_token_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        max_age=int(timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES).total_seconds()),
        samesite="lax",
        secure=settings.is_production
    )


@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(
    signup_data: SignupRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    limiter: RateLimitStore = Depends(get_rate_limiter)
):
    """Register a new team and its owner"""
    enforce_rate_limit(limiter, "sign_up", signup_data.email)

    def operation():
        created = UserService(db).signup(signup_data)
        ActivityService(db).log(
            team_id=created["team"].id,
            action=ActivityType.SIGN_UP,
            resource_type="User",
            resource_id=created["user"].id,
            description=f"Team '{created['team'].name}' created by {created['user'].email}",
            user_id=created["user"].id,
            ip_address=get_client_ip(request),
        )
        return created

    created = raise_for_result(run_operation(db, operation))
    _set_token_cookie(response, created["access_token"])
    return {"access_token": created["access_token"], "token_type": "bearer"}


@router.post("/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    limiter: RateLimitStore = Depends(get_rate_limiter)
):
    """Login and get access token"""
    enforce_rate_limit(limiter, "sign_in", login_data.email)

    user_service = UserService(db)
    activity = ActivityService(db)
    ip_address = get_client_ip(request)

    try:
        user = user_service.authenticate(login_data.email, login_data.password)
    except AuthenticationFailed as e:
        activity.log(
            team_id=None,
            action=ActivityType.SIGN_IN_FAILED,
            resource_type="User",
            description=f"Failed login attempt for '{login_data.email}'",
            ip_address=ip_address,
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    membership = db.query(TeamMember).filter(TeamMember.user_id == user.id).order_by(TeamMember.id).first()
    team_id = membership.team_id if membership else None
    access_token = user_service.issue_token(user, team_id)

    activity.log(
        team_id=team_id,
        action=ActivityType.SIGN_IN,
        resource_type="User",
        resource_id=user.id,
        description=f"User '{user.email}' logged in",
        user_id=user.id,
        ip_address=ip_address,
    )
    db.commit()

    _set_token_cookie(response, access_token)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/logout")
async def logout(response: Response, current_user: User = Depends(get_current_user)):
    response.delete_cookie(key="access_token")
    return {"message": "Logged out successfully", "success": True}


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
    member: TeamMember = Depends(get_current_member)
):
    """Get current user, team and role"""
    return {"user": current_user, "team": member.team, "role": member.role}
