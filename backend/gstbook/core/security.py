"""
Security Module - Authentication & Authorization
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session, joinedload
from gstbook.core.config import settings
from gstbook.core.database import get_db
from gstbook.models import User, TeamMember, TeamRole

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

ROLE_RANK = {
    TeamRole.MEMBER.value: 1,
    TeamRole.ADMIN.value: 2,
    TeamRole.OWNER.value: 3,
}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from JWT token.
    Supports both Authorization header and cookies.
    """
    token = credentials.credentials if credentials else request.cookies.get("access_token")
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    request.state.token_payload = payload
    return user


async def get_current_member(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> TeamMember:
    """
    Resolve the tenant the request acts for.

    The team comes from the token's team_id claim, else the user's first membership.
    """
    payload = getattr(request.state, "token_payload", None) or {}
    query = db.query(TeamMember).options(joinedload(TeamMember.team)).filter(
        TeamMember.user_id == current_user.id
    )
    team_id = payload.get("team_id")
    if team_id is not None:
        query = query.filter(TeamMember.team_id == int(team_id))
    member = query.order_by(TeamMember.id).first()

    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any team"
        )
    return member


class RoleChecker:
    """Dependency for requiring a minimum team role"""

    def __init__(self, min_role: str):
        self.min_role = min_role

    def __call__(self, member: TeamMember = Depends(get_current_member)) -> TeamMember:
        if ROLE_RANK.get(member.role, 0) < ROLE_RANK[self.min_role]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {self.min_role} role"
            )
        return member


class PlatformAdminChecker:
    def __call__(self, user: User = Depends(get_current_user)) -> User:
        if not user.is_platform_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Platform admin access required"
            )
        return user


class FeatureGate:
    """Dependency for checking the team's plan includes a feature"""

    def __init__(self, feature_code: str):
        self.feature_code = feature_code

    def __call__(self, member: TeamMember = Depends(get_current_member), db: Session = Depends(get_db)) -> TeamMember:
        from gstbook.services.feature_service import FeatureService

        if not FeatureService(db).has_feature(member.team_id, self.feature_code):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This feature ({self.feature_code}) is not available on your current plan."
            )
        return member


require_admin = RoleChecker(TeamRole.ADMIN.value)
require_owner = RoleChecker(TeamRole.OWNER.value)
require_platform_admin = PlatformAdminChecker()
