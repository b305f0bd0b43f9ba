"""
User Service - Business Logic for User Operations
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from gstbook.core.errors import ValidationError
from gstbook.core.security import get_password_hash, verify_password, create_access_token
from gstbook.models import User, Team, TeamMember, TeamRole
from gstbook.schemas import SignupRequest
from gstbook.services.feature_service import FeatureService


class AuthenticationFailed(ValidationError):
    pass


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def signup(self, signup_data: SignupRequest) -> dict:
        """Create a team on the default plan with its owner account"""
        if self.get_by_email(signup_data.email):
            raise ValidationError("Email already registered",
                                  [{"field": "email", "message": "Email already registered"}])

        default_plan = FeatureService(self.db).get_default_plan()
        team = Team(
            name=signup_data.team_name,
            plan_id=default_plan.id if default_plan else None,
        )
        self.db.add(team)
        self.db.flush()

        user = User(
            email=signup_data.email.lower(),
            name=signup_data.name,
            hashed_password=get_password_hash(signup_data.password),
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()

        member = TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.OWNER.value)
        self.db.add(member)
        self.db.flush()

        return {"user": user, "team": team, "access_token": self.issue_token(user, team.id)}

    def authenticate(self, email: str, password: str) -> User:
        user = self.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationFailed("Incorrect email or password")
        user.last_login = datetime.utcnow()
        self.db.flush()
        return user

    def issue_token(self, user: User, team_id: Optional[int] = None) -> str:
        data = {"sub": str(user.id)}
        if team_id is not None:
            data["team_id"] = team_id
        return create_access_token(data=data)
