"""
Team Service - tenant settings
"""
from sqlalchemy.orm import Session

from gstbook.core.errors import NotFound
from gstbook.models import Team
from gstbook.schemas import TeamUpdate
from gstbook.services.invoice_service import validate_currency


class TeamService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_404(self, team_id: int) -> Team:
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if not team:
            raise NotFound("Team", team_id)
        return team

    def update(self, team_id: int, team_data: TeamUpdate) -> Team:
        team = self.get_or_404(team_id)
        update_data = team_data.model_dump(exclude_unset=True)
        if update_data.get("default_currency") is not None:
            # Changing the base currency is itself a multi-currency operation
            currency = update_data["default_currency"].value
            if currency != team.default_currency:
                validate_currency(self.db, team, currency)
            update_data["default_currency"] = currency
        for field in ("invoice_prefix", "bill_prefix"):
            if update_data.get(field):
                update_data[field] = update_data[field].upper()

        for key, value in update_data.items():
            setattr(team, key, value)
        self.db.flush()
        return team
