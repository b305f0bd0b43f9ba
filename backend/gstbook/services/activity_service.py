"""
Activity Logging Service
Trail of who did what to which financial document
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List
import logging

from gstbook.models import ActivityLog

logger = logging.getLogger(__name__)


class ActivityType:
    """Constants for activity actions"""
    SIGN_UP = "SIGN_UP"
    SIGN_IN = "SIGN_IN"
    SIGN_IN_FAILED = "SIGN_IN_FAILED"
    UPDATE_TEAM = "UPDATE_TEAM"

    CREATE_INVOICE = "CREATE_INVOICE"
    UPDATE_INVOICE = "UPDATE_INVOICE"
    DELETE_INVOICE = "DELETE_INVOICE"
    SEND_INVOICE = "SEND_INVOICE"
    CANCEL_INVOICE = "CANCEL_INVOICE"
    POS_SALE = "POS_SALE"

    RECORD_PAYMENT = "RECORD_PAYMENT"
    DELETE_PAYMENT = "DELETE_PAYMENT"
    BANK_PAYMENT_RECEIVED = "BANK_PAYMENT_RECEIVED"

    CREATE_ADJUSTMENT = "CREATE_ADJUSTMENT"
    DELETE_ADJUSTMENT = "DELETE_ADJUSTMENT"

    CREATE_CREDIT_NOTE = "CREATE_CREDIT_NOTE"
    ISSUE_CREDIT_NOTE = "ISSUE_CREDIT_NOTE"
    APPLY_CREDIT_NOTE = "APPLY_CREDIT_NOTE"
    CREATE_DEBIT_NOTE = "CREATE_DEBIT_NOTE"
    ISSUE_DEBIT_NOTE = "ISSUE_DEBIT_NOTE"
    APPLY_DEBIT_NOTE = "APPLY_DEBIT_NOTE"

    CREATE_BILL = "CREATE_BILL"
    RECEIVE_BILL = "RECEIVE_BILL"
    CANCEL_BILL = "CANCEL_BILL"
    RECORD_SUPPLIER_PAYMENT = "RECORD_SUPPLIER_PAYMENT"

    CREATE_GST_RETURN = "CREATE_GST_RETURN"
    FILE_GST_RETURN = "FILE_GST_RETURN"
    AMEND_GST_RETURN = "AMEND_GST_RETURN"
    LOCK_GST_PERIOD = "LOCK_GST_PERIOD"
    UNLOCK_GST_PERIOD = "UNLOCK_GST_PERIOD"

    PAYMENT_REMINDER_SENT = "PAYMENT_REMINDER_SENT"
    FEATURE_OVERRIDE = "FEATURE_OVERRIDE"
    PLAN_ASSIGNED = "PLAN_ASSIGNED"


class ActivityService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        team_id: Optional[int],
        action: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        description: Optional[str] = None,
        user_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> ActivityLog:
        """Add an entry to the current transaction; it is committed with the operation it describes"""
        entry = ActivityLog(
            team_id=team_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            ip_address=ip_address,
        )
        self.db.add(entry)
        logger.info(f"Activity: {action} {resource_type}(id={resource_id}) team={team_id} user={user_id}")
        return entry

    def get_by_team(self, team_id: int, resource_type: Optional[str] = None,
                    limit: int = 100, offset: int = 0) -> List[ActivityLog]:
        query = self.db.query(ActivityLog).filter(ActivityLog.team_id == team_id)
        if resource_type:
            query = query.filter(ActivityLog.resource_type == resource_type)
        return query.order_by(desc(ActivityLog.timestamp), desc(ActivityLog.id)).offset(offset).limit(limit).all()
