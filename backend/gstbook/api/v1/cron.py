"""
Scheduled Job API Routes
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from gstbook.core.config import settings
from gstbook.core.database import get_db
from gstbook.core.mailer import Mailer, get_mailer
from gstbook.schemas import ReminderRunResponse
from gstbook.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Scheduler calls carry 'Authorization: Bearer <CRON_SECRET>'"""
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured; refusing scheduled job")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Scheduled job called with an invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/payment-reminders", response_model=ReminderRunResponse,
             dependencies=[Depends(verify_cron_secret)])
async def send_payment_reminders(
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer)
):
    """Email reminders for overdue invoices; one failed invoice does not stop the batch"""
    return ReminderService(db, mailer).send_reminders()
