"""
Bank Webhook API Routes
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gstbook.core.config import settings
from gstbook.core.database import get_db
from gstbook.core.errors import BillingError, HTTP_STATUS_BY_CODE
from gstbook.core.rate_limit import RateLimitStore, get_rate_limiter, enforce_rate_limit, get_client_ip
from gstbook.schemas import WebhookResponse
from gstbook.services.bank_service import BankService, verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/bank/{provider}", response_model=WebhookResponse)
async def bank_webhook(
    provider: str,
    request: Request,
    db: Session = Depends(get_db),
    limiter: RateLimitStore = Depends(get_rate_limiter)
):
    """
    Payment notification from a bank.

    Unknown references are acknowledged and ignored so the bank stops
    retrying; repeated notifications for the same transaction are no-ops.
    """
    enforce_rate_limit(limiter, "webhook", f"{provider}:{get_client_ip(request)}")

    body = await request.body()
    if not verify_webhook_signature(settings.BANK_WEBHOOK_SECRET, body, request.headers.get("X-Webhook-Signature")):
        logger.warning(f"Rejected {provider} webhook with invalid signature from {get_client_ip(request)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        logger.warning(f"Rejected {provider} webhook with malformed JSON")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")

    try:
        outcome = BankService(db).handle_webhook(provider, payload)
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same transaction won the insert
        db.rollback()
        logger.info(f"{provider} webhook: transaction already recorded by a concurrent delivery")
        return {"status": "ok", "duplicate": True}
    except BillingError as e:
        db.rollback()
        logger.warning(f"Rejected {provider} webhook: {e.message}")
        detail = {"message": e.message, "errors": e.field_errors} if e.field_errors else e.message
        raise HTTPException(status_code=HTTP_STATUS_BY_CODE[e.code], detail=detail)

    return outcome
