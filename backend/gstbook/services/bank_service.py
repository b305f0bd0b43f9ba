"""
Bank Service - QR payment requests and bank payment notifications
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional
from urllib.parse import quote
import hashlib
import hmac
import logging
import uuid

from sqlalchemy.orm import Session

from gstbook.core.config import settings
from gstbook.core.errors import NotFound, ValidationError, InvalidState
from gstbook.core.results import parse_request
from gstbook.models import PaymentQR, Invoice, InvoiceStatus, PaymentStatus, QRStatus, PaymentMethod
from gstbook.schemas import DKBankWebhookPayload
from gstbook.services.activity_service import ActivityService, ActivityType
from gstbook.services.calculations import money
from gstbook.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


@dataclass
class BankNotification:
    """Provider payload reduced to the fields the ledger needs"""
    reference_id: str
    status: str
    paid_amount: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class BankProvider:
    code: str = None
    name: str = None

    def generate_qr(self, invoice: Invoice, amount: Decimal, expiry_minutes: int) -> dict:
        raise NotImplementedError

    def parse_webhook(self, payload) -> Optional[BankNotification]:
        raise NotImplementedError


class DKBankProvider(BankProvider):
    code = "dk_bank"
    name = "DK Bank"

    def __init__(self, merchant_id: str = "UNKNOWN"):
        self.merchant_id = merchant_id

    def generate_qr(self, invoice: Invoice, amount: Decimal, expiry_minutes: int) -> dict:
        reference_id = f"DK-{int(datetime.utcnow().timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"
        qr_payload = (
            f"DKBANK://pay?merchant={quote(self.merchant_id)}&amount={amount}"
            f"&ref={quote(invoice.invoice_number)}&currency={invoice.currency}&txn={reference_id}"
        )
        return {
            "reference_id": reference_id,
            "qr_payload": qr_payload,
            "expires_at": datetime.utcnow() + timedelta(minutes=expiry_minutes),
        }

    def parse_webhook(self, payload) -> Optional[BankNotification]:
        """Returns None when the payload carries no reference to match"""
        if not isinstance(payload, dict) or not payload.get("referenceId"):
            return None
        result = parse_request(DKBankWebhookPayload, payload)
        if not result.ok:
            raise ValidationError("Invalid webhook payload", result.errors)

        data = result.data
        status = data.status.lower()
        if status not in {s.value for s in QRStatus}:
            raise ValidationError(f"Unknown payment status: {data.status}",
                                  [{"field": "status", "message": "Unknown payment status"}])
        return BankNotification(
            reference_id=data.reference_id,
            status=status,
            paid_amount=money(data.amount) if data.amount is not None else None,
            transaction_id=data.transaction_id,
            paid_at=datetime.utcnow() if status == QRStatus.PAID.value else None,
        )


def build_providers() -> Dict[str, BankProvider]:
    return {
        DKBankProvider.code: DKBankProvider(merchant_id=settings.DK_BANK_MERCHANT_ID),
    }


def verify_webhook_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """HMAC-SHA256 of the raw body, hex encoded; unsigned when no secret is configured"""
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


class BankService:
    def __init__(self, db: Session, providers: Optional[Dict[str, BankProvider]] = None):
        self.db = db
        self.providers = providers if providers is not None else build_providers()

    def get_provider(self, code: str) -> BankProvider:
        provider = self.providers.get(code)
        if provider is None:
            raise NotFound("Bank provider", code)
        return provider

    def generate_payment_qr(self, invoice_id: int, team_id: int, provider_code: str = "dk_bank") -> PaymentQR:
        """Reuse a pending, unexpired QR for the invoice or create a new one for the amount due"""
        provider = self.get_provider(provider_code)
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.team_id == team_id
        ).first()
        if not invoice:
            raise NotFound("Invoice", invoice_id)
        if invoice.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value):
            raise InvalidState(f"Cannot request payment for a {invoice.status} invoice")

        amount = money(invoice.amount_due)
        if amount <= 0:
            raise InvalidState("Invoice has no outstanding balance")

        existing = self.db.query(PaymentQR).filter(
            PaymentQR.invoice_id == invoice.id,
            PaymentQR.provider == provider.code,
            PaymentQR.status == QRStatus.PENDING.value,
            PaymentQR.expires_at > datetime.utcnow(),
            PaymentQR.amount == amount
        ).order_by(PaymentQR.created_at.desc()).first()
        if existing:
            return existing

        generated = provider.generate_qr(invoice, amount, settings.QR_EXPIRY_MINUTES)
        qr = PaymentQR(
            team_id=team_id,
            invoice_id=invoice.id,
            provider=provider.code,
            reference_id=generated["reference_id"],
            qr_payload=generated["qr_payload"],
            amount=amount,
            currency=invoice.currency,
            status=QRStatus.PENDING.value,
            expires_at=generated["expires_at"],
        )
        self.db.add(qr)
        self.db.flush()
        return qr

    def handle_webhook(self, provider_code: str, payload) -> dict:
        """
        Apply a bank notification to the matching invoice.

        A notification for a QR that is already paid, or whose transaction id
        already has a payment on the invoice, is acknowledged without changes.
        """
        provider = self.get_provider(provider_code)
        notification = provider.parse_webhook(payload)
        if notification is None:
            logger.warning(f"Bank webhook from {provider_code} without reference ignored")
            return {"status": "ignored", "reason": "missing reference"}

        qr = self.db.query(PaymentQR).filter(
            PaymentQR.reference_id == notification.reference_id,
            PaymentQR.provider == provider.code
        ).with_for_update().first()
        if not qr:
            logger.warning(f"Bank webhook: QR record not found for ref {notification.reference_id}")
            return {"status": "ignored", "reason": "reference not found"}

        if qr.status == QRStatus.PAID.value:
            logger.info(f"Bank webhook: duplicate notification for {qr.reference_id}")
            return {"status": "ok", "duplicate": True}

        transaction_id = notification.transaction_id or notification.reference_id
        payments = PaymentService(self.db)
        if notification.status == QRStatus.PAID.value and payments.find_by_transaction(qr.invoice_id, transaction_id):
            qr.status = QRStatus.PAID.value
            self.db.flush()
            logger.info(f"Bank webhook: transaction {transaction_id} already recorded")
            return {"status": "ok", "duplicate": True}

        qr.status = notification.status
        qr.transaction_id = transaction_id
        if notification.status != QRStatus.PAID.value:
            self.db.flush()
            return {"status": "ok"}

        paid_amount = notification.paid_amount if notification.paid_amount else money(qr.amount)
        qr.paid_at = notification.paid_at or datetime.utcnow()
        qr.paid_amount = paid_amount

        invoice = self.db.query(Invoice).filter(Invoice.id == qr.invoice_id).with_for_update().first()
        if invoice is None or invoice.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value) \
                or invoice.payment_status == PaymentStatus.PAID.value:
            # Money arrived for something no longer collectable; keep the QR record for reconciliation
            logger.warning(f"Bank webhook: invoice {qr.invoice_id} not payable, {paid_amount} left unapplied")
            self.db.flush()
            return {"status": "ok", "reason": "invoice not payable"}

        payment, surplus = payments.record_clamped_payment(
            invoice,
            paid_amount,
            PaymentMethod.BANK_QR.value,
            transaction_id=transaction_id,
            notes=f"Auto-recorded via {provider.code} bank QR payment",
            payment_date=qr.paid_at.date(),
        )
        if surplus > 0:
            logger.warning(f"Bank webhook: {surplus} received above the balance of {invoice.invoice_number}")

        ActivityService(self.db).log(
            team_id=invoice.team_id,
            action=ActivityType.BANK_PAYMENT_RECEIVED,
            resource_type="Invoice",
            resource_id=invoice.id,
            description=f"{provider.name} payment {transaction_id} of {payment.amount}",
        )
        self.db.flush()
        return {"status": "ok", "payment_id": payment.id}
