"""
Balance Service - keeps invoice and bill amounts consistent

Works on any FinancialDocumentMixin model (Invoice, SupplierBill) and any
note model (CreditNote, DebitNote). Callers insert or delete the payment,
adjustment or application row; this service updates the document in the
same session so both sides are committed together.
"""
from datetime import datetime
from decimal import Decimal
from typing import Tuple
import logging

from gstbook.core.errors import ValidationError, OverpaymentRejected, ExceedsAvailableBalance
from gstbook.models import InvoiceStatus, PaymentStatus, NoteStatus
from gstbook.services.calculations import money, derive_payment_status, ZERO

logger = logging.getLogger(__name__)

# Documents in these states keep their status while amounts move
FROZEN_STATUSES = (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value)


class BalanceService:
    def recalculate(self, document) -> None:
        """Re-derive amount_due, payment_status and status from stored amounts"""
        document.amount_due = money(
            money(document.total_amount) - money(document.amount_paid) - money(document.amount_credited)
        )
        document.payment_status = derive_payment_status(
            document.amount_due, document.amount_paid, document.amount_credited
        )
        self._sync_status(document)

    def _sync_status(self, document) -> None:
        if document.status in FROZEN_STATUSES:
            return
        if document.payment_status == PaymentStatus.PAID.value:
            document.status = InvoiceStatus.PAID.value
            if not document.is_locked:
                document.is_locked = True
                document.locked_at = datetime.utcnow()
        elif document.status == InvoiceStatus.PAID.value:
            # Lock stays; only the status moves back
            document.status = InvoiceStatus.SENT.value

    # ---------- payments ----------

    def apply_payment(self, document, amount, clamp: bool = False) -> Tuple[Decimal, Decimal]:
        """
        Add a payment to the document.

        Returns (accepted, change). In the standard flow a payment larger than
        the amount due is rejected; with clamp=True only the amount due is
        consumed and the remainder is returned as change.
        """
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")

        amount_due = money(document.amount_due)
        if clamp:
            accepted = min(amount, max(amount_due, ZERO))
            if accepted <= 0:
                raise OverpaymentRejected("Document has no outstanding balance")
        else:
            if amount > amount_due:
                raise OverpaymentRejected(
                    f"Payment amount ({amount}) exceeds outstanding balance ({amount_due})"
                )
            accepted = amount

        document.amount_paid = money(money(document.amount_paid) + accepted)
        self.recalculate(document)
        return accepted, money(amount - accepted)

    def reverse_payment(self, document, amount) -> None:
        document.amount_paid = money(money(document.amount_paid) - money(amount))
        self.recalculate(document)

    # ---------- adjustments ----------

    def apply_adjustment(self, document, signed_amount) -> None:
        """Move total and amount due by the same signed amount, unclamped"""
        signed_amount = money(signed_amount)
        if signed_amount == 0:
            raise ValidationError("Adjustment amount cannot be zero")
        document.total_amount = money(money(document.total_amount) + signed_amount)
        self.recalculate(document)

    def reverse_adjustment(self, document, signed_amount) -> None:
        document.total_amount = money(money(document.total_amount) - money(signed_amount))
        self.recalculate(document)

    # ---------- credit / debit notes ----------

    def apply_note(self, note, document, amount) -> Decimal:
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("Amount to apply must be greater than zero")

        available = min(money(note.unapplied_amount), money(document.amount_due))
        if amount > available:
            raise ExceedsAvailableBalance(
                f"Amount ({amount}) exceeds available balance ({max(available, ZERO)})"
            )

        note.unapplied_amount = money(money(note.unapplied_amount) - amount)
        document.amount_credited = money(money(document.amount_credited) + amount)
        self.recalculate(document)
        self.sync_note_status(note)
        return amount

    def reverse_note_application(self, note, document, amount) -> None:
        amount = money(amount)
        note.unapplied_amount = money(money(note.unapplied_amount) + amount)
        document.amount_credited = money(money(document.amount_credited) - amount)
        self.recalculate(document)
        self.sync_note_status(note)

    def sync_note_status(self, note) -> None:
        if note.status in (NoteStatus.DRAFT.value, NoteStatus.CANCELLED.value):
            return
        unapplied = money(note.unapplied_amount)
        if unapplied <= 0:
            note.status = NoteStatus.APPLIED.value
        elif unapplied < money(note.total_amount):
            note.status = NoteStatus.PARTIAL.value
        else:
            note.status = NoteStatus.ISSUED.value
