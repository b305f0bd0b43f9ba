"""
Payment Service - payments received on invoices and paid on supplier bills
"""
from datetime import date
from decimal import Decimal
from typing import Optional, List, Tuple
from sqlalchemy.orm import Session
import logging

from gstbook.core.errors import NotFound, InvalidState, ValidationError
from gstbook.models import (
    Invoice, Payment, SupplierBill, SupplierPayment, InvoiceStatus
)
from gstbook.schemas import PaymentCreate
from gstbook.services.balance_service import BalanceService
from gstbook.services.numbering import NumberingService, DocType

logger = logging.getLogger(__name__)


def ensure_payable(document, label: str) -> None:
    if document.status == InvoiceStatus.DRAFT.value:
        raise InvalidState(f"Cannot record a payment on a draft {label}. Send it first.")
    if document.status == InvoiceStatus.CANCELLED.value:
        raise InvalidState(f"Cannot record a payment on a cancelled {label}")


def reject_duplicate_transaction(existing, transaction_id: Optional[str]) -> None:
    if transaction_id and existing:
        raise ValidationError(
            f"Transaction {transaction_id} is already recorded on this document",
            [{"field": "transaction_id", "message": "Transaction ID has already been used"}]
        )


class PaymentService:
    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    def _get_invoice(self, invoice_id: int, team_id: int) -> Invoice:
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.team_id == team_id
        ).with_for_update().first()
        if not invoice:
            raise NotFound("Invoice", invoice_id)
        return invoice

    def get_by_invoice(self, invoice_id: int, team_id: int) -> List[Payment]:
        return self.db.query(Payment).filter(
            Payment.invoice_id == invoice_id,
            Payment.team_id == team_id
        ).order_by(Payment.payment_date, Payment.id).all()

    def find_by_transaction(self, invoice_id: int, transaction_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(
            Payment.invoice_id == invoice_id,
            Payment.transaction_id == transaction_id
        ).first()

    def _insert_payment(self, invoice: Invoice, amount: Decimal, method: str,
                        payment_date: Optional[date] = None, transaction_id: Optional[str] = None,
                        reference: Optional[str] = None, notes: Optional[str] = None,
                        user_id: Optional[int] = None) -> Payment:
        payment_date = payment_date or date.today()
        payment = Payment(
            team_id=invoice.team_id,
            invoice_id=invoice.id,
            receipt_number=NumberingService(self.db).next_number(
                invoice.team_id, DocType.RECEIPT, on_date=payment_date
            ),
            amount=amount,
            currency=invoice.currency,
            payment_method=method,
            payment_date=payment_date,
            transaction_id=transaction_id,
            reference=reference,
            notes=notes,
            created_by=user_id,
        )
        self.db.add(payment)
        return payment

    def record_payment(self, invoice_id: int, team_id: int, payment_data: PaymentCreate,
                       user_id: Optional[int] = None) -> Payment:
        """Standard flow: an amount above the balance due is rejected"""
        invoice = self._get_invoice(invoice_id, team_id)
        ensure_payable(invoice, "invoice")
        if payment_data.transaction_id:
            reject_duplicate_transaction(
                self.find_by_transaction(invoice.id, payment_data.transaction_id), payment_data.transaction_id
            )

        accepted, _ = self.balance.apply_payment(invoice, payment_data.amount)
        payment = self._insert_payment(
            invoice, accepted, payment_data.payment_method.value,
            payment_date=payment_data.payment_date,
            transaction_id=payment_data.transaction_id,
            reference=payment_data.reference,
            notes=payment_data.notes,
            user_id=user_id,
        )
        self.db.flush()
        return payment

    def record_clamped_payment(self, invoice: Invoice, amount, method: str,
                               transaction_id: Optional[str] = None, notes: Optional[str] = None,
                               payment_date: Optional[date] = None,
                               user_id: Optional[int] = None) -> Tuple[Payment, Decimal]:
        """
        Point-of-sale and bank flows: consume at most the balance due.

        Returns the payment and the unconsumed remainder (change).
        """
        ensure_payable(invoice, "invoice")
        accepted, change = self.balance.apply_payment(invoice, amount, clamp=True)
        if change > 0:
            logger.info(f"Invoice {invoice.invoice_number}: accepted {accepted} of {amount}, change {change}")
        payment = self._insert_payment(
            invoice, accepted, method,
            payment_date=payment_date,
            transaction_id=transaction_id,
            notes=notes,
            user_id=user_id,
        )
        self.db.flush()
        return payment, change

    def delete_payment(self, invoice_id: int, payment_id: int, team_id: int) -> Invoice:
        invoice = self._get_invoice(invoice_id, team_id)
        payment = self.db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.invoice_id == invoice_id,
            Payment.team_id == team_id
        ).first()
        if not payment:
            raise NotFound("Payment", payment_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState("Cannot change payments on a cancelled invoice")

        self.balance.reverse_payment(invoice, payment.amount)
        self.db.delete(payment)
        self.db.flush()
        return invoice


class SupplierPaymentService:
    def __init__(self, db: Session):
        self.db = db
        self.balance = BalanceService()

    def _get_bill(self, bill_id: int, team_id: int) -> SupplierBill:
        bill = self.db.query(SupplierBill).filter(
            SupplierBill.id == bill_id,
            SupplierBill.team_id == team_id
        ).with_for_update().first()
        if not bill:
            raise NotFound("Supplier bill", bill_id)
        return bill

    def find_by_transaction(self, bill_id: int, transaction_id: str) -> Optional[SupplierPayment]:
        return self.db.query(SupplierPayment).filter(
            SupplierPayment.bill_id == bill_id,
            SupplierPayment.transaction_id == transaction_id
        ).first()

    def record_payment(self, bill_id: int, team_id: int, payment_data: PaymentCreate,
                       user_id: Optional[int] = None) -> SupplierPayment:
        bill = self._get_bill(bill_id, team_id)
        ensure_payable(bill, "bill")
        if payment_data.transaction_id:
            reject_duplicate_transaction(
                self.find_by_transaction(bill.id, payment_data.transaction_id), payment_data.transaction_id
            )

        accepted, _ = self.balance.apply_payment(bill, payment_data.amount)
        payment = SupplierPayment(
            team_id=team_id,
            bill_id=bill.id,
            amount=accepted,
            currency=bill.currency,
            payment_method=payment_data.payment_method.value,
            payment_date=payment_data.payment_date or date.today(),
            transaction_id=payment_data.transaction_id,
            reference=payment_data.reference,
            notes=payment_data.notes,
            created_by=user_id,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def delete_payment(self, bill_id: int, payment_id: int, team_id: int) -> SupplierBill:
        bill = self._get_bill(bill_id, team_id)
        payment = self.db.query(SupplierPayment).filter(
            SupplierPayment.id == payment_id,
            SupplierPayment.bill_id == bill_id,
            SupplierPayment.team_id == team_id
        ).first()
        if not payment:
            raise NotFound("Supplier payment", payment_id)
        if bill.status == InvoiceStatus.CANCELLED.value:
            raise InvalidState("Cannot change payments on a cancelled bill")

        self.balance.reverse_payment(bill, payment.amount)
        self.db.delete(payment)
        self.db.flush()
        return bill
