"""
GST Compliance Service - returns and period locks

A return snapshots output and input GST for a period. Filing it locks the
period, after which documents dated inside it can no longer be cancelled
and must be corrected with credit or debit notes instead.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from gstbook.core.errors import NotFound, ValidationError, InvalidState
from gstbook.models import GstReturn, GstPeriodLock, GstReturnStatus, GstPeriodType, GSTClassification
from gstbook.schemas import GstReturnCreate, GstReturnFile, GstReturnAmend, GstPeriodLockCreate
from gstbook.services.calculations import money, ZERO
from gstbook.services.report_service import ReportService

logger = logging.getLogger(__name__)

FILING_DAY = 20


def generate_return_number(period_start: date, return_type: str) -> str:
    """GST-2026-03 for a month, GST-2026-Q1 for a quarter, GST-2026-ANNUAL for a year"""
    if return_type == GstPeriodType.MONTHLY.value:
        return f"GST-{period_start.year}-{period_start.month:02d}"
    if return_type == GstPeriodType.QUARTERLY.value:
        return f"GST-{period_start.year}-Q{(period_start.month - 1) // 3 + 1}"
    return f"GST-{period_start.year}-ANNUAL"


def filing_due_date(period_end: date) -> date:
    """Returns fall due on the 20th of the month after the period closes"""
    if period_end.month == 12:
        return date(period_end.year + 1, 1, FILING_DAY)
    return date(period_end.year, period_end.month + 1, FILING_DAY)


def _breakdown(lines: List[dict]) -> dict:
    totals = {
        classification.value: {"taxable_amount": ZERO, "tax_amount": ZERO}
        for classification in GSTClassification
    }
    for line in lines:
        bucket = totals[line["classification"]]
        bucket["taxable_amount"] += line["taxable_amount"]
        bucket["tax_amount"] += line["tax_amount"]
    # JSON column: amounts are stored as strings
    return {
        classification: {key: str(money(value)) for key, value in values.items()}
        for classification, values in totals.items()
    }


def _validate_period(period_start: date, period_end: date) -> None:
    if period_end < period_start:
        raise ValidationError(
            "Period end cannot be before period start",
            [{"field": "period_end", "message": "Period end cannot be before period start"}]
        )


class GstService:
    def __init__(self, db: Session):
        self.db = db

    # ---------- period locks ----------

    def get_locks(self, team_id: int) -> List[GstPeriodLock]:
        return self.db.query(GstPeriodLock).filter(
            GstPeriodLock.team_id == team_id
        ).order_by(GstPeriodLock.period_start).all()

    def find_overlapping_lock(self, team_id: int, period_start: date, period_end: date) -> Optional[GstPeriodLock]:
        return self.db.query(GstPeriodLock).filter(
            GstPeriodLock.team_id == team_id,
            GstPeriodLock.period_start <= period_end,
            GstPeriodLock.period_end >= period_start
        ).first()

    def is_period_locked(self, team_id: int, period_start: date, period_end: date) -> bool:
        return self.find_overlapping_lock(team_id, period_start, period_end) is not None

    def is_date_locked(self, team_id: int, on_date: date) -> bool:
        return self.is_period_locked(team_id, on_date, on_date)

    def ensure_cancellable(self, team_id: int, document_date: date, label: str, correction: str) -> None:
        """Refuse to cancel a document that falls in a closed GST period"""
        if self.is_date_locked(team_id, document_date):
            raise InvalidState(
                f"Cannot cancel {label} in a locked GST period. Please create a {correction} instead."
            )

    def create_lock(self, team_id: int, data: GstPeriodLockCreate, user_id: Optional[int] = None,
                    reason: Optional[str] = None) -> GstPeriodLock:
        _validate_period(data.period_start, data.period_end)
        if self.is_period_locked(team_id, data.period_start, data.period_end):
            raise InvalidState("This period is already locked")
        if data.gst_return_id is not None:
            self.get_return_or_404(data.gst_return_id, team_id)

        lock = GstPeriodLock(
            team_id=team_id,
            period_start=data.period_start,
            period_end=data.period_end,
            period_type=data.period_type.value,
            reason=reason or data.reason or "Manual period lock",
            gst_return_id=data.gst_return_id,
            locked_by=user_id,
        )
        self.db.add(lock)
        self.db.flush()
        logger.info(f"Team {team_id}: GST period {lock.period_start} to {lock.period_end} locked")
        return lock

    def remove_lock(self, lock_id: int, team_id: int) -> None:
        lock = self.db.query(GstPeriodLock).filter(
            GstPeriodLock.id == lock_id,
            GstPeriodLock.team_id == team_id
        ).first()
        if not lock:
            raise NotFound("GST period lock", lock_id)
        self.db.delete(lock)
        self.db.flush()

    # ---------- returns ----------

    def get_returns(self, team_id: int) -> List[GstReturn]:
        return self.db.query(GstReturn).filter(
            GstReturn.team_id == team_id
        ).order_by(GstReturn.period_start).all()

    def get_return_or_404(self, return_id: int, team_id: int, for_update: bool = False) -> GstReturn:
        query = self.db.query(GstReturn).filter(
            GstReturn.id == return_id,
            GstReturn.team_id == team_id
        )
        if for_update:
            query = query.with_for_update()
        gst_return = query.first()
        if not gst_return:
            raise NotFound("GST return", return_id)
        return gst_return

    def create_return(self, team_id: int, data: GstReturnCreate, user_id: Optional[int] = None) -> GstReturn:
        _validate_period(data.period_start, data.period_end)
        if self.is_period_locked(team_id, data.period_start, data.period_end):
            raise InvalidState("This period is already locked")

        return_number = generate_return_number(data.period_start, data.return_type.value)
        existing = self.db.query(GstReturn.id).filter(
            GstReturn.team_id == team_id,
            GstReturn.return_number == return_number
        ).first()
        if existing:
            raise ValidationError(
                f"A GST return {return_number} already exists",
                [{"field": "period_start", "message": "A return for this period already exists"}]
            )

        summary = ReportService(self.db).gst_summary(team_id, data.period_start, data.period_end)
        gst_return = GstReturn(
            team_id=team_id,
            return_number=return_number,
            period_start=data.period_start,
            period_end=data.period_end,
            return_type=data.return_type.value,
            status=GstReturnStatus.DRAFT.value,
            output_gst=summary["output_tax"],
            input_gst=summary["input_tax"],
            net_gst_payable=summary["net_payable"],
            total_payable=summary["net_payable"],
            due_date=filing_due_date(data.period_end),
            sales_breakdown=_breakdown(summary["output"]),
            purchases_breakdown=_breakdown(summary["input"]),
            amendments=[],
            notes=data.notes,
            created_by=user_id,
        )
        self.db.add(gst_return)
        try:
            self.db.flush()
        except IntegrityError:
            raise ValidationError(f"A GST return {return_number} already exists")
        return gst_return

    def file_return(self, return_id: int, team_id: int, data: GstReturnFile,
                    user_id: Optional[int] = None) -> GstReturn:
        """Mark a draft return as filed and lock its period"""
        gst_return = self.get_return_or_404(return_id, team_id, for_update=True)
        if gst_return.status != GstReturnStatus.DRAFT.value:
            raise InvalidState("Only draft returns can be filed")

        gst_return.adjustments = money(data.adjustments)
        gst_return.previous_period_balance = money(data.previous_period_balance)
        gst_return.penalties = money(data.penalties)
        gst_return.interest = money(data.interest)
        gst_return.total_payable = money(
            Decimal(gst_return.net_gst_payable) + data.adjustments + data.previous_period_balance
            + data.penalties + data.interest
        )
        gst_return.status = GstReturnStatus.FILED.value
        gst_return.filing_date = data.filing_date or date.today()
        gst_return.filed_by = user_id
        if data.notes:
            gst_return.notes = data.notes

        self.create_lock(
            team_id,
            GstPeriodLockCreate(
                period_start=gst_return.period_start,
                period_end=gst_return.period_end,
                period_type=gst_return.return_type,
                gst_return_id=gst_return.id,
            ),
            user_id=user_id,
            reason="Automatically locked upon filing GST return",
        )
        return gst_return

    def amend_return(self, return_id: int, team_id: int, data: GstReturnAmend,
                     user_id: Optional[int] = None) -> GstReturn:
        gst_return = self.get_return_or_404(return_id, team_id, for_update=True)
        if gst_return.status != GstReturnStatus.FILED.value:
            raise InvalidState("Only filed returns can be amended")

        new_adjustments = money(data.adjustments)
        # Reassign so the JSON column registers the change
        gst_return.amendments = list(gst_return.amendments or []) + [{
            "date": datetime.utcnow().isoformat(),
            "user_id": user_id,
            "reason": data.reason,
            "previous_adjustments": str(money(gst_return.adjustments)),
            "new_adjustments": str(new_adjustments),
        }]
        gst_return.adjustments = new_adjustments
        gst_return.total_payable = money(
            Decimal(gst_return.net_gst_payable) + new_adjustments
            + Decimal(gst_return.previous_period_balance or ZERO)
            + Decimal(gst_return.penalties or ZERO)
            + Decimal(gst_return.interest or ZERO)
        )
        gst_return.status = GstReturnStatus.AMENDED.value
        self.db.flush()
        return gst_return

    def delete_return(self, return_id: int, team_id: int) -> None:
        gst_return = self.get_return_or_404(return_id, team_id, for_update=True)
        if gst_return.status != GstReturnStatus.DRAFT.value:
            raise InvalidState("Only draft returns can be deleted")
        self.db.delete(gst_return)
        self.db.flush()
