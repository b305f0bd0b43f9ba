"""
Document Numbering
Sequential {PREFIX}-{YYYY}-{NNNN} numbers per team, document type and year
"""
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session

from gstbook.models import DocumentSequence


class DocType:
    INVOICE = "invoice"
    BILL = "bill"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    RECEIPT = "receipt"


DEFAULT_PREFIXES = {
    DocType.INVOICE: "INV",
    DocType.BILL: "BILL",
    DocType.CREDIT_NOTE: "CN",
    DocType.DEBIT_NOTE: "DN",
    DocType.RECEIPT: "RCP",
}


def format_document_number(prefix: str, year: int, number: int) -> str:
    return f"{prefix}-{year}-{number:04d}"


class NumberingService:
    def __init__(self, db: Session):
        self.db = db

    def next_number(self, team_id: int, doc_type: str, prefix: Optional[str] = None,
                    on_date: Optional[date] = None) -> str:
        """Reserve the next number; the sequence row stays locked until commit"""
        year = (on_date or date.today()).year
        sequence = self.db.query(DocumentSequence).filter(
            DocumentSequence.team_id == team_id,
            DocumentSequence.doc_type == doc_type,
            DocumentSequence.year == year
        ).with_for_update().first()

        if sequence is None:
            sequence = DocumentSequence(team_id=team_id, doc_type=doc_type, year=year, last_number=0)
            self.db.add(sequence)

        sequence.last_number += 1
        self.db.flush()
        return format_document_number(prefix or DEFAULT_PREFIXES[doc_type], year, sequence.last_number)
