from datetime import date
from decimal import Decimal

import pytest

from gstbook.core.errors import InvalidState, ValidationError
from gstbook.core.security import create_access_token, get_password_hash
from gstbook.models import GstPeriodLock, GstReturnStatus, InvoiceStatus, TeamMember, TeamRole, User
from gstbook.schemas import GstReturnCreate, GstReturnFile, GstReturnAmend, GstPeriodLockCreate, GstPeriodTypeEnum
from gstbook.services.bill_service import SupplierBillService
from gstbook.services.feature_service import FeatureService
from gstbook.services.gst_service import GstService, generate_return_number, filing_due_date
from gstbook.services.invoice_service import InvoiceService

from conftest import line

JANUARY = (date(2026, 1, 1), date(2026, 1, 31))


def january_return(db, team):
    gst_return = GstService(db).create_return(
        team.id, GstReturnCreate(period_start=JANUARY[0], period_end=JANUARY[1])
    )
    db.commit()
    return gst_return


def lock_january(db, team):
    lock = GstService(db).create_lock(
        team.id, GstPeriodLockCreate(period_start=JANUARY[0], period_end=JANUARY[1])
    )
    db.commit()
    return lock


def test_return_numbers_follow_period_type():
    assert generate_return_number(date(2026, 3, 1), "monthly") == "GST-2026-03"
    assert generate_return_number(date(2026, 4, 1), "quarterly") == "GST-2026-Q2"
    assert generate_return_number(date(2026, 1, 1), "annual") == "GST-2026-ANNUAL"


def test_filing_is_due_on_the_twentieth_of_the_next_month():
    assert filing_due_date(date(2026, 1, 31)) == date(2026, 2, 20)
    assert filing_due_date(date(2026, 12, 31)) == date(2027, 1, 20)


def test_return_snapshots_output_and_input_gst(db, team, make_invoice, make_bill):
    make_invoice(invoice_date=date(2026, 1, 15))
    make_invoice(invoice_date=date(2026, 2, 2), items=[line(unit_price="900.00")])
    make_bill(bill_date=date(2026, 1, 20), items=[line(unit_price="400.00", gst_rate="5")])

    gst_return = january_return(db, team)

    assert gst_return.return_number == "GST-2026-01"
    assert gst_return.status == GstReturnStatus.DRAFT.value
    assert gst_return.output_gst == Decimal("5.00")
    assert gst_return.input_gst == Decimal("20.00")
    assert gst_return.net_gst_payable == Decimal("-15.00")
    assert gst_return.total_payable == Decimal("-15.00")
    assert gst_return.due_date == date(2026, 2, 20)
    assert gst_return.sales_breakdown["STANDARD"] == {"taxable_amount": "100.00", "tax_amount": "5.00"}
    assert gst_return.purchases_breakdown["EXEMPT"]["tax_amount"] == "0.00"
    assert gst_return.amendments == []


def test_second_return_for_a_period_is_rejected(db, team):
    january_return(db, team)

    with pytest.raises(ValidationError) as exc:
        GstService(db).create_return(team.id, GstReturnCreate(period_start=JANUARY[0], period_end=JANUARY[1]))
    assert exc.value.field_errors[0]["field"] == "period_start"


def test_inverted_period_is_rejected(db, team):
    with pytest.raises(ValidationError):
        GstService(db).create_return(team.id, GstReturnCreate(period_start=JANUARY[1], period_end=JANUARY[0]))


def test_filing_totals_the_return_and_locks_the_period(db, team, make_invoice):
    make_invoice(invoice_date=date(2026, 1, 15))
    gst_return = january_return(db, team)
    service = GstService(db)

    filed = service.file_return(gst_return.id, team.id, GstReturnFile(
        filing_date=date(2026, 2, 18), adjustments=Decimal("1.00"),
        penalties=Decimal("10.00"), interest=Decimal("2.00"),
    ))
    db.commit()

    assert filed.status == GstReturnStatus.FILED.value
    assert filed.filing_date == date(2026, 2, 18)
    assert filed.total_payable == Decimal("18.00")
    locks = service.get_locks(team.id)
    assert len(locks) == 1
    assert locks[0].gst_return_id == gst_return.id
    assert locks[0].reason == "Automatically locked upon filing GST return"
    assert service.is_date_locked(team.id, date(2026, 1, 31))
    assert not service.is_date_locked(team.id, date(2026, 2, 1))

    with pytest.raises(InvalidState):
        service.file_return(gst_return.id, team.id, GstReturnFile())
    with pytest.raises(InvalidState):
        service.create_return(team.id, GstReturnCreate(period_start=JANUARY[0], period_end=JANUARY[1]))


def test_amending_a_filed_return_keeps_history(db, team, make_invoice):
    make_invoice(invoice_date=date(2026, 1, 15))
    gst_return = january_return(db, team)
    service = GstService(db)
    service.file_return(gst_return.id, team.id, GstReturnFile(penalties=Decimal("10.00")))
    db.commit()

    service.amend_return(gst_return.id, team.id, GstReturnAmend(
        adjustments=Decimal("3.00"), reason="Missed a sales invoice"
    ), user_id=None)
    db.commit()
    db.refresh(gst_return)

    assert gst_return.status == GstReturnStatus.AMENDED.value
    assert gst_return.total_payable == Decimal("18.00")
    assert len(gst_return.amendments) == 1
    assert gst_return.amendments[0]["reason"] == "Missed a sales invoice"
    assert gst_return.amendments[0]["previous_adjustments"] == "0.00"
    assert gst_return.amendments[0]["new_adjustments"] == "3.00"


def test_only_filed_returns_can_be_amended_and_only_drafts_deleted(db, team):
    gst_return = january_return(db, team)
    service = GstService(db)

    with pytest.raises(InvalidState):
        service.amend_return(gst_return.id, team.id, GstReturnAmend(adjustments=Decimal("1"), reason="Typo"))

    service.file_return(gst_return.id, team.id, GstReturnFile())
    db.commit()
    with pytest.raises(InvalidState):
        service.delete_return(gst_return.id, team.id)


def test_overlapping_lock_is_rejected(db, team):
    lock_january(db, team)
    service = GstService(db)

    with pytest.raises(InvalidState):
        service.create_lock(team.id, GstPeriodLockCreate(
            period_start=date(2026, 1, 15), period_end=date(2026, 2, 15)
        ))

    quarter = service.create_lock(team.id, GstPeriodLockCreate(
        period_start=date(2026, 4, 1), period_end=date(2026, 6, 30), period_type=GstPeriodTypeEnum.QUARTERLY
    ))
    assert quarter.reason == "Manual period lock"
    assert quarter.period_type == "quarterly"


def test_invoice_in_locked_period_cannot_be_cancelled(db, team, make_invoice):
    invoice = make_invoice(invoice_date=date(2026, 1, 15))
    outside = make_invoice(invoice_date=date(2026, 2, 1))
    lock = lock_january(db, team)
    invoices = InvoiceService(db)

    with pytest.raises(InvalidState) as exc:
        invoices.cancel(invoice.id, team.id)
    assert "Credit Note" in str(exc.value)

    invoices.cancel(outside.id, team.id)
    GstService(db).remove_lock(lock.id, team.id)
    invoices.cancel(invoice.id, team.id)
    db.commit()
    assert invoice.status == InvoiceStatus.CANCELLED.value
    assert db.query(GstPeriodLock).count() == 0


def test_bill_in_locked_period_cannot_be_cancelled(db, team, make_bill):
    bill = make_bill(bill_date=date(2026, 1, 10))
    lock_january(db, team)

    with pytest.raises(InvalidState) as exc:
        SupplierBillService(db).cancel(bill.id, team.id)
    assert "Debit Note" in str(exc.value)


def test_gst_routes_need_the_feature_and_owner_role(client, db, team, auth_headers, make_invoice):
    make_invoice(invoice_date=date(2026, 1, 15))
    payload = {"period_start": "2026-01-01", "period_end": "2026-01-31"}

    blocked = client.post("/api/v1/gst/returns", headers=auth_headers, json=payload)
    assert blocked.status_code == 403
    assert "gst_returns" in blocked.json()["detail"]

    FeatureService(db).set_override(team.id, "gst_returns", True, reason="pilot")
    db.commit()

    created = client.post("/api/v1/gst/returns", headers=auth_headers, json=payload)
    assert created.status_code == 201
    assert created.json()["output_gst"] == "5.00"
    return_id = created.json()["id"]

    clerk = User(email="clerk@druktraders.bt", hashed_password=get_password_hash("clerkpass"))
    db.add(clerk)
    db.flush()
    db.add(TeamMember(team_id=team.id, user_id=clerk.id, role=TeamRole.MEMBER.value))
    db.commit()
    clerk_headers = {"Authorization": f"Bearer {create_access_token({'sub': str(clerk.id), 'team_id': team.id})}"}

    assert client.get("/api/v1/gst/returns", headers=clerk_headers).status_code == 200
    assert client.post(f"/api/v1/gst/returns/{return_id}/file", headers=clerk_headers, json={}).status_code == 403
    assert client.post("/api/v1/gst/locks", headers=clerk_headers, json={
        "period_start": "2026-03-01", "period_end": "2026-03-31",
    }).status_code == 403

    filed = client.post(f"/api/v1/gst/returns/{return_id}/file", headers=auth_headers, json={})
    assert filed.status_code == 200
    assert filed.json()["status"] == "filed"

    locked = client.get("/api/v1/gst/locks/check", headers=auth_headers, params={"on_date": "2026-01-10"})
    assert locked.json() == {"date": "2026-01-10", "locked": True}
    assert len(client.get("/api/v1/gst/locks", headers=auth_headers).json()) == 1
    assert client.delete(f"/api/v1/gst/returns/{return_id}", headers=auth_headers).status_code == 409
