from datetime import date, timedelta
from decimal import Decimal

from gstbook.models import InvoiceStatus, PaymentStatus, Customer
from gstbook.schemas import POSSaleRequest, POSPaymentMethodEnum
from gstbook.services.pos_service import POSService

from conftest import line


def sale(**kwargs):
    kwargs.setdefault("items", [line(unit_price="10.00", gst_rate="0")])
    return POSSaleRequest(**kwargs)


def test_cash_sale_returns_change(db, team, customer):
    result = POSService(db).create_sale(sale(customer_id=customer.id, amount_tendered=Decimal("15.00")), team)
    db.commit()

    invoice = result["invoice"]
    assert result["amount_tendered"] == Decimal("15.00")
    assert result["amount_applied"] == Decimal("10.00")
    assert result["change"] == Decimal("5.00")
    assert result["payment"].amount == Decimal("10.00")
    assert invoice.status == InvoiceStatus.PAID.value
    assert invoice.is_locked
    assert invoice.payment_terms == "POS Cash Sale"


def test_sale_defaults_to_exact_tender(db, team, customer):
    result = POSService(db).create_sale(sale(customer_id=customer.id), team)

    assert result["amount_applied"] == Decimal("10.00")
    assert result["change"] == Decimal("0.00")


def test_short_tender_leaves_partial_balance(db, team, customer):
    result = POSService(db).create_sale(sale(customer_id=customer.id, amount_tendered=Decimal("4.00")), team)

    invoice = result["invoice"]
    assert invoice.amount_due == Decimal("6.00")
    assert invoice.payment_status == PaymentStatus.PARTIAL.value
    assert result["change"] == Decimal("0.00")


def test_credit_sale_stays_unpaid_with_due_date(db, team, customer):
    result = POSService(db).create_sale(sale(customer_id=customer.id, is_credit=True), team)

    invoice = result["invoice"]
    assert result["payment"] is None
    assert invoice.status == InvoiceStatus.SENT.value
    assert invoice.payment_status == PaymentStatus.UNPAID.value
    assert invoice.due_date == date.today() + timedelta(days=30)
    assert invoice.payment_terms == "POS Credit Sale"


def test_walk_in_customer_is_reused(db, team):
    service = POSService(db)
    first = service.create_sale(sale(), team)
    second = service.create_sale(sale(payment_method=POSPaymentMethodEnum.CARD), team)
    db.commit()

    assert first["invoice"].customer_id == second["invoice"].customer_id
    assert db.query(Customer).filter(Customer.name == "Walk-in Customer").count() == 1
    assert second["payment"].payment_method == "card"


def test_zero_value_sale_collects_nothing(db, team, customer):
    result = POSService(db).create_sale(
        sale(customer_id=customer.id, items=[line(unit_price="0.00")], amount_tendered=Decimal("5.00")), team
    )

    assert result["payment"] is None
    assert result["invoice"].status == InvoiceStatus.PAID.value
    assert result["change"] == Decimal("5.00")


def test_pos_endpoint(client, auth_headers, customer):
    response = client.post("/api/v1/pos/sale", headers=auth_headers, json={
        "customer_id": customer.id,
        "items": [{"description": "Tea", "quantity": "2", "unit_price": "50.00", "gst_rate": "5"}],
        "amount_tendered": "200.00",
    })

    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["amount_applied"]) == Decimal("105.00")
    assert Decimal(data["change"]) == Decimal("95.00")
    assert data["invoice"]["status"] == "paid"
    assert data["payment"]["receipt_number"].startswith("RCP-")
