from decimal import Decimal

from gstbook.models import GSTClassification, PaymentStatus
from gstbook.services.calculations import (
    money, calculate_line_item, calculate_document_totals, classify_gst,
    derive_payment_status, calculate_note_line, to_decimal
)


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money("2.344") == Decimal("2.34")
    assert money(None) == Decimal("0.00")


def test_float_input_keeps_its_printed_value():
    assert to_decimal(0.1) == Decimal("0.1")


def test_line_item_discount_applies_before_tax():
    line = calculate_line_item("3", "200.00", discount_percent="10", gst_rate="5")

    assert line["line_subtotal"] == Decimal("600.00")
    assert line["discount_amount"] == Decimal("60.00")
    assert line["taxable_amount"] == Decimal("540.00")
    assert line["tax_amount"] == Decimal("27.00")
    assert line["line_total"] == Decimal("567.00")
    assert line["gst_classification"] == GSTClassification.STANDARD.value


def test_exempt_line_carries_no_tax_whatever_its_rate():
    line = calculate_line_item("1", "100", gst_rate="5", is_exempt=True)

    assert line["tax_amount"] == Decimal("0.00")
    assert line["line_total"] == Decimal("100.00")
    assert line["gst_classification"] == GSTClassification.EXEMPT.value


def test_classification():
    assert classify_gst("0") == GSTClassification.ZERO_RATED.value
    assert classify_gst("5") == GSTClassification.STANDARD.value
    assert classify_gst("0", is_exempt=True) == GSTClassification.EXEMPT.value


def test_document_totals_sum_lines():
    lines = [
        calculate_line_item("1", "99.99", gst_rate="5"),
        calculate_line_item("2", "10.00", discount_percent="50", gst_rate="0"),
    ]
    totals = calculate_document_totals(lines)

    assert totals["subtotal"] == Decimal("119.99")
    assert totals["total_discount"] == Decimal("10.00")
    assert totals["total_tax"] == Decimal("5.00")
    assert totals["total_amount"] == totals["subtotal"] - totals["total_discount"] + totals["total_tax"]


def test_payment_status_is_paid_iff_nothing_due():
    assert derive_payment_status("0.00", "10", "0") == PaymentStatus.PAID.value
    assert derive_payment_status("-5.00", "15", "0") == PaymentStatus.PAID.value
    assert derive_payment_status("5.00", "5", "0") == PaymentStatus.PARTIAL.value
    assert derive_payment_status("5.00", "0", "5") == PaymentStatus.PARTIAL.value
    assert derive_payment_status("10.00", "0", "0") == PaymentStatus.UNPAID.value


def test_note_line():
    line = calculate_note_line("2", "25.50", "5")
    assert line == {
        "line_subtotal": Decimal("51.00"),
        "tax_amount": Decimal("2.55"),
        "line_total": Decimal("53.55"),
    }


def test_sub_cent_line_rounds_only_on_output():
    line = calculate_line_item("0.333", "1.5", gst_rate="5")

    # 0.4995 of value taxes to 0.024975, not 5% of a pre-rounded 0.50
    assert line["line_subtotal"] == Decimal("0.50")
    assert line["tax_amount"] == Decimal("0.02")
    assert line["line_total"] == Decimal("0.52")


def test_discount_is_taken_from_unrounded_subtotal():
    line = calculate_line_item("1", "0.125", discount_percent="50", gst_rate="0")

    assert line["line_subtotal"] == Decimal("0.13")
    assert line["discount_amount"] == Decimal("0.06")
    assert line["line_total"] == Decimal("0.06")
