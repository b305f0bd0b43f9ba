"""
GST Calculations - line items, document totals, classification
"""
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from gstbook.models import GSTClassification, PaymentStatus

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

GST_CLASSIFICATION_LABELS = {
    GSTClassification.STANDARD.value: "Standard",
    GSTClassification.ZERO_RATED.value: "Zero-Rated",
    GSTClassification.EXEMPT.value: "Exempt",
}


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Go through str so 0.1 stays 0.1
        return Decimal(str(value))
    return Decimal(value)


def money(value) -> Decimal:
    """Round to 2 places the way amounts are persisted"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def classify_gst(gst_rate, is_exempt: bool = False) -> str:
    if is_exempt:
        return GSTClassification.EXEMPT.value
    if to_decimal(gst_rate) == 0:
        return GSTClassification.ZERO_RATED.value
    return GSTClassification.STANDARD.value


def gst_label(classification: str) -> str:
    return GST_CLASSIFICATION_LABELS.get(classification, classification)


def calculate_line_item(quantity, unit_price, discount_percent=0, gst_rate=0, is_exempt: bool = False) -> dict:
    """
    Compute one GST line.

    Discount comes off the gross line before tax; exempt lines carry no tax
    whatever their rate. Intermediates stay unrounded; only the returned
    amounts are rounded to cents.
    """
    quantity = to_decimal(quantity)
    unit_price = to_decimal(unit_price)
    discount_percent = to_decimal(discount_percent)
    gst_rate = to_decimal(gst_rate)

    line_subtotal = quantity * unit_price
    discount_amount = line_subtotal * discount_percent / HUNDRED
    taxable = line_subtotal - discount_amount
    if is_exempt:
        tax_amount = ZERO
    else:
        tax_amount = taxable * gst_rate / HUNDRED

    return {
        "line_subtotal": money(line_subtotal),
        "discount_amount": money(discount_amount),
        "taxable_amount": money(taxable),
        "tax_amount": money(tax_amount),
        "line_total": money(taxable + tax_amount),
        "gst_classification": classify_gst(gst_rate, is_exempt),
    }


def calculate_document_totals(lines: Iterable[dict]) -> dict:
    """Sum computed lines into document header amounts"""
    lines = list(lines)
    subtotal = sum((line["line_subtotal"] for line in lines), ZERO)
    total_discount = sum((line["discount_amount"] for line in lines), ZERO)
    total_tax = sum((line["tax_amount"] for line in lines), ZERO)
    return {
        "subtotal": money(subtotal),
        "total_discount": money(total_discount),
        "total_tax": money(total_tax),
        "total_amount": money(subtotal - total_discount + total_tax),
    }


def tax_breakdown(items: Iterable) -> List[dict]:
    """Group taxable value and tax by GST rate, lowest rate first; exempt lines count at 0%"""
    groups = defaultdict(lambda: {"taxable_amount": ZERO, "tax_amount": ZERO})
    for item in items:
        rate = ZERO if item.is_exempt else money(item.gst_rate)
        groups[rate]["taxable_amount"] += to_decimal(item.line_subtotal) - to_decimal(item.discount_amount)
        groups[rate]["tax_amount"] += to_decimal(item.tax_amount)

    return [
        {
            "gst_rate": rate,
            "taxable_amount": money(values["taxable_amount"]),
            "tax_amount": money(values["tax_amount"]),
        }
        for rate, values in sorted(groups.items())
    ]


def derive_payment_status(amount_due, amount_paid, amount_credited: Optional[Decimal] = None) -> str:
    """paid iff nothing is due; partial once anything has been settled"""
    if to_decimal(amount_due) <= 0:
        return PaymentStatus.PAID.value
    if to_decimal(amount_paid) + to_decimal(amount_credited) > 0:
        return PaymentStatus.PARTIAL.value
    return PaymentStatus.UNPAID.value


def calculate_note_line(quantity, unit_price, gst_rate=0) -> dict:
    line_subtotal = to_decimal(quantity) * to_decimal(unit_price)
    tax_amount = line_subtotal * to_decimal(gst_rate) / HUNDRED
    return {
        "line_subtotal": money(line_subtotal),
        "tax_amount": money(tax_amount),
        "line_total": money(line_subtotal + tax_amount),
    }
