"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class CurrencyEnum(str, Enum):
    BTN = "BTN"
    INR = "INR"
    USD = "USD"


class GstPeriodTypeEnum(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class PaymentMethodEnum(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    QR = "qr"
    CHEQUE = "cheque"
    OTHER = "other"


class POSPaymentMethodEnum(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    QR = "qr"


class AdjustmentTypeEnum(str, Enum):
    DISCOUNT = "discount"
    LATE_FEE = "late_fee"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    BANK_CHARGES = "bank_charges"
    OTHER = "other"


class TeamRoleEnum(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


class UsageResourceEnum(str, Enum):
    INVOICES = "invoices"
    PRODUCTS = "products"
    CUSTOMERS = "customers"


# ==================== COMMON ====================

def reject_null(value):
    """Optional in an update means 'may be omitted', not 'may be cleared'"""
    if value is None:
        raise ValueError("Field cannot be null")
    return value


class MessageResponse(BaseModel):
    message: str
    success: bool = True


# ==================== AUTH SCHEMAS ====================

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=255)
    team_name: str = Field(..., min_length=2, max_length=255)


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    is_active: bool
    is_platform_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== TEAM SCHEMAS ====================

class TeamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    business_name: Optional[str] = Field(None, max_length=255)
    tpn: Optional[str] = Field(None, max_length=50)
    gst_number: Optional[str] = Field(None, max_length=50)
    gst_registered: Optional[bool] = None
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    default_currency: Optional[CurrencyEnum] = None
    default_gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    invoice_prefix: Optional[str] = Field(None, min_length=1, max_length=20, pattern=r"^[A-Za-z0-9]+$")
    bill_prefix: Optional[str] = Field(None, min_length=1, max_length=20, pattern=r"^[A-Za-z0-9]+$")

    @field_validator("name", "gst_registered", "default_gst_rate", "invoice_prefix", "bill_prefix")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class TeamResponse(BaseModel):
    id: int
    name: str
    business_name: Optional[str] = None
    tpn: Optional[str] = None
    gst_number: Optional[str] = None
    gst_registered: bool
    default_currency: str
    default_gst_rate: Decimal
    invoice_prefix: str
    bill_prefix: str
    plan_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MeResponse(BaseModel):
    user: UserResponse
    team: TeamResponse
    role: TeamRoleEnum


# ==================== CRM SCHEMAS ====================

class ContactBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    tpn: Optional[str] = Field(None, max_length=50)


class ContactUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    tpn: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None

    @field_validator("name", "is_active")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class CustomerCreate(ContactBase):
    pass


class CustomerUpdate(ContactUpdate):
    pass


class CustomerResponse(ContactBase):
    id: int
    email: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SupplierCreate(ContactBase):
    pass


class SupplierUpdate(ContactUpdate):
    pass


class SupplierResponse(ContactBase):
    id: int
    email: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== PRODUCT SCHEMAS ====================

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    unit: str = Field(default="pcs", max_length=20)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    gst_rate: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    is_exempt: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    unit: Optional[str] = Field(None, max_length=20)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    is_exempt: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("name", "unit_price", "gst_rate", "is_exempt", "is_active")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class ProductResponse(BaseModel):
    id: int
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    unit: str
    unit_price: Decimal
    gst_rate: Decimal
    gst_classification: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ==================== LINE ITEMS ====================

class LineItemCreate(BaseModel):
    product_id: Optional[int] = None
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    gst_rate: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    is_exempt: bool = False


class LineItemResponse(BaseModel):
    id: int
    product_id: Optional[int] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal
    gst_rate: Decimal
    gst_classification: str
    is_exempt: bool
    line_subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class TaxBreakdownLine(BaseModel):
    gst_rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal


# ==================== INVOICE SCHEMAS ====================

class InvoiceCreate(BaseModel):
    customer_id: int
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[CurrencyEnum] = None
    payment_terms: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    items: List[LineItemCreate] = Field(..., min_length=1)


class InvoiceUpdate(BaseModel):
    customer_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[CurrencyEnum] = None
    payment_terms: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    items: Optional[List[LineItemCreate]] = Field(None, min_length=1)

    @field_validator("customer_id", "invoice_date")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class DocumentAmounts(BaseModel):
    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_credited: Decimal
    amount_due: Decimal
    display_amount_due: Decimal
    status: str
    display_status: str
    payment_status: str
    is_locked: bool
    currency: str


class InvoiceResponse(DocumentAmounts):
    id: int
    invoice_number: str
    customer_id: int
    invoice_date: date
    due_date: Optional[date] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    locked_at: Optional[datetime] = None
    last_reminder_sent_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CASH
    payment_date: Optional[date] = None
    transaction_id: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    invoice_id: int
    receipt_number: Optional[str] = None
    amount: Decimal
    currency: str
    payment_method: str
    payment_date: date
    transaction_id: Optional[str] = None
    reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AdjustmentCreate(BaseModel):
    adjustment_type: AdjustmentTypeEnum
    amount: Decimal
    description: str = Field(..., min_length=1)
    adjustment_date: Optional[date] = None
    reference: Optional[str] = Field(None, max_length=255)

    @field_validator("amount")
    @classmethod
    def amount_not_zero(cls, v):
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return v

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Description is required")
        return v.strip()


class AdjustmentResponse(BaseModel):
    id: int
    adjustment_type: str
    amount: Decimal
    description: str
    adjustment_date: date
    reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CreditApplicationResponse(BaseModel):
    id: int
    credit_note_id: int
    invoice_id: int
    amount: Decimal
    applied_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceDetail(InvoiceResponse):
    items: List[LineItemResponse] = []
    payments: List[PaymentResponse] = []
    adjustments: List[AdjustmentResponse] = []
    credit_applications: List[CreditApplicationResponse] = []
    tax_breakdown: List[TaxBreakdownLine] = []


# ==================== NOTE SCHEMAS ====================

class NoteItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    gst_rate: Decimal = Field(default=Decimal("5"), ge=0, le=100)


class NoteItemResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    gst_rate: Decimal
    line_subtotal: Decimal
    tax_amount: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CreditNoteCreate(BaseModel):
    customer_id: int
    original_invoice_id: Optional[int] = None
    note_date: Optional[date] = None
    reason: Optional[str] = None
    currency: Optional[CurrencyEnum] = None
    notes: Optional[str] = None
    items: List[NoteItemCreate] = Field(..., min_length=1)


class CreditNoteUpdate(BaseModel):
    original_invoice_id: Optional[int] = None
    note_date: Optional[date] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[NoteItemCreate]] = Field(None, min_length=1)

    @field_validator("note_date")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class ApplyCreditNoteRequest(BaseModel):
    invoice_id: int
    amount: Decimal = Field(..., gt=0)


class NoteResponse(BaseModel):
    id: int
    note_number: str
    note_date: date
    reason: Optional[str] = None
    status: str
    currency: str
    subtotal: Decimal
    total_tax: Decimal
    total_amount: Decimal
    unapplied_amount: Decimal
    issued_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CreditNoteResponse(NoteResponse):
    customer_id: int
    original_invoice_id: Optional[int] = None


class CreditNoteDetail(CreditNoteResponse):
    items: List[NoteItemResponse] = []
    applications: List[CreditApplicationResponse] = []


class DebitApplicationResponse(BaseModel):
    id: int
    debit_note_id: int
    bill_id: int
    amount: Decimal
    applied_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DebitNoteCreate(BaseModel):
    supplier_id: int
    original_bill_id: Optional[int] = None
    note_date: Optional[date] = None
    reason: Optional[str] = None
    currency: Optional[CurrencyEnum] = None
    notes: Optional[str] = None
    items: List[NoteItemCreate] = Field(..., min_length=1)


class DebitNoteUpdate(BaseModel):
    original_bill_id: Optional[int] = None
    note_date: Optional[date] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[NoteItemCreate]] = Field(None, min_length=1)

    @field_validator("note_date")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class ApplyDebitNoteRequest(BaseModel):
    bill_id: int
    amount: Decimal = Field(..., gt=0)


class DebitNoteResponse(NoteResponse):
    supplier_id: int
    original_bill_id: Optional[int] = None


class DebitNoteDetail(DebitNoteResponse):
    items: List[NoteItemResponse] = []
    applications: List[DebitApplicationResponse] = []


# ==================== SUPPLIER BILL SCHEMAS ====================

class SupplierBillCreate(BaseModel):
    supplier_id: int
    supplier_reference: Optional[str] = Field(None, max_length=100)
    bill_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[CurrencyEnum] = None
    notes: Optional[str] = None
    items: List[LineItemCreate] = Field(..., min_length=1)


class SupplierBillUpdate(BaseModel):
    supplier_id: Optional[int] = None
    supplier_reference: Optional[str] = Field(None, max_length=100)
    bill_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[CurrencyEnum] = None
    notes: Optional[str] = None
    items: Optional[List[LineItemCreate]] = Field(None, min_length=1)

    @field_validator("supplier_id", "bill_date")
    @classmethod
    def fields_not_null(cls, v):
        return reject_null(v)


class SupplierPaymentResponse(BaseModel):
    id: int
    bill_id: int
    amount: Decimal
    currency: str
    payment_method: str
    payment_date: date
    transaction_id: Optional[str] = None
    reference: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SupplierBillResponse(DocumentAmounts):
    id: int
    bill_number: str
    supplier_id: int
    supplier_reference: Optional[str] = None
    bill_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    locked_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SupplierBillDetail(SupplierBillResponse):
    items: List[LineItemResponse] = []
    payments: List[SupplierPaymentResponse] = []
    adjustments: List[AdjustmentResponse] = []
    debit_applications: List[DebitApplicationResponse] = []
    tax_breakdown: List[TaxBreakdownLine] = []


# ==================== POS SCHEMAS ====================

class POSSaleRequest(BaseModel):
    customer_id: Optional[int] = None
    items: List[LineItemCreate] = Field(..., min_length=1)
    payment_method: POSPaymentMethodEnum = POSPaymentMethodEnum.CASH
    is_credit: bool = False
    amount_tendered: Optional[Decimal] = Field(None, gt=0)
    transaction_id: Optional[str] = Field(None, max_length=255)
    currency: Optional[CurrencyEnum] = None
    notes: Optional[str] = None


class POSSaleResponse(BaseModel):
    invoice: InvoiceResponse
    payment: Optional[PaymentResponse] = None
    amount_tendered: Decimal
    amount_applied: Decimal
    change: Decimal


# ==================== FEATURE SCHEMAS ====================

class TeamFeaturesResponse(BaseModel):
    team_id: int
    plan_id: Optional[int] = None
    plan_name: Optional[str] = None
    features: List[str]


class FeatureOverrideRequest(BaseModel):
    feature_code: str = Field(..., min_length=1, max_length=100)
    enabled: bool
    reason: Optional[str] = None


class FeatureOverrideResponse(BaseModel):
    id: int
    team_id: int
    feature_code: str
    enabled: bool
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AssignPlanRequest(BaseModel):
    plan_id: int


class UsageResponse(BaseModel):
    resource: str
    allowed: bool
    current: int
    limit: Optional[int] = None


class PlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_default: bool
    max_users: Optional[int] = None
    max_invoices_per_month: Optional[int] = None
    max_products: Optional[int] = None
    max_customers: Optional[int] = None
    monthly_price: Optional[Decimal] = None
    yearly_price: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


# ==================== BANK / WEBHOOK SCHEMAS ====================

class PaymentQRRequest(BaseModel):
    provider: str = Field(default="dk_bank", max_length=50)


class PaymentQRResponse(BaseModel):
    id: int
    invoice_id: int
    provider: str
    reference_id: str
    qr_payload: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DKBankWebhookPayload(BaseModel):
    """Notification body posted by DK Bank"""
    reference_id: str = Field(..., alias="referenceId", min_length=1)
    status: str = "pending"
    amount: Optional[Decimal] = Field(None, ge=0)
    transaction_id: Optional[str] = Field(None, alias="transactionId")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class WebhookResponse(BaseModel):
    status: str
    reason: Optional[str] = None
    duplicate: bool = False
    payment_id: Optional[int] = None


# ==================== REPORT SCHEMAS ====================

class UnpaidInvoiceLine(BaseModel):
    invoice_id: int
    invoice_number: str
    customer_id: int
    customer_name: str
    invoice_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_status: str
    days_overdue: int


class UnpaidInvoicesReport(BaseModel):
    invoices: List[UnpaidInvoiceLine]
    total_outstanding: Decimal
    total_overdue: Decimal
    count: int


class UnpaidBillLine(BaseModel):
    bill_id: int
    bill_number: str
    supplier_id: int
    supplier_name: str
    bill_date: date
    due_date: Optional[date] = None
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_status: str
    days_overdue: int


class UnpaidBillsReport(BaseModel):
    bills: List[UnpaidBillLine]
    total_outstanding: Decimal
    total_overdue: Decimal
    count: int
    overdue_count: int
    average_days_overdue: int


class GSTSummaryLine(BaseModel):
    classification: str
    label: str
    gst_rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal


class GSTSummaryReport(BaseModel):
    start_date: date
    end_date: date
    output: List[GSTSummaryLine]
    input: List[GSTSummaryLine]
    output_tax: Decimal
    input_tax: Decimal
    net_payable: Decimal


class ReminderRunResponse(BaseModel):
    success: bool
    total: int
    sent: int
    failed: int
    errors: List[str]
    timestamp: datetime


# ==================== GST COMPLIANCE SCHEMAS ====================

class GstReturnCreate(BaseModel):
    period_start: date
    period_end: date
    return_type: GstPeriodTypeEnum = GstPeriodTypeEnum.MONTHLY
    notes: Optional[str] = None


class GstReturnFile(BaseModel):
    filing_date: Optional[date] = None
    adjustments: Decimal = Decimal("0")
    previous_period_balance: Decimal = Decimal("0")
    penalties: Decimal = Field(Decimal("0"), ge=0)
    interest: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class GstReturnAmend(BaseModel):
    adjustments: Decimal
    reason: str = Field(..., min_length=1)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Amendment reason is required")
        return v.strip()


class GstReturnResponse(BaseModel):
    id: int
    return_number: str
    period_start: date
    period_end: date
    return_type: str
    status: str
    output_gst: Decimal
    input_gst: Decimal
    net_gst_payable: Decimal
    adjustments: Decimal
    previous_period_balance: Decimal
    penalties: Decimal
    interest: Decimal
    total_payable: Decimal
    due_date: Optional[date] = None
    filing_date: Optional[date] = None
    sales_breakdown: Optional[dict] = None
    purchases_breakdown: Optional[dict] = None
    amendments: Optional[List[dict]] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GstPeriodLockCreate(BaseModel):
    period_start: date
    period_end: date
    period_type: GstPeriodTypeEnum = GstPeriodTypeEnum.MONTHLY
    reason: Optional[str] = Field(None, max_length=255)
    gst_return_id: Optional[int] = None


class GstPeriodLockResponse(BaseModel):
    id: int
    period_start: date
    period_end: date
    period_type: str
    reason: Optional[str] = None
    gst_return_id: Optional[int] = None
    locked_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
