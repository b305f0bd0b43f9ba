"""
SQLAlchemy Models for GST Book
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint, JSON
)
from sqlalchemy.orm import relationship
import enum

from gstbook.core.database import Base


ZERO = Decimal("0.00")


# ==================== ENUMS ====================

class InvoiceStatus(enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class GSTClassification(enum.Enum):
    STANDARD = "STANDARD"
    ZERO_RATED = "ZERO_RATED"
    EXEMPT = "EXEMPT"


class NoteStatus(enum.Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIAL = "partial"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class AdjustmentType(enum.Enum):
    DISCOUNT = "discount"
    LATE_FEE = "late_fee"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    BANK_CHARGES = "bank_charges"
    OTHER = "other"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    QR = "qr"
    BANK_QR = "bank_qr"
    CHEQUE = "cheque"
    OTHER = "other"


class QRStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    FAILED = "failed"


class TeamRole(enum.Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


class Currency(enum.Enum):
    BTN = "BTN"
    INR = "INR"
    USD = "USD"


class GstReturnStatus(enum.Enum):
    DRAFT = "draft"
    FILED = "filed"
    AMENDED = "amended"


class GstPeriodType(enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


# ==================== SUBSCRIPTION MODELS ====================

class Plan(Base):
    """Subscription plan"""
    __tablename__ = 'plans'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    # NULL limits mean unlimited
    max_users = Column(Integer, nullable=True)
    max_invoices_per_month = Column(Integer, nullable=True)
    max_products = Column(Integer, nullable=True)
    max_customers = Column(Integer, nullable=True)
    monthly_price = Column(Numeric(10, 2), nullable=True)
    yearly_price = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    plan_features = relationship("PlanFeature", back_populates="plan", cascade="all, delete-orphan")
    teams = relationship("Team", back_populates="plan")


class Feature(Base):
    """A gated capability identified by a stable code"""
    __tablename__ = 'features'

    id = Column(Integer, primary_key=True)
    code = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    module = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    plan_features = relationship("PlanFeature", back_populates="feature", cascade="all, delete-orphan")


class PlanFeature(Base):
    __tablename__ = 'plan_features'

    id = Column(Integer, primary_key=True)
    plan_id = Column(Integer, ForeignKey('plans.id', ondelete='CASCADE'), nullable=False)
    feature_id = Column(Integer, ForeignKey('features.id', ondelete='CASCADE'), nullable=False)

    plan = relationship("Plan", back_populates="plan_features")
    feature = relationship("Feature", back_populates="plan_features")

    __table_args__ = (
        UniqueConstraint('plan_id', 'feature_id', name='uq_plan_feature'),
    )


class TeamFeatureOverride(Base):
    """Per-team grant or revocation applied on top of the plan"""
    __tablename__ = 'team_feature_overrides'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    feature_code = Column(String(100), nullable=False)
    enabled = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = relationship("Team", back_populates="feature_overrides")

    __table_args__ = (
        UniqueConstraint('team_id', 'feature_code', name='uq_team_feature_override'),
    )


# ==================== CORE MODELS ====================

class Team(Base):
    """Tenant business"""
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    business_name = Column(String(255), nullable=True)
    tpn = Column(String(50), nullable=True)
    gst_number = Column(String(50), nullable=True)
    gst_registered = Column(Boolean, default=True)
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    default_currency = Column(String(3), default=Currency.BTN.value)
    default_gst_rate = Column(Numeric(5, 2), default=Decimal("5.00"))
    invoice_prefix = Column(String(20), default="INV")
    bill_prefix = Column(String(20), default="BILL")
    plan_id = Column(Integer, ForeignKey('plans.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("Plan", back_populates="teams")
    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    feature_overrides = relationship("TeamFeatureOverride", back_populates="team", cascade="all, delete-orphan")
    customers = relationship("Customer", back_populates="team", cascade="all, delete-orphan")
    suppliers = relationship("Supplier", back_populates="team", cascade="all, delete-orphan")
    products = relationship("Product", back_populates="team", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.business_name or self.name


class User(Base):
    """User account"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    is_platform_admin = Column(Boolean, default=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("TeamMember", back_populates="user", cascade="all, delete-orphan")


class TeamMember(Base):
    """Membership of a user in a team with a role"""
    __tablename__ = 'team_members'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), default=TeamRole.MEMBER.value, nullable=False)
    joined_at = Column(DateTime, default=datetime.utcnow)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint('team_id', 'user_id', name='uq_team_member'),
    )


class DocumentSequence(Base):
    """Last issued number per team, document type and year"""
    __tablename__ = 'document_sequences'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    doc_type = Column(String(20), nullable=False)
    year = Column(Integer, nullable=False)
    last_number = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint('team_id', 'doc_type', 'year', name='uq_document_sequence'),
    )


# ==================== CRM MODELS ====================

class Customer(Base):
    """Customer"""
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    tpn = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = relationship("Team", back_populates="customers")
    invoices = relationship("Invoice", back_populates="customer")

    __table_args__ = (
        Index('ix_customers_team_id', 'team_id'),
    )


class Supplier(Base):
    """Supplier"""
    __tablename__ = 'suppliers'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    tpn = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = relationship("Team", back_populates="suppliers")
    bills = relationship("SupplierBill", back_populates="supplier")

    __table_args__ = (
        Index('ix_suppliers_team_id', 'team_id'),
    )


class Product(Base):
    """Product or service sold"""
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    unit = Column(String(20), default="pcs")
    unit_price = Column(Numeric(15, 2), default=ZERO)
    gst_rate = Column(Numeric(5, 2), default=Decimal("5.00"))
    gst_classification = Column(String(20), default=GSTClassification.STANDARD.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    team = relationship("Team", back_populates="products")

    __table_args__ = (
        UniqueConstraint('team_id', 'sku', name='uq_product_sku'),
        Index('ix_products_team_id', 'team_id'),
    )


# ==================== SHARED DOCUMENT COLUMNS ====================

class FinancialDocumentMixin:
    """Amount and status columns shared by invoices and supplier bills"""

    subtotal = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_discount = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_tax = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_amount = Column(Numeric(15, 2), default=ZERO, nullable=False)
    amount_paid = Column(Numeric(15, 2), default=ZERO, nullable=False)
    amount_credited = Column(Numeric(15, 2), default=ZERO, nullable=False)
    # Signed; negative when overpaid
    amount_due = Column(Numeric(15, 2), default=ZERO, nullable=False)
    status = Column(String(20), default=InvoiceStatus.DRAFT.value, nullable=False)
    payment_status = Column(String(20), default=PaymentStatus.UNPAID.value, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    locked_at = Column(DateTime, nullable=True)
    currency = Column(String(3), default=Currency.BTN.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_amount_due(self) -> Decimal:
        return max(self.amount_due or ZERO, ZERO)

    @property
    def is_overdue(self) -> bool:
        return (
            self.due_date is not None
            and self.due_date < date.today()
            and self.payment_status != PaymentStatus.PAID.value
            and self.status in (InvoiceStatus.SENT.value, InvoiceStatus.VIEWED.value, InvoiceStatus.OVERDUE.value)
        )

    @property
    def display_status(self) -> str:
        if self.is_overdue:
            return InvoiceStatus.OVERDUE.value
        return self.status


class LineItemMixin:
    """Computed GST line columns shared by invoice and bill items"""

    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), default=ZERO)
    gst_rate = Column(Numeric(5, 2), default=ZERO)
    gst_classification = Column(String(20), default=GSTClassification.STANDARD.value)
    is_exempt = Column(Boolean, default=False)
    line_subtotal = Column(Numeric(15, 2), default=ZERO)
    discount_amount = Column(Numeric(15, 2), default=ZERO)
    tax_amount = Column(Numeric(15, 2), default=ZERO)
    line_total = Column(Numeric(15, 2), default=ZERO)
    sort_order = Column(Integer, default=0)


# ==================== SALES MODELS ====================

class Invoice(FinancialDocumentMixin, Base):
    """GST tax invoice"""
    __tablename__ = 'invoices'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False)
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    payment_terms = Column(String(255), nullable=True)
    last_reminder_sent_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    team = relationship("Team")
    customer = relationship("Customer", back_populates="invoices")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan",
                         order_by="InvoiceItem.sort_order")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")
    adjustments = relationship("InvoiceAdjustment", back_populates="invoice", cascade="all, delete-orphan")
    credit_applications = relationship("CreditNoteApplication", back_populates="invoice",
                                       cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('team_id', 'invoice_number', name='uq_invoice_number'),
        Index('ix_invoices_team_id', 'team_id'),
        Index('ix_invoices_due_date', 'due_date'),
    )


class InvoiceItem(LineItemMixin, Base):
    """Invoice line item"""
    __tablename__ = 'invoice_items'

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='SET NULL'), nullable=True)

    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")


class Payment(Base):
    """Payment received against an invoice"""
    __tablename__ = 'payments'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    receipt_number = Column(String(50), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default=Currency.BTN.value)
    payment_method = Column(String(20), default=PaymentMethod.CASH.value)
    payment_date = Column(Date, nullable=False, default=date.today)
    transaction_id = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        # Dedup key for retried bank notifications
        UniqueConstraint('invoice_id', 'transaction_id', name='uq_payment_transaction'),
    )


class InvoiceAdjustment(Base):
    """Signed change to an invoice total"""
    __tablename__ = 'invoice_adjustments'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    adjustment_type = Column(String(20), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=False)
    adjustment_date = Column(Date, nullable=False, default=date.today)
    reference = Column(String(255), nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="adjustments")


class NoteMixin:
    """Columns shared by credit and debit notes"""

    note_number = Column(String(50), nullable=False)
    note_date = Column(Date, nullable=False, default=date.today)
    reason = Column(Text, nullable=True)
    status = Column(String(20), default=NoteStatus.DRAFT.value, nullable=False)
    currency = Column(String(3), default=Currency.BTN.value)
    subtotal = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_tax = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_amount = Column(Numeric(15, 2), default=ZERO, nullable=False)
    unapplied_amount = Column(Numeric(15, 2), default=ZERO, nullable=False)
    issued_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NoteItemMixin:
    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    gst_rate = Column(Numeric(5, 2), default=ZERO)
    line_subtotal = Column(Numeric(15, 2), default=ZERO)
    tax_amount = Column(Numeric(15, 2), default=ZERO)
    line_total = Column(Numeric(15, 2), default=ZERO)
    sort_order = Column(Integer, default=0)


class CreditNote(NoteMixin, Base):
    """Credit note issued to a customer"""
    __tablename__ = 'credit_notes'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False)
    original_invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    customer = relationship("Customer")
    original_invoice = relationship("Invoice")
    items = relationship("CreditNoteItem", back_populates="credit_note", cascade="all, delete-orphan",
                         order_by="CreditNoteItem.sort_order")
    applications = relationship("CreditNoteApplication", back_populates="credit_note",
                                cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('team_id', 'note_number', name='uq_credit_note_number'),
    )


class CreditNoteItem(NoteItemMixin, Base):
    __tablename__ = 'credit_note_items'

    id = Column(Integer, primary_key=True)
    credit_note_id = Column(Integer, ForeignKey('credit_notes.id', ondelete='CASCADE'), nullable=False)

    credit_note = relationship("CreditNote", back_populates="items")


class CreditNoteApplication(Base):
    """Portion of a credit note consumed by one invoice"""
    __tablename__ = 'credit_note_applications'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    credit_note_id = Column(Integer, ForeignKey('credit_notes.id', ondelete='CASCADE'), nullable=False)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    applied_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    credit_note = relationship("CreditNote", back_populates="applications")
    invoice = relationship("Invoice", back_populates="credit_applications")

    @property
    def note(self):
        return self.credit_note

    @property
    def document(self):
        return self.invoice


# ==================== PURCHASE MODELS ====================

class SupplierBill(FinancialDocumentMixin, Base):
    """Bill received from a supplier"""
    __tablename__ = 'supplier_bills'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    supplier_id = Column(Integer, ForeignKey('suppliers.id', ondelete='RESTRICT'), nullable=False)
    bill_number = Column(String(50), nullable=False)
    supplier_reference = Column(String(100), nullable=True)
    bill_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    team = relationship("Team")
    supplier = relationship("Supplier", back_populates="bills")
    items = relationship("SupplierBillItem", back_populates="bill", cascade="all, delete-orphan",
                         order_by="SupplierBillItem.sort_order")
    payments = relationship("SupplierPayment", back_populates="bill", cascade="all, delete-orphan")
    adjustments = relationship("SupplierBillAdjustment", back_populates="bill", cascade="all, delete-orphan")
    debit_applications = relationship("DebitNoteApplication", back_populates="bill",
                                      cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('team_id', 'bill_number', name='uq_supplier_bill_number'),
        Index('ix_supplier_bills_team_id', 'team_id'),
    )


class SupplierBillItem(LineItemMixin, Base):
    __tablename__ = 'supplier_bill_items'

    id = Column(Integer, primary_key=True)
    bill_id = Column(Integer, ForeignKey('supplier_bills.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id', ondelete='SET NULL'), nullable=True)

    bill = relationship("SupplierBill", back_populates="items")
    product = relationship("Product")


class SupplierPayment(Base):
    """Payment made against a supplier bill"""
    __tablename__ = 'supplier_payments'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    bill_id = Column(Integer, ForeignKey('supplier_bills.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default=Currency.BTN.value)
    payment_method = Column(String(20), default=PaymentMethod.BANK_TRANSFER.value)
    payment_date = Column(Date, nullable=False, default=date.today)
    transaction_id = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    bill = relationship("SupplierBill", back_populates="payments")

    __table_args__ = (
        UniqueConstraint('bill_id', 'transaction_id', name='uq_supplier_payment_transaction'),
    )


class SupplierBillAdjustment(Base):
    __tablename__ = 'supplier_bill_adjustments'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    bill_id = Column(Integer, ForeignKey('supplier_bills.id', ondelete='CASCADE'), nullable=False)
    adjustment_type = Column(String(20), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=False)
    adjustment_date = Column(Date, nullable=False, default=date.today)
    reference = Column(String(255), nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    bill = relationship("SupplierBill", back_populates="adjustments")


class DebitNote(NoteMixin, Base):
    """Debit note raised against a supplier"""
    __tablename__ = 'debit_notes'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    supplier_id = Column(Integer, ForeignKey('suppliers.id', ondelete='RESTRICT'), nullable=False)
    original_bill_id = Column(Integer, ForeignKey('supplier_bills.id', ondelete='SET NULL'), nullable=True)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    supplier = relationship("Supplier")
    original_bill = relationship("SupplierBill")
    items = relationship("DebitNoteItem", back_populates="debit_note", cascade="all, delete-orphan",
                         order_by="DebitNoteItem.sort_order")
    applications = relationship("DebitNoteApplication", back_populates="debit_note",
                                cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('team_id', 'note_number', name='uq_debit_note_number'),
    )


class DebitNoteItem(NoteItemMixin, Base):
    __tablename__ = 'debit_note_items'

    id = Column(Integer, primary_key=True)
    debit_note_id = Column(Integer, ForeignKey('debit_notes.id', ondelete='CASCADE'), nullable=False)

    debit_note = relationship("DebitNote", back_populates="items")


class DebitNoteApplication(Base):
    """Portion of a debit note consumed by one supplier bill"""
    __tablename__ = 'debit_note_applications'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    debit_note_id = Column(Integer, ForeignKey('debit_notes.id', ondelete='CASCADE'), nullable=False)
    bill_id = Column(Integer, ForeignKey('supplier_bills.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    applied_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    debit_note = relationship("DebitNote", back_populates="applications")
    bill = relationship("SupplierBill", back_populates="debit_applications")

    @property
    def note(self):
        return self.debit_note

    @property
    def document(self):
        return self.bill


# ==================== BANK PAYMENTS ====================

class PaymentQR(Base):
    """QR payment request issued through a bank provider"""
    __tablename__ = 'payment_qrs'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    provider = Column(String(50), nullable=False)
    reference_id = Column(String(100), nullable=False, unique=True)
    qr_payload = Column(Text, nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default=Currency.BTN.value)
    status = Column(String(20), default=QRStatus.PENDING.value, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    paid_amount = Column(Numeric(15, 2), nullable=True)
    transaction_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoice = relationship("Invoice")


# ==================== GST COMPLIANCE ====================

class GstReturn(Base):
    """GST return for one period; filing it locks the period"""
    __tablename__ = 'gst_returns'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    return_number = Column(String(50), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    return_type = Column(String(20), default=GstPeriodType.MONTHLY.value, nullable=False)
    status = Column(String(20), default=GstReturnStatus.DRAFT.value, nullable=False)

    output_gst = Column(Numeric(15, 2), default=ZERO, nullable=False)
    input_gst = Column(Numeric(15, 2), default=ZERO, nullable=False)
    net_gst_payable = Column(Numeric(15, 2), default=ZERO, nullable=False)
    adjustments = Column(Numeric(15, 2), default=ZERO, nullable=False)
    previous_period_balance = Column(Numeric(15, 2), default=ZERO, nullable=False)
    penalties = Column(Numeric(15, 2), default=ZERO, nullable=False)
    interest = Column(Numeric(15, 2), default=ZERO, nullable=False)
    total_payable = Column(Numeric(15, 2), default=ZERO, nullable=False)

    due_date = Column(Date, nullable=True)
    filing_date = Column(Date, nullable=True)
    sales_breakdown = Column(JSON, nullable=True)
    purchases_breakdown = Column(JSON, nullable=True)
    amendments = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    filed_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('team_id', 'return_number', name='uq_gst_return_number'),
    )


class GstPeriodLock(Base):
    """Closed GST period; documents dated inside it cannot be cancelled"""
    __tablename__ = 'gst_period_locks'

    id = Column(Integer, primary_key=True)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    period_type = Column(String(20), default=GstPeriodType.MONTHLY.value, nullable=False)
    reason = Column(String(255), nullable=True)
    gst_return_id = Column(Integer, ForeignKey('gst_returns.id', ondelete='SET NULL'), nullable=True)
    locked_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    gst_return = relationship("GstReturn")

    __table_args__ = (
        Index('ix_gst_period_locks_team_period', 'team_id', 'period_start', 'period_end'),
    )


# ==================== ACTIVITY LOG ====================

class ActivityLog(Base):
    """Trail of tenant actions on financial documents"""
    __tablename__ = 'activity_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    team_id = Column(Integer, ForeignKey('teams.id', ondelete='CASCADE'), nullable=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String(50), nullable=True)

    __table_args__ = (
        Index('ix_activity_logs_team_id', 'team_id'),
        Index('ix_activity_logs_resource', 'resource_type', 'resource_id'),
    )
