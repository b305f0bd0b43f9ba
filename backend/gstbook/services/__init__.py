# Services Package
from gstbook.services.balance_service import BalanceService
from gstbook.services.feature_service import FeatureService
from gstbook.services.user_service import UserService
from gstbook.services.team_service import TeamService
from gstbook.services.crm_service import CustomerService, SupplierService
from gstbook.services.product_service import ProductService
from gstbook.services.invoice_service import InvoiceService
from gstbook.services.payment_service import PaymentService, SupplierPaymentService
from gstbook.services.adjustment_service import InvoiceAdjustmentService, BillAdjustmentService
from gstbook.services.note_service import CreditNoteService, DebitNoteService
from gstbook.services.bill_service import SupplierBillService
from gstbook.services.pos_service import POSService
from gstbook.services.bank_service import BankService
from gstbook.services.reminder_service import ReminderService
from gstbook.services.report_service import ReportService
from gstbook.services.activity_service import ActivityService

__all__ = [
    'BalanceService',
    'FeatureService',
    'UserService',
    'TeamService',
    'CustomerService',
    'SupplierService',
    'ProductService',
    'InvoiceService',
    'PaymentService',
    'SupplierPaymentService',
    'InvoiceAdjustmentService',
    'BillAdjustmentService',
    'CreditNoteService',
    'DebitNoteService',
    'SupplierBillService',
    'POSService',
    'BankService',
    'ReminderService',
    'ReportService',
    'ActivityService',
]
