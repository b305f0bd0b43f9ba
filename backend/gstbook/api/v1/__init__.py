# API v1 Package
from gstbook.api.v1 import (
    auth, team, crm, products, invoices, credit_notes, bills, debit_notes,
    pos, features, webhooks, cron, reports, gst
)

__all__ = [
    'auth',
    'team',
    'crm',
    'products',
    'invoices',
    'credit_notes',
    'bills',
    'debit_notes',
    'pos',
    'features',
    'webhooks',
    'cron',
    'reports',
    'gst',
]
