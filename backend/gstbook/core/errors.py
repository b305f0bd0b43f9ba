"""
Domain Errors
Business-rule failures raised by services and mapped to HTTP statuses by routes
"""
from enum import Enum
from typing import List, Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    OVERPAYMENT_REJECTED = "OVERPAYMENT_REJECTED"
    EXCEEDS_AVAILABLE_BALANCE = "EXCEEDS_AVAILABLE_BALANCE"
    INVALID_STATE = "INVALID_STATE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.OVERPAYMENT_REJECTED: 400,
    ErrorCode.EXCEEDS_AVAILABLE_BALANCE: 400,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.INTERNAL_ERROR: 500,
}


class BillingError(ValueError):
    """Base class for business-rule violations"""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, field_errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or []


class NotFound(BillingError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, resource_id=None):
        if resource_id is None:
            message = f"{resource} not found"
        else:
            message = f"{resource} {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(BillingError):
    code = ErrorCode.VALIDATION_ERROR


class OverpaymentRejected(BillingError):
    code = ErrorCode.OVERPAYMENT_REJECTED


class ExceedsAvailableBalance(BillingError):
    code = ErrorCode.EXCEEDS_AVAILABLE_BALANCE


class InvalidState(BillingError):
    code = ErrorCode.INVALID_STATE


class InvoiceLocked(InvalidState):
    def __init__(self, message: str = "Cannot edit locked invoice. Invoice has been sent."):
        super().__init__(message)


class UsageLimitExceeded(InvalidState):
    def __init__(self, resource: str, limit: int):
        super().__init__(
            f"You have reached your plan's limit of {limit} {resource}. "
            "Upgrade your plan to add more."
        )
        self.resource = resource
        self.limit = limit
