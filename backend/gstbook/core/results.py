"""
Typed Operation Results
Wraps service calls in a transaction and reports failures as values
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Type, TypeVar
import logging

from fastapi import HTTPException
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gstbook.core.errors import BillingError, ErrorCode, HTTP_STATUS_BY_CODE

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass
class OperationResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    code: Optional[ErrorCode] = None
    message: Optional[str] = None
    field_errors: List[dict] = field(default_factory=list)

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, code: ErrorCode, message: str, field_errors: Optional[List[dict]] = None) -> "OperationResult[T]":
        return cls(ok=False, code=code, message=message, field_errors=field_errors or [])


def run_operation(db: Session, operation: Callable[[], T]) -> OperationResult[T]:
    """
    Run one logical operation as a single transaction.

    The operation flushes its changes; this commits them on success and rolls
    everything back on failure, so a payment row never outlives a failed
    balance update.
    """
    try:
        value = operation()
        db.commit()
        return OperationResult.success(value)
    except BillingError as e:
        db.rollback()
        return OperationResult.failure(e.code, e.message, e.field_errors)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during operation: {e}", exc_info=True)
        return OperationResult.failure(ErrorCode.INTERNAL_ERROR, "The operation could not be completed")


def raise_for_result(result: OperationResult[T]) -> T:
    """Unwrap a result inside a route, converting failures to HTTPException"""
    if result.ok:
        return result.value
    detail: Any = result.message
    if result.field_errors:
        detail = {"message": result.message, "errors": result.field_errors}
    raise HTTPException(status_code=HTTP_STATUS_BY_CODE[result.code], detail=detail)


@dataclass
class ParseResult(Generic[M]):
    ok: bool
    data: Optional[M] = None
    errors: List[dict] = field(default_factory=list)


def field_errors_from(exc: PydanticValidationError) -> List[dict]:
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(loc) or "__root__", "message": error.get("msg", "Invalid value")})
    return errors


def parse_request(model: Type[M], data: Any) -> ParseResult[M]:
    """Validate raw input against a request model without raising"""
    if not isinstance(data, dict):
        return ParseResult(ok=False, errors=[{"field": "__root__", "message": "Expected a JSON object"}])
    try:
        return ParseResult(ok=True, data=model.model_validate(data))
    except PydanticValidationError as e:
        return ParseResult(ok=False, errors=field_errors_from(e))
