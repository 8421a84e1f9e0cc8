"""Translation of service errors into HTTP responses."""

from fastapi import HTTPException

from table_studio.errors import (
    DiffConflictError,
    InvalidEditError,
    PersistenceError,
    RecordNotFoundError,
    RecordValidationError,
    StaleSchemaError,
    StructuredParseError,
    SubmitInProgressError,
    TableNotFoundError,
    TableStudioError,
)
from table_studio.schemas.common import ErrorDetail


def to_http_exception(exc: TableStudioError) -> HTTPException:
    """Map a service error to the status code the hosting UI expects."""

    if isinstance(exc, RecordValidationError):
        detail = ErrorDetail(message="Record validation failed", field_errors=exc.field_errors)
        return HTTPException(status_code=422, detail=detail.model_dump(exclude_none=True))
    if isinstance(exc, DiffConflictError):
        detail = ErrorDetail(message="Schema edit has conflicts", conflicts=exc.conflicts)
        return HTTPException(status_code=409, detail=detail.model_dump(exclude_none=True))
    if isinstance(exc, (SubmitInProgressError, StaleSchemaError)):
        return HTTPException(status_code=409, detail=ErrorDetail(message=str(exc)).model_dump(exclude_none=True))
    if isinstance(exc, (InvalidEditError, StructuredParseError)):
        return HTTPException(status_code=422, detail=ErrorDetail(message=str(exc)).model_dump(exclude_none=True))
    if isinstance(exc, (TableNotFoundError, RecordNotFoundError)):
        return HTTPException(status_code=404, detail=ErrorDetail(message=str(exc)).model_dump(exclude_none=True))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=502, detail=ErrorDetail(message=str(exc)).model_dump(exclude_none=True))
    return HTTPException(status_code=500, detail=ErrorDetail(message=str(exc)).model_dump(exclude_none=True))
