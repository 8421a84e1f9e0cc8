"""Response envelope and shared API payloads."""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Consistent JSON envelope for API responses."""

    data: T


class DiscardResult(BaseModel):
    """Result of discarding a server-side resource by id."""

    id: str
    discarded: bool


class ErrorDetail(BaseModel):
    """Structured ``detail`` body for validation and conflict failures."""

    message: str
    field_errors: dict[str, str] | None = None
    conflicts: list[str] | None = None
    context: dict[str, Any] | None = None
