"""
Common schema types shared by the backend contract and the HTTP surface.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiErrorBody(BaseModel):
    """Error block of the backend response envelope."""

    code: str = "UNKNOWN"
    message: str = "API request failed"
    details: Optional[Any] = None


class ApiEnvelope(BaseModel, Generic[T]):
    """Backend response envelope: {success, data, error}."""

    success: bool
    data: Optional[T] = None
    error: Optional[ApiErrorBody] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response of the HTTP surface."""

    detail: str
    code: Optional[str] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    cached_keys: int = 0
