"""
Shared error handling for the Freelancer Directory.

Every failure the directory core can report is one of the exception types
below. They carry a stable ``code``, a caller-safe ``message`` and the HTTP
status they map to; serialization happens only at the HTTP boundary through
``to_response()``.
"""

from typing import Any, Dict, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    status: int
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None


class DirectoryException(Exception):
    """Base exception for directory services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details,
            trace_id=trace_id,
        )


class InvalidInputError(DirectoryException):
    """Missing required field, empty search query or bad paging input."""

    status_code = 400

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class NotFoundError(DirectoryException):
    """Identifier does not resolve to a stored entity."""

    status_code = 404

    def __init__(self, entity_id: int, message: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(
            "NOT_FOUND",
            message or f"Freelancer with ID {entity_id} not found.",
            {"id": entity_id},
        )


class StoreError(DirectoryException):
    """Persistence layer failure.

    ``message`` is safe to return to callers. The underlying driver error is
    kept on ``__cause__`` for logging only.
    """

    status_code = 500

    def __init__(self, message: str = "Database error occurred.", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_ERROR", message, details)


class AuthenticationError(DirectoryException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)
