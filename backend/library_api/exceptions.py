"""
Library API - Custom Exception Hierarchy
========================================

What:  Application-specific exceptions for database and lending failures.
How:   Each exception carries a human-readable `message`, the underlying
       `detail` (driver message or failed rule) and an optional context dict.
       Global handlers registered in main.py turn them into JSON bodies of
       the shape ``{"message": ..., "error": ..., "request_id": ...}``.
Who:   Raised by the gateway and the services; caught by global handlers.

Exception Hierarchy:
    LibraryError (base)           → 500
    ├── QueryError                → 500 (statement failed: syntax, constraint, connectivity)
    ├── PoolExhaustedError        → 503 (no connection within the pool timeout)
    └── IssuanceError             → 404 / 409 (issue-book precondition failed)

None of these are retried by the service.
"""

from typing import Any, Dict, Optional


class LibraryError(Exception):
    """
    Base exception for all Library API errors.

    Attributes:
        message:  User-facing description, usually set per route
        detail:   Underlying error text returned as the ``error`` field
        context:  Extra debug info, logged but not returned
    """

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.detail = detail if detail is not None else message
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Response body fields shared by every error response."""
        return {"message": self.message, "error": self.detail}

    def relabel(self, message: str) -> "LibraryError":
        """Replace the user-facing message, keeping detail and context."""
        self.message = message
        self.args = (message,)
        return self


class QueryError(LibraryError):
    """
    Raised when a database statement fails.

    When:  Syntax error, constraint violation, failing procedure, lost connection.
    HTTP:  500 Internal Server Error

    The driver message is kept in `detail` so callers can see which
    trigger or constraint rejected the statement.
    """

    def __init__(
        self,
        message: str = "Database statement failed",
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, detail=detail, context=context)


class PoolExhaustedError(LibraryError):
    """
    Raised when no pooled connection becomes free within the pool timeout.

    HTTP:  503 Service Unavailable
    """

    status_code = 503

    def __init__(
        self,
        timeout: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        detail = "No database connection available"
        if timeout is not None:
            detail = f"No database connection available within {timeout:g}s"
        ctx = context or {}
        if timeout is not None:
            ctx["timeout"] = timeout
        super().__init__(message="Database is busy. Please try again later.", detail=detail, context=ctx)
        self.timeout = timeout


class IssuanceError(LibraryError):
    """
    Raised when an issue-book precondition fails.

    `reason` is one of the class constants below; `detail` is the sentence
    shown to the caller. Not-found reasons map to 404, the rest to 409.
    """

    STUDENT_NOT_FOUND = "student not found"
    LIMIT_REACHED = "limit reached"
    BOOK_NOT_FOUND = "book not found"
    NO_COPIES = "no copies available"

    _NOT_FOUND = {STUDENT_NOT_FOUND, BOOK_NOT_FOUND}

    def __init__(
        self,
        reason: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["reason"] = reason
        super().__init__(message=f"Cannot issue book: {reason}", detail=detail or reason, context=ctx)
        self.reason = reason

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 404 if self.reason in self._NOT_FOUND else 409
