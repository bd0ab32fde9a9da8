"""
Library API - Pydantic Request/Response Schemas
===============================================

What:  API contract for the lending routes.
How:   Request bodies declare types for coercion and OpenAPI docs only.
       Every field is optional: a missing value is forwarded as NULL and
       the database decides whether the statement is acceptable.
"""

from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class BookPayload(BaseModel):
    """Body of POST /books and PUT /books/{id}."""
    title: Optional[str] = None
    author: Optional[str] = None
    total_copies: Optional[int] = None
    available_copies: Optional[int] = None


class StudentPayload(BaseModel):
    """Body of POST /students."""
    name: Optional[str] = None
    email: Optional[str] = None


class ReturnRequest(BaseModel):
    issue_id: Optional[int] = Field(default=None, description="IssuedBook record to close")


class IssueRequest(BaseModel):
    book_id: Optional[int] = Field(default=None, description="Book to lend")
    student_id: Optional[int] = Field(default=None, description="Borrowing student")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class MessageResponse(BaseModel):
    message: str


class BookCreatedResponse(BaseModel):
    message: str
    book_id: int = Field(serialization_alias="bookId")


class StudentCreatedResponse(BaseModel):
    message: str
    student_id: int = Field(serialization_alias="studentId")


class IssuedBookRow(BaseModel):
    """Joined issue record returned by GET /issued-books."""
    issue_id: int
    book_title: str
    student_name: str
    issue_date: date
    due_date: date
    return_date: Optional[date] = None


class BookStats(BaseModel):
    total_books: int
    total_copies: Optional[int] = None
    total_available: Optional[int] = None


class StudentStats(BaseModel):
    total_students: int
    avg_books_per_student: Optional[float] = None


class IssuedStats(BaseModel):
    total_issued: int
    currently_issued: int


class StatsResponse(BaseModel):
    """Aggregates from GET /reports/stats; sums are null on an empty table."""
    books: BookStats
    students: StudentStats
    issued: IssuedStats


class TotalIssuedResponse(BaseModel):
    total_issued: Optional[int] = None


class IssueResponse(BaseModel):
    success: bool
    message: str


class ErrorResponse(BaseModel):
    """
    Uniform error body.

    `error` carries the underlying database message or failed rule;
    `success` is only present on the transaction route.
    """
    message: str
    error: str
    request_id: Optional[str] = None
    success: Optional[bool] = None


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    pool: Dict[str, int] = Field(description="Pool size and current checkouts")
    uptime_seconds: float
