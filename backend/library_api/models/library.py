"""
Library API - Lending Tables
============================

What:  Declarative models for `books`, `students` and `issued_books`.
Why:   Services build Core statements from these tables, and Alembic reads
       `Base.metadata` for migrations. The service never loads ORM objects;
       rows travel as plain dicts through the gateway.

Ownership:
    The database is the sole mutator of counters. `available_copies` and
    `total_books_issued` change only inside sp_issue_book and the
    after-return trigger (see the 001 migration).
"""

from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from library_api.database import Base


class Book(Base):
    """A title in the catalogue with its copy counters."""

    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))


class Student(Base):
    """A borrower; `total_books_issued` counts loans not yet returned."""

    __tablename__ = "students"

    student_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    total_books_issued: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))


class IssuedBook(Base):
    """
    One loan of one book to one student.

    Lifecycle:
        1. Inserted by sp_issue_book (return_date NULL)
        2. return_date set by sp_return_book; the trigger restores counters
        3. Never deleted by the service
    """

    __tablename__ = "issued_books"

    issue_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.book_id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.student_id"), nullable=False, index=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False, server_default=text("CURRENT_DATE"))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    return_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


# Core tables used to build statements
books = Book.__table__
students = Student.__table__
issued_books = IssuedBook.__table__
