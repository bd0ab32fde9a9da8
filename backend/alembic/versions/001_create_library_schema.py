"""Create library schema

Revision ID: 001
Revises: None
Create Date: 2025-03-02 00:00:00.000000+00:00

What:  Tables for books, students and issued books, plus the PostgreSQL
       objects the API calls:
         sp_issue_book / sp_return_book   stored procedures
         t_after_book_return              trigger restoring counters on return
         f_get_total_issued               scalar function
         f_list_book_titles               cursor-based listing
         v_currently_issued_books         view of open loans

Rollback: downgrade() drops every object (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from library_api.config import settings

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Every writer locks the student row before the book row, the order the
# issue workflow's FOR UPDATE reads use.
SP_ISSUE_BOOK = f"""
CREATE OR REPLACE PROCEDURE sp_issue_book(p_book_id INTEGER, p_student_id INTEGER)
LANGUAGE plpgsql
AS $$
DECLARE
    v_available INTEGER;
BEGIN
    PERFORM 1 FROM students WHERE student_id = p_student_id FOR UPDATE;

    SELECT available_copies INTO v_available
    FROM books WHERE book_id = p_book_id
    FOR UPDATE;

    IF v_available IS NULL THEN
        RAISE EXCEPTION 'Book % does not exist', p_book_id;
    END IF;
    IF v_available <= 0 THEN
        RAISE EXCEPTION 'Book % is not available', p_book_id;
    END IF;

    UPDATE books SET available_copies = available_copies - 1 WHERE book_id = p_book_id;
    UPDATE students SET total_books_issued = total_books_issued + 1 WHERE student_id = p_student_id;
    IF NOT FOUND THEN
        RAISE EXCEPTION 'Student % does not exist', p_student_id;
    END IF;

    INSERT INTO issued_books (book_id, student_id, issue_date, due_date)
    VALUES (p_book_id, p_student_id, CURRENT_DATE, CURRENT_DATE + {settings.loan_period_days});
END;
$$
"""

SP_RETURN_BOOK = """
CREATE OR REPLACE PROCEDURE sp_return_book(p_issue_id INTEGER)
LANGUAGE plpgsql
AS $$
BEGIN
    UPDATE issued_books SET return_date = CURRENT_DATE
    WHERE issue_id = p_issue_id AND return_date IS NULL;
    IF NOT FOUND THEN
        RAISE EXCEPTION 'Issue % does not exist or is already returned', p_issue_id;
    END IF;
END;
$$
"""

FN_AFTER_BOOK_RETURN = """
CREATE OR REPLACE FUNCTION fn_after_book_return() RETURNS TRIGGER
LANGUAGE plpgsql
AS $$
BEGIN
    UPDATE students SET total_books_issued = total_books_issued - 1 WHERE student_id = NEW.student_id;
    UPDATE books SET available_copies = available_copies + 1 WHERE book_id = NEW.book_id;
    RETURN NEW;
END;
$$
"""

T_AFTER_BOOK_RETURN = """
CREATE TRIGGER t_after_book_return
AFTER UPDATE OF return_date ON issued_books
FOR EACH ROW
WHEN (OLD.return_date IS NULL AND NEW.return_date IS NOT NULL)
EXECUTE FUNCTION fn_after_book_return()
"""

F_GET_TOTAL_ISSUED = """
CREATE OR REPLACE FUNCTION f_get_total_issued(p_student_id INTEGER) RETURNS INTEGER
LANGUAGE sql STABLE
AS $$
    SELECT total_books_issued FROM students WHERE student_id = p_student_id
$$
"""

F_LIST_BOOK_TITLES = """
CREATE OR REPLACE FUNCTION f_list_book_titles() RETURNS TABLE (title VARCHAR)
LANGUAGE plpgsql
AS $$
DECLARE
    book_cursor CURSOR FOR SELECT b.title FROM books b ORDER BY b.title;
    v_title VARCHAR;
BEGIN
    OPEN book_cursor;
    LOOP
        FETCH book_cursor INTO v_title;
        EXIT WHEN NOT FOUND;
        title := v_title;
        RETURN NEXT;
    END LOOP;
    CLOSE book_cursor;
END;
$$
"""

V_CURRENTLY_ISSUED_BOOKS = """
CREATE OR REPLACE VIEW v_currently_issued_books AS
SELECT ib.issue_id, b.title, s.name AS student_name, ib.issue_date, ib.due_date
FROM issued_books ib
JOIN books b ON ib.book_id = b.book_id
JOIN students s ON ib.student_id = s.student_id
WHERE ib.return_date IS NULL
"""


def upgrade() -> None:
    """Create the tables, then the routines that depend on them."""
    op.create_table(
        "books",
        sa.Column("book_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("total_copies", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("available_copies", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("book_id"),
        sa.CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_copies",
        ),
    )

    op.create_table(
        "students",
        sa.Column("student_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("total_books_issued", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("student_id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "issued_books",
        sa.Column("issue_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.book_id"), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.student_id"), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False, server_default=sa.text("CURRENT_DATE")),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("issue_id"),
    )
    op.create_index("ix_issued_books_book_id", "issued_books", ["book_id"])
    op.create_index("ix_issued_books_student_id", "issued_books", ["student_id"])

    op.execute(SP_ISSUE_BOOK)
    op.execute(SP_RETURN_BOOK)
    op.execute(FN_AFTER_BOOK_RETURN)
    op.execute(T_AFTER_BOOK_RETURN)
    op.execute(F_GET_TOTAL_ISSUED)
    op.execute(F_LIST_BOOK_TITLES)
    op.execute(V_CURRENTLY_ISSUED_BOOKS)


def downgrade() -> None:
    """Drop routines first, then tables (reverse dependency order)."""
    op.execute("DROP VIEW IF EXISTS v_currently_issued_books")
    op.execute("DROP FUNCTION IF EXISTS f_list_book_titles()")
    op.execute("DROP FUNCTION IF EXISTS f_get_total_issued(INTEGER)")
    op.execute("DROP TRIGGER IF EXISTS t_after_book_return ON issued_books")
    op.execute("DROP FUNCTION IF EXISTS fn_after_book_return()")
    op.execute("DROP PROCEDURE IF EXISTS sp_return_book(INTEGER)")
    op.execute("DROP PROCEDURE IF EXISTS sp_issue_book(INTEGER, INTEGER)")
    op.drop_index("ix_issued_books_student_id", table_name="issued_books")
    op.drop_index("ix_issued_books_book_id", table_name="issued_books")
    op.drop_table("issued_books")
    op.drop_table("students")
    op.drop_table("books")
