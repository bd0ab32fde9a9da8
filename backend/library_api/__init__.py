"""
Library API - Application Package
=================================

What: REST facade over the library lending database (books, students, issued books).
Who:  Imported by uvicorn (`library_api.main:app`), Alembic and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Services (statement per route,  │  ← failure messages, the one
    │      issue-book transaction)        │    transactional workflow
    ├─────────────────────────────────────┤
    │     Models & Schemas (Data)         │  ← SQLAlchemy tables + Pydantic
    ├─────────────────────────────────────┤
    │     Data Access Gateway             │  ← pooled execute / leased connection
    └─────────────────────────────────────┘

    Counters, availability and return bookkeeping live in database
    procedures and triggers. The service layer only forwards statements,
    except for the issue-book workflow which checks preconditions inside
    its own transaction first.
"""

__version__ = "1.0.0"
