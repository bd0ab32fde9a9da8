# Services package init
"""
Library API - Services Package
==============================

Service Inventory:
    - catalog_service.py:      books, students, issued-book list, stats
    - sql_feature_service.py:  DDL, view, procedure, function and cursor demos
    - issuance_service.py:     the issue-book transaction workflow

Every service is a stateless module-level singleton that receives the
gateway per call, so tests can pass a mock or an in-memory fake.
"""
