# Routes package init
"""
Library API - API Routes Package
================================

Route Inventory:
    - health.py:        GET /, GET /health
    - catalog.py:       /books, /students, /issued-books
    - reports.py:       GET /reports/stats
    - sql_features.py:  /sql/ddl/*, /views/issued, /procedures/return,
                        /functions/total-issued/{id}, /sql/cursor
    - transactions.py:  POST /transactions/issue

Routes stay thin: read the request, call one service method, shape the
response. Errors propagate to the global handlers in main.py, except on
the transaction route which adds `success: false` to its error body.
"""
