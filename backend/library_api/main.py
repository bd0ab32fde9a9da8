"""
Library API - FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn library_api.main:app`) or `python -m library_api.main`.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware:  Request ID → Access Log → CORS        │
    │                                                     │
    │  Routes:                                            │
    │   /books /students /issued-books   (catalog)        │
    │   /reports/stats                   (reports)        │
    │   /sql/* /views/* /procedures/*    (sql features)   │
    │   /functions/*                                      │
    │   /transactions/issue              (transaction)    │
    │   / /health                        (health)         │
    │                                                     │
    │  Exception Handlers:                                │
    │   QueryError→500 │ PoolExhausted→503 │ Issuance→4xx │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, log pool sizing
    Shutdown: dispose the engine (close every pooled connection)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from library_api import __version__
from library_api.config import settings
from library_api.database import dispose_engine
from library_api.exceptions import (
    IssuanceError,
    LibraryError,
    PoolExhaustedError,
    QueryError,
)
from library_api.middleware.logging import RequestLoggingMiddleware
from library_api.middleware.request_id import RequestIDMiddleware, request_id_var
from library_api.routes import catalog, health, reports, sql_features, transactions

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # echo=True already logs SQL in DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup logs the pool configuration; shutdown disposes the engine."""
    setup_logging()
    logger.info("Library API %s starting up...", __version__)
    logger.info(
        "Connection pool: size=%d overflow=%d timeout=%.1fs",
        settings.db_pool_size,
        settings.db_max_overflow,
        settings.db_pool_timeout,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)

    yield

    logger.info("Library API shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(exc: LibraryError, headers=None) -> JSONResponse:
    content = exc.to_dict()
    content["request_id"] = request_id_var.get("")
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to the uniform ``{message, error, request_id}`` body.

    Handler hierarchy:
        IssuanceError          → 404 / 409
        PoolExhaustedError     → 503 (Retry-After: 1)
        QueryError             → 500, driver message in `error`
        LibraryError (base)    → its status_code
        RequestValidationError → 422
        Exception (fallback)   → 500
    """

    @app.exception_handler(IssuanceError)
    async def handle_issuance_error(request: Request, exc: IssuanceError):
        logger.warning("[%s] Issuance refused: %s", request_id_var.get(""), exc.detail)
        return _error_response(exc)

    @app.exception_handler(PoolExhaustedError)
    async def handle_pool_exhausted(request: Request, exc: PoolExhaustedError):
        logger.warning("[%s] %s", request_id_var.get(""), exc.detail)
        return _error_response(exc, headers={"Retry-After": "1"})

    @app.exception_handler(QueryError)
    async def handle_query_error(request: Request, exc: QueryError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.detail,
            exc.context,
        )
        return _error_response(exc)

    @app.exception_handler(LibraryError)
    async def handle_library_error(request: Request, exc: LibraryError):
        logger.error("[%s] %s: %s", request_id_var.get(""), exc.message, exc.detail)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed path parameter or body type, e.g. /books/abc."""
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={
                "message": "Invalid request",
                "error": errors,
                "request_id": request_id_var.get(""),
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace goes to the log; the body carries only the error text."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "message": "An unexpected error occurred",
                "error": str(exc),
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Library Lending API",
        description=(
            "REST facade over the library database: books, students, issued books, "
            "and demonstrations of DDL, views, procedures, functions, cursors and "
            "transactions."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(catalog.router)
    app.include_router(reports.router)
    app.include_router(sql_features.router)
    app.include_router(transactions.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.backend_host, port=settings.backend_port)
