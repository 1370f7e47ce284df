"""
Standard error handling middleware for FastAPI
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from vaxtlistan.errors import (
    CatalogLookupError,
    CommitInProgressError,
    ImportAlreadyCommittedError,
    ImportNotReadyError,
    ImportRowNotFoundError,
    ImportSessionNotFoundError,
    InvalidTransitionError,
)

logger = structlog.get_logger()


def error_response(code: str, message: str, status_code: int = 400) -> JSONResponse:
    """
    Standard error response format

    Args:
        code: Error code identifier
        message: Human-readable error message
        status_code: HTTP status code

    Returns:
        JSONResponse: Standardized error response
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": code, "message": message, "ok": False},
    )


def add_error_handlers(app: FastAPI) -> None:
    """
    Register error handlers with FastAPI application

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
        """Import row asked to move to a state it cannot reach"""
        return error_response(
            code="INVALID_TRANSITION",
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(CommitInProgressError)
    async def commit_in_progress_handler(request: Request, exc: CommitInProgressError):
        """Second commit while one is running"""
        return error_response(
            code="COMMIT_IN_PROGRESS",
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
        )

    @app.exception_handler(ImportNotReadyError)
    async def import_not_ready_handler(request: Request, exc: ImportNotReadyError):
        """Commit before every row is resolved"""
        return error_response(
            code="IMPORT_NOT_READY",
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
        )

    @app.exception_handler(ImportAlreadyCommittedError)
    async def already_committed_handler(request: Request, exc: ImportAlreadyCommittedError):
        """Repeat commit of a written session"""
        return error_response(
            code="ALREADY_COMMITTED",
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
        )

    @app.exception_handler(ImportSessionNotFoundError)
    async def session_not_found_handler(request: Request, exc: ImportSessionNotFoundError):
        """Unknown or expired import session"""
        return error_response(
            code="IMPORT_NOT_FOUND",
            message=str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
        )

    @app.exception_handler(ImportRowNotFoundError)
    async def row_not_found_handler(request: Request, exc: ImportRowNotFoundError):
        """Row index outside the upload"""
        return error_response(
            code="ROW_NOT_FOUND",
            message=str(exc),
            status_code=status.HTTP_404_NOT_FOUND,
        )

    @app.exception_handler(CatalogLookupError)
    async def catalog_lookup_handler(request: Request, exc: CatalogLookupError):
        """Catalog store could not answer"""
        logger.error(
            "catalog_lookup_error",
            path=request.url.path,
            operation=exc.operation,
            error=str(exc),
        )
        return error_response(
            code="CATALOG_UNAVAILABLE",
            message="The plant catalog is temporarily unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle validation errors"""
        return error_response(
            code="VALIDATION_ERROR",
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(KeyError)
    async def key_error_handler(request: Request, exc: KeyError):
        """Handle missing key errors"""
        return error_response(
            code="MISSING_FIELD",
            message=f"Missing required field: {exc}",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all error handler"""
        logger.exception("unhandled_error", path=request.url.path)
        return error_response(
            code="INTERNAL_ERROR",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
