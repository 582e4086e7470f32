"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class UnauthenticatedException(APIException):
    """Exception for requests without a valid session."""
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(status_code=401, detail=detail)

class InvalidInputException(APIException):
    """Exception for missing files and non-image uploads."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class StorageException(APIException):
    """Exception for object storage upload failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class StoreException(APIException):
    """Exception for DynamoDB read/write failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class AnalysisException(Exception):
    """Raised when the vision model call fails. Recovered during ingestion."""

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    log.error(f"API Exception: {exc.detail}", exc_info=exc)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
