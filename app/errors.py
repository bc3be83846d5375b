"""
Error types and the app-wide JSON error handlers.

Every error response has the shape {"error": {"message": ..., "status": ...}}.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.service import Ok, Result

logger = logging.getLogger(__name__)


class MessagelyError(Exception):
    """An error with a user-facing message and an HTTP status."""

    def __init__(self, message: str, status: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.message = message
        self.status = status


def raise_for_result(result: Result):
    """
    Unwrap an operation result.

    Returns:
        The Ok value

    Raises:
        MessagelyError carrying the result's message and status otherwise
    """
    if isinstance(result, Ok):
        return result.value
    raise MessagelyError(result.message, result.status)


def error_body(message: str, status_code: int) -> dict:
    return {"error": {"message": message, "status": status_code}}


async def messagely_error_handler(request: Request, exc: MessagelyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=error_body(exc.message, exc.status))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal Server Error", status.HTTP_500_INTERNAL_SERVER_ERROR),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the JSON error handlers on the app."""
    app.add_exception_handler(MessagelyError, messagely_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
