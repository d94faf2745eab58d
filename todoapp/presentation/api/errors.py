"""Translation of domain failures into HTTP responses."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ...domain.errors import (
    AlreadyVerified,
    DuplicateIdentity,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
    NotFoundOrForbidden,
    StorageError,
    TodoError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order, so subclasses must precede their bases.
_STATUS_BY_ERROR: List[Tuple[Type[TodoError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidOrExpiredToken, status.HTTP_400_BAD_REQUEST),
    (InvalidCredentials, status.HTTP_401_UNAUTHORIZED),
    (EmailNotVerified, status.HTTP_403_FORBIDDEN),
    (NotFoundOrForbidden, status.HTTP_404_NOT_FOUND),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (DuplicateIdentity, status.HTTP_409_CONFLICT),
    (AlreadyVerified, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: TodoError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": code, "message": message}
    body.update(extra)
    return body


async def _handle_todo_error(request: Request, exc: TodoError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    extra: Dict[str, Any] = {}
    if isinstance(exc, ValidationError) and exc.details:
        extra["details"] = exc.details
    return JSONResponse(status_code=status_code, content=error_body(exc.code, exc.message, **extra))


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationError.code, "Input data is invalid.", details=details),
    )


async def _handle_sqlite_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.exception("Database error during %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body(StorageError.code, "Database is temporarily unavailable."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TodoError, _handle_todo_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(sqlite3.Error, _handle_sqlite_error)
