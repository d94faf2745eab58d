"""Error taxonomy shared by the stores, services and the HTTP layer."""

from __future__ import annotations

from typing import List, Optional


class TodoError(Exception):
    """Base class for every failure the application reports to callers."""

    code = "ERROR"
    default_message = "Unexpected error."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(TodoError):
    code = "VALIDATION_ERROR"
    default_message = "Input data is invalid."

    def __init__(self, message: Optional[str] = None, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.details = details or []


class InvalidDueDate(ValidationError):
    code = "INVALID_DUE_DATE"
    default_message = "Due date must be a real calendar date in YYYY-MM-DD format."


class DuplicateIdentity(TodoError):
    code = "DUPLICATE_IDENTITY"
    default_message = "Username or email is already taken."


class NotFound(TodoError):
    code = "NOT_FOUND"
    default_message = "Resource not found."


class InvalidCredentials(TodoError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid username or password."


class EmailNotVerified(TodoError):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email address has not been verified yet."


class InvalidOrExpiredToken(TodoError):
    code = "INVALID_TOKEN"
    default_message = "Token is invalid or has expired."


class AlreadyVerified(TodoError):
    code = "ALREADY_VERIFIED"
    default_message = "Email address is already verified."


class NotFoundOrForbidden(TodoError):
    code = "TASK_NOT_FOUND"
    default_message = "Task not found or not owned by the current user."


class StorageError(TodoError):
    code = "STORAGE_ERROR"
    default_message = "Storage backend failure."


class MigrationError(StorageError):
    code = "MIGRATION_ERROR"
    default_message = "Database schema migration failed."
