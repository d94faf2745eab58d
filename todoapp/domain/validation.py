"""Input validation applied before any storage access."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from email_validator import EmailNotValidError, validate_email as _validate_email_shape

from .errors import InvalidDueDate, ValidationError

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
DUE_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 100
MAX_EMAIL_LENGTH = 254

# Throwaway mailbox providers rejected at registration.
DISPOSABLE_EMAIL_DOMAINS = frozenset(
    {
        "10minutemail.com",
        "10minutemail.net",
        "20minutemail.com",
        "dispostable.com",
        "dropmail.me",
        "emailondeck.com",
        "fakeinbox.com",
        "getnada.com",
        "grr.la",
        "guerrillamail.com",
        "guerrillamail.de",
        "guerrillamail.net",
        "guerrillamail.org",
        "jetable.org",
        "mailinator.com",
        "mailinator.net",
        "maildrop.cc",
        "mailnesia.com",
        "mohmal.com",
        "sharklasers.com",
        "spambog.de",
        "temp-mail.org",
        "tempmail.org",
        "throwawaymail.com",
        "trashmail.com",
        "trashmail.de",
        "wegwerfmail.de",
        "yopmail.com",
        "yopmail.fr",
        "1secmail.com",
    }
)


@dataclass(slots=True, frozen=True)
class ValidationLimits:
    min_username_length: int = 3
    max_username_length: int = 30
    max_task_text_length: int = 500


DEFAULT_LIMITS = ValidationLimits()


def validate_username(username: str, limits: ValidationLimits = DEFAULT_LIMITS) -> str:
    if not isinstance(username, str):
        raise ValidationError("Username is required.")
    cleaned = username.strip()
    if not limits.min_username_length <= len(cleaned) <= limits.max_username_length:
        raise ValidationError(
            f"Username must be {limits.min_username_length}-{limits.max_username_length} characters long."
        )
    if not USERNAME_PATTERN.match(cleaned):
        raise ValidationError("Username may only contain letters, digits, '_' and '-'.")
    return cleaned


def normalize_email(email: str) -> str:
    """Lower-cased, trimmed form used for storage and lookups."""
    return email.strip().lower()


def validate_email(email: str) -> str:
    """Check the address shape and return its normalised form.

    Deliverability (DNS) is not checked; disposable providers are refused.
    """
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email address is required.")
    if len(email.strip()) > MAX_EMAIL_LENGTH:
        raise ValidationError("Email address is too long.")
    try:
        result = _validate_email_shape(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {exc}") from exc
    normalized = normalize_email(result.normalized)
    domain = normalized.rsplit("@", 1)[-1]
    if domain in DISPOSABLE_EMAIL_DOMAINS:
        raise ValidationError("Disposable email addresses are not allowed.")
    return normalized


def validate_password(password: str) -> str:
    if not isinstance(password, str) or not MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be {MIN_PASSWORD_LENGTH}-{MAX_PASSWORD_LENGTH} characters long."
        )
    return password


def validate_task_text(text: str, limits: ValidationLimits = DEFAULT_LIMITS) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Task text must not be empty.")
    cleaned = text.strip()
    if len(cleaned) > limits.max_task_text_length:
        raise ValidationError(
            f"Task text must be at most {limits.max_task_text_length} characters long."
        )
    return cleaned


def parse_due_date(value: Optional[str]) -> Optional[date]:
    """Parse an optional ``YYYY-MM-DD`` value into a real calendar date.

    The regex alone would accept ``2024-02-30``; the date constructor is what
    rejects it.
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DUE_DATE_PATTERN.match(value):
        raise InvalidDueDate()
    try:
        parsed = date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDueDate() from exc
    if parsed.isoformat() != value:
        raise InvalidDueDate()
    return parsed
