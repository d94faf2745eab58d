"""User domain models for account registration and authentication."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class User:
    """
    Full user record as stored in the ``users`` table.

    Attributes:
        id: Unique identifier
        username: Login name (unique)
        email: Normalised email address (unique)
        password_hash: bcrypt hash of the password
        email_verified: Whether the email address has been confirmed
        verification_token: Pending single-use verification token
        verification_token_expires: Token expiry as epoch milliseconds
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    id: int
    username: str
    email: str
    password_hash: str
    email_verified: bool
    verification_token: Optional[str]
    verification_token_expires: Optional[int]
    created_at: datetime
    updated_at: datetime

    def to_public(self) -> "PublicUser":
        return PublicUser(
            id=self.id,
            username=self.username,
            email=self.email,
            email_verified=self.email_verified,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username} verified={self.email_verified}>"


@dataclass(slots=True)
class PublicUser:
    """Projection of a user that is safe to hand to callers."""

    id: int
    username: str
    email: str
    email_verified: bool
    created_at: datetime
    updated_at: datetime
