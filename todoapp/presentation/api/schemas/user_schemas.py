"""Pydantic schemas for authentication endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from ....domain.models import PublicUser


class CamelModel(BaseModel):
    """Base schema exposing camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRegisterRequest(BaseModel):
    """Request schema for user registration."""

    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=200)


class UserLoginRequest(BaseModel):
    """Request schema for user login."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResendVerificationRequest(BaseModel):
    """Request schema to resend the verification email."""

    email: EmailStr


class UserResponse(CamelModel):
    """Response schema for user data."""

    id: int
    username: str
    email: str
    email_verified: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            email_verified=user.email_verified,
            created_at=user.created_at,
        )


class UserRegisterResponse(CamelModel):
    message: str
    user: UserResponse
    verification_required: bool
    email_sent: bool


class UserLoginResponse(CamelModel):
    message: str
    token: str
    token_type: str = "bearer"
    expires_in: str
    user: UserResponse


class UserEnvelope(CamelModel):
    message: Optional[str] = None
    user: UserResponse
