"""API router for registration, login and email verification."""

import logging
from typing import Dict

from fastapi import APIRouter, Depends, status

from ....application.services.user_service import UserService
from ....core.config import Settings
from ....core.dependencies import get_email_service, get_settings, get_user_service
from ....domain.errors import InvalidCredentials, NotFound
from ....domain.models import PublicUser
from ....services.email_service import EmailService
from ..dependencies import get_current_user
from ..schemas.user_schemas import (
    UserEnvelope,
    UserLoginRequest,
    UserLoginResponse,
    UserRegisterRequest,
    UserRegisterResponse,
    UserResendVerificationRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: UserRegisterRequest,
    user_service: UserService = Depends(get_user_service),
    email_service: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> UserRegisterResponse:
    """Register a new user; the account must verify its email before logging in."""
    user, verification_token = user_service.create_user(
        username=request.username,
        email=request.email,
        password=request.password,
    )

    email_sent = False
    if verification_token:
        email_sent = email_service.send_verification_email(
            user=user,
            verification_token=verification_token,
            base_url=settings.frontend_base_url,
        )
        if not email_sent:
            logger.warning("Verification email for user id=%s could not be sent", user.id)

    return UserRegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=UserResponse.from_user(user),
        verification_required=not user.email_verified,
        email_sent=email_sent,
    )


@router.post("/login", response_model=UserLoginResponse)
async def login(
    request: UserLoginRequest,
    user_service: UserService = Depends(get_user_service),
) -> UserLoginResponse:
    """Login and get an access token."""
    try:
        user = user_service.authenticate_user(request.username, request.password)
    except NotFound as exc:
        # Unknown usernames get the same answer as wrong passwords.
        raise InvalidCredentials() from exc
    return UserLoginResponse(
        message="Login successful",
        token=user_service.issue_access_token(user),
        expires_in=f"{user_service.token_lifetime_hours}h",
        user=UserResponse.from_user(user),
    )


@router.get("/verify-email/{token}", response_model=UserEnvelope)
async def verify_email(
    token: str,
    user_service: UserService = Depends(get_user_service),
) -> UserEnvelope:
    """Verify a user's email with the token from the verification link."""
    user = user_service.verify_email(token)
    return UserEnvelope(message="Email verified successfully. You can now log in.", user=UserResponse.from_user(user))


@router.post("/resend-verification")
async def resend_verification(
    request: UserResendVerificationRequest,
    user_service: UserService = Depends(get_user_service),
    email_service: EmailService = Depends(get_email_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, str]:
    """Issue a fresh verification token and send it again."""
    user, verification_token = user_service.resend_verification(request.email)
    email_service.send_verification_email(
        user=user,
        verification_token=verification_token,
        base_url=settings.frontend_base_url,
    )
    return {"message": "A new verification email has been sent.", "email": user.email}


@router.get("/me", response_model=UserEnvelope)
async def get_profile(user: PublicUser = Depends(get_current_user)) -> UserEnvelope:
    """Get the current user's profile."""
    return UserEnvelope(user=UserResponse.from_user(user))


@router.post("/logout")
async def logout() -> Dict[str, str]:
    # Tokens are stateless; the client simply discards its copy.
    return {"message": "Logged out. Discard the token on the client."}
