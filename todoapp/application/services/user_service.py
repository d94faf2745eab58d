"""Service for user registration, authentication and email verification."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

import jwt

from ...domain.errors import (
    AlreadyVerified,
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    NotFound,
)
from ...domain.models import PublicUser, User
from ...domain.ports.persistence import UserRepository
from ...domain.validation import (
    DEFAULT_LIMITS,
    ValidationLimits,
    normalize_email,
    validate_email,
    validate_password,
    validate_username,
)
from ...infrastructure.persistence.schema import DEMO_USERNAME
from ...infrastructure.security import PasswordHasher

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "change-me"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserService:
    """Owns password hashing, the verification-token lifecycle and access tokens."""

    def __init__(
        self,
        user_repository: UserRepository,
        password_hasher: PasswordHasher,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expiration_hours: int = 24,
        verification_expiration_hours: int = 24,
        limits: ValidationLimits = DEFAULT_LIMITS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not jwt_secret:
            raise RuntimeError("JWT_SECRET is not configured.")
        if jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET is using the default value. Configure a strong secret in production.")
        self._users = user_repository
        self._hasher = password_hasher
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm
        self._jwt_expiration_hours = jwt_expiration_hours
        self._verification_expiration_hours = verification_expiration_hours
        self._limits = limits
        self._clock = clock

    # Registration ---------------------------------------------------------
    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        auto_verify: bool = False,
    ) -> Tuple[PublicUser, Optional[str]]:
        """
        Register a new account.

        Args:
            username: 3-30 characters of ``[A-Za-z0-9_-]``
            email: Address to verify; stored normalised
            password: Plain text password (6-100 characters)
            auto_verify: Skip email verification (demo and admin seeding)

        Returns:
            Tuple of (public user, verification token or None when auto-verified)

        Raises:
            ValidationError: If any field is malformed
            DuplicateIdentity: If username or email is already registered
        """
        clean_username = validate_username(username, self._limits)
        clean_email = validate_email(email)
        validate_password(password)

        token: Optional[str] = None
        expires_ms: Optional[int] = None
        if not auto_verify:
            token, expires_ms = self._new_verification_token()

        user = self._users.create_user(
            clean_username,
            clean_email,
            self._hasher.hash(password),
            email_verified=auto_verify,
            verification_token=token,
            verification_token_expires=expires_ms,
        )
        logger.info(
            "Registered user id=%s username=%s verification_required=%s",
            user.id,
            user.username,
            not auto_verify,
        )
        return user.to_public(), token

    def authenticate_user(self, username: str, password: str) -> PublicUser:
        user = self._users.get_user_by_username(username.strip())
        if not user:
            raise NotFound("User not found.")
        if not self._hasher.verify(password, user.password_hash):
            raise InvalidCredentials()
        if not user.email_verified:
            raise EmailNotVerified()
        logger.info("Authenticated user id=%s", user.id)
        return user.to_public()

    # Email verification ---------------------------------------------------
    def verify_email(self, token: str) -> PublicUser:
        if not token:
            raise InvalidOrExpiredToken("Verification token is required.")
        user = self._users.get_user_by_verification_token(token, self._now_ms())
        if not user:
            raise InvalidOrExpiredToken("Verification token is invalid or has expired.")
        verified = self._users.mark_email_verified(user.id, token)
        if not verified:
            # Consumed by a concurrent request between lookup and update.
            raise InvalidOrExpiredToken("Verification token is invalid or has expired.")
        logger.info("Email verified for user id=%s", verified.id)
        return verified.to_public()

    def resend_verification(self, email: str) -> Tuple[PublicUser, str]:
        user = self._users.get_user_by_email(normalize_email(email))
        if not user:
            raise NotFound("No account uses this email address.")
        if user.email_verified:
            raise AlreadyVerified()
        token, expires_ms = self._new_verification_token()
        updated = self._users.update_verification_token(user.id, token, expires_ms)
        logger.info("Rotated verification token for user id=%s", user.id)
        return updated.to_public(), token

    # Lookups --------------------------------------------------------------
    def get_user_by_id(self, user_id: int) -> Optional[PublicUser]:
        return self._public(self._users.get_user_by_id(user_id))

    def get_user_by_username(self, username: str) -> Optional[PublicUser]:
        return self._public(self._users.get_user_by_username(username.strip()))

    def get_user_by_email(self, email: str) -> Optional[PublicUser]:
        return self._public(self._users.get_user_by_email(normalize_email(email)))

    def get_demo_user(self) -> Optional[PublicUser]:
        return self.get_user_by_username(DEMO_USERNAME)

    # Access tokens --------------------------------------------------------
    def issue_access_token(self, user: PublicUser) -> str:
        now = self._clock()
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "iat": now,
            "exp": now + timedelta(hours=self._jwt_expiration_hours),
        }
        return jwt.encode(payload, self._jwt_secret, algorithm=self._jwt_algorithm)

    def resolve_access_token(self, token: str) -> PublicUser:
        try:
            payload = jwt.decode(token, self._jwt_secret, algorithms=[self._jwt_algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise InvalidOrExpiredToken("Access token has expired.") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidOrExpiredToken("Access token is invalid.") from exc
        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError) as exc:
            raise InvalidOrExpiredToken("Access token is invalid.") from exc
        user = self._users.get_user_by_id(user_id)
        if not user:
            raise InvalidOrExpiredToken("Token is valid but the user no longer exists.")
        return user.to_public()

    @property
    def token_lifetime_hours(self) -> int:
        return self._jwt_expiration_hours

    # Helpers --------------------------------------------------------------
    def _new_verification_token(self) -> Tuple[str, int]:
        expires_at = self._clock() + timedelta(hours=self._verification_expiration_hours)
        return secrets.token_hex(32), int(expires_at.timestamp() * 1000)

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @staticmethod
    def _public(user: Optional[User]) -> Optional[PublicUser]:
        return user.to_public() if user else None
