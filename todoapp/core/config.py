import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..domain.validation import ValidationLimits


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/todos.db")).resolve()
        legacy_tasks = os.getenv("LEGACY_TASKS_PATH")
        self.legacy_tasks_path = (
            Path(legacy_tasks).resolve() if legacy_tasks else self.database_path.parent / "tasks.json"
        )
        self.auto_migrate = self._get_bool("AUTO_MIGRATE", default=True)
        self.create_demo_user = self._get_bool("CREATE_DEMO_USER", default=True)
        self.guest_mode_enabled = self._get_bool("GUEST_MODE_ENABLED", default=False)

        self.bcrypt_rounds = self._get_int("BCRYPT_ROUNDS", default=12)
        self.jwt_secret = os.getenv("JWT_SECRET", "change-me")
        self.jwt_expires_hours = self._get_int("JWT_EXPIRES_HOURS", default=24)
        self.verification_token_hours = self._get_int("VERIFICATION_TOKEN_HOURS", default=24)

        self.validation_limits = ValidationLimits(
            min_username_length=self._get_int("MIN_USERNAME_LENGTH", default=3),
            max_username_length=self._get_int("MAX_USERNAME_LENGTH", default=30),
            max_task_text_length=self._get_int("MAX_TASK_TEXT_LENGTH", default=500),
        )

        self.smtp_host = os.getenv("SMTP_HOST")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME")
        self.smtp_password = os.getenv("SMTP_PASSWORD")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL")

        self.frontend_base_url = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = [
                "http://localhost:3000",
                "http://localhost:8080",
                "http://localhost:5500",
                "http://127.0.0.1:5500",
            ]

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        raise RuntimeError(f"Environment variable {key} must be a boolean")
