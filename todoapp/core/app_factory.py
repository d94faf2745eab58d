from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..application.services.task_service import GuestTasks, TaskService
from ..application.services.user_service import UserService
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..infrastructure.security import PasswordHasher
from ..presentation.api.errors import register_exception_handlers
from ..presentation.api.routers import auth as auth_router
from ..presentation.api.routers import tasks as tasks_router
from ..presentation.api.security_headers import SecurityHeadersMiddleware
from ..services.email_service import EmailService

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="Todo API", version=API_VERSION, lifespan=_create_lifespan(settings))

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Guest-Mode"],
    )
    register_exception_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(tasks_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        database_ok = container.persistence.ping()
        return {
            "status": "ok" if database_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": API_VERSION,
            "database": "connected" if database_ok else "unavailable",
            "emailService": {"configured": container.email_service.enabled},
            "guestMode": container.settings.guest_mode_enabled,
        }

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "message": "Todo API with email verification",
            "version": API_VERSION,
            "endpoints": {
                "health": "GET /health",
                "auth": {
                    "register": "POST /auth/register",
                    "login": "POST /auth/login",
                    "verifyEmail": "GET /auth/verify-email/{token}",
                    "resendVerification": "POST /auth/resend-verification",
                    "me": "GET /auth/me",
                    "logout": "POST /auth/logout",
                },
                "tasks": {
                    "list": "GET /tasks",
                    "create": "POST /tasks",
                    "toggleOrUpdateDate": "PUT /tasks/{id}",
                    "edit": "PUT /tasks/{id}/text",
                    "delete": "DELETE /tasks/{id}",
                    "cleanup": "DELETE /tasks?status=completed",
                    "calendar": "GET /tasks/calendar?start=YYYY-MM-DD&end=YYYY-MM-DD",
                    "overdue": "GET /tasks/overdue",
                    "today": "GET /tasks/today",
                },
            },
        }

    return app


def build_container(settings: Settings) -> ApplicationContainer:
    password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    persistence = SQLitePersistence(
        settings.database_path,
        password_hasher.hash,
        legacy_tasks_path=settings.legacy_tasks_path,
        seed_demo_user=settings.create_demo_user,
        auto_migrate=settings.auto_migrate,
    )
    user_service = UserService(
        user_repository=persistence,
        password_hasher=password_hasher,
        jwt_secret=settings.jwt_secret,
        jwt_expiration_hours=settings.jwt_expires_hours,
        verification_expiration_hours=settings.verification_token_hours,
        limits=settings.validation_limits,
    )
    task_service = TaskService(persistence, limits=settings.validation_limits)
    email_service = EmailService(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_username=settings.smtp_username,
        smtp_password=settings.smtp_password,
        from_email=settings.smtp_from_email,
    )
    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        password_hasher=password_hasher,
        user_service=user_service,
        task_service=task_service,
        guest_tasks=GuestTasks(task_service, user_service),
        email_service=email_service,
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        logger.info("Opening database %s", settings.database_path)
        container = build_container(settings)
        app.state.container = container  # type: ignore[attr-defined]
        if not container.email_service.enabled:
            logger.warning("SMTP is not configured; verification links will only be logged.")
        try:
            yield
        finally:
            container.persistence.close()
            logger.info("Database closed")

    return lifespan
