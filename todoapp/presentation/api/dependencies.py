from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.task_service import GuestTasks, ScopedTasks, TaskService
from ...application.services.user_service import UserService
from ...core.config import Settings
from ...core.dependencies import get_guest_tasks, get_settings, get_task_service, get_user_service
from ...domain.errors import InvalidOrExpiredToken
from ...domain.models import PublicUser

_bearer_scheme = HTTPBearer(auto_error=False)

_TRUTHY = {"1", "true", "yes", "on"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(credentials: HTTPAuthorizationCredentials, user_service: UserService) -> PublicUser:
    if credentials.scheme.lower() != "bearer":
        raise _unauthorized("Authorization header with bearer token required.")
    try:
        return user_service.resolve_access_token(credentials.credentials)
    except InvalidOrExpiredToken as exc:
        raise _unauthorized(exc.message) from exc


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    user_service: UserService = Depends(get_user_service),
) -> PublicUser:
    """Dependency to get the authenticated user."""
    if credentials is None:
        raise _unauthorized("Authorization header with bearer token required.")
    return _resolve_user(credentials, user_service)


def get_task_scope(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    x_guest_mode: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    user_service: UserService = Depends(get_user_service),
    task_service: TaskService = Depends(get_task_service),
    guest_tasks: GuestTasks = Depends(get_guest_tasks),
) -> ScopedTasks:
    """Bind task operations to the caller.

    A bearer token always wins. Without one, the demo account is used only
    when the client explicitly asks for guest mode and the server allows it.
    """
    if credentials is not None:
        user = _resolve_user(credentials, user_service)
        return task_service.scoped(user.id)
    if x_guest_mode is not None and x_guest_mode.strip().lower() in _TRUTHY:
        if not settings.guest_mode_enabled:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Guest mode is disabled.")
        return guest_tasks
    raise _unauthorized("Authorization header with bearer token required.")
