from fastapi import Depends, Request

from ..application.services.task_service import GuestTasks, TaskService
from ..application.services.user_service import UserService
from ..services.email_service import EmailService
from .config import Settings
from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Application container not initialised; is the lifespan running?")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)) -> Settings:
    return container.settings


def get_user_service(container: ApplicationContainer = Depends(get_container)) -> UserService:
    return container.user_service


def get_task_service(container: ApplicationContainer = Depends(get_container)) -> TaskService:
    return container.task_service


def get_guest_tasks(container: ApplicationContainer = Depends(get_container)) -> GuestTasks:
    return container.guest_tasks


def get_email_service(container: ApplicationContainer = Depends(get_container)) -> EmailService:
    return container.email_service
