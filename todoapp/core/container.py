from dataclasses import dataclass

from ..application.services.task_service import GuestTasks, TaskService
from ..application.services.user_service import UserService
from ..domain.ports.persistence import PersistenceGateway
from ..infrastructure.security import PasswordHasher
from ..services.email_service import EmailService
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    password_hasher: PasswordHasher
    user_service: UserService
    task_service: TaskService
    guest_tasks: GuestTasks
    email_service: EmailService
