"""Domain models for the to-do application."""

from .task import Task, TaskStatus
from .user import PublicUser, User

__all__ = [
    "PublicUser",
    "Task",
    "TaskStatus",
    "User",
]
