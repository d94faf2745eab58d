from __future__ import annotations

from typing import List, Optional, Protocol

from ..models import Task, TaskStatus, User


class UserRepository(Protocol):
    """Persistence functions related to user accounts."""

    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        *,
        email_verified: bool,
        verification_token: Optional[str],
        verification_token_expires: Optional[int],
    ) -> User:
        ...

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        ...

    def get_user_by_username(self, username: str) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def get_user_by_verification_token(self, token: str, now_ms: int) -> Optional[User]:
        ...

    def mark_email_verified(self, user_id: int, token: str) -> Optional[User]:
        ...

    def update_verification_token(self, user_id: int, token: str, expires_ms: int) -> User:
        ...


class TaskRepository(Protocol):
    """Persistence functions related to tasks; every call is owner-scoped."""

    def list_tasks(self, user_id: int) -> List[Task]:
        ...

    def create_task(self, user_id: int, text: str, due_date: Optional[str]) -> Task:
        ...

    def get_task(self, task_id: int, user_id: int) -> Optional[Task]:
        ...

    def update_task_status(self, task_id: int, user_id: int, status: TaskStatus) -> Optional[Task]:
        ...

    def update_task_text(self, task_id: int, user_id: int, text: str) -> Optional[Task]:
        ...

    def update_task_due_date(self, task_id: int, user_id: int, due_date: Optional[str]) -> Optional[Task]:
        ...

    def delete_task(self, task_id: int, user_id: int) -> Optional[Task]:
        ...

    def delete_completed_tasks(self, user_id: int) -> int:
        ...

    def get_tasks_due_between(self, user_id: int, start: str, end: str) -> List[Task]:
        ...

    def get_overdue_tasks(self, user_id: int, today: str) -> List[Task]:
        ...

    def get_tasks_due_on(self, user_id: int, day: str) -> List[Task]:
        ...


class PersistenceGateway(UserRepository, TaskRepository, Protocol):
    """Composite gateway combining every persistence concern used by the app."""

    def close(self) -> None:
        ...
