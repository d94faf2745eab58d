from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional

from ...domain.errors import NotFound, NotFoundOrForbidden, ValidationError
from ...domain.models import Task
from ...domain.ports.persistence import TaskRepository
from ...domain.validation import DEFAULT_LIMITS, ValidationLimits, parse_due_date, validate_task_text
from .user_service import UserService

logger = logging.getLogger(__name__)


class TaskService:
    """Owner-scoped task operations and calendar queries."""

    def __init__(
        self,
        task_repository: TaskRepository,
        limits: ValidationLimits = DEFAULT_LIMITS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._tasks = task_repository
        self._limits = limits
        self._today = today

    def scoped(self, user_id: int) -> "ScopedTasks":
        return ScopedTasks(self, user_id)

    # Queries ----------------------------------------------------------------
    def list_tasks(self, user_id: int) -> List[Task]:
        return self._tasks.list_tasks(user_id)

    def tasks_due_between(self, user_id: int, start: str, end: str) -> List[Task]:
        start_date = parse_due_date(start)
        end_date = parse_due_date(end)
        if start_date is None or end_date is None:
            raise ValidationError("Both start and end dates are required.")
        if start_date > end_date:
            raise ValidationError("Start date must not be after end date.")
        return self._tasks.get_tasks_due_between(
            user_id, start_date.isoformat(), end_date.isoformat()
        )

    def overdue_tasks(self, user_id: int) -> List[Task]:
        return self._tasks.get_overdue_tasks(user_id, self._today().isoformat())

    def today_tasks(self, user_id: int) -> List[Task]:
        return self._tasks.get_tasks_due_on(user_id, self._today().isoformat())

    # Mutations --------------------------------------------------------------
    def create_task(self, user_id: int, text: str, due_date: Optional[str] = None) -> Task:
        clean_text = validate_task_text(text, self._limits)
        parsed = parse_due_date(due_date)
        task = self._tasks.create_task(
            user_id, clean_text, parsed.isoformat() if parsed else None
        )
        logger.info("Created task id=%s for user id=%s", task.id, user_id)
        return task

    def toggle_status(self, task_id: int, user_id: int) -> Task:
        current = self._owned(task_id, user_id)
        new_status = current.status.toggled()
        task = self._require(self._tasks.update_task_status(task_id, user_id, new_status))
        logger.info(
            "Task id=%s status %s -> %s", task_id, current.status.value, new_status.value
        )
        return task

    def update_text(self, task_id: int, user_id: int, text: str) -> Task:
        clean_text = validate_task_text(text, self._limits)
        return self._require(self._tasks.update_task_text(task_id, user_id, clean_text))

    def update_due_date(self, task_id: int, user_id: int, due_date: Optional[str]) -> Task:
        parsed = parse_due_date(due_date)
        return self._require(
            self._tasks.update_task_due_date(
                task_id, user_id, parsed.isoformat() if parsed else None
            )
        )

    def delete_task(self, task_id: int, user_id: int) -> Task:
        task = self._require(self._tasks.delete_task(task_id, user_id))
        logger.info("Deleted task id=%s for user id=%s", task_id, user_id)
        return task

    def delete_completed(self, user_id: int) -> int:
        count = self._tasks.delete_completed_tasks(user_id)
        logger.info("Deleted %d completed tasks for user id=%s", count, user_id)
        return count

    # Helpers ----------------------------------------------------------------
    def _owned(self, task_id: int, user_id: int) -> Task:
        return self._require(self._tasks.get_task(task_id, user_id))

    @staticmethod
    def _require(task: Optional[Task]) -> Task:
        # Missing and foreign tasks are reported identically.
        if task is None:
            raise NotFoundOrForbidden()
        return task


class ScopedTasks:
    """Task operations bound to a single owner."""

    def __init__(self, service: TaskService, user_id: int) -> None:
        self._service = service
        self._user_id = user_id

    @property
    def user_id(self) -> int:
        return self._user_id

    def list(self) -> List[Task]:
        return self._service.list_tasks(self.user_id)

    def create(self, text: str, due_date: Optional[str] = None) -> Task:
        return self._service.create_task(self.user_id, text, due_date)

    def toggle_status(self, task_id: int) -> Task:
        return self._service.toggle_status(task_id, self.user_id)

    def update_text(self, task_id: int, text: str) -> Task:
        return self._service.update_text(task_id, self.user_id, text)

    def update_due_date(self, task_id: int, due_date: Optional[str]) -> Task:
        return self._service.update_due_date(task_id, self.user_id, due_date)

    def delete(self, task_id: int) -> Task:
        return self._service.delete_task(task_id, self.user_id)

    def delete_completed(self) -> int:
        return self._service.delete_completed(self.user_id)

    def due_between(self, start: str, end: str) -> List[Task]:
        return self._service.tasks_due_between(self.user_id, start, end)

    def overdue(self) -> List[Task]:
        return self._service.overdue_tasks(self.user_id)

    def today(self) -> List[Task]:
        return self._service.today_tasks(self.user_id)


class GuestTasks(ScopedTasks):
    """Legacy compatibility facade: every call acts on the demo account."""

    def __init__(self, service: TaskService, user_service: UserService) -> None:
        super().__init__(service, user_id=0)
        self._user_service = user_service

    @property
    def user_id(self) -> int:
        demo = self._user_service.get_demo_user()
        if demo is None:
            raise NotFound("Demo user not found; guest mode is unavailable.")
        return demo.id
