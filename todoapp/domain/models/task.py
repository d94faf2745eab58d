"""Task domain model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class TaskStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"

    def toggled(self) -> "TaskStatus":
        return TaskStatus.COMPLETED if self is TaskStatus.OPEN else TaskStatus.OPEN


@dataclass(slots=True)
class Task:
    id: int
    user_id: int
    text: str
    status: TaskStatus
    due_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    @property
    def is_completed(self) -> bool:
        return self.status is TaskStatus.COMPLETED
