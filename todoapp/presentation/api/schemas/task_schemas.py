from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ....domain.models import Task, TaskStatus
from .user_schemas import CamelModel


class TaskCreateRequest(CamelModel):
    text: str = Field(..., max_length=2000)
    due_date: Optional[str] = None


class TaskUpdateRequest(CamelModel):
    action: Literal["toggle", "updateDate"] = "toggle"
    due_date: Optional[str] = None


class TaskTextRequest(BaseModel):
    text: str = Field(..., max_length=2000)


class TaskResponse(CamelModel):
    id: int
    user_id: int
    text: str
    status: TaskStatus
    due_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            user_id=task.user_id,
            text=task.text,
            status=task.status,
            due_date=task.due_date,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskDeletedResponse(CamelModel):
    message: str
    task: TaskResponse


class CompletedTasksDeletedResponse(CamelModel):
    message: str
    deleted_count: int
