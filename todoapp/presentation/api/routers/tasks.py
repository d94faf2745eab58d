from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ....application.services.task_service import ScopedTasks
from ....domain.errors import ValidationError
from ..dependencies import get_task_scope
from ..schemas.task_schemas import (
    CompletedTasksDeletedResponse,
    TaskCreateRequest,
    TaskDeletedResponse,
    TaskResponse,
    TaskTextRequest,
    TaskUpdateRequest,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])

_COMPLETED_ALIASES = {"completed", "erledigt"}


@router.get("", response_model=List[TaskResponse])
async def list_tasks(tasks: ScopedTasks = Depends(get_task_scope)) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in tasks.list()]


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreateRequest,
    tasks: ScopedTasks = Depends(get_task_scope),
) -> TaskResponse:
    return TaskResponse.from_task(tasks.create(payload.text, payload.due_date))


@router.delete("", response_model=CompletedTasksDeletedResponse)
async def delete_completed_tasks(
    status_filter: str = Query(..., alias="status"),
    tasks: ScopedTasks = Depends(get_task_scope),
) -> CompletedTasksDeletedResponse:
    if status_filter.lower() not in _COMPLETED_ALIASES:
        raise ValidationError("Query parameter status=completed is required.")
    count = tasks.delete_completed()
    return CompletedTasksDeletedResponse(
        message=f"{count} completed tasks deleted", deleted_count=count
    )


@router.get("/calendar", response_model=List[TaskResponse])
async def tasks_in_range(
    start: str = Query(..., description="First day, YYYY-MM-DD"),
    end: str = Query(..., description="Last day (inclusive), YYYY-MM-DD"),
    tasks: ScopedTasks = Depends(get_task_scope),
) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in tasks.due_between(start, end)]


@router.get("/overdue", response_model=List[TaskResponse])
async def overdue_tasks(tasks: ScopedTasks = Depends(get_task_scope)) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in tasks.overdue()]


@router.get("/today", response_model=List[TaskResponse])
async def today_tasks(tasks: ScopedTasks = Depends(get_task_scope)) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in tasks.today()]


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int = Path(..., gt=0),
    payload: Optional[TaskUpdateRequest] = Body(default=None),
    tasks: ScopedTasks = Depends(get_task_scope),
) -> TaskResponse:
    """Toggle the status, or set/clear the due date with ``action=updateDate``."""
    if payload is not None and payload.action == "updateDate":
        task = tasks.update_due_date(task_id, payload.due_date)
    else:
        task = tasks.toggle_status(task_id)
    return TaskResponse.from_task(task)


@router.put("/{task_id}/text", response_model=TaskResponse)
async def update_task_text(
    payload: TaskTextRequest,
    task_id: int = Path(..., gt=0),
    tasks: ScopedTasks = Depends(get_task_scope),
) -> TaskResponse:
    return TaskResponse.from_task(tasks.update_text(task_id, payload.text))


@router.delete("/{task_id}", response_model=TaskDeletedResponse)
async def delete_task(
    task_id: int = Path(..., gt=0),
    tasks: ScopedTasks = Depends(get_task_scope),
) -> TaskDeletedResponse:
    task = tasks.delete(task_id)
    return TaskDeletedResponse(message="Task deleted", task=TaskResponse.from_task(task))
