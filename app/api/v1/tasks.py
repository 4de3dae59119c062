"""Task routes: every account manages its own tasks, admins see all of them."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.v1.auth import require_admin, require_user
from app.core.database import get_db
from app.schemas.common import MessageResponse
from app.schemas.tasks import (
    AdminTaskListData,
    AdminTaskListResponse,
    AdminTaskOut,
    TaskData,
    TaskListData,
    TaskListResponse,
    TaskOut,
    TaskResponse,
    TaskStats,
    TaskStatsData,
    TaskStatsResponse,
    TaskWrite,
)
from app.services import tasks as task_service
from app.services.credentials import Identity

router = APIRouter()


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    body: TaskWrite,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
) -> TaskResponse:
    task = task_service.create_task(
        db, current_user, body.title, body.description, body.status, body.priority
    )
    return TaskResponse(
        message="Task created successfully",
        data=TaskData(task=TaskOut.model_validate(task)),
    )


@router.get("", response_model=TaskListResponse)
def list_my_tasks(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
) -> TaskListResponse:
    """The caller's own tasks, newest first, optionally filtered by status and priority."""
    tasks = task_service.list_tasks(db, current_user.id, status_filter, priority)
    return TaskListResponse(
        data=TaskListData(tasks=[TaskOut.model_validate(t) for t in tasks], count=len(tasks))
    )


@router.get("/search", response_model=TaskListResponse)
def search_tasks(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
    query: str | None = None,
) -> TaskListResponse:
    tasks = task_service.search_tasks(db, current_user, query)
    return TaskListResponse(
        data=TaskListData(tasks=[TaskOut.model_validate(t) for t in tasks], count=len(tasks))
    )


@router.get("/stats", response_model=TaskStatsResponse)
def get_task_stats(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
) -> TaskStatsResponse:
    stats = task_service.task_stats(db, current_user)
    return TaskStatsResponse(data=TaskStatsData(stats=TaskStats(**stats)))


@router.get("/admin/all", response_model=AdminTaskListResponse)
def list_all_tasks(
    db: Annotated[Session, Depends(get_db)],
    _admin: Annotated[Identity, Depends(require_admin)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
    user_id: int | None = None,
) -> AdminTaskListResponse:
    """All tasks with their owner's username and email (admin only)."""
    rows = task_service.list_tasks_with_owners(db, status_filter, priority, user_id)
    tasks = [
        AdminTaskOut(
            **TaskOut.model_validate(task).model_dump(),
            username=username,
            email=email,
        )
        for task, username, email in rows
    ]
    return AdminTaskListResponse(data=AdminTaskListData(tasks=tasks, count=len(tasks)))


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
) -> TaskResponse:
    task = task_service.get_task(db, current_user, task_id)
    return TaskResponse(data=TaskData(task=TaskOut.model_validate(task)))


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    body: TaskWrite,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
) -> TaskResponse:
    task = task_service.update_task(
        db, current_user, task_id, body.title, body.description, body.status, body.priority
    )
    return TaskResponse(
        message="Task updated successfully",
        data=TaskData(task=TaskOut.model_validate(task)),
    )


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[Identity, Depends(require_user)],
) -> MessageResponse:
    task_service.delete_task(db, current_user, task_id)
    return MessageResponse(message="Task deleted successfully")
