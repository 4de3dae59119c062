"""Request/response schemas for task endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TaskWrite(BaseModel):
    """Body for create and update; validated by app.services.tasks."""

    title: str | None = None
    description: str | None = None
    status: str | None = Field(default=None, description="'To Do', 'In Progress' or 'Done'")
    priority: str | None = Field(default=None, description="'Low', 'Medium' or 'High'")


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: str
    priority: str
    user_id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AdminTaskOut(TaskOut):
    username: str
    email: str


class TaskData(BaseModel):
    task: TaskOut


class TaskResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: TaskData


class TaskListData(BaseModel):
    tasks: list[TaskOut]
    count: int


class TaskListResponse(BaseModel):
    success: bool = True
    data: TaskListData


class AdminTaskListData(BaseModel):
    tasks: list[AdminTaskOut]
    count: int


class AdminTaskListResponse(BaseModel):
    success: bool = True
    data: AdminTaskListData


class TaskStats(BaseModel):
    total: int
    todo: int
    in_progress: int
    done: int


class TaskStatsData(BaseModel):
    stats: TaskStats


class TaskStatsResponse(BaseModel):
    success: bool = True
    data: TaskStatsData
