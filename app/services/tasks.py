"""Task CRUD, search and statistics with owner/admin visibility rules."""

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationError
from app.models import Task, User
from app.models.task import TASK_PRIORITIES, TASK_STATUSES

if TYPE_CHECKING:
    from app.services.credentials import Identity

logger = logging.getLogger(__name__)

TITLE_MAX_LEN = 255
DESCRIPTION_MAX_LEN = 1000


def validate_task_fields(
    title: Any,
    description: Any = None,
    status: Any = None,
    priority: Any = None,
) -> None:
    """Raise ValidationError describing the first invalid field."""
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Task title is required and must be a non-empty string.")
    if len(title) > TITLE_MAX_LEN:
        raise ValidationError(f"Task title must be at most {TITLE_MAX_LEN} characters.")
    if description is not None and len(description) > DESCRIPTION_MAX_LEN:
        raise ValidationError(f"Task description must be at most {DESCRIPTION_MAX_LEN} characters.")
    if status is not None and status not in TASK_STATUSES:
        raise ValidationError("Status must be one of: 'To Do', 'In Progress', 'Done'.")
    if priority is not None and priority not in TASK_PRIORITIES:
        raise ValidationError("Priority must be one of: 'Low', 'Medium', 'High'.")


def _visible(db: Session, actor: "Identity"):
    query = db.query(Task)
    if not actor.is_admin:
        query = query.filter(Task.user_id == actor.id)
    return query


def create_task(
    db: Session,
    actor: "Identity",
    title: str,
    description: str | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> Task:
    validate_task_fields(title, description, status, priority)
    task = Task(
        title=title,
        description=description or "",
        status=status or "To Do",
        priority=priority or "Medium",
        user_id=actor.id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("Task created", extra={"task_id": task.id, "account_id": actor.id})
    return task


def list_tasks(
    db: Session,
    owner_id: int | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> list[Task]:
    """Tasks newest first; owner_id=None lists every account's tasks."""
    query = db.query(Task)
    if owner_id is not None:
        query = query.filter(Task.user_id == owner_id)
    if status:
        query = query.filter(Task.status == status)
    if priority:
        query = query.filter(Task.priority == priority)
    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()


def list_tasks_with_owners(
    db: Session,
    status: str | None = None,
    priority: str | None = None,
    user_id: int | None = None,
) -> list[tuple[Task, str, str]]:
    """Admin listing: (task, owner username, owner email) rows, newest first."""
    query = db.query(Task, User.username, User.email).join(User, Task.user_id == User.id)
    if status:
        query = query.filter(Task.status == status)
    if priority:
        query = query.filter(Task.priority == priority)
    if user_id is not None:
        query = query.filter(Task.user_id == user_id)
    rows = query.order_by(Task.created_at.desc(), Task.id.desc()).all()
    return [(task, username, email) for task, username, email in rows]


def get_task(db: Session, actor: "Identity", task_id: int) -> Task:
    """Owners see their own tasks, admins see every task; anything else is 404."""
    task = _visible(db, actor).filter(Task.id == task_id).first()
    if task is None:
        raise NotFoundError("Task not found")
    return task


def update_task(
    db: Session,
    actor: "Identity",
    task_id: int,
    title: str,
    description: str | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> Task:
    validate_task_fields(title, description, status, priority)
    task = _visible(db, actor).filter(Task.id == task_id).first()
    if task is None:
        raise NotFoundError("Task not found or you don't have permission to update it")
    task.title = title
    if description is not None:
        task.description = description
    if status is not None:
        task.status = status
    if priority is not None:
        task.priority = priority
    db.commit()
    db.refresh(task)
    logger.info("Task updated", extra={"task_id": task.id, "account_id": actor.id})
    return task


def delete_task(db: Session, actor: "Identity", task_id: int) -> None:
    deleted = (
        _visible(db, actor)
        .filter(Task.id == task_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted == 0:
        raise NotFoundError("Task not found or you don't have permission to delete it")
    logger.info("Task deleted", extra={"task_id": task_id, "account_id": actor.id})


def search_tasks(db: Session, actor: "Identity", text: str | None) -> list[Task]:
    """Case-insensitive substring match over title and description."""
    if not text or not text.strip():
        raise ValidationError("Query parameter is required")
    needle = f"%{text.strip().lower()}%"
    return (
        _visible(db, actor)
        .filter(
            func.lower(Task.title).like(needle) | func.lower(Task.description).like(needle)
        )
        .order_by(Task.created_at.desc(), Task.id.desc())
        .all()
    )


def task_stats(db: Session, actor: "Identity") -> dict[str, int]:
    """Counts per status; admins get totals across all accounts."""
    query = db.query(Task.status, func.count(Task.id))
    if not actor.is_admin:
        query = query.filter(Task.user_id == actor.id)
    counts = dict(query.group_by(Task.status).all())
    return {
        "total": sum(counts.values()),
        "todo": counts.get("To Do", 0),
        "in_progress": counts.get("In Progress", 0),
        "done": counts.get("Done", 0),
    }
