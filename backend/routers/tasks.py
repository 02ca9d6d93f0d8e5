"""
Tasks: the records focus sessions are bound to. Create, list, read, update,
soft delete, and share with (or unshare from) another user by email.
"""
import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

import task_store
from clock import as_utc, utcnow
from constants import TASK_TITLE_MAX_LENGTH
from db import get_session
from deps import current_user_email, current_user_id
from errors import Forbidden, InvalidArgument, NotFound
from models import Task, TaskPriority, TaskStatus
from schemas import CamelModel, to_api

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


class TaskCreate(CamelModel):
    title: str
    description: Optional[str] = None
    module: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    estimated_minutes: Optional[int] = None


class TaskUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    module: Optional[str] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    due_date: Optional[datetime] = None
    estimated_minutes: Optional[int] = None


class ShareRequest(CamelModel):
    email: str


def _clean_title(title: str) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidArgument("title is required")
    if len(title) > TASK_TITLE_MAX_LENGTH:
        raise InvalidArgument(f"title cannot exceed {TASK_TITLE_MAX_LENGTH} characters")
    return title


def _check_estimate(minutes: Optional[int]) -> None:
    if minutes is not None and minutes < 0:
        raise InvalidArgument("estimatedMinutes cannot be negative")


def _clean_email(value: str) -> str:
    value = (value or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise InvalidArgument("Invalid email address")
    return value


def _get_visible(db: Session, task_id: str, user_id: str, email: str | None) -> Task:
    task = task_store.find_task_for_user(db, task_id, user_id, email)
    if task is None:
        raise NotFound("Task not found")
    return task


def serialize_task(task: Task) -> dict:
    if task.estimated_minutes:
        progress = min(100, round(task.time_spent / (task.estimated_minutes * 60) * 100))
    else:
        progress = 0
    overdue = bool(
        task.due_date and task.status != TaskStatus.DONE and as_utc(task.due_date) < utcnow()
    )
    return to_api(task, progress_percent=progress, is_overdue=overdue)


@router.get("/tasks")
def list_tasks(
    status: Optional[TaskStatus] = None,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    """Tasks the user created or that are shared with them, by due date."""
    tasks = task_store.visible_tasks(db, user_id, email)
    if status is not None:
        tasks = [t for t in tasks if t.status == status]
    return [serialize_task(t) for t in tasks]


@router.post("/tasks", status_code=201)
def create_task(
    req: TaskCreate,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    _check_estimate(req.estimated_minutes)
    task = Task(
        user_id=user_id,
        title=_clean_title(req.title),
        description=(req.description or "").strip() or None,
        module=(req.module or "").strip() or None,
        priority=req.priority,
        due_date=as_utc(req.due_date),
        estimated_minutes=req.estimated_minutes,
        owners=[email] if email else [],
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return serialize_task(task)


@router.get("/tasks/{task_id}")
def get_task(
    task_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    return serialize_task(_get_visible(db, task_id, user_id, email))


@router.put("/tasks/{task_id}")
def update_task(
    task_id: str,
    req: TaskUpdate,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    task = _get_visible(db, task_id, user_id, email)
    changes = req.model_dump(exclude_unset=True)
    if "title" in changes:
        changes["title"] = _clean_title(changes["title"])
    if changes.get("status") == TaskStatus.DELETED:
        raise InvalidArgument("use DELETE to remove a task")
    _check_estimate(changes.get("estimated_minutes"))
    if "due_date" in changes:
        changes["due_date"] = as_utc(changes["due_date"])

    for field, value in changes.items():
        setattr(task, field, value)
    if "status" in changes:
        task.completed_at = utcnow() if task.status == TaskStatus.DONE else None
    task.updated_at = utcnow()
    db.add(task)
    db.commit()
    db.refresh(task)
    return serialize_task(task)


@router.delete("/tasks/{task_id}")
def delete_task(
    task_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    """Soft delete: the task disappears from lists and can no longer start sessions."""
    task = _get_visible(db, task_id, user_id, email)
    task.status = TaskStatus.DELETED
    task.deleted_at = utcnow()
    task.updated_at = task.deleted_at
    db.add(task)
    db.commit()
    return {"status": "deleted", "id": task_id}


@router.put("/tasks/{task_id}/share")
def share_task(
    task_id: str,
    req: ShareRequest,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    """Share a task with another user's email so they can work on it too."""
    target = _clean_email(req.email)
    if target == email:
        raise InvalidArgument("You cannot share a task with yourself")
    task = _get_visible(db, task_id, user_id, email)
    if target not in (o.lower() for o in task.owners):
        # Reassign so the JSON column is flagged as changed.
        task.owners = [*task.owners, target]
        task.updated_at = utcnow()
        db.add(task)
        db.commit()
        db.refresh(task)
    return serialize_task(task)


@router.put("/tasks/{task_id}/unshare")
def unshare_task(
    task_id: str,
    req: ShareRequest,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
):
    """Remove a collaborator. Only the task's creator can do this."""
    target = _clean_email(req.email)
    task = _get_visible(db, task_id, user_id, email)
    if task.user_id != user_id:
        raise Forbidden("Only the task's creator can remove collaborators")
    if target == email:
        raise InvalidArgument("The task's creator cannot be removed")
    if target not in task.owners:
        raise InvalidArgument(f"{target} is not a collaborator on this task")
    task.owners = [o for o in task.owners if o != target]
    task.updated_at = utcnow()
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("Task %s no longer shared with %s", task_id, target)
    return serialize_task(task)
