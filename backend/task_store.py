"""
Task lookups and progress updates used by the session manager.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import String, cast, or_, update
from sqlmodel import Session, select

from clock import utcnow
from models import Task, TaskStatus
from session_machine import TaskProgress

logger = logging.getLogger(__name__)


def find_task_for_user(db: Session, task_id: str, user_id: str, email: str | None = None) -> Optional[Task]:
    """The task if the user created it or it is shared with their email."""
    task = db.get(Task, task_id)
    if task is None or not task.is_visible_to(user_id, email):
        return None
    return task


def _shared_with(email: str):
    """owners holds a JSON list of lower-cased emails; match one quoted element."""
    escaped = email.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return cast(Task.owners, String).like(f'%"{escaped}"%', escape="\\")


def visible_tasks(db: Session, user_id: str, email: str | None = None) -> list[Task]:
    """Non-deleted tasks the user created or that are shared with their email."""
    visible = Task.user_id == user_id
    if email:
        visible = or_(visible, _shared_with(email))
    statement = (
        select(Task)
        .where(Task.status != TaskStatus.DELETED, visible)
        .order_by(Task.due_date, Task.created_at)
    )
    return list(db.exec(statement).all())


def increment_task_progress(db: Session, task_id: str, progress: TaskProgress) -> None:
    """Apply a session's report to its task in the current transaction.

    Counters are incremented in SQL so concurrent reports do not overwrite
    each other; the status change only applies if the task is still in the
    expected prior status.
    """
    now = utcnow()
    db.exec(
        update(Task)
        .where(Task.id == task_id)
        .values(
            time_spent=Task.time_spent + progress.time_spent_delta,
            pomodoro_count=Task.pomodoro_count + progress.pomodoro_count_delta,
            updated_at=now,
        )
    )
    if progress.status_transition:
        before, after = progress.status_transition
        result = db.exec(
            update(Task)
            .where(Task.id == task_id, Task.status == before)
            .values(status=after, updated_at=now)
        )
        if result.rowcount:
            logger.info("Task %s moved from %s to %s", task_id, before.value, after.value)
    logger.info(
        "Task %s: +%ds, +%d pomodoros",
        task_id, progress.time_spent_delta, progress.pomodoro_count_delta,
    )
