"""
Dashboard: one call with task counts and recent focus time.
"""
from collections import Counter
from datetime import timedelta
from typing import Callable

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

import metrics
import task_store
from clock import as_utc
from db import get_session
from deps import current_user_email, current_user_id, get_clock
from models import FocusSession, SessionStatus, TaskStatus

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard")
def get_dashboard(
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
    clock: Callable = Depends(get_clock),
):
    now = clock()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today - timedelta(days=today.weekday())

    tasks = task_store.visible_tasks(db, user_id, email)
    by_status = Counter(t.status.value for t in tasks)
    overdue = sum(
        1 for t in tasks
        if t.due_date and as_utc(t.due_date) < now and t.status != TaskStatus.DONE
    )

    statement = select(FocusSession).where(
        FocusSession.user_id == user_id,
        FocusSession.status == SessionStatus.COMPLETED,
        FocusSession.ended_at >= week_start,
    )
    week_sessions = db.exec(statement).all()
    today_sessions = [s for s in week_sessions if as_utc(s.ended_at) >= today]

    active = db.exec(
        select(FocusSession).where(
            FocusSession.user_id == user_id, FocusSession.status == SessionStatus.ACTIVE
        )
    ).first()

    total = len(tasks)
    done = by_status.get(TaskStatus.DONE.value, 0)
    return {
        "tasks": {
            "total": total,
            "byStatus": {status.value: by_status.get(status.value, 0)
                         for status in TaskStatus if status is not TaskStatus.DELETED},
            "overdue": overdue,
            "completionRate": round(done / total * 100) if total else 0,
        },
        "focus": {
            "todaySeconds": sum(s.elapsed_seconds for s in today_sessions),
            "todaySessions": len(today_sessions),
            "weekSeconds": sum(s.elapsed_seconds for s in week_sessions),
            "weekSessions": len(week_sessions),
            "weekFormatted": metrics.format_duration(sum(s.elapsed_seconds for s in week_sessions)),
        },
        "activeSession": {
            "id": active.id,
            "taskId": active.task_id,
            "elapsedSeconds": active.elapsed_seconds,
            "mode": metrics.session_mode(active),
        } if active else None,
    }
