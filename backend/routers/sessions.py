"""
Focus sessions: the active session, focus and Pomodoro ("chronodoro") modes,
timer control, elapsed-time updates, stop, history and stats, plus a
calendar link for blocking the session's time.
"""
import math
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session, func, select

import metrics
from clock import as_utc
from constants import DEFAULT_CYCLE_MINUTES, DEFAULT_TOTAL_CYCLES
from db import get_session
from deps import current_user_email, current_user_id, get_clock, get_session_service
from errors import InvalidArgument
from models import FocusSession, SessionStatus, Task
from schemas import CamelModel, to_api
from session_service import SessionService

router = APIRouter(prefix="/api", tags=["sessions"])

TERMINAL_STATUSES = (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class StartSessionRequest(CamelModel):
    task_ids: Optional[list[str]] = None
    planned_minutes: Optional[int] = None


class FocusRequest(CamelModel):
    planned_minutes: Optional[int] = None


class ChronodoroRequest(CamelModel):
    cycle_minutes: int = DEFAULT_CYCLE_MINUTES
    total_cycles: int = DEFAULT_TOTAL_CYCLES


class TimerRequest(CamelModel):
    action: str


class UpdateElapsedRequest(CamelModel):
    elapsed_seconds: float


class StopRequest(CamelModel):
    action: str = "complete"
    notes: Optional[str] = None


def serialize_session(session: FocusSession) -> dict:
    return to_api(session, **metrics.derived_fields(session))


def _task_brief(task: Task) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "module": task.module,
        "priority": task.priority.value,
        "status": task.status.value,
    }


@router.get("/sessions/active")
def get_active_session(
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """The user's active session (or null), with Pomodoro sub-state."""
    session = service.active_session(user_id)
    if session is None:
        return {"activeSession": None, "pomodoroInfo": None, "message": "No active session"}
    session = service.refresh_efficiency(session)
    return {
        "activeSession": serialize_session(session),
        "pomodoroInfo": metrics.pomodoro_info(session),
        "message": "Active session found",
    }


@router.post("/sessions/start", status_code=201)
def start_session(
    req: StartSessionRequest,
    user_id: str = Depends(current_user_id),
    email: str | None = Depends(current_user_email),
    service: SessionService = Depends(get_session_service),
):
    """Start a session on exactly one task. Fails if one is already active."""
    session, task = service.start(user_id, req.task_ids, req.planned_minutes, email=email)
    return {
        "session": serialize_session(session),
        "task": _task_brief(task),
        "message": "Session started",
    }


@router.put("/sessions/{session_id}/focus")
def enable_focus(
    session_id: str,
    req: Optional[FocusRequest] = None,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Focus-only mode: notifications off, one timer toward an optional planned duration."""
    planned_minutes = req.planned_minutes if req else None
    session = service.enable_focus(user_id, session_id, planned_minutes)
    return {
        "session": serialize_session(session),
        "message": "Focus mode enabled",
        "focusType": "fixed" if planned_minutes else "open",
        "notificationsBlocked": session.notifications_suppressed,
    }


@router.put("/sessions/{session_id}/chronodoro")
def enable_chronodoro(
    session_id: str,
    req: Optional[ChronodoroRequest] = None,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Focus + Pomodoro mode: alternating work and break cycles."""
    req = req or ChronodoroRequest()
    session = service.enable_pomodoro(user_id, session_id, req.cycle_minutes, req.total_cycles)
    return {
        "session": serialize_session(session),
        "pomodoroInfo": metrics.pomodoro_info(session),
        "message": "Focus + Pomodoro mode started",
    }


@router.put("/sessions/{session_id}/timer")
def control_timer(
    session_id: str,
    req: TimerRequest,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = service.set_timer(user_id, session_id, req.action)
    return {
        "session": serialize_session(session),
        "message": "Timer paused" if req.action == "pause" else "Timer resumed",
        "timerState": {
            "running": session.timer_running,
            "paused": session.timer_paused,
            "totalPauses": session.pause_count,
        },
        "pomodoroInfo": metrics.pomodoro_info(session),
    }


@router.put("/sessions/{session_id}/update")
def update_elapsed(
    session_id: str,
    req: UpdateElapsedRequest,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Report elapsed seconds; may cross Pomodoro cycles or finish the session."""
    session, outcome = service.update_elapsed(user_id, session_id, req.elapsed_seconds)
    if outcome.session_completed:
        return {
            "session": None,
            "sessionCompleted": True,
            "message": "All Pomodoro cycles completed",
            "stats": metrics.summary(session),
        }
    return {
        "session": serialize_session(session),
        "sessionCompleted": False,
        "pomodoroInfo": metrics.pomodoro_info(session),
        "cycleCompleted": outcome.cycle_completed,
        "nextCycle": outcome.next_cycle.as_dict() if outcome.next_cycle else None,
        "message": "Cycle completed" if outcome.cycle_completed else "Session updated",
    }


@router.put("/sessions/{session_id}/stop")
def stop_session(
    session_id: str,
    req: Optional[StopRequest] = None,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Complete or cancel a session. A finished session cannot be stopped again."""
    req = req or StopRequest()
    session = service.stop(user_id, session_id, req.action, req.notes)
    completed = session.status == SessionStatus.COMPLETED
    return {
        "session": serialize_session(session),
        "message": "Session completed" if completed else "Session cancelled",
        "stats": metrics.summary(session) if completed else None,
    }


@router.get("/sessions/history")
def session_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Optional[str] = None,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    """Finished sessions, most recently ended first."""
    statuses = TERMINAL_STATUSES
    if status:
        try:
            wanted = SessionStatus(status)
        except ValueError:
            raise InvalidArgument('status must be "completed" or "cancelled"')
        if wanted not in TERMINAL_STATUSES:
            raise InvalidArgument('status must be "completed" or "cancelled"')
        statuses = (wanted,)

    conditions = (FocusSession.user_id == user_id, FocusSession.status.in_(statuses))
    total = db.exec(select(func.count()).select_from(FocusSession).where(*conditions)).one()
    statement = (
        select(FocusSession)
        .where(*conditions)
        .order_by(FocusSession.ended_at.desc(), FocusSession.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    sessions = db.exec(statement).all()
    return {
        "sessions": [serialize_session(s) for s in sessions],
        "pagination": {
            "current": page,
            "pages": (total + limit - 1) // limit,
            "count": total,
            "hasNext": page * limit < total,
            "hasPrev": page > 1,
        },
    }


def _period_start(period: str, now: datetime) -> datetime:
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return now - timedelta(days=7)


@router.get("/sessions/stats")
def session_stats(
    period: str = "week",
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    clock: Callable = Depends(get_clock),
):
    """Aggregates over finished sessions for today, the last 7 days or this month."""
    if period not in ("today", "week", "month"):
        period = "week"
    now = clock()
    start = _period_start(period, now)

    statement = select(FocusSession).where(
        FocusSession.user_id == user_id,
        FocusSession.status.in_(TERMINAL_STATUSES),
        FocusSession.created_at >= start,
    )
    sessions = db.exec(statement).all()

    completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
    total_seconds = sum(s.elapsed_seconds for s in completed)
    focus_seconds = sum(s.elapsed_seconds for s in completed if s.focus_enabled)
    pomodoro_sessions = [s for s in completed if s.pomodoro_enabled]
    pomodoro_cycles = sum(metrics.completed_work_cycles(s) for s in pomodoro_sessions)
    efficiencies = [s.efficiency_percent for s in completed]

    completion_rate = round(len(completed) / len(sessions) * 100) if sessions else 0
    average_seconds = round(total_seconds / len(completed)) if completed else 0

    return {
        "period": {
            "type": period,
            "start": start.isoformat(),
            "end": now.isoformat(),
            "days": max(1, math.ceil((now - start).total_seconds() / 86400)),
        },
        "sessions": {
            "total": len(sessions),
            "completed": len(completed),
            "completionRate": completion_rate,
            "averageSeconds": average_seconds,
        },
        "time": {
            "total": total_seconds,
            "focus": focus_seconds,
            "formatted": {
                "total": metrics.format_duration(total_seconds),
                "focus": metrics.format_duration(focus_seconds),
                "average": metrics.format_duration(average_seconds),
            },
            "focusPercent": round(focus_seconds / total_seconds * 100) if total_seconds else 0,
        },
        "pomodoro": {
            "cycles": pomodoro_cycles,
            "sessions": len(pomodoro_sessions),
        },
        "performance": {
            "averageEfficiency": round(sum(efficiencies) / len(efficiencies)) if efficiencies else 0,
            "completionRate": completion_rate,
        },
    }


@router.get("/sessions/{session_id}")
def get_session_by_id(
    session_id: str,
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    session = service.get(user_id, session_id)
    return {"session": serialize_session(session), "pomodoroInfo": metrics.pomodoro_info(session)}


# --- Calendar link helpers ---

def _to_google_calendar_format(dt: datetime) -> str:
    """Format as YYYYMMDDTHHMMSSZ for Google Calendar URL."""
    return as_utc(dt).strftime("%Y%m%dT%H%M%SZ")


@router.get("/sessions/{session_id}/calendar-link")
def get_calendar_link(
    session_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """
    Get a Google Calendar URL for this session so the user can block time.
    An unfinished session ends at start + planned time, or start + 60 minutes.
    """
    session = service.get(user_id, session_id)
    start_dt = session.started_at
    if session.ended_at:
        end_dt = session.ended_at
    else:
        end_dt = start_dt + timedelta(seconds=session.planned_seconds or 3600)
    task = db.get(Task, session.task_id)
    title = ((task.title if task else "") or "Focus").strip()
    params = {
        "action": "TEMPLATE",
        "text": title,
        "dates": f"{_to_google_calendar_format(start_dt)}/{_to_google_calendar_format(end_dt)}",
        "details": f"{metrics.session_mode(session)} session",
    }
    qs = "&".join(f"{k}={quote(str(v))}" for k, v in params.items())
    url = f"https://calendar.google.com/calendar/render?{qs}"
    return {"url": url, "title": title}
