"""
Focus session state machine.

Transitions operate in memory on a FocusSession and raise errors.FocusError
subclasses when a precondition does not hold. Loading, persisting and the
task-store side effects live in session_service.py.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import metrics
from constants import (
    CYCLE_MINUTES_MAX,
    CYCLE_MINUTES_MIN,
    DEFAULT_CYCLE_MINUTES,
    DEFAULT_TOTAL_CYCLES,
    LONG_BREAK_SECONDS,
    MIN_REPORTED_SECONDS,
    NOTES_MAX_LENGTH,
    PLANNED_MINUTES_MAX,
    PLANNED_MINUTES_MIN,
    PROMOTE_TASK_AFTER_SECONDS,
    SHORT_BREAK_SECONDS,
    TOTAL_CYCLES_MAX,
    TOTAL_CYCLES_MIN,
    WORK_CYCLES_PER_LONG_BREAK,
)
from errors import Conflict, InvalidArgument, InvalidState, PreconditionFailed
from models import CycleKind, FocusSession, SessionStatus, TaskStatus

logger = logging.getLogger(__name__)

TIMER_ACTIONS = ("pause", "resume")
STOP_ACTIONS = ("complete", "cancel")


@dataclass
class TaskProgress:
    """What a completed session reports back to its task."""
    time_spent_delta: int
    pomodoro_count_delta: int = 0
    status_transition: Optional[tuple[TaskStatus, TaskStatus]] = None


@dataclass
class NextCycle:
    kind: CycleKind
    duration_seconds: int
    cycle_number: int
    is_long_break: bool = False

    def as_dict(self) -> dict:
        data = {
            "type": self.kind.value,
            "duration": self.duration_seconds,
            "cycleNumber": self.cycle_number,
        }
        if self.kind is CycleKind.BREAK:
            data["isLong"] = self.is_long_break
        return data


@dataclass
class ElapsedUpdate:
    cycle_completed: bool = False
    next_cycle: Optional[NextCycle] = None
    session_completed: bool = False
    task_progress: Optional[TaskProgress] = None


# --- validation ---

def _check_range(name: str, value, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f"{name} must be a number")
    if value < low or value > high:
        raise InvalidArgument(f"{name} must be between {low} and {high}")
    return int(value)


def validate_planned_minutes(planned_minutes) -> Optional[int]:
    if planned_minutes is None:
        return None
    return _check_range("plannedMinutes", planned_minutes, PLANNED_MINUTES_MIN, PLANNED_MINUTES_MAX)


def validate_task_ids(task_ids) -> str:
    """A session is bound to exactly one task."""
    if not isinstance(task_ids, list) or len(task_ids) != 1:
        count = len(task_ids) if isinstance(task_ids, list) else 0
        raise InvalidArgument(f"Exactly one task must be selected per session (received {count})")
    task_id = task_ids[0]
    if not isinstance(task_id, str) or not task_id.strip():
        raise InvalidArgument("Invalid task id")
    return task_id.strip()


def clean_notes(notes: Optional[str]) -> str:
    notes = (notes or "").strip()
    if len(notes) > NOTES_MAX_LENGTH:
        raise InvalidArgument(f"notes cannot exceed {NOTES_MAX_LENGTH} characters")
    return notes


def ensure_active(session: FocusSession) -> None:
    if session.status != SessionStatus.ACTIVE:
        raise InvalidState(f"Session is already {SessionStatus(session.status).value}")


# --- transitions ---

def new_session(user_id: str, task_id: str, planned_minutes=None, now: Optional[datetime] = None) -> FocusSession:
    planned = validate_planned_minutes(planned_minutes)
    session = FocusSession(
        user_id=user_id,
        task_id=task_id,
        planned_seconds=planned * 60 if planned else None,
        status=SessionStatus.ACTIVE,
    )
    if now is not None:
        session.started_at = now
        session.created_at = now
    return session


def _run_timer(session: FocusSession) -> None:
    session.timer_running = True
    session.timer_paused = False


def enable_focus(session: FocusSession, planned_minutes=None) -> None:
    ensure_active(session)
    planned = validate_planned_minutes(planned_minutes)
    if session.pomodoro_enabled:
        raise Conflict("Pomodoro mode is already active on this session; stop it to change mode")

    session.focus_enabled = True
    session.notifications_suppressed = True
    session.pomodoro_enabled = False
    _run_timer(session)
    if planned:
        session.planned_seconds = planned * 60
    logger.info("Focus mode enabled for session %s", session.id)


def enable_pomodoro(
    session: FocusSession,
    cycle_minutes=DEFAULT_CYCLE_MINUTES,
    total_cycles=DEFAULT_TOTAL_CYCLES,
) -> None:
    ensure_active(session)
    cycle_minutes = _check_range("cycleMinutes", cycle_minutes, CYCLE_MINUTES_MIN, CYCLE_MINUTES_MAX)
    total_cycles = _check_range("totalCycles", total_cycles, TOTAL_CYCLES_MIN, TOTAL_CYCLES_MAX)
    if session.pomodoro_enabled:
        raise Conflict("Pomodoro mode is already active on this session")

    session.pomodoro_enabled = True
    session.focus_enabled = True
    session.notifications_suppressed = True
    _run_timer(session)
    session.cycle_duration_seconds = cycle_minutes * 60
    session.total_cycles_planned = total_cycles
    session.cycles_elapsed = 0
    session.current_cycle_kind = CycleKind.WORK
    logger.info(
        "Pomodoro mode enabled for session %s: %d min x %d cycles",
        session.id, cycle_minutes, total_cycles,
    )


def set_timer(session: FocusSession, action: str) -> None:
    ensure_active(session)
    if action not in TIMER_ACTIONS:
        raise InvalidArgument('action must be "pause" or "resume"')
    if not session.focus_enabled:
        raise PreconditionFailed("Focus or Pomodoro mode must be active to control the timer")

    if action == "pause":
        if session.timer_paused:
            raise InvalidState("Timer is already paused")
        session.timer_running = False
        session.timer_paused = True
        session.pause_count = (session.pause_count or 0) + 1
    else:
        if not session.timer_paused:
            raise InvalidState("Timer is not paused")
        _run_timer(session)
    logger.info("Timer %s for session %s", action, session.id)


def _next_cycle(session: FocusSession) -> NextCycle:
    cycle_number = session.cycles_elapsed + 1
    if session.current_cycle_kind is CycleKind.BREAK:
        work_done = (session.cycles_elapsed + 1) // 2
        is_long = work_done > 0 and work_done % WORK_CYCLES_PER_LONG_BREAK == 0
        return NextCycle(
            kind=CycleKind.BREAK,
            duration_seconds=LONG_BREAK_SECONDS if is_long else SHORT_BREAK_SECONDS,
            cycle_number=cycle_number,
            is_long_break=is_long,
        )
    return NextCycle(
        kind=CycleKind.WORK,
        duration_seconds=session.cycle_duration_seconds,
        cycle_number=cycle_number,
    )


def update_elapsed(session: FocusSession, elapsed_seconds, now: datetime) -> ElapsedUpdate:
    """Record client-reported elapsed time and advance Pomodoro cycles.

    cycles_elapsed follows the number of whole cycle_duration_seconds
    elapsed. current_cycle_kind flips once per update that crosses at
    least one boundary, however many it skipped. Once cycles_elapsed // 2
    reaches the planned number of cycles the session completes on its own,
    exactly as a stop with action "complete" would.
    """
    ensure_active(session)
    if isinstance(elapsed_seconds, bool) or not isinstance(elapsed_seconds, (int, float)):
        raise InvalidArgument("elapsedSeconds must be a number")
    if elapsed_seconds < 0:
        raise InvalidArgument("elapsedSeconds must be a positive number")
    if not session.timer_running:
        raise PreconditionFailed("Timer is not running")
    elapsed_seconds = int(elapsed_seconds)
    if elapsed_seconds < session.elapsed_seconds:
        raise InvalidArgument("elapsedSeconds cannot go backwards")

    old_elapsed = session.elapsed_seconds
    session.elapsed_seconds = elapsed_seconds
    session.efficiency_percent = metrics.efficiency(session)

    result = ElapsedUpdate()
    cycle = session.cycle_duration_seconds
    if not (session.pomodoro_enabled and cycle):
        return result

    old_index = old_elapsed // cycle
    new_index = elapsed_seconds // cycle
    if new_index <= old_index:
        return result

    session.current_cycle_kind = (
        CycleKind.BREAK if session.current_cycle_kind is CycleKind.WORK else CycleKind.WORK
    )
    session.cycles_elapsed = new_index
    result.cycle_completed = True
    result.next_cycle = _next_cycle(session)
    logger.info(
        "Session %s crossed into cycle %d (%s)",
        session.id, new_index + 1, session.current_cycle_kind.value,
    )

    if metrics.completed_work_cycles(session) >= (session.total_cycles_planned or 0):
        result.task_progress = complete(session, now)
        result.session_completed = True
        logger.info("All Pomodoro cycles done, session %s completed", session.id)
    return result


def _task_progress(session: FocusSession) -> Optional[TaskProgress]:
    if session.elapsed_seconds <= MIN_REPORTED_SECONDS:
        return None
    progress = TaskProgress(time_spent_delta=session.elapsed_seconds)
    if session.pomodoro_enabled:
        progress.pomodoro_count_delta = metrics.completed_work_cycles(session)
    if session.elapsed_seconds > PROMOTE_TASK_AFTER_SECONDS:
        progress.status_transition = (TaskStatus.TODO, TaskStatus.IN_PROGRESS)
    return progress


def _finish(session: FocusSession, status: SessionStatus, now: datetime, notes: Optional[str]) -> None:
    session.status = status
    session.ended_at = now
    session.timer_running = False
    session.timer_paused = False
    if notes is not None:
        session.notes = notes


def complete(session: FocusSession, now: datetime, notes: Optional[str] = None) -> Optional[TaskProgress]:
    """Finish the session; returns what to report to the task, if anything."""
    ensure_active(session)
    notes = clean_notes(notes) if notes is not None else None
    _finish(session, SessionStatus.COMPLETED, now, notes)
    session.efficiency_percent = metrics.efficiency(session)
    logger.info(
        "Session %s completed after %d min", session.id, session.elapsed_seconds // 60,
    )
    return _task_progress(session)


def cancel(session: FocusSession, now: datetime, notes: Optional[str] = None) -> None:
    ensure_active(session)
    notes = clean_notes(notes) if notes is not None else None
    _finish(session, SessionStatus.CANCELLED, now, notes)
    session.efficiency_percent = 0
    logger.info("Session %s cancelled", session.id)


def stop(session: FocusSession, action: str, now: datetime, notes: Optional[str] = None) -> Optional[TaskProgress]:
    if action not in STOP_ACTIONS:
        raise InvalidArgument('action must be "complete" or "cancel"')
    if action == "complete":
        return complete(session, now, notes)
    cancel(session, now, notes)
    return None
