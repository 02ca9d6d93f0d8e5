"""
Derived session metrics.

Everything here is a pure function of a FocusSession's fields. Only the
efficiency score is ever written back (as efficiency_percent, a cached
snapshot); the rest is recomputed whenever a response is built.
"""
from __future__ import annotations

import math
from typing import Optional

from clock import as_utc
from constants import (
    EFFICIENCY_FULL_POMODORO,
    EFFICIENCY_SHORT,
    FULL_POMODORO_SECONDS,
    PAUSE_PENALTY_PERCENT,
    SECONDS_LOST_PER_PAUSE,
)
from models import FocusSession


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def efficiency(session: FocusSession) -> int:
    """0-100 score: share of the planned time reached, minus a penalty per pause.

    Without a planned duration, a flat score stands in: a full notional
    Pomodoro (25 min) of effort scores 80, anything shorter 50.
    """
    planned = session.planned_seconds
    if planned and planned > 0:
        time_share = min(100.0, session.elapsed_seconds / planned * 100)
        score = time_share - session.pause_count * PAUSE_PENALTY_PERCENT
        return max(0, min(100, _round_half_up(score)))
    if session.elapsed_seconds >= FULL_POMODORO_SECONDS:
        return EFFICIENCY_FULL_POMODORO
    return EFFICIENCY_SHORT


def _has_cycles(session: FocusSession) -> bool:
    return bool(session.pomodoro_enabled and session.cycle_duration_seconds)


def remaining_in_cycle(session: FocusSession) -> Optional[int]:
    if not _has_cycles(session):
        return None
    cycle = session.cycle_duration_seconds
    return cycle - (session.elapsed_seconds % cycle)


def cycle_progress_percent(session: FocusSession) -> float:
    if not _has_cycles(session):
        return 0.0
    cycle = session.cycle_duration_seconds
    return min(100.0, (session.elapsed_seconds % cycle) / cycle * 100)


def productive_seconds(session: FocusSession) -> int:
    """Elapsed time minus one assumed minute of lost focus per pause."""
    return max(0, session.elapsed_seconds - session.pause_count * SECONDS_LOST_PER_PAUSE)


def remaining_seconds(session: FocusSession) -> Optional[int]:
    if _has_cycles(session):
        return remaining_in_cycle(session)
    if session.planned_seconds and session.planned_seconds > 0:
        return max(0, session.planned_seconds - session.elapsed_seconds)
    return None


def progress_percent(session: FocusSession) -> float:
    if _has_cycles(session):
        return cycle_progress_percent(session)
    if session.planned_seconds and session.planned_seconds > 0:
        return min(100.0, session.elapsed_seconds / session.planned_seconds * 100)
    return 0.0


def total_duration_seconds(session: FocusSession) -> int:
    """Wall-clock length for a finished session, reported elapsed time otherwise."""
    if session.ended_at and session.started_at:
        return max(0, int((as_utc(session.ended_at) - as_utc(session.started_at)).total_seconds()))
    return session.elapsed_seconds or 0


def format_duration(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}min"
    if minutes:
        return f"{minutes}min {secs}s"
    return f"{secs}s"


def completed_work_cycles(session: FocusSession) -> int:
    # cycles_elapsed counts work->break and break->work transitions alike.
    return session.cycles_elapsed // 2


def session_mode(session: FocusSession) -> str:
    if session.pomodoro_enabled:
        return "Pomodoro"
    if session.focus_enabled:
        return "Focus"
    return "Standard"


def pomodoro_info(session: FocusSession) -> Optional[dict]:
    if not _has_cycles(session):
        return None
    cycle = session.cycle_duration_seconds
    return {
        "cycleNumber": session.elapsed_seconds // cycle + 1,
        "totalCycles": session.total_cycles_planned,
        "remainingTime": remaining_in_cycle(session),
        "progress": round(cycle_progress_percent(session), 2),
        "cycleType": session.current_cycle_kind.value,
        "completedCycles": completed_work_cycles(session),
    }


def derived_fields(session: FocusSession) -> dict:
    return {
        "remaining_seconds": remaining_seconds(session),
        "progress_percent": round(progress_percent(session), 2),
        "productive_seconds": productive_seconds(session),
        "total_duration_seconds": total_duration_seconds(session),
        "formatted_duration": format_duration(total_duration_seconds(session)),
        "mode": session_mode(session),
    }


def summary(session: FocusSession) -> dict:
    """Final stats reported when a session ends."""
    return {
        "totalDuration": session.elapsed_seconds,
        "productiveTime": productive_seconds(session),
        "efficiency": session.efficiency_percent,
        "pauseCount": session.pause_count,
        "completedCycles": completed_work_cycles(session) if session.pomodoro_enabled else 0,
        "taskId": session.task_id,
        "technique": session_mode(session),
    }
