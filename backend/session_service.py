"""
Session lifecycle controller: loads a user's session, applies a
session_machine transition and persists it.

Writes are optimistic. Every focus_sessions row carries a version; the
mutated session is written with UPDATE ... WHERE id = ? AND version = ?,
so of two concurrent requests on the same session only one wins and the
other gets a Conflict. The one-active-session-per-user rule is checked
before insert and backed by a partial unique index.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

import metrics
import notifications
import session_machine
import task_store
from clock import utcnow
from errors import Conflict, NotFound
from models import FocusSession, SessionStatus, Task

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(self, db: Session, clock: Callable = utcnow):
        self.db = db
        self.clock = clock

    # --- reads ---

    def active_session(self, user_id: str) -> Optional[FocusSession]:
        statement = select(FocusSession).where(
            FocusSession.user_id == user_id,
            FocusSession.status == SessionStatus.ACTIVE,
        )
        return self.db.exec(statement).first()

    def get(self, user_id: str, session_id: str) -> FocusSession:
        statement = select(FocusSession).where(
            FocusSession.id == session_id, FocusSession.user_id == user_id
        )
        focus_session = self.db.exec(statement).one_or_none()
        if focus_session is None:
            raise NotFound("Session not found")
        return focus_session

    def _load_for_update(self, user_id: str, session_id: str) -> FocusSession:
        focus_session = self.get(user_id, session_id)
        # Detached, so the only write is the versioned UPDATE in _save.
        self.db.expunge(focus_session)
        return focus_session

    # --- writes ---

    def _save(self, focus_session: FocusSession) -> None:
        expected = focus_session.version
        values = focus_session.model_dump(exclude={"id", "version", "user_id", "task_id"})
        result = self.db.exec(
            update(FocusSession)
            .where(FocusSession.id == focus_session.id, FocusSession.version == expected)
            .values(version=expected + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise Conflict("Session was modified by another request, reload and retry")
        focus_session.version = expected + 1

    def _report_to_task(self, focus_session: FocusSession, progress) -> None:
        if progress is not None:
            task_store.increment_task_progress(self.db, focus_session.task_id, progress)

    def start(
        self,
        user_id: str,
        task_ids,
        planned_minutes=None,
        email: str | None = None,
    ) -> tuple[FocusSession, Task]:
        task_id = session_machine.validate_task_ids(task_ids)

        existing = self.active_session(user_id)
        if existing is not None:
            raise Conflict(
                f"A session is already active ({existing.id}); stop it before starting a new one"
            )

        task = task_store.find_task_for_user(self.db, task_id, user_id, email)
        if task is None:
            raise NotFound(f"Task {task_id} not found or not shared with you")

        focus_session = session_machine.new_session(
            user_id, task.id, planned_minutes, now=self.clock()
        )
        self.db.add(focus_session)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("A session is already active; stop it before starting a new one")
        self.db.refresh(focus_session)
        self.db.refresh(task)
        logger.info("Session %s started on task %s for user %s", focus_session.id, task.id, user_id)
        return focus_session, task

    def enable_focus(self, user_id: str, session_id: str, planned_minutes=None) -> FocusSession:
        focus_session = self._load_for_update(user_id, session_id)
        session_machine.enable_focus(focus_session, planned_minutes)
        self._save(focus_session)
        self.db.commit()
        return focus_session

    def enable_pomodoro(self, user_id: str, session_id: str, cycle_minutes, total_cycles) -> FocusSession:
        focus_session = self._load_for_update(user_id, session_id)
        session_machine.enable_pomodoro(focus_session, cycle_minutes, total_cycles)
        self._save(focus_session)
        self.db.commit()
        return focus_session

    def set_timer(self, user_id: str, session_id: str, action: str) -> FocusSession:
        focus_session = self._load_for_update(user_id, session_id)
        session_machine.set_timer(focus_session, action)
        self._save(focus_session)
        self.db.commit()
        return focus_session

    def update_elapsed(
        self, user_id: str, session_id: str, elapsed_seconds
    ) -> tuple[FocusSession, session_machine.ElapsedUpdate]:
        focus_session = self._load_for_update(user_id, session_id)
        outcome = session_machine.update_elapsed(focus_session, elapsed_seconds, self.clock())
        self._save(focus_session)
        self._report_to_task(focus_session, outcome.task_progress)
        self.db.commit()
        if outcome.session_completed:
            notifications.session_completed(
                self.db, user_id, metrics.summary(focus_session), automatic=True
            )
        return focus_session, outcome

    def stop(self, user_id: str, session_id: str, action: str, notes: str | None = None) -> FocusSession:
        focus_session = self._load_for_update(user_id, session_id)
        progress = session_machine.stop(focus_session, action, self.clock(), notes)
        self._save(focus_session)
        self._report_to_task(focus_session, progress)
        self.db.commit()
        if action == "complete":
            notifications.session_completed(self.db, user_id, metrics.summary(focus_session))
        return focus_session

    def refresh_efficiency(self, focus_session: FocusSession) -> FocusSession:
        """Bring the cached efficiency of an active session up to date."""
        score = metrics.efficiency(focus_session)
        if score == focus_session.efficiency_percent:
            return focus_session
        self.db.expunge(focus_session)
        focus_session.efficiency_percent = score
        try:
            self._save(focus_session)
        except Conflict:
            # Another request updated the row first; serve the fresh copy.
            return self.get(focus_session.user_id, focus_session.id)
        self.db.commit()
        return focus_session
