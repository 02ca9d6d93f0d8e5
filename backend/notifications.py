"""
In-app notifications. Writing one is a side channel: a failure is logged
and never fails the request that triggered it.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from models import Notification, NotificationKind

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: str,
    title: str,
    message: str | None = None,
    kind: NotificationKind = NotificationKind.INFO,
    data: dict | None = None,
) -> Optional[Notification]:
    """Write and commit a notification; returns None if that failed.

    Call it after the triggering change has been committed.
    """
    notification = Notification(
        user_id=user_id, title=title, message=message, kind=kind, data=data or {}
    )
    try:
        db.add(notification)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not store notification %r for user %s", title, user_id, exc_info=True)
        return None
    return notification


def session_completed(db: Session, user_id: str, stats: dict, automatic: bool = False) -> None:
    minutes = stats.get("totalDuration", 0) // 60
    if automatic:
        title = "All Pomodoro cycles done"
    else:
        title = "Session completed"
    notify(
        db,
        user_id,
        title=title,
        message=f"{minutes} min of work, efficiency {stats.get('efficiency', 0)}%",
        kind=NotificationKind.SUCCESS,
        data=stats,
    )
