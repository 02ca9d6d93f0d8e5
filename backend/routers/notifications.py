"""
In-app notifications for the current user.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import update
from sqlmodel import Session, func, select

from db import get_session
from deps import current_user_id
from errors import NotFound
from models import Notification
from schemas import to_api

router = APIRouter(prefix="/api", tags=["notifications"])


def _unread_count(db: Session, user_id: str) -> int:
    statement = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
    )
    return db.exec(statement).one()


@router.get("/notifications")
def list_notifications(
    unread: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    """Newest first; unread=true keeps only unread ones."""
    statement = select(Notification).where(Notification.user_id == user_id)
    if unread:
        statement = statement.where(Notification.read == False)  # noqa: E712
    statement = statement.order_by(Notification.created_at.desc()).limit(limit)
    return {
        "notifications": [to_api(n) for n in db.exec(statement).all()],
        "unreadCount": _unread_count(db, user_id),
    }


@router.get("/notifications/unread-count")
def unread_count(
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    return {"count": _unread_count(db, user_id)}


@router.put("/notifications/read-all")
def mark_all_read(
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    result = db.exec(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        .values(read=True)
    )
    db.commit()
    return {"updated": result.rowcount}


@router.put("/notifications/{notification_id}/read")
def mark_read(
    notification_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFound("Notification not found")
    notification.read = True
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return to_api(notification)
