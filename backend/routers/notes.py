"""
Personal notes: free-form text a student keeps beside their tasks.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from clock import utcnow
from constants import NOTE_CONTENT_MAX_LENGTH, NOTE_TITLE_MAX_LENGTH
from db import get_session
from deps import current_user_id
from errors import InvalidArgument, NotFound
from models import Note
from schemas import CamelModel, to_api

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["notes"])


class NoteCreate(CamelModel):
    title: str
    content: str = ""


class NoteUpdate(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidArgument("title is required")
    if len(title) > NOTE_TITLE_MAX_LENGTH:
        raise InvalidArgument(f"title cannot exceed {NOTE_TITLE_MAX_LENGTH} characters")
    return title


def _clean_content(content: Optional[str]) -> str:
    content = content or ""
    if len(content) > NOTE_CONTENT_MAX_LENGTH:
        raise InvalidArgument(f"content cannot exceed {NOTE_CONTENT_MAX_LENGTH} characters")
    return content


def _get_own(db: Session, note_id: str, user_id: str) -> Note:
    note = db.get(Note, note_id)
    if note is None or note.user_id != user_id:
        raise NotFound("Note not found")
    return note


@router.get("/notes")
def list_notes(
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    """The user's notes, most recently edited first."""
    statement = (
        select(Note)
        .where(Note.user_id == user_id)
        .order_by(Note.updated_at.desc(), Note.created_at.desc())
    )
    return [to_api(n) for n in db.exec(statement).all()]


@router.get("/notes/{note_id}")
def get_note(
    note_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    return to_api(_get_own(db, note_id, user_id))


@router.post("/notes", status_code=201)
def create_note(
    req: NoteCreate,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    note = Note(user_id=user_id, title=_clean_title(req.title), content=_clean_content(req.content))
    db.add(note)
    db.commit()
    db.refresh(note)
    logger.info("Note %s created for user %s", note.id, user_id)
    return to_api(note)


@router.put("/notes/{note_id}")
def update_note(
    note_id: str,
    req: NoteUpdate,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    note = _get_own(db, note_id, user_id)
    changes = req.model_dump(exclude_unset=True)
    if "title" in changes:
        note.title = _clean_title(changes["title"])
    if "content" in changes:
        note.content = _clean_content(changes["content"])
    note.updated_at = utcnow()
    db.add(note)
    db.commit()
    db.refresh(note)
    return to_api(note)


@router.delete("/notes/{note_id}")
def delete_note(
    note_id: str,
    db: Session = Depends(get_session),
    user_id: str = Depends(current_user_id),
):
    note = _get_own(db, note_id, user_id)
    db.delete(note)
    db.commit()
    logger.info("Note %s deleted", note_id)
    return {"status": "deleted", "id": note_id}
