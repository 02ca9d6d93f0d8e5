"""Request-scoped dependencies shared by the routers."""
from typing import Callable

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from clock import utcnow
from db import get_session
from session_service import SessionService


def current_user_id(user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="Missing X-User-Id header")
    return user_id.strip()


def current_user_email(email: str | None = Header(default=None, alias="X-User-Email")) -> str | None:
    email = (email or "").strip().lower()
    return email or None


def get_clock() -> Callable:
    return utcnow


def get_session_service(
    db: Session = Depends(get_session),
    clock: Callable = Depends(get_clock),
) -> SessionService:
    return SessionService(db, clock=clock)
