from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Column, Index, String, text
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, SQLModel

from clock import utcnow


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CycleKind(str, Enum):
    WORK = "work"
    BREAK = "break"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    DELETED = "deleted"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    TIMER = "timer"
    TASK = "task"


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls: type[Enum], **kwargs: Any) -> Column:
    """Store the enum's value ("in-progress"), not its member name."""
    return Column(
        SAEnum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            validate_strings=True,
            length=32,
        ),
        **kwargs,
    )


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    description: Optional[str] = None
    module: Optional[str] = None
    priority: TaskPriority = Field(
        default=TaskPriority.MEDIUM,
        sa_column=_enum_column(TaskPriority, nullable=False),
    )
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        sa_column=_enum_column(TaskStatus, nullable=False, index=True),
    )
    due_date: Optional[datetime] = None
    estimated_minutes: Optional[int] = None
    # Emails the task is shared with.
    owners: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    time_spent: int = 0
    pomodoro_count: int = 0
    completed_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_visible_to(self, user_id: str, email: str | None) -> bool:
        if self.status == TaskStatus.DELETED:
            return False
        if self.user_id == user_id:
            return True
        return bool(email) and email.lower() in (o.lower() for o in self.owners)


class FocusSession(SQLModel, table=True):
    """One work attempt on exactly one task."""

    __tablename__ = "focus_sessions"
    __table_args__ = (
        Index(
            "uq_focus_sessions_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("idx_focus_sessions_user_ended", "user_id", "ended_at"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)

    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    elapsed_seconds: int = 0
    planned_seconds: Optional[int] = None

    timer_running: bool = False
    timer_paused: bool = False
    focus_enabled: bool = False
    notifications_suppressed: bool = False

    pomodoro_enabled: bool = False
    cycle_duration_seconds: Optional[int] = None
    total_cycles_planned: Optional[int] = None
    cycles_elapsed: int = 0
    current_cycle_kind: CycleKind = Field(
        default=CycleKind.WORK,
        sa_column=_enum_column(CycleKind, nullable=False),
    )

    pause_count: int = 0
    efficiency_percent: int = 0

    status: SessionStatus = Field(
        default=SessionStatus.ACTIVE,
        sa_column=_enum_column(SessionStatus, nullable=False, index=True),
    )
    notes: str = Field(default="", sa_column=Column(String(500), nullable=False, default=""))

    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    message: Optional[str] = None
    kind: NotificationKind = Field(
        default=NotificationKind.INFO,
        sa_column=_enum_column(NotificationKind, nullable=False),
    )
    read: bool = False
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)


class Note(SQLModel, table=True):
    __tablename__ = "notes"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    content: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
