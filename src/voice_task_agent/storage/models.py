"""
ORM-модели базы данных.

Назначение:
- задачи и их отложенные действия (каскадное удаление)
- архив выполненных задач
- аудит транскрипций
- персистентный счётчик id локальных уведомлений
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from voice_task_agent.common.time import utc_now
from voice_task_agent.domain.enums import ActionStatus, ActionType, Priority


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# TASKS
# =============================================================================
class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), default=Priority.medium, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    action_type: Mapped[ActionType] = mapped_column(
        Enum(ActionType), default=ActionType.note, nullable=False
    )
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    contact_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    scheduled_actions: Mapped[list[ScheduledAction]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


Index("ix_tasks_created_at", Task.created_at)


# =============================================================================
# SCHEDULED ACTIONS
# =============================================================================
class ScheduledAction(Base):
    """
    Отложенное действие задачи. Статус меняется только pending → completed|failed.
    """

    __tablename__ = "scheduled_actions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    task_id: Mapped[str] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )

    action_type: Mapped[ActionType] = mapped_column(Enum(ActionType), nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    contact_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notification_settings: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus), default=ActionStatus.pending, nullable=False
    )
    notification_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    task: Mapped[Task] = relationship(back_populates="scheduled_actions")


Index("ix_scheduled_actions_status_scheduled_for", ScheduledAction.status, ScheduledAction.scheduled_for)
Index("ix_scheduled_actions_task_id", ScheduledAction.task_id)


# =============================================================================
# COMPLETED TASKS (архив)
# =============================================================================
class CompletedTask(Base):
    __tablename__ = "completed_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    original_task_id: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


# =============================================================================
# TRANSCRIPTIONS (аудит)
# =============================================================================
class Transcription(Base):
    __tablename__ = "transcriptions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    audio_length: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


# =============================================================================
# NOTIFICATION COUNTERS
# =============================================================================
class NotificationCounter(Base):
    """
    Монотонный счётчик id локальных уведомлений (не хэш от id задачи).
    """

    __tablename__ = "notification_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
