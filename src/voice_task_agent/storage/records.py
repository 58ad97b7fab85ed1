"""
Записи хранилища (снимки строк без привязки к сессии).

Назначение:
- сервисы и API работают с dataclass-записями, а не с ORM-объектами
- datetime всегда timezone-aware (UTC)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from voice_task_agent.common.time import ensure_aware
from voice_task_agent.domain.enums import ActionStatus, ActionType, Priority

from .models import CompletedTask, ScheduledAction, Task


def _aware(value: datetime | None) -> datetime | None:
    return ensure_aware(value) if value is not None else None


@dataclass
class TaskRecord:
    id: str
    title: str
    description: str | None = None
    priority: Priority = Priority.medium
    completed: bool = False
    due_date: datetime | None = None
    action_type: ActionType = ActionType.note
    scheduled_for: datetime | None = None
    contact_info: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, row: Task) -> TaskRecord:
        return cls(
            id=row.id,
            title=row.title,
            description=row.description,
            priority=row.priority,
            completed=bool(row.completed),
            due_date=_aware(row.due_date),
            action_type=row.action_type or ActionType.note,
            scheduled_for=_aware(row.scheduled_for),
            contact_info=dict(row.contact_info) if row.contact_info else None,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )


@dataclass
class ScheduledActionRecord:
    id: str
    task_id: str
    action_type: ActionType
    scheduled_for: datetime
    status: ActionStatus = ActionStatus.pending
    contact_info: dict[str, Any] | None = None
    notification_settings: dict[str, bool] = field(default_factory=dict)
    notification_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def web_push(self) -> bool:
        return bool(self.notification_settings.get("web_push"))

    @classmethod
    def from_model(cls, row: ScheduledAction) -> ScheduledActionRecord:
        return cls(
            id=row.id,
            task_id=row.task_id,
            action_type=row.action_type,
            scheduled_for=ensure_aware(row.scheduled_for),
            status=row.status,
            contact_info=dict(row.contact_info) if row.contact_info else None,
            notification_settings=dict(row.notification_settings or {}),
            notification_id=row.notification_id,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
        )


@dataclass
class CompletedTaskRecord:
    id: str
    original_task_id: str
    title: str
    description: str | None
    priority: Priority
    due_date: datetime | None
    completed_at: datetime

    @classmethod
    def from_model(cls, row: CompletedTask) -> CompletedTaskRecord:
        return cls(
            id=row.id,
            original_task_id=row.original_task_id,
            title=row.title,
            description=row.description,
            priority=row.priority,
            due_date=_aware(row.due_date),
            completed_at=ensure_aware(row.completed_at),
        )
