"""
Хранилище задач (durable task gateway).

Назначение:
- create / update / delete / get / list (новые первыми)
- complete_task: перенос задачи в архив completed_tasks
- аудит транскрипций
- каждая запись идёт через RetryPolicy и публикуется в ленту изменений
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from voice_task_agent.common.errors import NotFoundError, ValidationError
from voice_task_agent.common.ids import new_uuid
from voice_task_agent.common.time import to_utc, utc_now
from voice_task_agent.domain.enums import ActionType, ChangeKind, Priority, coerce_enum

from .change_feed import SCHEDULED_ACTIONS, TASKS, ChangeFeed
from .db import db_session
from .models import CompletedTask, Task, Transcription
from .records import CompletedTaskRecord, TaskRecord
from .repositories import (
    CompletedTaskRepository,
    ScheduledActionRepository,
    TaskRepository,
    TranscriptionRepository,
)
from .retry import RetryPolicy
from .validation import sanitize_contact_info, validate_task_fields

log = logging.getLogger(__name__)

_UPDATABLE = frozenset(
    {
        "title",
        "description",
        "priority",
        "completed",
        "due_date",
        "action_type",
        "scheduled_for",
        "contact_info",
    }
)


class TaskStore:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        feed: ChangeFeed | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._factory = session_factory
        self._feed = feed
        self._retry = retry or RetryPolicy()

    def _publish(self, table: str, kind: ChangeKind, row_id: str) -> None:
        if self._feed is not None:
            self._feed.publish(table, kind, row_id)

    # -------------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------------
    def get(self, task_id: str) -> TaskRecord | None:
        with db_session(self._factory) as session:
            row = TaskRepository(session).get(task_id)
            return TaskRecord.from_model(row) if row else None

    def list_tasks(self, *, limit: int | None = None) -> list[TaskRecord]:
        with db_session(self._factory) as session:
            return [TaskRecord.from_model(r) for r in TaskRepository(session).list_recent(limit=limit)]

    def list_completed(self, *, limit: int = 50) -> list[CompletedTaskRecord]:
        with db_session(self._factory) as session:
            rows = CompletedTaskRepository(session).list_recent(limit=limit)
            return [CompletedTaskRecord.from_model(r) for r in rows]

    # -------------------------------------------------------------------------
    # Запись
    # -------------------------------------------------------------------------
    def create(
        self,
        *,
        title: str,
        description: str | None = None,
        priority: Priority | str = Priority.medium,
        due_date: datetime | None = None,
        action_type: ActionType | str | None = None,
        scheduled_for: datetime | None = None,
        contact_info: Any = None,
        task_id: str | None = None,
    ) -> TaskRecord:
        clean_title, clean_description = validate_task_fields(title, description)
        kind = coerce_enum(ActionType, action_type, ActionType.note)

        def _op() -> TaskRecord:
            with db_session(self._factory) as session:
                row = Task(
                    id=task_id or new_uuid(),
                    title=clean_title,
                    description=clean_description,
                    priority=coerce_enum(Priority, priority, Priority.medium),
                    completed=False,
                    due_date=to_utc(due_date),
                    action_type=kind,
                    # scheduled_for имеет смысл только для типа ≠ note
                    scheduled_for=to_utc(scheduled_for) if kind != ActionType.note else None,
                    contact_info=sanitize_contact_info(contact_info),
                    created_at=utc_now(),
                )
                TaskRepository(session).save(row)
                session.flush()
                return TaskRecord.from_model(row)

        rec = self._retry.run(_op, op="task_create")
        self._publish(TASKS, ChangeKind.insert, rec.id)
        log.info("task_created", extra={"payload": {"task_id": rec.id, "action_type": rec.action_type.value}})
        return rec

    def update(self, task_id: str, **fields: Any) -> TaskRecord:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValidationError("Неизвестные поля задачи", {"fields": sorted(unknown)})

        if "title" in fields or "description" in fields:
            current = self.get(task_id)
            if current is None:
                raise NotFoundError("Задача не найдена", {"task_id": task_id})
            title, description = validate_task_fields(
                fields.get("title", current.title),
                fields.get("description", current.description),
            )
            if "title" in fields:
                fields["title"] = title
            if "description" in fields:
                fields["description"] = description

        def _op() -> TaskRecord:
            with db_session(self._factory) as session:
                row = TaskRepository(session).get(task_id)
                if row is None:
                    raise NotFoundError("Задача не найдена", {"task_id": task_id})
                for key, value in fields.items():
                    if key == "priority":
                        value = coerce_enum(Priority, value, row.priority)
                    elif key == "action_type":
                        value = coerce_enum(ActionType, value, ActionType.note)
                    elif key in ("due_date", "scheduled_for"):
                        value = to_utc(value)
                    elif key == "contact_info":
                        value = sanitize_contact_info(value)
                    elif key == "completed":
                        value = bool(value)
                    setattr(row, key, value)
                row.updated_at = utc_now()
                session.flush()
                return TaskRecord.from_model(row)

        rec = self._retry.run(_op, op="task_update")
        self._publish(TASKS, ChangeKind.update, rec.id)
        return rec

    def delete(self, task_id: str) -> bool:
        """
        Удаляет задачу вместе с её отложенными действиями. False, если задачи нет.
        """

        def _op() -> list[str] | None:
            with db_session(self._factory) as session:
                repo = TaskRepository(session)
                row = repo.get(task_id)
                if row is None:
                    return None
                action_ids = [a.id for a in ScheduledActionRepository(session).list_for_task(task_id)]
                repo.delete(row)
                return action_ids

        action_ids = self._retry.run(_op, op="task_delete")
        if action_ids is None:
            return False
        for action_id in action_ids:
            self._publish(SCHEDULED_ACTIONS, ChangeKind.delete, action_id)
        self._publish(TASKS, ChangeKind.delete, task_id)
        return True

    def complete_task(self, task_id: str) -> CompletedTaskRecord:
        """
        Переносит задачу в completed_tasks и удаляет исходную строку
        (отложенные действия удаляются каскадно).
        """

        def _op() -> tuple[CompletedTaskRecord, list[str]]:
            with db_session(self._factory) as session:
                repo = TaskRepository(session)
                row = repo.get(task_id)
                if row is None:
                    raise NotFoundError("Задача не найдена", {"task_id": task_id})
                archived = CompletedTask(
                    id=new_uuid(),
                    original_task_id=row.id,
                    title=row.title,
                    description=row.description,
                    priority=row.priority,
                    due_date=row.due_date,
                    completed_at=utc_now(),
                )
                CompletedTaskRepository(session).save(archived)
                action_ids = [a.id for a in ScheduledActionRepository(session).list_for_task(task_id)]
                repo.delete(row)
                session.flush()
                return CompletedTaskRecord.from_model(archived), action_ids

        rec, action_ids = self._retry.run(_op, op="task_complete")
        for action_id in action_ids:
            self._publish(SCHEDULED_ACTIONS, ChangeKind.delete, action_id)
        self._publish(TASKS, ChangeKind.delete, task_id)
        log.info("task_completed", extra={"payload": {"task_id": task_id, "archive_id": rec.id}})
        return rec

    # -------------------------------------------------------------------------
    # Аудит транскрипций
    # -------------------------------------------------------------------------
    def record_transcription(self, *, text: str, audio_length: int) -> str:
        def _op() -> str:
            with db_session(self._factory) as session:
                row = Transcription(id=new_uuid(), text=text or "", audio_length=int(audio_length))
                TranscriptionRepository(session).save(row)
                return row.id

        return self._retry.run(_op, op="transcription_create")
