"""
Хранилище отложенных действий (ScheduledActionStore).

Назначение:
- контракт между пайплайном (пишет) и диспетчерами напоминаний (читают)
- статус монотонен: pending → completed|failed, обратно никогда
- переходы условные (UPDATE ... WHERE status='pending'), повторный переход → False
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import NotFoundError, ValidationError
from voice_task_agent.common.ids import new_uuid
from voice_task_agent.common.time import to_utc, utc_now
from voice_task_agent.domain.enums import ActionStatus, ActionType, ChangeKind, coerce_enum

from .change_feed import SCHEDULED_ACTIONS, ChangeFeed
from .db import db_session
from .models import ScheduledAction
from .records import ScheduledActionRecord
from .repositories import NotificationCounterRepository, ScheduledActionRepository, TaskRepository
from .retry import RetryPolicy
from .validation import sanitize_contact_info

log = logging.getLogger(__name__)

NOTIFICATION_COUNTER = "on_device_notifications"


def default_notification_settings(*, web_push: bool = True) -> dict[str, bool]:
    s = get_settings()
    return {
        "web_push": bool(web_push),
        "email": bool(s.notify_email_default),
        "sms": bool(s.notify_sms_default),
    }


class ScheduledActionStore:
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

    def _publish(self, kind: ChangeKind, row_id: str) -> None:
        if self._feed is not None:
            self._feed.publish(SCHEDULED_ACTIONS, kind, row_id)

    # -------------------------------------------------------------------------
    # Запись
    # -------------------------------------------------------------------------
    def create(
        self,
        *,
        task_id: str,
        action_type: ActionType | str,
        scheduled_for: datetime,
        contact_info: Any = None,
        notification_settings: dict[str, bool] | None = None,
    ) -> ScheduledActionRecord:
        kind = coerce_enum(ActionType, action_type, ActionType.note)
        if kind == ActionType.note:
            raise ValidationError("Для заметки отложенное действие не создаётся", {"task_id": task_id})
        if scheduled_for is None:
            raise ValidationError("scheduled_for обязателен", {"task_id": task_id})

        settings = default_notification_settings()
        if notification_settings:
            settings.update({k: bool(v) for k, v in notification_settings.items()})

        def _op() -> ScheduledActionRecord:
            with db_session(self._factory) as session:
                if TaskRepository(session).get(task_id) is None:
                    raise NotFoundError("Задача не найдена", {"task_id": task_id})
                row = ScheduledAction(
                    id=new_uuid(),
                    task_id=task_id,
                    action_type=kind,
                    scheduled_for=to_utc(scheduled_for),
                    contact_info=sanitize_contact_info(contact_info),
                    notification_settings=settings,
                    status=ActionStatus.pending,
                )
                ScheduledActionRepository(session).save(row)
                session.flush()
                return ScheduledActionRecord.from_model(row)

        rec = self._retry.run(_op, op="scheduled_action_create")
        self._publish(ChangeKind.insert, rec.id)
        log.info(
            "scheduled_action_created",
            extra={
                "payload": {
                    "action_id": rec.id,
                    "task_id": task_id,
                    "action_type": kind.value,
                    "scheduled_for": rec.scheduled_for.isoformat(),
                }
            },
        )
        return rec

    def _transition(self, action_id: str, status: ActionStatus) -> bool:
        def _op() -> bool:
            with db_session(self._factory) as session:
                return ScheduledActionRepository(session).transition_from_pending(action_id, status)

        changed = self._retry.run(_op, op=f"scheduled_action_{status.value}")
        if changed:
            self._publish(ChangeKind.update, action_id)
        return changed

    def mark_completed(self, action_id: str) -> bool:
        return self._transition(action_id, ActionStatus.completed)

    def mark_failed(self, action_id: str) -> bool:
        return self._transition(action_id, ActionStatus.failed)

    def delete(self, action_id: str) -> bool:
        def _op() -> bool:
            with db_session(self._factory) as session:
                repo = ScheduledActionRepository(session)
                row = repo.get(action_id)
                if row is None:
                    return False
                repo.delete(row)
                return True

        deleted = self._retry.run(_op, op="scheduled_action_delete")
        if deleted:
            self._publish(ChangeKind.delete, action_id)
        return deleted

    def update_notification_settings(self, action_id: str, **flags: bool) -> ScheduledActionRecord:
        unknown = set(flags) - {"web_push", "email", "sms"}
        if unknown:
            raise ValidationError("Неизвестные каналы уведомлений", {"fields": sorted(unknown)})

        def _op() -> ScheduledActionRecord:
            with db_session(self._factory) as session:
                row = ScheduledActionRepository(session).get(action_id)
                if row is None:
                    raise NotFoundError("Действие не найдено", {"action_id": action_id})
                merged = dict(row.notification_settings or {})
                merged.update({k: bool(v) for k, v in flags.items()})
                row.notification_settings = merged
                session.flush()
                return ScheduledActionRecord.from_model(row)

        rec = self._retry.run(_op, op="scheduled_action_settings")
        self._publish(ChangeKind.update, action_id)
        return rec

    def allocate_notification_id(self) -> int:
        def _op() -> int:
            with db_session(self._factory) as session:
                return NotificationCounterRepository(session).next_value(NOTIFICATION_COUNTER)

        return self._retry.run(_op, op="notification_id_allocate")

    def assign_notification_id(self, action_id: str) -> int:
        """
        Выдаёт новый id из монотонного счётчика и сохраняет его в строке действия.
        """

        def _op() -> int:
            with db_session(self._factory) as session:
                repo = ScheduledActionRepository(session)
                row = repo.get(action_id)
                if row is None:
                    raise NotFoundError("Действие не найдено", {"action_id": action_id})
                value = NotificationCounterRepository(session).next_value(NOTIFICATION_COUNTER)
                row.notification_id = value
                return value

        value = self._retry.run(_op, op="notification_id_assign")
        self._publish(ChangeKind.update, action_id)
        return value

    # -------------------------------------------------------------------------
    # Чтение
    # -------------------------------------------------------------------------
    def get(self, action_id: str) -> ScheduledActionRecord | None:
        with db_session(self._factory) as session:
            row = ScheduledActionRepository(session).get(action_id)
            return ScheduledActionRecord.from_model(row) if row else None

    def list_by_status(
        self, status: ActionStatus | None = None, *, limit: int = 200
    ) -> list[ScheduledActionRecord]:
        with db_session(self._factory) as session:
            rows = ScheduledActionRepository(session).list_by_status(status, limit=limit)
            return [ScheduledActionRecord.from_model(r) for r in rows]

    def list_for_task(self, task_id: str) -> list[ScheduledActionRecord]:
        with db_session(self._factory) as session:
            rows = ScheduledActionRepository(session).list_for_task(task_id)
            return [ScheduledActionRecord.from_model(r) for r in rows]

    def list_due(self, now: datetime | None = None, *, limit: int = 200) -> list[ScheduledActionRecord]:
        """
        pending ∧ scheduled_for ≤ now ∧ web_push включён; старые первыми.
        """
        cutoff = to_utc(now or utc_now())
        out: list[ScheduledActionRecord] = []
        with db_session(self._factory) as session:
            for row in ScheduledActionRepository(session).list_pending_due(cutoff):
                rec = ScheduledActionRecord.from_model(row)
                if not rec.web_push:
                    continue
                out.append(rec)
                if len(out) >= limit:
                    break
        return out

    def list_upcoming(self, now: datetime | None = None) -> list[ScheduledActionRecord]:
        cutoff = to_utc(now or utc_now())
        with db_session(self._factory) as session:
            rows = ScheduledActionRepository(session).list_pending_after(cutoff)
            return [ScheduledActionRecord.from_model(r) for r in rows]
