"""
Стратегия напоминаний на устройстве (локальные уведомления).

Назначение:
- доступна только на нативном рантайме (backend.is_native())
- id уведомления выдаётся монотонным счётчиком из БД, а не из id действия
- в extra уведомления лежит actionId: нажатие пользователя завершает действие
- при старте можно перепланировать все будущие pending-действия
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from voice_task_agent.common.errors import AppError
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.metrics import ON_DEVICE_SCHEDULE_TOTAL
from voice_task_agent.common.time import ensure_aware, utc_now
from voice_task_agent.storage.action_store import ScheduledActionStore
from voice_task_agent.storage.records import ScheduledActionRecord
from voice_task_agent.storage.task_store import TaskStore

from .base import ReminderDispatcher
from .content import build_notification_content

log = get_project_logger()


@dataclass
class LocalNotification:
    id: int
    title: str
    body: str
    at: datetime
    extra: dict[str, Any] = field(default_factory=dict)


class NotificationBackend(Protocol):
    """
    Платформенный планировщик локальных уведомлений.
    schedule/cancel бросают исключение при отказе платформы.
    """

    def is_native(self) -> bool: ...

    def schedule(self, notification: LocalNotification) -> None: ...

    def cancel(self, notification_id: int) -> None: ...


class BrowserNotificationBackend(NotificationBackend):
    """Браузерный рантайм: локальных уведомлений нет."""

    def is_native(self) -> bool:
        return False

    def schedule(self, notification: LocalNotification) -> None:
        raise RuntimeError("native notifications are not available")

    def cancel(self, notification_id: int) -> None:
        raise RuntimeError("native notifications are not available")


class InProcessNotificationBackend(NotificationBackend):
    """
    Локальные уведомления внутри процесса (threading.Timer).

    При срабатывании вызывает on_delivered(notification).
    """

    def __init__(
        self,
        on_delivered: Callable[[LocalNotification], None] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._on_delivered = on_delivered
        self._clock = clock
        self._lock = threading.Lock()
        self._timers: dict[int, threading.Timer] = {}
        self.pending: dict[int, LocalNotification] = {}
        self.delivered: list[LocalNotification] = []

    def is_native(self) -> bool:
        return True

    def schedule(self, notification: LocalNotification) -> None:
        delay = max(0.0, (ensure_aware(notification.at) - self._clock()).total_seconds())
        timer = threading.Timer(delay, self._fire, args=(notification.id,))
        timer.daemon = True
        with self._lock:
            old = self._timers.pop(notification.id, None)
            if old is not None:
                old.cancel()
            self._timers[notification.id] = timer
            self.pending[notification.id] = notification
        timer.start()

    def cancel(self, notification_id: int) -> None:
        with self._lock:
            timer = self._timers.pop(notification_id, None)
            self.pending.pop(notification_id, None)
        if timer is not None:
            timer.cancel()

    def _fire(self, notification_id: int) -> None:
        with self._lock:
            self._timers.pop(notification_id, None)
            notification = self.pending.pop(notification_id, None)
            if notification is not None:
                self.delivered.append(notification)
        if notification is not None and self._on_delivered is not None:
            self._on_delivered(notification)

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self.pending.clear()
        for timer in timers:
            timer.cancel()


class OnDeviceDispatcher(ReminderDispatcher):
    def __init__(
        self,
        backend: NotificationBackend,
        actions: ScheduledActionStore,
        tasks: TaskStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        tz_name: str | None = None,
    ) -> None:
        self.backend = backend
        self.actions = actions
        self.tasks = tasks
        self._clock = clock
        self._tz_name = tz_name
        self._lock = threading.Lock()
        self._by_action: dict[str, int] = {}

    def is_available(self) -> bool:
        return bool(self.backend.is_native())

    def schedule_reminder(self, action: ScheduledActionRecord) -> bool:
        if not self.is_available():
            ON_DEVICE_SCHEDULE_TOTAL.labels(result="unavailable").inc()
            return False

        try:
            task = self.tasks.get(action.task_id)
            notification_id = self.actions.assign_notification_id(action.id)
            content = build_notification_content(action, task, self._clock(), tz_name=self._tz_name)
            self.backend.schedule(
                LocalNotification(
                    id=notification_id,
                    title=content.title,
                    body=content.body,
                    at=action.scheduled_for,
                    extra={"actionId": action.id},
                )
            )
        except (AppError, RuntimeError, OSError) as e:
            ON_DEVICE_SCHEDULE_TOTAL.labels(result="failed").inc()
            log.warning(
                "on_device_schedule_failed",
                extra={"payload": {"action_id": action.id, "err": str(e)[:200]}},
            )
            return False

        with self._lock:
            self._by_action[action.id] = notification_id
        ON_DEVICE_SCHEDULE_TOTAL.labels(result="scheduled").inc()
        log.info(
            "on_device_scheduled",
            extra={"payload": {"action_id": action.id, "notification_id": notification_id}},
        )
        return True

    def cancel_reminder(self, action_id: str) -> bool:
        if not self.is_available():
            return False

        with self._lock:
            notification_id = self._by_action.pop(action_id, None)
        if notification_id is None:
            rec = self.actions.get(action_id)
            notification_id = rec.notification_id if rec else None
        if notification_id is None:
            return False

        try:
            self.backend.cancel(notification_id)
        except (RuntimeError, OSError) as e:
            log.warning(
                "on_device_cancel_failed",
                extra={"payload": {"action_id": action_id, "err": str(e)[:200]}},
            )
            return False
        return True

    def handle_notification_action(self, extra: dict[str, Any] | None) -> bool:
        """
        Пользователь нажал на уведомление: действие из extra.actionId → completed.
        """
        action_id = (extra or {}).get("actionId")
        if not action_id:
            return False
        with self._lock:
            self._by_action.pop(action_id, None)
        changed = self.actions.mark_completed(str(action_id))
        log.info("on_device_action_performed", extra={"payload": {"action_id": action_id, "changed": changed}})
        return changed

    def schedule_pending_from_store(self, now: datetime | None = None) -> int:
        """
        Планирует все будущие pending-действия (при старте приложения).
        """
        if not self.is_available():
            return 0
        scheduled = 0
        for action in self.actions.list_upcoming(now or self._clock()):
            if self.schedule_reminder(action):
                scheduled += 1
        log.info("on_device_rescheduled", extra={"payload": {"count": scheduled}})
        return scheduled
