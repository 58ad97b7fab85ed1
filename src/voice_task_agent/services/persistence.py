"""
Сохранение кандидатов задач.

Назначение:
- Task пишется первым (id задачи нужен отложенному действию)
- ScheduledAction создаётся только для типа ≠ note и времени строго в будущем
- сбой записи ScheduledAction не откатывает Task: частичный успех логируется
- после записи действия пробуем локальное уведомление; web_push включён,
  только если уведомление на устройстве не запланировано
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from voice_task_agent.common.errors import DurablePersistFailed
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.time import ensure_aware, utc_now
from voice_task_agent.contracts.extraction import TaskCandidate
from voice_task_agent.delivery.on_device import OnDeviceDispatcher
from voice_task_agent.domain.enums import ActionType
from voice_task_agent.storage.action_store import ScheduledActionStore
from voice_task_agent.storage.records import ScheduledActionRecord, TaskRecord
from voice_task_agent.storage.task_store import TaskStore
from voice_task_agent.storage.validation import DESCRIPTION_MAX_LEN, TITLE_MAX_LEN, clip

log = get_project_logger()


@dataclass
class PersistedCandidate:
    task: TaskRecord
    action: ScheduledActionRecord | None = None
    on_device_scheduled: bool = False
    warnings: list[str] = field(default_factory=list)


class CandidatePersister:
    def __init__(
        self,
        tasks: TaskStore,
        actions: ScheduledActionStore,
        *,
        on_device: OnDeviceDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.tasks = tasks
        self.actions = actions
        self.on_device = on_device
        self._clock = clock

    def _needs_action(self, candidate: TaskCandidate, now: datetime) -> bool:
        if candidate.action_type == ActionType.note or candidate.scheduled_for is None:
            return False
        # без напоминаний задним числом
        return ensure_aware(candidate.scheduled_for) > now

    def persist(self, candidate: TaskCandidate) -> PersistedCandidate:
        task = self.tasks.create(
            title=clip(candidate.title, TITLE_MAX_LEN),
            description=clip(candidate.description, DESCRIPTION_MAX_LEN) or None,
            priority=candidate.priority,
            action_type=candidate.action_type,
            scheduled_for=candidate.scheduled_for,
            contact_info=candidate.contact_info,
        )
        out = PersistedCandidate(task=task)

        if not self._needs_action(candidate, ensure_aware(self._clock())):
            return out

        on_device_ready = self.on_device is not None and self.on_device.is_available()
        try:
            action = self.actions.create(
                task_id=task.id,
                action_type=candidate.action_type,
                scheduled_for=candidate.scheduled_for,
                contact_info=candidate.contact_info,
                notification_settings={"web_push": not on_device_ready},
            )
        except DurablePersistFailed as e:
            log.error(
                "scheduled_action_persist_failed",
                extra={"payload": {"task_id": task.id, "code": e.code, "details": e.details}},
            )
            out.warnings.append("Task saved, but its reminder could not be scheduled")
            return out

        out.action = action
        if on_device_ready:
            out.on_device_scheduled = self.on_device.schedule_reminder(action)
            if not out.on_device_scheduled:
                # локально не вышло: отдаём действие серверному sweep
                try:
                    out.action = self.actions.update_notification_settings(action.id, web_push=True)
                except DurablePersistFailed as e:
                    log.error(
                        "web_push_fallback_failed",
                        extra={"payload": {"action_id": action.id, "code": e.code}},
                    )
                    out.warnings.append("Reminder saved, but no delivery channel is active")
        return out
