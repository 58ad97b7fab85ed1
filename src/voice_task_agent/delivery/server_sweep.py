"""
Серверная стратегия напоминаний (sweep).

Назначение:
- периодически выбирает pending-действия с наступившим сроком и включённым web_push
- отправляет уведомления по каналам из notification_settings
- для reminder создаёт видимую задачу с префиксом (fallback для браузера)
- смена статуса pending → completed|failed является последним шагом обработки строки
- ошибка одной строки помечает её failed и не прерывает sweep
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import SweepRowFailed
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.time import utc_now
from voice_task_agent.domain.enums import ActionStatus, ActionType
from voice_task_agent.storage.action_store import ScheduledActionStore
from voice_task_agent.storage.records import ScheduledActionRecord
from voice_task_agent.storage.task_store import TaskStore

from .base import NotificationChannel, ReminderDispatcher
from .channels import CHANNEL_ORDER, default_channels
from .content import build_notification_content
from .results import sent_channels

log = get_project_logger()


@dataclass
class SweepActionResult:
    id: str
    action_type: str
    task_title: str | None
    notifications_sent: list[str]
    status: str


@dataclass
class SweepReport:
    actions: list[SweepActionResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed_count(self) -> int:
        return len(self.actions)

    @property
    def completed_count(self) -> int:
        return sum(1 for a in self.actions if a.status == ActionStatus.completed.value)

    @property
    def failed_count(self) -> int:
        return sum(1 for a in self.actions if a.status == ActionStatus.failed.value)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "processed_count": self.processed_count,
            "actions": [asdict(a) for a in self.actions],
        }


class ServerSweepDispatcher(ReminderDispatcher):
    def __init__(
        self,
        actions: ScheduledActionStore,
        tasks: TaskStore,
        *,
        channels: dict[str, NotificationChannel] | None = None,
        clock: Callable[[], datetime] = utc_now,
        batch_limit: int | None = None,
        reminder_prefix: str | None = None,
    ) -> None:
        s = get_settings()
        self.actions = actions
        self.tasks = tasks
        self.channels = channels if channels is not None else default_channels()
        self._clock = clock
        self.batch_limit = int(batch_limit or s.sweep_batch_limit)
        self.reminder_prefix = s.reminder_task_prefix if reminder_prefix is None else reminder_prefix
        self._sweep_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Контракт ReminderDispatcher
    # -------------------------------------------------------------------------
    def schedule_reminder(self, action: ScheduledActionRecord) -> bool:
        """
        Отдельного планирования нет: действие подхватит ближайший sweep.
        """
        return action.status == ActionStatus.pending and action.web_push

    def cancel_reminder(self, action_id: str) -> bool:
        return self.actions.mark_failed(action_id)

    # -------------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------------
    def sweep(self, now: datetime | None = None) -> SweepReport:
        # параллельный sweep в том же процессе пропускаем: строка не должна сработать дважды
        if not self._sweep_lock.acquire(blocking=False):
            log.info("sweep_already_running")
            return SweepReport(skipped=True)

        try:
            now = now or self._clock()
            due = self.actions.list_due(now, limit=self.batch_limit)
            log.info("sweep_started", extra={"payload": {"due": len(due)}})

            report = SweepReport()
            for action in due:
                result = self._process_row(action, now)
                if result is not None:
                    report.actions.append(result)

            log.info(
                "sweep_finished",
                extra={
                    "payload": {
                        "processed": report.processed_count,
                        "completed": report.completed_count,
                        "failed": report.failed_count,
                    }
                },
            )
            return report
        finally:
            self._sweep_lock.release()

    def _deliver(self, action: ScheduledActionRecord, now: datetime) -> SweepActionResult | None:
        current = self.actions.get(action.id)
        if current is None or current.status != ActionStatus.pending:
            # строку уже обработали (нажатие на уведомление, удаление задачи)
            return None

        task = self.tasks.get(action.task_id)
        if task is None:
            raise SweepRowFailed("Задача действия не найдена", {"action_id": action.id})

        content = build_notification_content(current, task, now)
        results = []
        for name in CHANNEL_ORDER:
            if not current.notification_settings.get(name):
                continue
            channel = self.channels.get(name)
            if channel is None:
                continue
            results.append(channel.send(action=current, content=content))
        sent = sent_channels(results)

        if current.action_type == ActionType.reminder and "web_push" in sent:
            self.tasks.create(
                title=f"{self.reminder_prefix}{task.title}"[:200],
                description=task.description,
                priority=task.priority,
                contact_info=current.contact_info,
            )

        status = ActionStatus.completed if sent else ActionStatus.failed
        if status == ActionStatus.completed:
            changed = self.actions.mark_completed(current.id)
        else:
            changed = self.actions.mark_failed(current.id)
        if not changed:
            return None

        return SweepActionResult(
            id=current.id,
            action_type=current.action_type.value,
            task_title=task.title,
            notifications_sent=sent,
            status=status.value,
        )

    def _process_row(self, action: ScheduledActionRecord, now: datetime) -> SweepActionResult | None:
        try:
            return self._deliver(action, now)
        except Exception as e:
            log.error(
                "sweep_row_failed",
                extra={"payload": {"action_id": action.id, "err_type": type(e).__name__, "err": str(e)[:200]}},
            )
            try:
                changed = self.actions.mark_failed(action.id)
            except Exception as mark_err:
                log.error(
                    "sweep_row_mark_failed_error",
                    extra={"payload": {"action_id": action.id, "err": str(mark_err)[:200]}},
                )
                return None
            if not changed:
                return None
            return SweepActionResult(
                id=action.id,
                action_type=action.action_type.value,
                task_title=None,
                notifications_sent=[],
                status=ActionStatus.failed.value,
            )
