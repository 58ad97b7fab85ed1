"""
Базовые интерфейсы доставки напоминаний.

Назначение:
- Единый контракт каналов уведомлений (web push / email / sms)
- Единый контракт стратегий напоминаний (on-device / server sweep)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from voice_task_agent.storage.records import ScheduledActionRecord


@dataclass
class DeliveryResult:
    """
    Результат доставки.
    """

    ok: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    meta: dict[str, Any] | None = None


@dataclass
class NotificationContent:
    title: str
    body: str


class NotificationChannel(Protocol):
    """
    Контракт канала доставки. name совпадает с ключом notification_settings.
    """

    name: str

    def send(self, *, action: ScheduledActionRecord, content: NotificationContent) -> DeliveryResult: ...


class ReminderDispatcher(Protocol):
    """
    Контракт стратегии напоминаний. Безопасен при нуле ожидающих действий.
    """

    def schedule_reminder(self, action: ScheduledActionRecord) -> bool: ...

    def cancel_reminder(self, action_id: str) -> bool: ...
