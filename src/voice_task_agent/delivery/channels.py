"""
Каналы доставки уведомлений (заглушки транспорта).

Важно:
- реальные push/email/SMS интеграции вне проекта
- логируем только метаданные (id действия, тип, канал), без текста задачи
"""

from __future__ import annotations

from voice_task_agent.common.ids import new_uuid
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.storage.records import ScheduledActionRecord

from .base import DeliveryResult, NotificationChannel, NotificationContent
from .results import fail_result, ok_result

log = get_project_logger()

# Порядок опроса каналов при sweep
CHANNEL_ORDER = ("web_push", "email", "sms")


class _StubChannel(NotificationChannel):
    name = "stub"

    def send(self, *, action: ScheduledActionRecord, content: NotificationContent) -> DeliveryResult:
        if not content.title:
            return fail_result(self.name, "empty_title")
        message_id = new_uuid()
        log.info(
            f"{self.name}_stub_sent",
            extra={
                "payload": {
                    "action_id": action.id,
                    "action_type": action.action_type.value,
                    "message_id": message_id,
                }
            },
        )
        return ok_result(self.name, message_id=message_id)


class WebPushChannel(_StubChannel):
    name = "web_push"


class EmailChannel(_StubChannel):
    name = "email"


class SmsChannel(_StubChannel):
    name = "sms"


def default_channels() -> dict[str, NotificationChannel]:
    return {c.name: c for c in (WebPushChannel(), EmailChannel(), SmsChannel())}
