"""
Текст уведомлений о напоминаниях.

Назначение:
- заголовок по типу действия: "Call <name> in 5 minutes", "Reminder: <task> ..."
- тело: описание, абсолютное время, контакт
- относительное время: now / in N minutes / in N hours / in N days / день недели
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.time import ensure_aware
from voice_task_agent.domain.enums import ActionType
from voice_task_agent.storage.records import ScheduledActionRecord, TaskRecord

from .base import NotificationContent


def _plural(n: int, unit: str) -> str:
    return f"in {n} {unit}{'' if n == 1 else 's'}"


def _local(value: datetime, tz_name: str | None) -> datetime:
    return ensure_aware(value).astimezone(ZoneInfo(tz_name or get_settings().user_timezone or "UTC"))


def format_relative_time(scheduled_at: datetime, now: datetime, *, tz_name: str | None = None) -> str:
    diff_sec = (ensure_aware(scheduled_at) - ensure_aware(now)).total_seconds()
    minutes = int(diff_sec // 60)
    hours = int(diff_sec // 3600)
    days = int(diff_sec // 86400)

    if minutes < 1:
        return "now"
    if minutes < 60:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return _local(scheduled_at, tz_name).strftime("on %A, %b %d")


def format_absolute_time(scheduled_at: datetime, *, tz_name: str | None = None) -> str:
    return _local(scheduled_at, tz_name).strftime("%a %b %d %Y, %I:%M %p")


def build_notification_content(
    action: ScheduledActionRecord,
    task: TaskRecord | None,
    now: datetime,
    *,
    tz_name: str | None = None,
) -> NotificationContent:
    task_title = task.title if task else "Task"
    relative = format_relative_time(action.scheduled_for, now, tz_name=tz_name)
    contact = action.contact_info or (task.contact_info if task else None) or {}
    contact_name = contact.get("name") or "contact"

    if action.action_type == ActionType.call:
        title = f"Call {contact_name} {relative}"
    elif action.action_type == ActionType.text:
        title = f"Text {contact_name} {relative}"
    elif action.action_type == ActionType.email:
        title = f"Email {contact_name} {relative}"
    elif action.action_type == ActionType.reminder:
        title = f"Reminder: {task_title} {relative}"
    else:
        title = f"{task_title} {relative}"

    lines: list[str] = []
    if task and task.description:
        lines.append(task.description)
    lines.append(f"Scheduled for {format_absolute_time(action.scheduled_for, tz_name=tz_name)}")
    if contact.get("name"):
        line = f"Contact: {contact['name']}"
        if contact.get("phone"):
            line += f" ({contact['phone']})"
        if contact.get("email"):
            line += f" - {contact['email']}"
        lines.append(line)

    return NotificationContent(title=title, body="\n".join(lines))
