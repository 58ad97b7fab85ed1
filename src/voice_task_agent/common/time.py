"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- "локальное сейчас" в часовом поясе пользователя для разбора фраз
"""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from voice_task_agent.common.config import get_settings


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def user_now(tz_name: str | None = None) -> datetime:
    """
    Текущее время в часовом поясе пользователя (USER_TIMEZONE).
    """
    tz = ZoneInfo(tz_name or get_settings().user_timezone or "UTC")
    return datetime.now(tz)


def ensure_aware(value: datetime) -> datetime:
    """
    SQLite теряет tzinfo: считаем naive-значения UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def to_utc(value: datetime | None) -> datetime | None:
    """
    Нормализация к UTC перед записью в БД (SQLite хранит время без зоны).
    """
    if value is None:
        return None
    return ensure_aware(value).astimezone(UTC)
