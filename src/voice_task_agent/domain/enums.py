"""
Доменные перечисления (enum).

Используются во всей системе:
- приоритеты и типы действий задач
- статусы отложенных действий
- состояния пайплайна и записи
"""

from __future__ import annotations

import enum


class Priority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class ActionType(str, enum.Enum):
    """
    Тип действия задачи. note означает "без напоминания".
    """

    reminder = "reminder"
    call = "call"
    text = "text"
    email = "email"
    note = "note"


# Типы, для которых допустимо авто-принятие и планирование напоминаний
ACTIONABLE_TYPES = frozenset({ActionType.call, ActionType.text, ActionType.email, ActionType.reminder})


class ActionStatus(str, enum.Enum):
    """
    Статус отложенного действия. Переходы только pending → completed|failed.
    """

    pending = "pending"
    completed = "completed"
    failed = "failed"


class Confidence(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class PipelineState(str, enum.Enum):
    """
    Состояние одного прогона голосового пайплайна.
    """

    idle = "idle"
    recording = "recording"
    processing = "processing"
    reviewing = "reviewing"
    auto_accepted = "auto_accepted"
    accepted = "accepted"
    cancelled = "cancelled"
    failed = "failed"


class RecordingState(str, enum.Enum):
    idle = "idle"
    recording = "recording"
    stopped = "stopped"
    failed = "failed"


class MutationKind(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"


class ChangeKind(str, enum.Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


def coerce_enum(enum_cls: type[enum.Enum], value, default):
    """
    Мягкое приведение значения к enum: неизвестное значение → default.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default
