"""
Эвристическое извлечение задачи по ключевым словам.

Назначение:
- запасной путь, когда языковая модель недоступна или ответила мусором
- поиск триггеров remind → call → text → email (первый найденный побеждает)
- не более одного кандидата; заголовок = начало транскрипта
"""

from __future__ import annotations

import re
from datetime import datetime

from voice_task_agent.contracts.extraction import ContactInfo, TaskCandidate
from voice_task_agent.domain.enums import ActionType, Priority

from .time_resolver import resolve

TRIGGERS: tuple[tuple[ActionType, re.Pattern[str]], ...] = (
    (ActionType.reminder, re.compile(r"\bremind(?:er|ers|ing|ed)?\b", re.IGNORECASE)),
    (ActionType.call, re.compile(r"\bcall(?:ing|ed)?\b", re.IGNORECASE)),
    (ActionType.text, re.compile(r"\btext(?:ing|ed)?\b", re.IGNORECASE)),
    (ActionType.email, re.compile(r"\be-?mail(?:ing|ed)?\b", re.IGNORECASE)),
)

CONTACT_RE = re.compile(
    r"\b(?:call|text|e-?mail|message|phone)\s+(?P<name>[A-Za-z][A-Za-z'\-]*)", re.IGNORECASE
)

# Слова после глагола, которые не являются именем контакта
_NOT_A_NAME = frozenset(
    {
        "me",
        "a",
        "an",
        "the",
        "to",
        "at",
        "in",
        "on",
        "about",
        "back",
        "tomorrow",
        "today",
        "tonight",
        "next",
        "later",
        "soon",
        "now",
        "and",
        "or",
        "for",
        "with",
    }
)


def detect_action_type(text: str) -> ActionType | None:
    for action_type, regex in TRIGGERS:
        if regex.search(text):
            return action_type
    return None


def detect_contact_name(text: str) -> str | None:
    for m in CONTACT_RE.finditer(text):
        name = m.group("name").strip("'-")
        if name and name.lower() not in _NOT_A_NAME:
            return name
    return None


def extract_candidate(
    raw_transcript: str,
    reference: datetime,
    *,
    title_max_len: int = 50,
) -> TaskCandidate | None:
    """
    Возвращает одного кандидата или None.

    - найден триггер → кандидат этого типа (время, если распознано)
    - триггера нет, но есть выражение времени → напоминание
    - иначе → None
    """
    text = (raw_transcript or "").strip()
    if not text:
        return None

    action_type = detect_action_type(text)
    scheduled_for = resolve(text, reference)

    if action_type is None:
        if scheduled_for is None:
            return None
        action_type = ActionType.reminder

    return TaskCandidate(
        title=text[:title_max_len].strip(),
        description=text,
        priority=Priority.medium,
        action_type=action_type,
        scheduled_for=scheduled_for,
        contact_info=ContactInfo(name=detect_contact_name(text)),
    )
