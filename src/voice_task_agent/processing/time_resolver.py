"""
Разбор выражений времени из транскрипта.

Назначение:
- "in N minutes|hours|days" (цифры или числительные словами)
- "tomorrow [at H[:MM] [am|pm]]" (по умолчанию 09:00)
- "next week" (+7 дней, 09:00)

Функция чистая: результат зависит только от текста и опорного момента.
Правила проверяются по порядку, побеждает первое совпадение.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

_CARDINALS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
    "twenty": 20,
}

_UP_TO_TWELVE = [w for w, n in _CARDINALS.items() if n <= 12]
_UP_TO_TWENTY = list(_CARDINALS)

DEFAULT_HOUR = 9


def _amount_pattern(words: list[str]) -> str:
    # длинные слова первыми, чтобы "seventeen" не съедался "seven"
    alternatives = "|".join(sorted(words, key=len, reverse=True))
    return rf"(?P<num>\d+|{alternatives})"


MINUTES_RE = re.compile(
    rf"\bin\s+{_amount_pattern(_UP_TO_TWENTY)}\s+(?:minutes?|mins?)\b", re.IGNORECASE
)
HOURS_RE = re.compile(rf"\bin\s+{_amount_pattern(_UP_TO_TWELVE)}\s+(?:hours?|hrs?)\b", re.IGNORECASE)
DAYS_RE = re.compile(rf"\bin\s+{_amount_pattern(_UP_TO_TWELVE)}\s+days?\b", re.IGNORECASE)
TOMORROW_RE = re.compile(r"\btomorrow\b", re.IGNORECASE)
AT_TIME_RE = re.compile(
    r"\bat\s+(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?(?:\s*(?P<period>[ap])\.?\s*m\b\.?)?",
    re.IGNORECASE,
)
NEXT_WEEK_RE = re.compile(r"\bnext\s+week\b", re.IGNORECASE)


def _to_int(token: str) -> int:
    token = token.lower()
    if token.isdigit():
        return int(token)
    return _CARDINALS[token]


def _add_elapsed(reference: datetime, delta: timedelta) -> datetime:
    """
    Точный сдвиг по прошедшему времени (через UTC, без влияния перехода на летнее время).
    """
    if reference.tzinfo is None:
        return reference + delta
    return (reference.astimezone(UTC) + delta).astimezone(reference.tzinfo)


def _at_clock(day: datetime, hour: int, minute: int) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _explicit_time(text: str) -> tuple[int, int] | None:
    m = AT_TIME_RE.search(text)
    if not m:
        return None
    hour = int(m.group("hour"))
    minute = int(m.group("minute") or 0)
    period = (m.group("period") or "").lower()

    if period == "p" and hour != 12:
        hour += 12
    elif period == "a" and hour == 12:
        hour = 0

    if hour > 23 or minute > 59:
        return None
    return hour, minute


def resolve(text: str, reference: datetime) -> datetime | None:
    """
    Возвращает абсолютный момент для первого распознанного выражения
    или None, если выражения времени в тексте нет.

    Результат в том же часовом поясе, что и reference. Момент, который
    не представим как datetime ("in 99999999999 minutes"), тоже даёт None.
    """
    if not text:
        return None
    try:
        return _resolve(text, reference)
    except OverflowError:
        return None


def _resolve(text: str, reference: datetime) -> datetime | None:
    for regex, unit in (
        (MINUTES_RE, timedelta(minutes=1)),
        (HOURS_RE, timedelta(hours=1)),
    ):
        m = regex.search(text)
        if m:
            amount = _to_int(m.group("num"))
            if amount > 0:
                return _add_elapsed(reference, unit * amount)

    m = DAYS_RE.search(text)
    if m:
        amount = _to_int(m.group("num"))
        if amount > 0:
            return reference + timedelta(days=amount)

    if TOMORROW_RE.search(text):
        day = reference + timedelta(days=1)
        clock = _explicit_time(text)
        if clock is None:
            return _at_clock(day, DEFAULT_HOUR, 0)
        return _at_clock(day, *clock)

    if NEXT_WEEK_RE.search(text):
        return _at_clock(reference + timedelta(days=7), DEFAULT_HOUR, 0)

    return None
