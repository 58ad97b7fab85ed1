"""
Валидация и очистка полей перед записью в БД.

Правила:
- title 1..200, description ≤ 1000 (после очистки)
- угловые скобки вырезаются из свободного текста
- невалидные поля контакта отбрасываются, это не ошибка
"""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from voice_task_agent.common.errors import ValidationError

TITLE_MAX_LEN = 200
DESCRIPTION_MAX_LEN = 1000
CONTACT_NAME_MAX_LEN = 100

ANGLE_BRACKETS_RE = re.compile(r"[<>]")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")


class TaskFields(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LEN)
    description: str | None = Field(default=None, max_length=DESCRIPTION_MAX_LEN)


def sanitize_text(value: Any, max_len: int = DESCRIPTION_MAX_LEN) -> str:
    text = ANGLE_BRACKETS_RE.sub("", str(value or "")).strip()
    return text[:max_len]


def clip(value: str | None, max_len: int) -> str | None:
    if value is None:
        return None
    return value[:max_len]


def validate_task_fields(title: Any, description: Any = None) -> tuple[str, str | None]:
    """
    Возвращает очищенные (title, description) или бросает ValidationError.
    """
    clean_title = ANGLE_BRACKETS_RE.sub("", str(title or "")).strip()
    clean_description = None
    if description is not None:
        clean_description = ANGLE_BRACKETS_RE.sub("", str(description)).strip() or None

    try:
        fields = TaskFields(title=clean_title, description=clean_description)
    except PydanticValidationError as e:
        raise ValidationError(
            "Некорректные поля задачи",
            {"errors": [err.get("loc", ("?",))[0] for err in e.errors()]},
        ) from e
    return fields.title, fields.description


def sanitize_contact_info(raw: Any) -> dict[str, str] | None:
    """
    Оставляет только валидные name/phone/email. Пустой результат → None.
    """
    if raw is None:
        return None
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return None

    out: dict[str, str] = {}

    name = sanitize_text(raw.get("name"), CONTACT_NAME_MAX_LEN) if raw.get("name") else ""
    if name:
        out["name"] = name

    phone = str(raw.get("phone") or "").strip()
    if phone and PHONE_RE.match(phone):
        out["phone"] = phone

    email = str(raw.get("email") or "").strip()
    if email and EMAIL_RE.match(email):
        out["email"] = email

    return out or None
