"""
Контракт результата извлечения задач (Pydantic-модели).

Назначение:
- строгая схема ответа языковой модели (cleanedText, extractedTasks, ...)
- мягкий "ремонт" ответа до валидации: неизвестные enum → значения по умолчанию,
  задачи без заголовка отбрасываются с предупреждением
- кандидаты задач, которые дальше сохраняет пайплайн
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from voice_task_agent.common.errors import ExtractionMalformed
from voice_task_agent.domain.enums import ActionType, Confidence, Priority, coerce_enum


# =============================================================================
# МОДЕЛИ
# =============================================================================
class ContactInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    phone: str | None = None
    email: str | None = None

    def is_empty(self) -> bool:
        return not (self.name or self.phone or self.email)


class TaskCandidate(BaseModel):
    """
    Кандидат задачи до сохранения.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    description: str = ""
    priority: Priority = Priority.medium
    action_type: ActionType = Field(default=ActionType.note, alias="actionType")
    scheduled_for: datetime | None = Field(default=None, alias="scheduledFor")
    contact_info: ContactInfo = Field(default_factory=ContactInfo, alias="contactInfo")


class ExtractionPayload(BaseModel):
    """
    Ответ модели после ремонта и валидации.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    cleaned_text: str = Field(default="", alias="cleanedText")
    extracted_tasks: list[TaskCandidate] = Field(default_factory=list, alias="extractedTasks")
    improvements: str = ""
    confidence: Confidence = Confidence.medium
    potential_errors: list[str] = Field(default_factory=list, alias="potentialErrors")


# =============================================================================
# РЕМОНТ ОТВЕТА МОДЕЛИ
# =============================================================================
def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _repair_task(raw: Any, index: int, warnings: list[str]) -> dict | None:
    if not isinstance(raw, dict):
        warnings.append(f"Task #{index + 1} ignored: not an object")
        return None

    title = _str_or_none(raw.get("title"))
    if not title:
        warnings.append(f"Task #{index + 1} ignored: empty title")
        return None

    contact_raw = raw.get("contactInfo")
    contact = contact_raw if isinstance(contact_raw, dict) else {}

    return {
        "title": title,
        "description": _str_or_none(raw.get("description")) or "",
        "priority": coerce_enum(Priority, raw.get("priority"), Priority.medium),
        "actionType": coerce_enum(ActionType, raw.get("actionType"), ActionType.note),
        # время модели не доверяем: пайплайн пересчитывает его из транскрипта
        "scheduledFor": None,
        "contactInfo": {
            "name": _str_or_none(contact.get("name")),
            "phone": _str_or_none(contact.get("phone")),
            "email": _str_or_none(contact.get("email")),
        },
    }


def repair_extraction_payload(data: Any, *, raw_transcript: str) -> ExtractionPayload:
    """
    Приводит распарсенный JSON модели к ExtractionPayload.

    Бросает ExtractionMalformed, если ответ не объект или не проходит схему.
    """
    if not isinstance(data, dict):
        raise ExtractionMalformed(
            "Ответ модели не является JSON-объектом", {"type": type(data).__name__}
        )

    warnings: list[str] = []
    tasks_raw = data.get("extractedTasks")
    if tasks_raw is None:
        tasks_raw = []
    if not isinstance(tasks_raw, list):
        raise ExtractionMalformed(
            "extractedTasks не является списком", {"type": type(tasks_raw).__name__}
        )

    tasks: list[dict] = []
    for i, raw in enumerate(tasks_raw):
        task = _repair_task(raw, i, warnings)
        if task is not None:
            tasks.append(task)

    errors_raw = data.get("potentialErrors")
    potential_errors = (
        [str(e).strip() for e in errors_raw if isinstance(e, str) and e.strip()]
        if isinstance(errors_raw, list)
        else []
    )

    repaired = {
        "cleanedText": _str_or_none(data.get("cleanedText")) or raw_transcript,
        "extractedTasks": tasks,
        "improvements": _str_or_none(data.get("improvements")) or "No improvements applied",
        "confidence": coerce_enum(Confidence, data.get("confidence"), Confidence.medium),
        "potentialErrors": potential_errors + warnings,
    }

    try:
        return ExtractionPayload.model_validate(repaired)
    except PydanticValidationError as e:
        raise ExtractionMalformed(
            "Ответ модели не соответствует схеме", {"err": str(e)[:500]}
        ) from e
