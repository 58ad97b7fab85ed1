"""
Очистка транскрипта (для fallback-результатов).

Назначение:
- удаление слов-паразитов ("um", "uh", ...)
- нормализация пробелов
- заглавная первая буква и финальная пунктуация
"""

from __future__ import annotations

import re

FILLER_RE = re.compile(r"\b(?:u+m+|u+h+|e+r+m+|e+r+|h+m+)\b[,]?", re.IGNORECASE)
MULTISPACE_RE = re.compile(r"\s+")
SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.!?])")


def clean_transcript(raw_text: str) -> tuple[str, dict]:
    """
    Возвращает:
    - очищенный текст
    - метаданные преобразований (для improvements)
    """
    meta: dict = {"applied": []}

    if not raw_text or not raw_text.strip():
        return "", meta

    text = raw_text

    # 1) удаляем слова-паразиты
    text2 = FILLER_RE.sub("", text)
    if text2 != text:
        meta["applied"].append("filler_cleanup")
        text = text2

    # 2) нормализуем пробелы
    text2 = SPACE_BEFORE_PUNCT_RE.sub(r"\1", MULTISPACE_RE.sub(" ", text)).strip(" ,")
    if text2 != text:
        meta["applied"].append("whitespace_normalize")
        text = text2

    if not text:
        return "", meta

    # 3) заглавная буква
    if text[0].islower():
        text = text[0].upper() + text[1:]
        meta["applied"].append("capitalize")

    # 4) финальная точка
    if text[-1] not in ".!?":
        text += "."
        meta["applied"].append("final_punct")

    return text, meta


def describe_cleanup(meta: dict) -> str:
    applied = meta.get("applied") or []
    if not applied:
        return "No improvements applied"
    return "Basic cleanup: " + ", ".join(a.replace("_", " ") for a in applied)
