"""
Логирование проекта.

- логирование в stdout (Docker-friendly)
- JSON по умолчанию, текст при LOG_FORMAT=text
- доп. поля передаются через extra={"payload": {...}}
- в payload не попадают контакты и полные тексты: длинные строки режутся,
  телефон/email маскируются
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.utils import safe_dict

PAYLOAD_MAX_STR = 300
_MASKED_KEYS = frozenset({"phone", "email", "contact_info"})


def scrub_payload(payload: dict[str, Any]) -> dict[str, Any]:
    out = safe_dict(payload, max_len=PAYLOAD_MAX_STR)
    for key in _MASKED_KEYS & out.keys():
        if out[key]:
            out[key] = "***"
    return out


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra_payload = getattr(record, "payload", None)
        if isinstance(extra_payload, dict):
            payload["payload"] = scrub_payload(extra_payload)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """
    Человекочитаемый формат для локального запуска: payload дописывается в конец строки.
    """

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_payload = getattr(record, "payload", None)
        if isinstance(extra_payload, dict) and extra_payload:
            line += " " + json.dumps(scrub_payload(extra_payload), ensure_ascii=False, default=str)
        return line


def _build_formatter() -> logging.Formatter:
    s = get_settings()
    if (s.log_format or "").lower() == "text":
        return TextFormatter()
    return JsonFormatter()


def setup_logging() -> None:
    s = get_settings()
    root = logging.getLogger()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # повторный вызов (тесты, reload) не добавляет хэндлеров
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter())
    root.addHandler(handler)

    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    # SQL-эхо только при DEBUG
    logging.getLogger("sqlalchemy.engine").setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_project_logger(name: str = "voice-task-agent") -> logging.Logger:
    return logging.getLogger(name)


def get_llm_logger() -> logging.Logger:
    """
    Логгер клиента языковой модели (ретраи, HTTP-ошибки).
    """
    return logging.getLogger("voice-task-agent.llm")
