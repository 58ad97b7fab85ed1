"""
Генерация идентификаторов.

Назначение:
- id строк задач/действий
- временные id оптимистичных задач (до подтверждения БД)
"""

from __future__ import annotations

import secrets
import uuid


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_temp_id(prefix: str = "temp") -> str:
    return f"{prefix}-{secrets.token_hex(6)}"


def is_temp_id(value: str) -> bool:
    return value.startswith("temp-")


def new_run_id(prefix: str = "run") -> str:
    """Идентификатор прогона голосового пайплайна."""
    return f"{prefix}_{secrets.token_hex(6)}"
