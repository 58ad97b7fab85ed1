"""
Базовый интерфейс STT (Speech-to-Text).

Назначение:
- единый контракт для всех провайдеров
- пакетная обработка одной записи целиком
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class STTResult:
    text: str
    confidence: float | None = None
    language: str | None = None


class STTProvider(Protocol):
    def transcribe(
        self, *, audio: bytes, filename: str = "audio.webm", mime: str = "audio/webm"
    ) -> STTResult: ...
