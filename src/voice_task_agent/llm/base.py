"""
Базовые типы для LLM.

Назначение:
- единый контракт провайдера: complete_text(system, user) -> str
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """
    Интерфейс провайдера LLM.
    """

    @abstractmethod
    def complete_text(self, *, system: str, user: str) -> str:
        """
        Сгенерировать ответ (сырой текст модели).
        """
        raise NotImplementedError
