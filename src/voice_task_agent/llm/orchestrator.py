from __future__ import annotations

import json
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import ErrCode, ExtractionMalformed, ProviderError
from voice_task_agent.common.logging import get_llm_logger

log = get_llm_logger()

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class LLMTextResult:
    text: str
    attempts: int = 1


def extract_json_object(text: str) -> Any:
    """
    Достаёт первый JSON-объект из ответа модели (с учётом ```json ограждений
    и пояснительного текста вокруг).
    """
    body = _FENCE_RE.sub("", (text or "").strip())
    start = body.find("{")
    if start < 0:
        raise ExtractionMalformed("В ответе модели нет JSON-объекта", {"text_head": body[:500]})
    try:
        obj, _ = json.JSONDecoder().raw_decode(body[start:])
    except json.JSONDecodeError as e:
        raise ExtractionMalformed(
            "LLM вернул невалидный JSON", {"err": str(e), "text_head": body[:500]}
        ) from e
    return obj


class LLMOrchestrator:
    """Оркестратор вызовов LLM: ретраи, разбор JSON, единая обработка ошибок.

    Здесь нет логики провайдера, только orchestration.
    Провайдер должен иметь метод complete_text(system=..., user=...) -> str.
    """

    def __init__(
        self,
        provider: Any,
        *,
        retries: int | None = None,
        backoff_ms: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        s = get_settings()
        self.retries = max(0, int(s.llm_retries if retries is None else retries))
        self.backoff_ms = max(0, int(s.llm_retry_backoff_ms if backoff_ms is None else backoff_ms))
        self._sleep = sleep

    def _retry(self, fn: Callable[..., T], **kwargs: Any) -> tuple[T, int]:
        last_err: BaseException | None = None
        attempt = 0
        while attempt <= self.retries:
            try:
                return fn(**kwargs), attempt + 1
            except Exception as e:
                last_err = e
                if attempt >= self.retries:
                    break
                delay_ms = self.backoff_ms * (2**attempt)
                log.warning(
                    "llm_retry",
                    extra={"payload": {"attempt": attempt + 1, "delay_ms": delay_ms, "err": str(e)[:200]}},
                )
                self._sleep(delay_ms / 1000.0)
            attempt += 1

        raise ProviderError(
            ErrCode.LLM_PROVIDER_ERROR,
            "LLM не ответил после ретраев",
            {"err": str(last_err), "attempts": attempt + 1},
        ) from last_err

    def complete_text(self, *, system: str, user: str) -> LLMTextResult:
        text, attempts = self._retry(self.provider.complete_text, system=system, user=user)
        return LLMTextResult(text=text, attempts=attempts)

    def complete_json(self, *, system: str, user: str) -> Any:
        """
        Возвращает распарсенный JSON.

        - ProviderError: модель недоступна после ретраев
        - ExtractionMalformed: модель ответила, но не JSON-объектом
        """
        res = self.complete_text(system=system, user=user)
        if not isinstance(res.text, str):
            raise ExtractionMalformed("LLM вернул не строку", {"type": type(res.text).__name__})
        return extract_json_object(res.text)


def build_llm_orchestrator() -> LLMOrchestrator:
    """
    Сборка оркестратора по LLM_PROVIDER. Без ключа используется mock.
    """
    s = get_settings()
    provider = (s.llm_provider or "").strip().lower()

    from voice_task_agent.llm.mock import MockLLMProvider

    if provider == "mock" or not (s.openai_api_key or ""):
        return LLMOrchestrator(MockLLMProvider())

    from voice_task_agent.llm.openai_compat import OpenAICompatProvider

    return LLMOrchestrator(OpenAICompatProvider())
