"""
Mock LLM для тестов и dev.

Назначение:
- Быстро гонять пайплайн без реальных вызовов LLM
- Предсказуемый результат: ответ строится эвристикой по транскрипту
"""

from __future__ import annotations

import json
import re

from voice_task_agent.common.time import utc_now
from voice_task_agent.processing.cleanup import clean_transcript
from voice_task_agent.processing.heuristics import extract_candidate

from .base import LLMProvider

_QUOTED_RE = re.compile(r'"(?P<text>.*)"', re.DOTALL)


class MockLLMProvider(LLMProvider):
    def __init__(self, response: str | None = None) -> None:
        self.response = response
        self.calls: list[dict[str, str]] = []

    def complete_text(self, *, system: str, user: str) -> str:
        self.calls.append({"system": system, "user": user})
        if self.response is not None:
            return self.response

        m = _QUOTED_RE.search(user)
        transcript = m.group("text") if m else user
        cleaned, _ = clean_transcript(transcript)
        candidate = extract_candidate(transcript, utc_now())

        tasks = []
        if candidate is not None:
            task = candidate.model_dump(mode="json", by_alias=True)
            task["scheduledFor"] = None
            tasks.append(task)

        payload = {
            "cleanedText": cleaned,
            "extractedTasks": tasks,
            "improvements": "mock",
            "confidence": "medium",
            "potentialErrors": [],
        }
        return json.dumps(payload, ensure_ascii=False)
