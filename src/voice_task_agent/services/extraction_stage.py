"""
Стадия извлечения задач из транскрипта.

Назначение:
- вызов языковой модели со строгим JSON-контрактом
- ремонт и валидация ответа (ExtractionPayload)
- scheduledFor каждого кандидата пересчитывается из исходного транскрипта
- при недоступности модели или мусорном ответе → эвристика по ключевым словам

Стадия никогда не бросает исключения наружу: результат всегда
ExtractionSuccess | ExtractionFallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import AppError, ExtractionMalformed
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.metrics import EXTRACTION_MODE_TOTAL
from voice_task_agent.common.time import user_now
from voice_task_agent.common.utils import head
from voice_task_agent.contracts.extraction import TaskCandidate, repair_extraction_payload
from voice_task_agent.domain.enums import Confidence
from voice_task_agent.llm.orchestrator import LLMOrchestrator
from voice_task_agent.llm.prompts import build_system_prompt, build_user_message
from voice_task_agent.processing.cleanup import clean_transcript, describe_cleanup
from voice_task_agent.processing.heuristics import extract_candidate
from voice_task_agent.processing.time_resolver import resolve

log = get_project_logger()

FallbackReason = Literal["unavailable", "malformed", "empty"]

_FALLBACK_WARNINGS: dict[str, str] = {
    "unavailable": "Language model unavailable; tasks extracted by keyword fallback",
    "malformed": "Language model returned malformed output; tasks extracted by keyword fallback",
    "empty": "No speech detected in the recording",
}


# =============================================================================
# РЕЗУЛЬТАТЫ
# =============================================================================
@dataclass
class ExtractionSuccess:
    cleaned_text: str
    candidates: list[TaskCandidate]
    improvements: str
    confidence: Confidence
    potential_errors: list[str] = field(default_factory=list)
    kind: Literal["model"] = "model"


@dataclass
class ExtractionFallback:
    cleaned_text: str
    candidates: list[TaskCandidate]
    improvements: str
    reason: FallbackReason
    confidence: Confidence = Confidence.low
    potential_errors: list[str] = field(default_factory=list)
    kind: Literal["fallback"] = "fallback"


ExtractionResult = ExtractionSuccess | ExtractionFallback


# =============================================================================
# СТАДИЯ
# =============================================================================
class ExtractionStage:
    def __init__(
        self,
        llm: LLMOrchestrator,
        *,
        title_max_len: int | None = None,
        tz_name: str | None = None,
    ) -> None:
        s = get_settings()
        self.llm = llm
        self.title_max_len = int(title_max_len or s.fallback_title_max_len)
        self.tz_name = tz_name

    def _fallback(self, raw: str, reference: datetime, reason: FallbackReason) -> ExtractionFallback:
        cleaned, meta = clean_transcript(raw)
        candidate = extract_candidate(raw, reference, title_max_len=self.title_max_len)
        EXTRACTION_MODE_TOTAL.labels(mode=f"fallback_{reason}").inc()
        return ExtractionFallback(
            cleaned_text=cleaned or raw,
            candidates=[candidate] if candidate else [],
            improvements=describe_cleanup(meta),
            reason=reason,
            confidence=Confidence.low,
            potential_errors=[_FALLBACK_WARNINGS[reason]],
        )

    def run(
        self,
        raw_transcript: str,
        *,
        reference: datetime | None = None,
        aggressive: bool = False,
    ) -> ExtractionResult:
        raw = (raw_transcript or "").strip()
        reference = reference or user_now(self.tz_name)

        if not raw:
            return self._fallback(raw, reference, "empty")

        try:
            data = self.llm.complete_json(
                system=build_system_prompt(aggressive=aggressive),
                user=build_user_message(raw),
            )
            payload = repair_extraction_payload(data, raw_transcript=raw)
        except ExtractionMalformed as e:
            log.warning(
                "extraction_malformed",
                extra={"payload": {"err": e.message, "details": e.details, "text_head": head(raw)}},
            )
            return self._fallback(raw, reference, "malformed")
        except AppError as e:
            log.warning("extraction_unavailable", extra={"payload": {"code": e.code, "err": e.message}})
            return self._fallback(raw, reference, "unavailable")

        # время модели не используем: один и тот же разбор исходного транскрипта для всех задач
        scheduled_for = resolve(raw, reference)
        candidates = [
            c.model_copy(update={"scheduled_for": scheduled_for}) for c in payload.extracted_tasks
        ]

        EXTRACTION_MODE_TOTAL.labels(mode="model").inc()
        log.info(
            "extraction_done",
            extra={
                "payload": {
                    "candidates": len(candidates),
                    "confidence": payload.confidence.value,
                    "scheduled": scheduled_for is not None,
                    "aggressive": aggressive,
                }
            },
        )
        return ExtractionSuccess(
            cleaned_text=payload.cleaned_text,
            candidates=candidates,
            improvements=payload.improvements,
            confidence=payload.confidence,
            potential_errors=list(payload.potential_errors),
        )
