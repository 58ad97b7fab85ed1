from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from voice_task_agent.common.errors import ErrCode, ProviderError
from voice_task_agent.domain.enums import ActionType, Confidence
from voice_task_agent.llm.mock import MockLLMProvider
from voice_task_agent.llm.orchestrator import LLMOrchestrator
from voice_task_agent.llm.prompts import AGGRESSIVE_CORRECTION_ADDENDUM
from voice_task_agent.services.extraction_stage import (
    ExtractionFallback,
    ExtractionStage,
    ExtractionSuccess,
)

T = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


class _DownProvider:
    def complete_text(self, *, system: str, user: str) -> str:
        raise ProviderError(ErrCode.LLM_PROVIDER_ERROR, "connection refused")


def _stage(provider) -> ExtractionStage:
    return ExtractionStage(LLMOrchestrator(provider, retries=0), title_max_len=50, tz_name="UTC")


def test_model_failure_falls_back_to_keywords() -> None:
    result = _stage(_DownProvider()).run("please remind me to water the plants", reference=T)
    assert isinstance(result, ExtractionFallback)
    assert result.reason == "unavailable"
    assert result.confidence == Confidence.low
    assert len(result.candidates) == 1
    assert result.candidates[0].action_type == ActionType.reminder
    assert result.potential_errors


def test_malformed_output_falls_back_with_warning() -> None:
    result = _stage(MockLLMProvider(response="Sorry, I can't help with that.")).run(
        "call the bank", reference=T
    )
    assert isinstance(result, ExtractionFallback)
    assert result.reason == "malformed"
    assert result.confidence == Confidence.low
    assert any("malformed" in e for e in result.potential_errors)
    assert result.candidates[0].action_type == ActionType.call


def test_empty_transcript_is_fallback_without_model_call() -> None:
    provider = MockLLMProvider()
    result = _stage(provider).run("   ", reference=T)
    assert isinstance(result, ExtractionFallback)
    assert result.reason == "empty"
    assert result.candidates == []
    assert provider.calls == []


def test_model_time_is_overwritten_from_transcript() -> None:
    response = json.dumps(
        {
            "cleanedText": "Call Nigel in 10 minutes.",
            "extractedTasks": [
                {"title": "Call Nigel", "actionType": "call", "scheduledFor": "1999-01-01T00:00:00Z"},
                {"title": "Buy milk", "actionType": "note"},
            ],
            "confidence": "high",
        }
    )
    result = _stage(MockLLMProvider(response=response)).run("call nigel in ten minutes", reference=T)
    assert isinstance(result, ExtractionSuccess)
    assert result.confidence == Confidence.high
    assert [c.scheduled_for for c in result.candidates] == [T + timedelta(minutes=10)] * 2


def test_no_time_expression_clears_model_time() -> None:
    response = json.dumps(
        {"extractedTasks": [{"title": "Call mom", "actionType": "call", "scheduledFor": "2030-01-01"}]}
    )
    result = _stage(MockLLMProvider(response=response)).run("call mom", reference=T)
    assert result.candidates[0].scheduled_for is None


def test_aggressive_flag_widens_prompt() -> None:
    provider = MockLLMProvider()
    _stage(provider).run("cal nygel tmrw", reference=T, aggressive=True)
    assert AGGRESSIVE_CORRECTION_ADDENDUM in provider.calls[0]["system"]
