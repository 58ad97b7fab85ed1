from __future__ import annotations

import pytest

from voice_task_agent.common.errors import ExtractionMalformed, ProviderError
from voice_task_agent.contracts.extraction import repair_extraction_payload
from voice_task_agent.domain.enums import ActionType, Confidence, Priority
from voice_task_agent.llm.mock import MockLLMProvider
from voice_task_agent.llm.orchestrator import LLMOrchestrator, extract_json_object


def test_extract_json_object_strips_fences_and_prose() -> None:
    text = 'Sure! Here you go:\n```json\n{"cleanedText": "Hi.", "extractedTasks": []}\n```\nThanks'
    assert extract_json_object(text) == {"cleanedText": "Hi.", "extractedTasks": []}


def test_extract_json_object_rejects_garbage() -> None:
    with pytest.raises(ExtractionMalformed):
        extract_json_object("I could not understand the audio")
    with pytest.raises(ExtractionMalformed):
        extract_json_object('{"cleanedText": ')


def test_repair_coerces_enums_and_drops_blank_titles() -> None:
    payload = repair_extraction_payload(
        {
            "cleanedText": "Call Bob tomorrow.",
            "extractedTasks": [
                {
                    "title": "Call Bob",
                    "priority": "urgent",
                    "actionType": "phone",
                    "scheduledFor": "2030-01-01T00:00:00Z",
                    "contactInfo": {"name": "Bob"},
                },
                {"title": "   "},
                "not a task",
            ],
            "confidence": "very high",
            "potentialErrors": ["Bob might be Rob", 42],
        },
        raw_transcript="call bob tomorrow",
    )
    assert len(payload.extracted_tasks) == 1
    task = payload.extracted_tasks[0]
    assert task.priority == Priority.medium
    assert task.action_type == ActionType.note
    # время модели не принимается
    assert task.scheduled_for is None
    assert task.contact_info.name == "Bob"
    assert payload.confidence == Confidence.medium
    assert payload.potential_errors[0] == "Bob might be Rob"
    assert len(payload.potential_errors) == 3


def test_repair_defaults_missing_fields() -> None:
    payload = repair_extraction_payload({}, raw_transcript="buy milk")
    assert payload.cleaned_text == "buy milk"
    assert payload.extracted_tasks == []
    assert payload.improvements == "No improvements applied"


def test_repair_rejects_non_object_and_bad_task_list() -> None:
    with pytest.raises(ExtractionMalformed):
        repair_extraction_payload(["x"], raw_transcript="x")
    with pytest.raises(ExtractionMalformed):
        repair_extraction_payload({"extractedTasks": "call bob"}, raw_transcript="x")


class _FlakyProvider:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def complete_text(self, *, system: str, user: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("upstream 503")
        return '{"cleanedText": "ok"}'


def test_orchestrator_bounded_retry_with_backoff() -> None:
    sleeps: list[float] = []
    provider = _FlakyProvider(failures=2)
    orch = LLMOrchestrator(provider, retries=2, backoff_ms=100, sleep=sleeps.append)

    res = orch.complete_text(system="s", user="u")
    assert res.attempts == 3
    assert sleeps == [0.1, 0.2]


def test_orchestrator_gives_up_after_retries() -> None:
    provider = _FlakyProvider(failures=10)
    orch = LLMOrchestrator(provider, retries=1, backoff_ms=0, sleep=lambda _s: None)

    with pytest.raises(ProviderError) as exc:
        orch.complete_json(system="s", user="u")
    assert provider.calls == 2
    assert exc.value.details["attempts"] == 2


def test_mock_llm_uses_quoted_transcript() -> None:
    provider = MockLLMProvider()
    orch = LLMOrchestrator(provider, retries=0)
    data = orch.complete_json(
        system="s", user='Please analyze and process this speech-to-text transcription: "call nigel"'
    )
    assert data["extractedTasks"][0]["actionType"] == "call"
    assert data["extractedTasks"][0]["scheduledFor"] is None
    assert provider.calls[0]["system"] == "s"
