from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest

from voice_task_agent.common.errors import (
    ConflictError,
    DurablePersistFailed,
    ErrCode,
    RecordingFailed,
    TranscriptionUnavailable,
)
from voice_task_agent.delivery.on_device import InProcessNotificationBackend, OnDeviceDispatcher
from voice_task_agent.domain.enums import ActionStatus, ActionType, Confidence, PipelineState, RecordingState
from voice_task_agent.llm.mock import MockLLMProvider
from voice_task_agent.llm.orchestrator import LLMOrchestrator
from voice_task_agent.services.extraction_stage import ExtractionStage
from voice_task_agent.services.persistence import CandidatePersister
from voice_task_agent.services.recording_session import RecordingSession
from voice_task_agent.services.transcription_stage import TranscriptionStage
from voice_task_agent.services.voice_pipeline import VoicePipeline
from voice_task_agent.stt.mock import MockSTTProvider

T = datetime(2030, 5, 6, 10, 0, tzinfo=UTC)
AUDIO = b"\x1aE\xdf\xa3webm-bytes"


def _llm_response(confidence: str, action_type: str = "call") -> str:
    return json.dumps(
        {
            "cleanedText": "Call Nigel tomorrow at 3pm.",
            "extractedTasks": [
                {
                    "title": "Call Nigel",
                    "description": "Call Nigel tomorrow at 3pm",
                    "priority": "high",
                    "actionType": action_type,
                    "contactInfo": {"name": "Nigel"},
                }
            ],
            "improvements": "Capitalized name",
            "confidence": confidence,
            "potentialErrors": [],
        }
    )


class _DownSTT:
    def transcribe(self, *, audio: bytes, filename: str = "audio.webm", mime: str = "audio/webm"):
        raise TranscriptionUnavailable("STT 401")


def _pipeline(
    stores,
    *,
    stt_text: str = "call nigel tomorrow at 3pm",
    llm: MockLLMProvider | None = None,
    stt=None,
    now: datetime = T,
    on_device: OnDeviceDispatcher | None = None,
) -> VoicePipeline:
    return VoicePipeline(
        TranscriptionStage(stt or MockSTTProvider(text=stt_text)),
        ExtractionStage(LLMOrchestrator(llm or MockLLMProvider(), retries=0), tz_name="UTC"),
        CandidatePersister(stores.tasks, stores.actions, on_device=on_device, clock=lambda: now),
        audit=stores.tasks,
        reference_clock=lambda: T,
    )


def test_high_confidence_actionable_is_auto_accepted(stores) -> None:
    run = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("high"))).process(AUDIO)

    assert run.state == PipelineState.auto_accepted
    assert len(run.persisted) == 1
    saved = run.persisted[0]
    assert saved.task.action_type == ActionType.call
    assert saved.action is not None
    assert saved.action.scheduled_for == datetime(2030, 5, 7, 15, 0, tzinfo=UTC)
    assert saved.action.web_push is True
    assert run.transcription_id is not None

    body = run.to_response()
    assert body["success"] is True
    assert body["autoAccepted"] is True
    assert body["extractedTasks"][0]["actionType"] == "call"
    assert set(body["timings"]) >= {"whisperTime", "chatgptTime", "databaseTime", "totalTime"}


def test_medium_confidence_requires_explicit_accept(stores) -> None:
    run = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("medium"))).process(AUDIO)

    assert run.state == PipelineState.reviewing
    assert stores.tasks.list_tasks() == []

    run.accept()
    assert run.state == PipelineState.accepted
    assert len(stores.tasks.list_tasks()) == 1


def test_high_confidence_note_without_time_needs_review(stores) -> None:
    run = _pipeline(
        stores, stt_text="buy milk", llm=MockLLMProvider(response=_llm_response("high", "note"))
    ).process(AUDIO)
    assert run.state == PipelineState.reviewing


def test_spoken_reminder_end_to_end(stores) -> None:
    run = _pipeline(stores, stt_text="remind me in ten minutes to call nigel").process(AUDIO)

    assert run.state == PipelineState.reviewing
    assert len(run.result.candidates) == 1
    candidate = run.result.candidates[0]
    assert candidate.action_type == ActionType.reminder
    assert candidate.scheduled_for == T + timedelta(minutes=10)
    assert candidate.contact_info.name == "nigel"

    persisted = run.accept()
    task = persisted[0].task
    action = persisted[0].action
    assert stores.tasks.get(task.id) is not None
    assert action.status == ActionStatus.pending
    assert action.scheduled_for == T + timedelta(minutes=10)
    assert action.task_id == task.id


def test_past_due_time_saves_task_without_action(stores) -> None:
    run = _pipeline(
        stores,
        stt_text="remind me in ten minutes to call nigel",
        now=T + timedelta(hours=1),
    ).process(AUDIO)
    persisted = run.accept()

    assert persisted[0].action is None
    assert persisted[0].task.scheduled_for == T + timedelta(minutes=10)
    assert stores.actions.list_by_status() == []


def test_model_outage_degrades_to_low_confidence_review(stores) -> None:
    class _Down:
        def complete_text(self, *, system: str, user: str) -> str:
            raise RuntimeError("connection reset")

    run = _pipeline(stores, stt_text="call the dentist tomorrow", llm=_Down()).process(AUDIO)
    assert run.state == PipelineState.reviewing
    assert run.result.kind == "fallback"
    assert run.result.confidence == Confidence.low
    assert run.to_response()["extractionMode"] == "fallback"


def test_transcription_failure_is_terminal(stores) -> None:
    run = _pipeline(stores, stt=_DownSTT()).process(AUDIO)
    assert run.state == PipelineState.failed
    body = run.to_response()
    assert body["success"] is False
    assert body["code"] == ErrCode.TRANSCRIPTION_UNAVAILABLE
    assert "totalTime" in body["timings"]


def test_empty_audio_fails_without_stt_call(stores) -> None:
    stt = MockSTTProvider(text="never")
    run = _pipeline(stores, stt=stt).process(b"")
    assert run.state == PipelineState.failed
    assert run.error.code == ErrCode.EMPTY_AUDIO
    assert stt.calls == 0


def test_retry_reuses_transcript(stores) -> None:
    stt = MockSTTProvider(text="cal nygel tmrw")
    llm = MockLLMProvider(response=_llm_response("medium"))
    run = _pipeline(stores, stt=stt, llm=llm).process(AUDIO)

    run.retry(aggressive=True)
    assert run.state == PipelineState.reviewing
    assert stt.calls == 1
    assert len(llm.calls) == 2
    assert len(llm.calls[1]["system"]) > len(llm.calls[0]["system"])


def test_cancel_closes_review(stores) -> None:
    run = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("medium"))).process(AUDIO)
    run.cancel()
    assert run.state == PipelineState.cancelled
    with pytest.raises(ConflictError):
        run.accept()
    assert stores.tasks.list_tasks() == []


def test_review_actions_are_mutually_exclusive(stores) -> None:
    run = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("medium"))).process(AUDIO)
    run._lock.acquire()
    try:
        with pytest.raises(ConflictError):
            run.force_accept()
    finally:
        run._lock.release()
    assert run.state == PipelineState.reviewing


def test_scheduled_action_failure_keeps_task(stores, monkeypatch) -> None:
    def _boom(**_kwargs):
        raise DurablePersistFailed("Не удалось записать в БД")

    monkeypatch.setattr(stores.actions, "create", _boom)
    run = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("high"))).process(AUDIO)

    assert run.state == PipelineState.auto_accepted
    assert run.persisted[0].action is None
    assert run.persisted[0].warnings
    assert stores.tasks.get(run.persisted[0].task.id) is not None


def test_on_device_scheduling_disables_web_push(stores) -> None:
    backend = InProcessNotificationBackend(clock=lambda: T)
    on_device = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T, tz_name="UTC")
    try:
        run = _pipeline(
            stores, llm=MockLLMProvider(response=_llm_response("high")), on_device=on_device
        ).process(AUDIO)
        saved = run.persisted[0]
        assert saved.on_device_scheduled is True
        assert saved.action.web_push is False
        assert stores.actions.list_due(T + timedelta(days=2)) == []
        [notification] = backend.pending.values()
        assert notification.extra == {"actionId": saved.action.id}
        assert notification.title == "Call Nigel in 1 day"
    finally:
        backend.shutdown()


def test_on_device_failure_falls_back_to_web_push(stores) -> None:
    class _BrokenNative(InProcessNotificationBackend):
        def schedule(self, notification) -> None:
            raise RuntimeError("permission denied")

    on_device = OnDeviceDispatcher(_BrokenNative(), stores.actions, stores.tasks, clock=lambda: T)
    run = _pipeline(
        stores, llm=MockLLMProvider(response=_llm_response("high")), on_device=on_device
    ).process(AUDIO)
    saved = run.persisted[0]
    assert saved.on_device_scheduled is False
    assert saved.action.web_push is True
    assert [a.id for a in stores.actions.list_due(T + timedelta(days=2))] == [saved.action.id]


@pytest.mark.parametrize("model_down", [False, True])
def test_unrepresentable_time_reaches_review_unscheduled(stores, model_down: bool) -> None:
    class _Down:
        def complete_text(self, *, system: str, user: str) -> str:
            raise RuntimeError("connection reset")

    run = _pipeline(
        stores,
        stt_text="remind me in 99999999999 minutes to call nigel",
        llm=_Down() if model_down else None,
    ).process(AUDIO)

    assert run.state == PipelineState.reviewing
    assert run.result.candidates
    assert all(c.scheduled_for is None for c in run.result.candidates)

    persisted = run.accept()
    assert persisted[0].action is None


def test_auto_accept_partial_failure_keeps_saved_tasks(stores, monkeypatch) -> None:
    body = json.loads(_llm_response("high"))
    body["extractedTasks"].append(
        {
            "title": "Call the dentist",
            "description": "Call the dentist tomorrow",
            "priority": "medium",
            "actionType": "call",
            "contactInfo": {"name": "dentist"},
        }
    )
    original = stores.tasks.create
    calls = []

    def _create(**kwargs):
        calls.append(kwargs["title"])
        if len(calls) == 2:
            raise DurablePersistFailed("Не удалось записать в БД")
        return original(**kwargs)

    monkeypatch.setattr(stores.tasks, "create", _create)
    run = _pipeline(stores, llm=MockLLMProvider(response=json.dumps(body))).process(AUDIO)

    assert run.state == PipelineState.failed
    assert run.error.code == ErrCode.DURABLE_PERSIST_FAILED
    assert [p.task.title for p in run.persisted] == ["Call Nigel"]
    assert [t.title for t in stores.tasks.list_tasks()] == ["Call Nigel"]
    body = run.to_response()
    assert body["success"] is False
    assert [p["taskId"] for p in body["persistedTasks"]] == [run.persisted[0].task.id]


class _Source:
    def __init__(self, audio: bytes = AUDIO, fail_stop: bool = False) -> None:
        self.audio = audio
        self.fail_stop = fail_stop

    def start(self) -> None:
        pass

    def stop(self) -> bytes:
        if self.fail_stop:
            raise OSError("device unplugged")
        return self.audio

    def abort(self) -> None:
        pass


class _Timer:
    def __init__(self, interval: float, fn) -> None:
        self.fn = fn
        self.daemon = False

    def start(self) -> None:
        pass

    def cancel(self) -> None:
        pass


def _session(source: _Source) -> RecordingSession:
    return RecordingSession(source, max_duration_sec=60, timer_factory=_Timer)


def test_recorded_audio_flows_into_auto_accepted_run(stores) -> None:
    pipeline = _pipeline(stores, llm=MockLLMProvider(response=_llm_response("high")))
    session = _session(_Source())

    run = pipeline.record(session)
    assert run.state == PipelineState.recording
    assert session.state == RecordingState.recording

    assert session.stop() == AUDIO
    assert run.state == PipelineState.auto_accepted
    assert len(run.persisted) == 1

    # поздняя отмена сессии не трогает уже обработанный прогон
    session.cancel()
    assert run.state == PipelineState.auto_accepted


def test_cancelled_recording_returns_run_to_idle(stores) -> None:
    pipeline = _pipeline(stores)
    session = _session(_Source())

    run = pipeline.record(session)
    session.cancel()
    assert run.state == PipelineState.idle
    assert stores.tasks.list_tasks() == []

    run.record(session)
    assert run.state == PipelineState.recording


def test_failed_stop_returns_run_to_idle(stores) -> None:
    session = _session(_Source(fail_stop=True))
    run = _pipeline(stores).record(session)

    assert session.stop() is None
    assert session.state == RecordingState.failed
    assert run.state == PipelineState.idle


def test_failed_microphone_start_leaves_run_idle(stores) -> None:
    class _NoMic(_Source):
        def start(self) -> None:
            raise RuntimeError("No microphone device available")

    run = _pipeline(stores).new_run()
    with pytest.raises(RecordingFailed):
        run.record(_session(_NoMic()))
    assert run.state == PipelineState.idle
