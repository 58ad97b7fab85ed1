"""
Оркестратор голосового пайплайна.

Назначение:
- один прогон на одну запись: idle → recording → processing → reviewing | auto_accepted | failed
- распознавание и извлечение строго последовательно, с таймингами стадий
- политика авто-принятия: confidence=high и хотя бы один кандидат со временем
  или с типом call/text/email/reminder
- действия над результатом на проверке (accept / retry / force_accept / cancel)
  взаимоисключающие: параллельная попытка получает ConflictError
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from voice_task_agent.common.errors import AppError, ConflictError
from voice_task_agent.common.ids import new_run_id
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.metrics import PIPELINE_OUTCOMES_TOTAL
from voice_task_agent.common.time import user_now
from voice_task_agent.common.timer import ProcessingTimer
from voice_task_agent.contracts.extraction import TaskCandidate
from voice_task_agent.domain.enums import ACTIONABLE_TYPES, Confidence, PipelineState
from voice_task_agent.domain.state_machine import transition
from voice_task_agent.storage.task_store import TaskStore

from .extraction_stage import ExtractionResult, ExtractionStage
from .persistence import CandidatePersister, PersistedCandidate
from .recording_session import RecordingSession
from .transcription_stage import TranscriptionStage

log = get_project_logger()


def should_auto_accept(result: ExtractionResult) -> bool:
    if result.confidence != Confidence.high:
        return False
    return any(
        c.scheduled_for is not None or c.action_type in ACTIONABLE_TYPES for c in result.candidates
    )


class PipelineRun:
    """
    Состояние одного прогона. Создаётся через VoicePipeline.new_run().
    """

    def __init__(self, pipeline: VoicePipeline, run_id: str) -> None:
        self._pipeline = pipeline
        self.run_id = run_id
        self.state = PipelineState.idle
        self.raw_transcription: str | None = None
        self.audio_length = 0
        self.transcription_id: str | None = None
        self.reference: datetime | None = None
        self.result: ExtractionResult | None = None
        self.persisted: list[PersistedCandidate] = []
        self.error: AppError | None = None
        self.timings: dict[str, int] = {}
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Переходы
    # -------------------------------------------------------------------------
    def _move(self, target: PipelineState) -> None:
        res = transition(self.state, target)
        if not res.ok:
            raise ConflictError(
                "Недопустимое действие для текущего состояния",
                {"run_id": self.run_id, "state": self.state.value, "target": target.value, "reason": res.reason},
            )
        self.state = target

    def _exclusive(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise ConflictError("Действие над результатом уже выполняется", {"run_id": self.run_id})

    def begin_recording(self) -> PipelineRun:
        with self._lock:
            self._move(PipelineState.recording)
        return self

    def abandon_recording(self) -> PipelineRun:
        with self._lock:
            if self.state == PipelineState.recording:
                self._move(PipelineState.idle)
        return self

    def record(self, session: RecordingSession, *, aggressive: bool = False) -> PipelineRun:
        """
        Связывает сессию записи с прогоном.

        start() сессии переводит прогон в recording, готовое аудио (stop или
        таймер длительности) уходит в process(), а отмена или сбой записи
        возвращают прогон в idle. Запущенную обработку остановка не отменяет.
        """
        self.begin_recording()
        session.set_completion_handler(lambda audio: self.process(audio, aggressive=aggressive))
        session.set_abort_handler(self.abandon_recording)
        try:
            session.start()
        except AppError:
            self.abandon_recording()
            raise
        log.info("voice_pipeline_recording", extra={"payload": {"run_id": self.run_id}})
        return self

    # -------------------------------------------------------------------------
    # Обработка
    # -------------------------------------------------------------------------
    def process(
        self,
        audio: bytes | str,
        *,
        aggressive: bool = False,
        reference: datetime | None = None,
    ) -> PipelineRun:
        self._exclusive()
        try:
            self._move(PipelineState.processing)
            self._pipeline._process(self, audio, aggressive=aggressive, reference=reference)
        finally:
            self._lock.release()
        return self

    def accept(self, candidates: list[TaskCandidate] | None = None) -> list[PersistedCandidate]:
        """
        Пользователь подтвердил (возможно, отредактированные) кандидаты.
        """
        self._exclusive()
        try:
            self._require_reviewing()
            chosen = self.result.candidates if candidates is None else candidates
            return self._pipeline._persist(self, chosen, PipelineState.accepted)
        finally:
            self._lock.release()

    def force_accept(self) -> list[PersistedCandidate]:
        """
        Сохраняет кандидатов последнего результата как есть.
        """
        self._exclusive()
        try:
            self._require_reviewing()
            return self._pipeline._persist(self, list(self.result.candidates), PipelineState.accepted)
        finally:
            self._lock.release()

    def retry(self, *, aggressive: bool = True) -> PipelineRun:
        """
        Повтор только извлечения (транскрипт закэширован).
        """
        self._exclusive()
        try:
            self._require_reviewing()
            self._move(PipelineState.processing)
            timer = ProcessingTimer()
            timer.start("total")
            self._pipeline._extract_and_decide(self, aggressive=aggressive, timer=timer)
        finally:
            self._lock.release()
        return self

    def cancel(self) -> PipelineRun:
        self._exclusive()
        try:
            self._require_reviewing()
            self._move(PipelineState.cancelled)
            PIPELINE_OUTCOMES_TOTAL.labels(outcome="cancelled").inc()
            log.info("voice_pipeline_cancelled", extra={"payload": {"run_id": self.run_id}})
        finally:
            self._lock.release()
        return self

    def _require_reviewing(self) -> None:
        if self.state != PipelineState.reviewing or self.result is None:
            raise ConflictError(
                "Результат не ожидает проверки",
                {"run_id": self.run_id, "state": self.state.value},
            )

    # -------------------------------------------------------------------------
    # Ответ API
    # -------------------------------------------------------------------------
    def _persisted_payload(self) -> list[dict[str, Any]]:
        # частично сохранённое при сбое тоже отдаём клиенту
        return [
            {
                "taskId": p.task.id,
                "scheduledActionId": p.action.id if p.action else None,
                "onDeviceScheduled": p.on_device_scheduled,
                "warnings": list(p.warnings),
            }
            for p in self.persisted
        ]

    def to_response(self) -> dict[str, Any]:
        if self.state == PipelineState.failed and self.error is not None:
            return {
                "success": False,
                "error": self.error.message,
                "code": self.error.code,
                "runId": self.run_id,
                "rawTranscription": self.raw_transcription,
                "persistedTasks": self._persisted_payload(),
                "timings": dict(self.timings),
            }

        result = self.result
        return {
            "success": True,
            "runId": self.run_id,
            "state": self.state.value,
            "autoAccepted": self.state == PipelineState.auto_accepted,
            "rawTranscription": self.raw_transcription or "",
            "cleanedText": result.cleaned_text if result else "",
            "extractedTasks": [
                c.model_dump(mode="json", by_alias=True) for c in (result.candidates if result else [])
            ],
            "improvements": result.improvements if result else "",
            "confidence": (result.confidence.value if result else Confidence.low.value),
            "potentialErrors": list(result.potential_errors) if result else [],
            "extractionMode": result.kind if result else None,
            "transcriptionId": self.transcription_id,
            "persistedTasks": self._persisted_payload(),
            "timings": dict(self.timings),
        }


class VoicePipeline:
    def __init__(
        self,
        transcription: TranscriptionStage,
        extraction: ExtractionStage,
        persister: CandidatePersister,
        *,
        audit: TaskStore | None = None,
        reference_clock: Callable[[], datetime] = user_now,
    ) -> None:
        self.transcription = transcription
        self.extraction = extraction
        self.persister = persister
        self.audit = audit
        self._reference_clock = reference_clock

    def new_run(self) -> PipelineRun:
        return PipelineRun(self, new_run_id())

    def process(
        self,
        audio: bytes | str,
        *,
        aggressive: bool = False,
        reference: datetime | None = None,
    ) -> PipelineRun:
        return self.new_run().process(audio, aggressive=aggressive, reference=reference)

    def record(self, session: RecordingSession, *, aggressive: bool = False) -> PipelineRun:
        return self.new_run().record(session, aggressive=aggressive)

    # -------------------------------------------------------------------------
    # Внутренние шаги (вызываются под блокировкой прогона)
    # -------------------------------------------------------------------------
    def _fail(self, run: PipelineRun, err: AppError, timer: ProcessingTimer) -> None:
        timer.end("total")
        run.error = err
        run.timings = timer.summary()
        run._move(PipelineState.failed)
        PIPELINE_OUTCOMES_TOTAL.labels(outcome="failed").inc()
        log.warning(
            "voice_pipeline_failed",
            extra={"payload": {"run_id": run.run_id, "code": err.code, "err": err.message}},
        )

    def _process(
        self,
        run: PipelineRun,
        audio: bytes | str,
        *,
        aggressive: bool,
        reference: datetime | None,
    ) -> None:
        timer = ProcessingTimer()
        timer.start("total")
        run.reference = reference or self._reference_clock()

        try:
            with timer.stage("transcription"):
                out = self.transcription.run(audio)
        except AppError as e:
            self._fail(run, e, timer)
            return

        run.raw_transcription = out.text
        run.audio_length = out.audio_length
        self._extract_and_decide(run, aggressive=aggressive, timer=timer)

    def _extract_and_decide(self, run: PipelineRun, *, aggressive: bool, timer: ProcessingTimer) -> None:
        with timer.stage("extraction"):
            result = self.extraction.run(
                run.raw_transcription or "", reference=run.reference, aggressive=aggressive
            )
        run.result = result

        timer.start("database")
        if self.audit is not None and run.transcription_id is None:
            try:
                run.transcription_id = self.audit.record_transcription(
                    text=result.cleaned_text, audio_length=run.audio_length
                )
            except AppError as e:
                log.warning(
                    "transcription_audit_failed",
                    extra={"payload": {"run_id": run.run_id, "code": e.code}},
                )

        if should_auto_accept(result):
            try:
                self._persist_each(run, result.candidates)
            except AppError as e:
                timer.end("database")
                self._fail(run, e, timer)
                return
            run._move(PipelineState.auto_accepted)
        else:
            run._move(PipelineState.reviewing)
        timer.end("database")
        timer.end("total")
        run.timings = timer.summary()

        PIPELINE_OUTCOMES_TOTAL.labels(outcome=run.state.value).inc()
        log.info(
            "voice_pipeline_done",
            extra={
                "payload": {
                    "run_id": run.run_id,
                    "state": run.state.value,
                    "mode": result.kind,
                    "confidence": result.confidence.value,
                    "candidates": len(result.candidates),
                    "timings": run.timings,
                }
            },
        )

    def _persist(
        self,
        run: PipelineRun,
        candidates: list[TaskCandidate],
        target: PipelineState,
    ) -> list[PersistedCandidate]:
        try:
            persisted = self._persist_each(run, candidates)
        except AppError as e:
            run.error = e
            run._move(PipelineState.failed)
            PIPELINE_OUTCOMES_TOTAL.labels(outcome="failed").inc()
            raise
        run._move(target)
        PIPELINE_OUTCOMES_TOTAL.labels(outcome=target.value).inc()
        log.info(
            "voice_pipeline_accepted",
            extra={"payload": {"run_id": run.run_id, "saved": len(persisted)}},
        )
        return persisted

    def _persist_each(self, run: PipelineRun, candidates: list[TaskCandidate]) -> list[PersistedCandidate]:
        """
        Сохраняет кандидатов по одному; уже сохранённые остаются в run.persisted
        даже при сбое на следующем.
        """
        run.persisted = []
        for c in candidates:
            try:
                run.persisted.append(self.persister.persist(c))
            except AppError as e:
                log.error(
                    "voice_pipeline_persist_failed",
                    extra={
                        "payload": {
                            "run_id": run.run_id,
                            "code": e.code,
                            "saved": len(run.persisted),
                            "total": len(candidates),
                        }
                    },
                )
                raise
        return run.persisted
