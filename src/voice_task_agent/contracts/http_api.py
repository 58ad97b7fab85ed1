"""
HTTP API контракты (Pydantic-модели).

Назначение:
- валидация входа/выхода на уровне FastAPI
- стабильные структуры для клиентов (camelCase на проводе, как у мобильного клиента)
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .extraction import TaskCandidate


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# ЗАПРОСЫ
# =============================================================================
class VoiceProcessRequest(_Wire):
    # base64 (допускается data URL); пустая строка отклоняется пайплайном как empty_audio
    audio: str
    force_aggressive_correction: bool = Field(default=False, alias="forceAggressiveCorrection")


class RunAcceptRequest(_Wire):
    # None → принять кандидатов как есть
    candidates: list[TaskCandidate] | None = None


class RunRetryRequest(_Wire):
    aggressive: bool = True


# =============================================================================
# ОТВЕТЫ
# =============================================================================
class Timings(_Wire):
    whisper_time: int = Field(default=0, alias="whisperTime")
    chatgpt_time: int = Field(default=0, alias="chatgptTime")
    database_time: int = Field(default=0, alias="databaseTime")
    total_time: int = Field(default=0, alias="totalTime")


class PersistedTaskOut(_Wire):
    task_id: str = Field(alias="taskId")
    scheduled_action_id: str | None = Field(default=None, alias="scheduledActionId")
    on_device_scheduled: bool = Field(default=False, alias="onDeviceScheduled")
    warnings: list[str] = Field(default_factory=list)


class VoiceProcessResponse(_Wire):
    success: bool = True
    run_id: str = Field(alias="runId")
    state: str
    auto_accepted: bool = Field(default=False, alias="autoAccepted")
    raw_transcription: str = Field(default="", alias="rawTranscription")
    cleaned_text: str = Field(default="", alias="cleanedText")
    extracted_tasks: list[TaskCandidate] = Field(default_factory=list, alias="extractedTasks")
    improvements: str = ""
    confidence: str = "low"
    potential_errors: list[str] = Field(default_factory=list, alias="potentialErrors")
    extraction_mode: str | None = Field(default=None, alias="extractionMode")
    transcription_id: str | None = Field(default=None, alias="transcriptionId")
    persisted_tasks: list[PersistedTaskOut] = Field(default_factory=list, alias="persistedTasks")
    timings: Timings = Field(default_factory=Timings)


class ErrorResponse(_Wire):
    success: bool = False
    error: str
    code: str
    run_id: str | None = Field(default=None, alias="runId")
    raw_transcription: str | None = Field(default=None, alias="rawTranscription")
    persisted_tasks: list[PersistedTaskOut] = Field(default_factory=list, alias="persistedTasks")
    timings: Timings = Field(default_factory=Timings)


class SweepActionOut(BaseModel):
    id: str
    action_type: str
    task_title: str | None = None
    notifications_sent: list[str] = Field(default_factory=list)
    status: str


class SweepResponse(BaseModel):
    success: bool = True
    processed_count: int = 0
    actions: list[SweepActionOut] = Field(default_factory=list)


class NotificationAckResponse(BaseModel):
    ok: bool = True
    action_id: str
    changed: bool


class CompletedTaskOut(BaseModel):
    id: str
    original_task_id: str
    title: str
    description: str | None = None
    priority: str
    completed_at: str


class TaskCompleteResponse(BaseModel):
    ok: bool = True
    completed: CompletedTaskOut
    cancelled_reminders: int = 0
