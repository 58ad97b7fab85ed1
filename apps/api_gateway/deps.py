"""
FastAPI Depends и сборка сервисов.

Сюда выносим:
- сборку хранилищ, пайплайна и диспетчеров (один экземпляр на процесс)
- реестр прогонов пайплайна (accept / retry / cancel по runId)
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import NotFoundError
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.delivery.on_device import (
    BrowserNotificationBackend,
    InProcessNotificationBackend,
    LocalNotification,
    NotificationBackend,
    OnDeviceDispatcher,
)
from voice_task_agent.delivery.server_sweep import ServerSweepDispatcher
from voice_task_agent.llm.orchestrator import LLMOrchestrator, build_llm_orchestrator
from voice_task_agent.services.extraction_stage import ExtractionStage
from voice_task_agent.services.persistence import CandidatePersister
from voice_task_agent.services.transcription_stage import TranscriptionStage
from voice_task_agent.services.voice_pipeline import PipelineRun, VoicePipeline
from voice_task_agent.storage.action_store import ScheduledActionStore
from voice_task_agent.storage.change_feed import ChangeFeed
from voice_task_agent.storage.task_store import TaskStore
from voice_task_agent.stt.base import STTProvider
from voice_task_agent.stt.factory import build_stt_provider

log = get_project_logger()


class RunRegistry:
    """
    Последние прогоны в памяти процесса; старые вытесняются.
    """

    def __init__(self, max_runs: int = 100) -> None:
        self.max_runs = max_runs
        self._lock = threading.Lock()
        self._runs: OrderedDict[str, PipelineRun] = OrderedDict()

    def add(self, run: PipelineRun) -> PipelineRun:
        with self._lock:
            self._runs[run.run_id] = run
            while len(self._runs) > self.max_runs:
                self._runs.popitem(last=False)
        return run

    def get(self, run_id: str) -> PipelineRun:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise NotFoundError("Прогон не найден", {"run_id": run_id})
        return run


@dataclass
class AppServices:
    tasks: TaskStore
    actions: ScheduledActionStore
    feed: ChangeFeed
    pipeline: VoicePipeline
    on_device: OnDeviceDispatcher
    sweeper: ServerSweepDispatcher
    runs: RunRegistry


def _on_delivered(notification: LocalNotification) -> None:
    log.info(
        "on_device_notification_delivered",
        extra={"payload": {"notification_id": notification.id, "action_id": notification.extra.get("actionId")}},
    )


def build_services(
    *,
    session_factory: sessionmaker[Session] | None = None,
    stt: STTProvider | None = None,
    llm: LLMOrchestrator | None = None,
    backend: NotificationBackend | None = None,
) -> AppServices:
    s = get_settings()
    feed = ChangeFeed()
    tasks = TaskStore(session_factory, feed=feed)
    actions = ScheduledActionStore(session_factory, feed=feed)

    if backend is None:
        backend = (
            InProcessNotificationBackend(_on_delivered)
            if s.on_device_notifications
            else BrowserNotificationBackend()
        )
    on_device = OnDeviceDispatcher(backend, actions, tasks, tz_name=s.user_timezone)

    pipeline = VoicePipeline(
        TranscriptionStage(stt or build_stt_provider()),
        ExtractionStage(llm or build_llm_orchestrator(), tz_name=s.user_timezone),
        CandidatePersister(tasks, actions, on_device=on_device),
        audit=tasks,
    )
    return AppServices(
        tasks=tasks,
        actions=actions,
        feed=feed,
        pipeline=pipeline,
        on_device=on_device,
        sweeper=ServerSweepDispatcher(actions, tasks),
        runs=RunRegistry(),
    )


_services: AppServices | None = None
_services_lock = threading.Lock()


def get_services() -> AppServices:
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services()
        return _services


def set_services(services: AppServices | None) -> None:
    global _services
    with _services_lock:
        _services = services


def services_dep() -> AppServices:
    return get_services()
