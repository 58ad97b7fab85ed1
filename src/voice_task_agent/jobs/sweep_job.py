"""
Sweep job.

Назначение:
- один проход серверной стратегии напоминаний
- метрики по результату прохода
"""

from __future__ import annotations

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.metrics import record_sweep_result
from voice_task_agent.delivery.server_sweep import ServerSweepDispatcher, SweepReport
from voice_task_agent.storage.action_store import ScheduledActionStore
from voice_task_agent.storage.task_store import TaskStore

log = get_project_logger()

_dispatcher: ServerSweepDispatcher | None = None


def build_sweep_dispatcher() -> ServerSweepDispatcher:
    return ServerSweepDispatcher(ScheduledActionStore(), TaskStore())


def _get_dispatcher() -> ServerSweepDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_sweep_dispatcher()
    return _dispatcher


def run(*, dispatcher: ServerSweepDispatcher | None = None, source: str = "job") -> SweepReport | None:
    settings = get_settings()
    if not settings.sweep_enabled:
        log.info("sweep_job_skipped", extra={"payload": {"reason": "disabled"}})
        record_sweep_result(source=source, completed=0, failed=0, skipped=True)
        return None

    dispatcher = dispatcher or _get_dispatcher()
    log.info("sweep_job_started", extra={"payload": {"batch_limit": dispatcher.batch_limit}})

    report = dispatcher.sweep()
    record_sweep_result(
        source=source,
        completed=report.completed_count,
        failed=report.failed_count,
        skipped=report.skipped,
    )
    log.info(
        "sweep_job_finished",
        extra={
            "payload": {
                "skipped": report.skipped,
                "processed": report.processed_count,
                "completed": report.completed_count,
                "failed": report.failed_count,
            }
        },
    )
    return report
