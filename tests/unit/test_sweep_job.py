from __future__ import annotations

from voice_task_agent.common.config import get_settings
from voice_task_agent.delivery.server_sweep import SweepActionResult, SweepReport
from voice_task_agent.jobs import sweep_job


class _FakeDispatcher:
    batch_limit = 10

    def __init__(self, report: SweepReport) -> None:
        self.report = report
        self.calls = 0

    def sweep(self) -> SweepReport:
        self.calls += 1
        return self.report


def test_sweep_job_skips_when_disabled() -> None:
    s = get_settings()
    snapshot_enabled = s.sweep_enabled
    dispatcher = _FakeDispatcher(SweepReport())
    try:
        s.sweep_enabled = False
        assert sweep_job.run(dispatcher=dispatcher) is None
        assert dispatcher.calls == 0
    finally:
        s.sweep_enabled = snapshot_enabled


def test_sweep_job_runs_dispatcher() -> None:
    s = get_settings()
    snapshot_enabled = s.sweep_enabled
    report = SweepReport(
        actions=[
            SweepActionResult(
                id="a-1", action_type="call", task_title="Call mom", notifications_sent=["web_push"], status="completed"
            )
        ]
    )
    dispatcher = _FakeDispatcher(report)
    try:
        s.sweep_enabled = True
        result = sweep_job.run(dispatcher=dispatcher)
        assert result is report
        assert result.completed_count == 1
        assert dispatcher.calls == 1
    finally:
        s.sweep_enabled = snapshot_enabled


def test_sweep_job_uses_default_dispatcher(monkeypatch) -> None:
    dispatcher = _FakeDispatcher(SweepReport(skipped=True))
    monkeypatch.setattr(sweep_job, "_dispatcher", dispatcher)
    s = get_settings()
    snapshot_enabled = s.sweep_enabled
    try:
        s.sweep_enabled = True
        result = sweep_job.run()
        assert result.skipped is True
        assert dispatcher.calls == 1
    finally:
        s.sweep_enabled = snapshot_enabled
