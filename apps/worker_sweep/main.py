"""
Worker Sweep.

Назначение:
- периодически запускать sweep_job
- доставлять наступившие напоминания, когда локальные уведомления недоступны
"""

from __future__ import annotations

import time

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.logging import get_project_logger, setup_logging
from voice_task_agent.jobs.sweep_job import run as run_sweep

log = get_project_logger()


def main() -> None:
    setup_logging()
    settings = get_settings()
    interval_sec = max(5, int(settings.sweep_interval_sec))

    log.info(
        "worker_sweep_started",
        extra={
            "payload": {
                "enabled": bool(settings.sweep_enabled),
                "interval_sec": interval_sec,
                "batch_limit": int(settings.sweep_batch_limit),
            }
        },
    )

    while True:
        try:
            run_sweep()
        except Exception as e:
            log.error(
                "worker_sweep_error",
                extra={"payload": {"err": str(e)[:300]}},
            )
        time.sleep(interval_sec)


if __name__ == "__main__":
    main()
