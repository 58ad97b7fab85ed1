"""
Повтор записи в БД при временных сбоях.

Назначение:
- явный ограниченный цикл со счётчиком попыток
- линейная задержка DB_RETRY_DELAY_MS * attempt
- после исчерпания попыток → DurablePersistFailed
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import DurablePersistFailed

log = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    def __init__(
        self,
        *,
        max_attempts: int | None = None,
        delay_ms: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        s = get_settings()
        self.max_attempts = max(1, int(s.db_max_retry_attempts if max_attempts is None else max_attempts))
        self.delay_ms = max(0, int(s.db_retry_delay_ms if delay_ms is None else delay_ms))
        self._sleep = sleep

    def run(self, fn: Callable[[], T], *, op: str) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except IntegrityError as e:
                # повтор не поможет
                raise DurablePersistFailed(
                    "Нарушение ограничений БД", {"op": op, "err": str(e.orig)[:200]}
                ) from e
            except SQLAlchemyError as e:
                if attempt >= self.max_attempts:
                    log.error(
                        "db_write_failed",
                        extra={"payload": {"op": op, "attempts": attempt, "err": str(e)[:200]}},
                    )
                    raise DurablePersistFailed(
                        "Не удалось записать в БД", {"op": op, "attempts": attempt}
                    ) from e
                delay_ms = self.delay_ms * attempt
                log.warning(
                    "db_write_retry",
                    extra={"payload": {"op": op, "attempt": attempt, "delay_ms": delay_ms}},
                )
                self._sleep(delay_ms / 1000.0)
                attempt += 1
