"""
Замер длительности стадий пайплайна.

Назначение:
- start/end/duration по имени стадии
- сводка таймингов для ответа API (whisperTime, chatgptTime, databaseTime, totalTime)
- запись в гистограмму Prometheus
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from voice_task_agent.common.metrics import observe_stage_ms

# Имена стадий в ответе API
TIMING_KEYS = {
    "transcription": "whisperTime",
    "extraction": "chatgptTime",
    "database": "databaseTime",
    "total": "totalTime",
}


class ProcessingTimer:
    """
    Таймер стадий. Повторный start() стадии перезапускает её замер,
    end() без start() игнорируется.
    """

    def __init__(
        self,
        *,
        service: str = "voice-pipeline",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._service = service
        self._clock = clock
        self._started: dict[str, float] = {}
        self._durations: dict[str, float] = {}

    def start(self, stage: str) -> None:
        self._started[stage] = self._clock()
        self._durations.pop(stage, None)

    def end(self, stage: str) -> float | None:
        started = self._started.pop(stage, None)
        if started is None:
            return None
        elapsed_ms = (self._clock() - started) * 1000
        self._durations[stage] = elapsed_ms
        observe_stage_ms(self._service, stage, elapsed_ms)
        return elapsed_ms

    def duration(self, stage: str) -> float | None:
        return self._durations.get(stage)

    @contextmanager
    def stage(self, stage: str) -> Iterator[None]:
        self.start(stage)
        try:
            yield
        finally:
            self.end(stage)

    def summary(self) -> dict[str, int]:
        """
        Тайминги в целых миллисекундах. Незавершённые стадии дают 0.
        """
        out: dict[str, int] = {}
        for stage, key in TIMING_KEYS.items():
            out[key] = int(round(self._durations.get(stage, 0.0)))
        for stage, value in self._durations.items():
            if stage not in TIMING_KEYS:
                out[stage] = int(round(value))
        return out
