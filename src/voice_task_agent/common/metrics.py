"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Задержки стадий голосового пайплайна
- Счётчики sweep, on-device планирования и откатов оптимистичных изменений
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "voice_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "voice_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# Стадии: transcription | extraction | database | total
PIPELINE_STAGE_LATENCY_MS = Histogram(
    "voice_pipeline_stage_latency_ms",
    "Задержка выполнения стадий голосового пайплайна (мс)",
    ["service", "stage"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)

PIPELINE_OUTCOMES_TOTAL = Counter(
    "voice_pipeline_outcomes_total",
    "Итоги прогонов пайплайна",
    ["outcome"],  # auto_accepted|reviewing|failed
)

EXTRACTION_MODE_TOTAL = Counter(
    "voice_extraction_mode_total",
    "Каким путём получен результат извлечения",
    ["mode"],  # model|fallback_unavailable|fallback_malformed
)

SWEEP_RUNS_TOTAL = Counter(
    "voice_sweep_runs_total",
    "Количество запусков sweep",
    ["source", "result"],  # source=job|api, result=ok|failed|skipped
)

SWEEP_ROWS_TOTAL = Counter(
    "voice_sweep_rows_total",
    "Обработанные строки sweep",
    ["status"],  # completed|failed|skipped
)

ON_DEVICE_SCHEDULE_TOTAL = Counter(
    "voice_on_device_schedule_total",
    "Результаты планирования локальных уведомлений",
    ["result"],  # scheduled|unavailable|failed
)

OPTIMISTIC_ROLLBACKS_TOTAL = Counter(
    "voice_optimistic_rollbacks_total",
    "Откаты оптимистичных изменений",
    ["kind"],  # create|update|delete
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        PIPELINE_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def observe_stage_ms(service: str, stage: str, elapsed_ms: float) -> None:
    PIPELINE_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(max(0.0, elapsed_ms))


def record_sweep_result(*, source: str, completed: int, failed: int, skipped: bool = False) -> None:
    if skipped:
        SWEEP_RUNS_TOTAL.labels(source=source, result="skipped").inc()
        return
    result = "failed" if failed > 0 else "ok"
    SWEEP_RUNS_TOTAL.labels(source=source, result=result).inc()
    if completed:
        SWEEP_ROWS_TOTAL.labels(status="completed").inc(completed)
    if failed:
        SWEEP_ROWS_TOTAL.labels(status="failed").inc(failed)


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service="api-gateway",
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service="api-gateway",
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
