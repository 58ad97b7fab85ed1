"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- HTTP API голосового пайплайна (process + accept/retry/force-accept/cancel)
- серверный sweep напоминаний и подтверждение локальных уведомлений
- завершение задач (перенос в completed_tasks)
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api_gateway.deps import get_services
from apps.api_gateway.errors import setup_error_handlers
from apps.api_gateway.routers.notifications import router as notifications_router
from apps.api_gateway.routers.tasks import router as tasks_router
from apps.api_gateway.routers.voice import router as voice_router
from voice_task_agent.common.config import get_settings
from voice_task_agent.common.logging import get_project_logger, setup_logging
from voice_task_agent.common.metrics import setup_metrics_endpoint
from voice_task_agent.storage.db import engine, init_db

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _cors_params() -> tuple[list[str], bool]:
    settings = get_settings()
    allow_origins = _parse_origins(settings.cors_allowed_origins)
    allow_credentials = bool(settings.cors_allow_credentials)

    if _is_prod_env(settings.app_env) and "*" in allow_origins:
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    # '*' нельзя использовать вместе с credentials=true
    if "*" in allow_origins:
        allow_credentials = False

    return allow_origins, allow_credentials


def _create_app() -> FastAPI:
    app = FastAPI(title="Voice Task Agent", version="0.1.0")
    allow_origins, allow_credentials = _cors_params()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=allow_credentials,
    )

    setup_metrics_endpoint(app)
    setup_error_handlers(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.on_event("startup")
    async def startup_reschedule() -> None:
        # локальные уведомления живут в памяти процесса: после рестарта планируем заново
        services = get_services()
        if services.on_device.is_available():
            services.on_device.schedule_pending_from_store()

    app.include_router(voice_router, prefix="/v1")
    app.include_router(notifications_router, prefix="/v1")
    app.include_router(tasks_router, prefix="/v1")

    return app


setup_logging()

# Автосоздание таблиц в dev (чтобы проект стартовал без ручных миграций)
if not _is_prod_env(get_settings().app_env):
    init_db(engine)
log.info("db_ready")

app = _create_app()
