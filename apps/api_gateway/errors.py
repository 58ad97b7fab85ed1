"""
AppError → HTTP.

400 валидация / пустое аудио, 404, 409, 502 для внешних провайдеров, иначе 500.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from voice_task_agent.common.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from voice_task_agent.common.logging import get_project_logger

log = get_project_logger()


def http_status_for(err: AppError) -> int:
    if isinstance(err, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(err, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(err, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(err, ProviderError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(err: AppError) -> dict:
    return {"success": False, "error": err.message, "code": err.code, "details": err.details or {}}


def setup_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        code = http_status_for(exc)
        log.warning(
            "http_app_error",
            extra={"payload": {"path": request.url.path, "status": code, "code": exc.code}},
        )
        return JSONResponse(status_code=code, content=error_body(exc))
