from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from apps.api_gateway.deps import AppServices, services_dep
from apps.api_gateway.errors import http_status_for
from voice_task_agent.common.errors import AppError
from voice_task_agent.contracts.http_api import (
    ErrorResponse,
    RunAcceptRequest,
    RunRetryRequest,
    VoiceProcessRequest,
    VoiceProcessResponse,
)
from voice_task_agent.domain.enums import PipelineState
from voice_task_agent.services.voice_pipeline import PipelineRun

router = APIRouter()
SERVICES_DEP = Depends(services_dep)

_RESPONSES = {400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def _run_response(run: PipelineRun):
    body = run.to_response()
    if not body["success"]:
        err = ErrorResponse.model_validate(body)
        return JSONResponse(
            status_code=http_status_for(run.error),
            content=err.model_dump(mode="json", by_alias=True),
        )
    return VoiceProcessResponse.model_validate(body)


def _persist_or_fail(run: PipelineRun, fn) -> None:
    # ошибка сохранения переводит прогон в failed: отвечаем телом прогона
    try:
        fn()
    except AppError:
        if run.state != PipelineState.failed:
            raise


@router.post("/voice/process", response_model=VoiceProcessResponse, responses=_RESPONSES)
def voice_process(req: VoiceProcessRequest, svc: AppServices = SERVICES_DEP):
    run = svc.runs.add(svc.pipeline.new_run())
    run.process(req.audio, aggressive=req.force_aggressive_correction)
    return _run_response(run)


@router.post("/voice/runs/{run_id}/accept", response_model=VoiceProcessResponse, responses=_RESPONSES)
def voice_run_accept(run_id: str, req: RunAcceptRequest | None = None, svc: AppServices = SERVICES_DEP):
    run = svc.runs.get(run_id)
    candidates = req.candidates if req is not None else None
    _persist_or_fail(run, lambda: run.accept(candidates))
    return _run_response(run)


@router.post("/voice/runs/{run_id}/force-accept", response_model=VoiceProcessResponse, responses=_RESPONSES)
def voice_run_force_accept(run_id: str, svc: AppServices = SERVICES_DEP):
    run = svc.runs.get(run_id)
    _persist_or_fail(run, run.force_accept)
    return _run_response(run)


@router.post("/voice/runs/{run_id}/retry", response_model=VoiceProcessResponse, responses=_RESPONSES)
def voice_run_retry(run_id: str, req: RunRetryRequest | None = None, svc: AppServices = SERVICES_DEP):
    run = svc.runs.get(run_id)
    run.retry(aggressive=req.aggressive if req is not None else True)
    return _run_response(run)


@router.post("/voice/runs/{run_id}/cancel", response_model=VoiceProcessResponse, responses=_RESPONSES)
def voice_run_cancel(run_id: str, svc: AppServices = SERVICES_DEP):
    run = svc.runs.get(run_id)
    run.cancel()
    return _run_response(run)
