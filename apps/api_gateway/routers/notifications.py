from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import AppServices, services_dep
from voice_task_agent.common.errors import NotFoundError
from voice_task_agent.contracts.http_api import NotificationAckResponse, SweepResponse
from voice_task_agent.jobs import sweep_job

router = APIRouter()
SERVICES_DEP = Depends(services_dep)


@router.post("/notifications/process", response_model=SweepResponse)
def notifications_process(svc: AppServices = SERVICES_DEP) -> SweepResponse:
    report = sweep_job.run(dispatcher=svc.sweeper, source="api")
    if report is None:
        return SweepResponse()
    return SweepResponse.model_validate(report.to_response())


@router.post("/notifications/{action_id}/ack", response_model=NotificationAckResponse)
def notification_ack(action_id: str, svc: AppServices = SERVICES_DEP) -> NotificationAckResponse:
    if svc.actions.get(action_id) is None:
        raise NotFoundError("Действие не найдено", {"action_id": action_id})
    changed = svc.on_device.handle_notification_action({"actionId": action_id})
    return NotificationAckResponse(action_id=action_id, changed=changed)
