from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import AppServices, services_dep
from voice_task_agent.common.errors import NotFoundError
from voice_task_agent.contracts.http_api import CompletedTaskOut, TaskCompleteResponse
from voice_task_agent.domain.enums import ActionStatus

router = APIRouter()
SERVICES_DEP = Depends(services_dep)


@router.post("/tasks/{task_id}/complete", response_model=TaskCompleteResponse)
def task_complete(task_id: str, svc: AppServices = SERVICES_DEP) -> TaskCompleteResponse:
    if svc.tasks.get(task_id) is None:
        raise NotFoundError("Задача не найдена", {"task_id": task_id})

    cancelled = 0
    for action in svc.actions.list_for_task(task_id):
        if action.status == ActionStatus.pending and svc.on_device.cancel_reminder(action.id):
            cancelled += 1

    rec = svc.tasks.complete_task(task_id)
    return TaskCompleteResponse(
        completed=CompletedTaskOut(
            id=rec.id,
            original_task_id=rec.original_task_id,
            title=rec.title,
            description=rec.description,
            priority=rec.priority.value,
            completed_at=rec.completed_at.isoformat(),
        ),
        cancelled_reminders=cancelled,
    )
