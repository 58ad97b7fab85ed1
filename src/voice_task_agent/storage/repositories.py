"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from voice_task_agent.common.time import utc_now
from voice_task_agent.domain.enums import ActionStatus

from .models import CompletedTask, NotificationCounter, ScheduledAction, Task, Transcription


# =============================================================================
# TASK REPOSITORY
# =============================================================================
class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, task_id: str) -> Task | None:
        return self.session.get(Task, task_id)

    def save(self, task: Task) -> None:
        self.session.add(task)

    def delete(self, task: Task) -> None:
        self.session.delete(task)

    def list_recent(self, *, limit: int | None = None) -> list[Task]:
        stmt = select(Task).order_by(Task.created_at.desc(), Task.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))


# =============================================================================
# SCHEDULED ACTION REPOSITORY
# =============================================================================
class ScheduledActionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, action_id: str) -> ScheduledAction | None:
        return self.session.get(ScheduledAction, action_id)

    def save(self, action: ScheduledAction) -> None:
        self.session.add(action)

    def delete(self, action: ScheduledAction) -> None:
        self.session.delete(action)

    def list_by_status(self, status: ActionStatus | None = None, *, limit: int = 200) -> list[ScheduledAction]:
        stmt = select(ScheduledAction).order_by(ScheduledAction.scheduled_for.asc())
        if status is not None:
            stmt = stmt.where(ScheduledAction.status == status)
        return list(self.session.scalars(stmt.limit(limit)))

    def list_for_task(self, task_id: str) -> list[ScheduledAction]:
        stmt = select(ScheduledAction).where(ScheduledAction.task_id == task_id)
        return list(self.session.scalars(stmt))

    def list_pending_due(self, now: datetime) -> list[ScheduledAction]:
        stmt = (
            select(ScheduledAction)
            .where(ScheduledAction.status == ActionStatus.pending)
            .where(ScheduledAction.scheduled_for <= now)
            .order_by(ScheduledAction.scheduled_for.asc(), ScheduledAction.id.asc())
        )
        return list(self.session.scalars(stmt))

    def list_pending_after(self, now: datetime) -> list[ScheduledAction]:
        stmt = (
            select(ScheduledAction)
            .where(ScheduledAction.status == ActionStatus.pending)
            .where(ScheduledAction.scheduled_for > now)
            .order_by(ScheduledAction.scheduled_for.asc(), ScheduledAction.id.asc())
        )
        return list(self.session.scalars(stmt))

    def transition_from_pending(self, action_id: str, status: ActionStatus) -> bool:
        """
        Условный переход: UPDATE ... WHERE status = 'pending'.
        Возвращает True, если строка реально сменила статус.
        """
        res = self.session.execute(
            update(ScheduledAction)
            .where(ScheduledAction.id == action_id)
            .where(ScheduledAction.status == ActionStatus.pending)
            .values(status=status, updated_at=utc_now())
        )
        return (res.rowcount or 0) == 1


# =============================================================================
# COMPLETED TASK REPOSITORY
# =============================================================================
class CompletedTaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, row: CompletedTask) -> None:
        self.session.add(row)

    def list_recent(self, *, limit: int = 50) -> list[CompletedTask]:
        stmt = select(CompletedTask).order_by(CompletedTask.completed_at.desc()).limit(limit)
        return list(self.session.scalars(stmt))


# =============================================================================
# TRANSCRIPTION REPOSITORY
# =============================================================================
class TranscriptionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, row: Transcription) -> None:
        self.session.add(row)

    def get(self, transcription_id: str) -> Transcription | None:
        return self.session.get(Transcription, transcription_id)


# =============================================================================
# NOTIFICATION COUNTER REPOSITORY
# =============================================================================
class NotificationCounterRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def next_value(self, name: str) -> int:
        """
        Монотонно увеличивает счётчик и возвращает новое значение (первое = 1).
        """
        row = self.session.execute(
            select(NotificationCounter).where(NotificationCounter.name == name).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            row = NotificationCounter(name=name, value=0)
            self.session.add(row)
        row.value = int(row.value or 0) + 1
        self.session.flush()
        return row.value
