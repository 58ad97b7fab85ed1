"""
Оптимистичный кэш задач (клиентская сторона).

Назначение:
- изменение применяется к списку сразу, запись в БД идёт следом (asyncio.to_thread)
- на каждое изменение в полёте хранится откат со снимком прежнего состояния
- при ошибке откатывается только это изменение, порядок «новые первыми» сохраняется
- записи по одной задаче сериализуются (asyncio.Lock на задачу)
- блокировка и temp-псевдоним задачи живут, пока их держит хотя бы одна операция
- лента изменений → полный refetch, без инкрементальных патчей
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from voice_task_agent.common.errors import AppError, OptimisticWriteFailed
from voice_task_agent.common.ids import is_temp_id, new_temp_id, new_uuid
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.metrics import OPTIMISTIC_ROLLBACKS_TOTAL
from voice_task_agent.common.time import ensure_aware, utc_now
from voice_task_agent.domain.enums import ActionType, MutationKind, Priority, coerce_enum
from voice_task_agent.storage.change_feed import TASKS, ChangeFeed, Subscription
from voice_task_agent.storage.records import TaskRecord
from voice_task_agent.storage.task_store import TaskStore

log = get_project_logger()

_EPOCH = datetime.min.replace(tzinfo=UTC)


@dataclass
class OptimisticUpdate:
    id: str
    kind: MutationKind
    task_id: str
    snapshot: TaskRecord | None
    rollback: Callable[[], None]
    fields: dict[str, Any] = field(default_factory=dict)


def _sort_key(rec: TaskRecord) -> datetime:
    return ensure_aware(rec.created_at) if rec.created_at else _EPOCH


class OptimisticTaskStore:
    def __init__(
        self,
        gateway: TaskStore,
        *,
        on_error: Callable[[OptimisticWriteFailed], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._gateway = gateway
        self._on_error = on_error
        self._clock = clock
        self.tasks: list[TaskRecord] = []
        self.pending: dict[str, OptimisticUpdate] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._confirmed_ids: dict[str, str] = {}
        # сколько операций сейчас держат или ждут блокировку по ключу (temp или real id)
        self._lock_users: dict[str, int] = {}
        # (task_id, поле) → id последнего локального update, владеющего значением
        self._field_owner: dict[tuple[str, str], str] = {}

    # -------------------------------------------------------------------------
    # Вспомогательное
    # -------------------------------------------------------------------------
    def _index(self, task_id: str) -> int | None:
        for idx, rec in enumerate(self.tasks):
            if rec.id == task_id:
                return idx
        return None

    def get(self, task_id: str) -> TaskRecord | None:
        idx = self._index(self._resolve_id(task_id))
        return self.tasks[idx] if idx is not None else None

    def _resolve_id(self, task_id: str) -> str:
        return self._confirmed_ids.get(task_id, task_id)

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def _task_lock(self, task_id: str) -> AsyncIterator[None]:
        lock = self._lock_for(task_id)
        self._lock_users[task_id] = self._lock_users.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            left = self._lock_users[task_id] - 1
            if left:
                self._lock_users[task_id] = left
            else:
                del self._lock_users[task_id]
                self._release_idle(task_id)

    def _release_idle(self, task_id: str) -> None:
        """
        Убирает блокировку задачи и её temp-псевдонимы, когда их никто не держит.
        Следующая операция создаст новую блокировку.
        """
        real_id = self._resolve_id(task_id)
        keys = {task_id, real_id}
        keys.update(temp for temp, real in self._confirmed_ids.items() if real == real_id)
        if any(k in self._lock_users for k in keys):
            return
        for k in keys:
            self._locks.pop(k, None)
            self._confirmed_ids.pop(k, None)

    def _insert_ordered(self, rec: TaskRecord) -> None:
        key = _sort_key(rec)
        for idx, other in enumerate(self.tasks):
            if _sort_key(other) < key:
                self.tasks.insert(idx, rec)
                return
        self.tasks.append(rec)

    def _register(self, update: OptimisticUpdate) -> None:
        self.pending[update.id] = update

    async def _commit(self, update: OptimisticUpdate, write: Callable[[], Any]) -> Any:
        try:
            result = await asyncio.to_thread(write)
        except AppError as e:
            self.pending.pop(update.id, None)
            update.rollback()
            OPTIMISTIC_ROLLBACKS_TOTAL.labels(kind=update.kind.value).inc()
            err = OptimisticWriteFailed(
                "Изменение не сохранено, состояние восстановлено",
                {"kind": update.kind.value, "task_id": update.task_id, "cause": e.code},
            )
            log.warning(
                "optimistic_write_rolled_back",
                extra={"payload": {"kind": update.kind.value, "task_id": update.task_id, "cause": e.code}},
            )
            if self._on_error is not None:
                self._on_error(err)
            raise err from e
        self.pending.pop(update.id, None)
        return result

    # -------------------------------------------------------------------------
    # Мутации
    # -------------------------------------------------------------------------
    async def create(
        self,
        *,
        title: str,
        description: str | None = None,
        priority: Priority | str = Priority.medium,
        due_date: datetime | None = None,
        action_type: ActionType | str | None = None,
        scheduled_for: datetime | None = None,
        contact_info: dict[str, Any] | None = None,
    ) -> TaskRecord:
        temp_id = new_temp_id()
        kind = coerce_enum(ActionType, action_type, ActionType.note)
        temp = TaskRecord(
            id=temp_id,
            title=title,
            description=description,
            priority=coerce_enum(Priority, priority, Priority.medium),
            due_date=due_date,
            action_type=kind,
            scheduled_for=scheduled_for if kind != ActionType.note else None,
            contact_info=contact_info,
            created_at=self._clock(),
        )
        self.tasks.insert(0, temp)

        def _rollback() -> None:
            idx = self._index(temp_id)
            if idx is not None:
                del self.tasks[idx]

        update = OptimisticUpdate(
            id=new_uuid(), kind=MutationKind.create, task_id=temp_id, snapshot=None, rollback=_rollback
        )
        self._register(update)

        async with self._task_lock(temp_id):
            confirmed: TaskRecord = await self._commit(
                update,
                lambda: self._gateway.create(
                    title=title,
                    description=description,
                    priority=priority,
                    due_date=due_date,
                    action_type=kind,
                    scheduled_for=scheduled_for,
                    contact_info=contact_info,
                ),
            )
            self._confirm_create(temp_id, confirmed)
        return confirmed

    def _confirm_create(self, temp_id: str, confirmed: TaskRecord) -> None:
        self._confirmed_ids[temp_id] = confirmed.id
        self._locks[confirmed.id] = self._lock_for(temp_id)
        for (tid, name), owner in list(self._field_owner.items()):
            if tid == temp_id:
                self._field_owner[(confirmed.id, name)] = owner
                del self._field_owner[(tid, name)]

        temp_idx = self._index(temp_id)
        if temp_idx is None:
            return
        current = self.tasks[temp_idx]
        if self._index(confirmed.id) is not None:
            # refetch уже принёс подтверждённую строку
            del self.tasks[temp_idx]
            return
        # локальные правки, сделанные поверх temp, сохраняются
        self.tasks[temp_idx] = dataclasses.replace(
            current, id=confirmed.id, created_at=confirmed.created_at, updated_at=confirmed.updated_at
        )

    async def update(self, task_id: str, **fields: Any) -> TaskRecord:
        """
        Последняя локальная правка поля побеждает запоздалое подтверждение.
        """
        async with self._task_lock(task_id):
            real_id = self._resolve_id(task_id)
            idx = self._index(real_id)
            if idx is None:
                raise OptimisticWriteFailed("Задача не найдена в кэше", {"task_id": task_id})

            snapshot = self.tasks[idx]
            self.tasks[idx] = dataclasses.replace(snapshot, **fields)
            update_id = new_uuid()
            for name in fields:
                self._field_owner[(real_id, name)] = update_id

            def _rollback() -> None:
                pos = self._index(real_id)
                if pos is None:
                    return
                restore = {}
                for name in fields:
                    if self._field_owner.get((real_id, name)) == update_id:
                        restore[name] = getattr(snapshot, name)
                        del self._field_owner[(real_id, name)]
                if restore:
                    self.tasks[pos] = dataclasses.replace(self.tasks[pos], **restore)

            update = OptimisticUpdate(
                id=update_id,
                kind=MutationKind.update,
                task_id=real_id,
                snapshot=snapshot,
                rollback=_rollback,
                fields=dict(fields),
            )
            self._register(update)
            confirmed: TaskRecord = await self._commit(update, lambda: self._gateway.update(real_id, **fields))

            for name in fields:
                if self._field_owner.get((real_id, name)) == update_id:
                    del self._field_owner[(real_id, name)]
            pos = self._index(real_id)
            if pos is not None:
                self.tasks[pos] = dataclasses.replace(self.tasks[pos], updated_at=confirmed.updated_at)
                return self.tasks[pos]
            return confirmed

    async def delete(self, task_id: str) -> None:
        async with self._task_lock(task_id):
            real_id = self._resolve_id(task_id)
            idx = self._index(real_id)
            if idx is None:
                return
            snapshot = self.tasks.pop(idx)

            def _rollback() -> None:
                if self._index(real_id) is None:
                    self._insert_ordered(snapshot)

            update = OptimisticUpdate(
                id=new_uuid(), kind=MutationKind.delete, task_id=real_id, snapshot=snapshot, rollback=_rollback
            )
            self._register(update)
            await self._commit(update, lambda: self._gateway.delete(real_id))

    async def toggle(self, task_id: str) -> TaskRecord:
        current = self.get(task_id)
        if current is None:
            raise OptimisticWriteFailed("Задача не найдена в кэше", {"task_id": task_id})
        return await self.update(task_id, completed=not current.completed)

    # -------------------------------------------------------------------------
    # Синхронизация с БД
    # -------------------------------------------------------------------------
    async def refetch(self) -> list[TaskRecord]:
        """
        Полная перезагрузка списка. Незавершённые изменения накладываются поверх:
        temp-задачи остаются, удаляемые не возвращаются, поля в полёте не затираются.
        """
        rows = await asyncio.to_thread(self._gateway.list_tasks)

        deleting = {u.task_id for u in self.pending.values() if u.kind == MutationKind.delete}
        overlays: dict[str, dict[str, Any]] = {}
        for (tid, name), owner in self._field_owner.items():
            upd = self.pending.get(owner)
            if upd is not None:
                overlays.setdefault(tid, {})[name] = upd.fields[name]

        merged: list[TaskRecord] = []
        for rec in rows:
            if rec.id in deleting:
                continue
            if rec.id in overlays:
                rec = dataclasses.replace(rec, **overlays[rec.id])
            merged.append(rec)

        seen = {rec.id for rec in merged}
        for rec in self.tasks:
            if is_temp_id(rec.id) and rec.id not in self._confirmed_ids and rec.id not in seen:
                merged.append(rec)

        merged.sort(key=_sort_key, reverse=True)
        self.tasks = merged
        log.debug("optimistic_store_refetched", extra={"payload": {"count": len(merged)}})
        return list(self.tasks)

    def subscribe(self, feed: ChangeFeed) -> Subscription:
        return feed.subscribe([TASKS])

    async def watch(self, subscription: Subscription) -> None:
        """
        Любое событие ленты → refetch. Пачка событий схлопывается в один refetch.
        """
        async for _event in subscription:
            while not subscription.queue.empty():
                subscription.queue.get_nowait()
            await self.refetch()
