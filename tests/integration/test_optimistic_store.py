from __future__ import annotations

import asyncio
import contextlib
import threading

import pytest

from voice_task_agent.common.errors import DurablePersistFailed, OptimisticWriteFailed
from voice_task_agent.common.ids import is_temp_id
from voice_task_agent.services.optimistic_store import OptimisticTaskStore


class _Gateway:
    """
    TaskStore с управляемыми сбоями и «воротами» для записей в полёте.
    """

    def __init__(self, inner) -> None:
        self.inner = inner
        self.fail: set[str] = set()
        self.gate: threading.Event | None = None
        # одно соединение sqlite:// на все потоки: записи по очереди
        self._db_lock = threading.Lock()

    def _write(self, op: str, fn, *args, **kwargs):
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if op in self.fail:
            raise DurablePersistFailed("Не удалось записать в БД", {"op": op})
        with self._db_lock:
            return fn(*args, **kwargs)

    def create(self, **kwargs):
        return self._write("create", self.inner.create, **kwargs)

    def update(self, task_id, **fields):
        return self._write("update", self.inner.update, task_id, **fields)

    def delete(self, task_id):
        return self._write("delete", self.inner.delete, task_id)

    def list_tasks(self, **kwargs):
        with self._db_lock:
            return self.inner.list_tasks(**kwargs)


async def _until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def _titles(store: OptimisticTaskStore) -> list[str]:
    return [t.title for t in store.tasks]


def test_create_is_visible_before_write_and_confirmed_after(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        gw.gate = threading.Event()
        store = OptimisticTaskStore(gw)

        pending = asyncio.create_task(store.create(title="Buy milk"))
        await _until(lambda: bool(store.tasks))
        assert is_temp_id(store.tasks[0].id)
        assert len(store.pending) == 1

        gw.gate.set()
        confirmed = await pending
        assert store.tasks[0].id == confirmed.id
        assert store.pending == {}
        assert stores.tasks.get(confirmed.id).title == "Buy milk"

    asyncio.run(scenario())


def test_failed_create_restores_exact_list(stores) -> None:
    errors: list[OptimisticWriteFailed] = []

    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        store = OptimisticTaskStore(gw, on_error=errors.append)
        await store.create(title="first")
        await store.create(title="second")
        before = list(store.tasks)

        gw.fail.add("create")
        with pytest.raises(OptimisticWriteFailed):
            await store.create(title="third")

        assert store.tasks == before
        assert store.pending == {}

    asyncio.run(scenario())
    assert len(errors) == 1
    assert errors[0].details["kind"] == "create"


def test_failed_update_restores_previous_fields(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        store = OptimisticTaskStore(gw)
        rec = await store.create(title="Call mom", priority="low")

        gw.fail.add("update")
        with pytest.raises(OptimisticWriteFailed):
            await store.update(rec.id, title="Call dad", priority="high")

        restored = store.get(rec.id)
        assert restored.title == "Call mom"
        assert restored.priority.value == "low"

    asyncio.run(scenario())


def test_successful_update_and_toggle(stores) -> None:
    async def scenario() -> None:
        store = OptimisticTaskStore(_Gateway(stores.tasks))
        rec = await store.create(title="Draft")
        await store.update(rec.id, title="Final")
        toggled = await store.toggle(rec.id)

        assert toggled.title == "Final"
        assert toggled.completed is True
        server = stores.tasks.get(rec.id)
        assert server.title == "Final"
        assert server.completed is True

    asyncio.run(scenario())


def test_failed_delete_reinserts_in_order(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        store = OptimisticTaskStore(gw)
        for title in ("a", "b", "c"):
            await store.create(title=title)
        assert _titles(store) == ["c", "b", "a"]

        gw.fail.add("delete")
        middle = store.tasks[1]
        with pytest.raises(OptimisticWriteFailed):
            await store.delete(middle.id)
        assert _titles(store) == ["c", "b", "a"]

        gw.fail.clear()
        await store.delete(middle.id)
        assert _titles(store) == ["c", "a"]
        assert stores.tasks.get(middle.id) is None

    asyncio.run(scenario())


def test_refetch_keeps_in_flight_mutations(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        store = OptimisticTaskStore(gw)
        existing = await store.create(title="Existing")

        gw.gate = threading.Event()
        creating = asyncio.create_task(store.create(title="Local only"))
        updating = asyncio.create_task(store.update(existing.id, title="Renamed"))
        await _until(lambda: len(store.pending) == 2)

        stores.tasks.create(title="From another device")
        await store.refetch()
        assert sorted(_titles(store)) == ["From another device", "Local only", "Renamed"]

        gw.gate.set()
        await asyncio.gather(creating, updating)
        await store.refetch()
        assert sorted(_titles(store)) == ["From another device", "Local only", "Renamed"]
        assert not any(is_temp_id(t.id) for t in store.tasks)

    asyncio.run(scenario())


def test_refetch_hides_pending_delete(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        store = OptimisticTaskStore(gw)
        rec = await store.create(title="Going away")

        gw.gate = threading.Event()
        deleting = asyncio.create_task(store.delete(rec.id))
        await _until(lambda: bool(store.pending))
        await store.refetch()
        assert store.tasks == []

        gw.gate.set()
        await deleting
        assert stores.tasks.get(rec.id) is None

    asyncio.run(scenario())


def test_watch_refetches_on_feed_events(stores) -> None:
    async def scenario() -> None:
        store = OptimisticTaskStore(_Gateway(stores.tasks))
        sub = store.subscribe(stores.feed)
        watcher = asyncio.create_task(store.watch(sub))
        try:
            await asyncio.to_thread(stores.tasks.create, title="Pushed by server")
            await _until(lambda: _titles(store) == ["Pushed by server"])
        finally:
            sub.close()
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

    asyncio.run(scenario())


def test_lock_and_temp_alias_released_after_last_operation(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        gw.gate = threading.Event()
        store = OptimisticTaskStore(gw)

        creating = asyncio.create_task(store.create(title="Draft"))
        await _until(lambda: bool(store.tasks))
        temp_id = store.tasks[0].id
        # правка по temp id ждёт окончания create на той же блокировке
        renaming = asyncio.create_task(store.update(temp_id, title="Final"))
        await _until(lambda: store._lock_users.get(temp_id) == 2)

        gw.gate.set()
        confirmed, _ = await asyncio.gather(creating, renaming)
        assert _titles(store) == ["Final"]
        assert stores.tasks.get(confirmed.id).title == "Final"
        assert store._locks == {}
        assert store._confirmed_ids == {}

        await store.delete(confirmed.id)
        assert store.tasks == []
        assert store._locks == {}
        assert store._confirmed_ids == {}
        assert store._lock_users == {}

    asyncio.run(scenario())


def test_failed_create_leaves_no_lock_behind(stores) -> None:
    async def scenario() -> None:
        gw = _Gateway(stores.tasks)
        gw.fail.add("create")
        store = OptimisticTaskStore(gw)

        with pytest.raises(OptimisticWriteFailed):
            await store.create(title="Lost")
        assert store._locks == {}
        assert store._confirmed_ids == {}

    asyncio.run(scenario())
