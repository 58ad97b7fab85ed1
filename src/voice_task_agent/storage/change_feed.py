"""
Лента изменений строк (in-process publish/subscribe).

Назначение:
- хранилища публикуют события после commit (таблица, вид изменения, id)
- подписчики получают события через asyncio.Queue своего event loop
- publish потокобезопасен: можно вызывать из рабочих потоков
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from voice_task_agent.domain.enums import ChangeKind

log = logging.getLogger(__name__)

TASKS = "tasks"
SCHEDULED_ACTIONS = "scheduled_actions"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    kind: ChangeKind
    row_id: str


class Subscription:
    def __init__(
        self,
        feed: ChangeFeed,
        loop: asyncio.AbstractEventLoop,
        tables: frozenset[str] | None,
    ) -> None:
        self._feed = feed
        self._loop = loop
        self._tables = tables
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.closed = False

    def _push(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        if self._tables is not None and event.table not in self._tables:
            return
        try:
            self._loop.call_soon_threadsafe(self.queue.put_nowait, event)
        except RuntimeError:
            # event loop подписчика уже закрыт
            self.close()

    async def get(self) -> ChangeEvent:
        return await self.queue.get()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self.queue.empty():
            raise StopAsyncIteration
        return await self.queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed._remove(self)


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: list[Subscription] = []

    def subscribe(self, tables: Iterable[str] | None = None) -> Subscription:
        """
        Подписка из работающего event loop.
        """
        loop = asyncio.get_running_loop()
        sub = Subscription(self, loop, frozenset(tables) if tables is not None else None)
        with self._lock:
            self._subs.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def publish(self, table: str, kind: ChangeKind, row_id: str) -> None:
        event = ChangeEvent(table=table, kind=kind, row_id=row_id)
        with self._lock:
            subs = list(self._subs)
        for sub in subs:
            sub._push(event)
        log.debug("change_feed_event", extra={"payload": {"table": table, "kind": kind.value, "id": row_id}})

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)
