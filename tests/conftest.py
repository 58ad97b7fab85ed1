from __future__ import annotations

import os

# до первого импорта настроек: in-memory БД и mock-провайдеры, без сети
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_DSN", "sqlite://")
os.environ.setdefault("STT_PROVIDER", "mock")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("LOG_FORMAT", "text")

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402

from voice_task_agent.storage.action_store import ScheduledActionStore  # noqa: E402
from voice_task_agent.storage.change_feed import ChangeFeed  # noqa: E402
from voice_task_agent.storage.db import build_engine, build_session_factory, init_db  # noqa: E402
from voice_task_agent.storage.retry import RetryPolicy  # noqa: E402
from voice_task_agent.storage.task_store import TaskStore  # noqa: E402


@pytest.fixture()
def session_factory():
    eng = build_engine("sqlite://")
    init_db(eng)
    try:
        yield build_session_factory(eng)
    finally:
        eng.dispose()


@pytest.fixture()
def stores(session_factory):
    feed = ChangeFeed()
    retry = RetryPolicy(max_attempts=2, delay_ms=0, sleep=lambda _s: None)
    return SimpleNamespace(
        feed=feed,
        tasks=TaskStore(session_factory, feed=feed, retry=retry),
        actions=ScheduledActionStore(session_factory, feed=feed, retry=retry),
    )
