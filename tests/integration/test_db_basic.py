from voice_task_agent.domain.enums import ActionType, Priority
from voice_task_agent.storage.db import db_session
from voice_task_agent.storage.models import Task


def test_db_session_context_manager_smoke(session_factory):
    with db_session(session_factory) as s:
        assert s is not None
        s.add(Task(id="t-smoke", title="Smoke", priority=Priority.low, action_type=ActionType.note))

    with db_session(session_factory) as s:
        row = s.get(Task, "t-smoke")
        assert row is not None
        assert row.completed is False
