from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from voice_task_agent.delivery.on_device import (
    BrowserNotificationBackend,
    InProcessNotificationBackend,
    OnDeviceDispatcher,
)
from voice_task_agent.domain.enums import ActionStatus, ActionType

T = datetime(2030, 5, 6, 10, 0, tzinfo=UTC)


def _action(stores, *, minutes_ahead=5, action_type=ActionType.text, title="Text Sarah"):
    task = stores.tasks.create(title=title, description="about the meeting", action_type=action_type)
    return stores.actions.create(
        task_id=task.id,
        action_type=action_type,
        scheduled_for=T + timedelta(minutes=minutes_ahead),
        contact_info={"name": "Sarah", "phone": "+1 555 0100"},
        notification_settings={"web_push": False},
    )


@pytest.fixture()
def backend():
    b = InProcessNotificationBackend(clock=lambda: T)
    try:
        yield b
    finally:
        b.shutdown()


def test_notification_ids_come_from_counter(stores, backend) -> None:
    dispatcher = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T, tz_name="UTC")
    first = _action(stores)
    second = _action(stores, minutes_ahead=90)

    assert dispatcher.schedule_reminder(first) is True
    assert dispatcher.schedule_reminder(second) is True

    assert sorted(backend.pending) == [1, 2]
    assert stores.actions.get(first.id).notification_id == 1
    assert stores.actions.get(second.id).notification_id == 2

    n1 = backend.pending[1]
    assert n1.title == "Text Sarah in 5 minutes"
    assert n1.at == first.scheduled_for
    assert "about the meeting" in n1.body
    assert "Contact: Sarah (+1 555 0100)" in n1.body
    assert backend.pending[2].title == "Text Sarah in 1 hour"


def test_rescheduling_allocates_fresh_id(stores, backend) -> None:
    dispatcher = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T)
    action = _action(stores)
    dispatcher.schedule_reminder(action)
    dispatcher.schedule_reminder(stores.actions.get(action.id))
    assert stores.actions.get(action.id).notification_id == 2


def test_tapping_notification_completes_action(stores, backend) -> None:
    dispatcher = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T)
    action = _action(stores)
    dispatcher.schedule_reminder(action)

    assert dispatcher.handle_notification_action({"actionId": action.id}) is True
    assert stores.actions.get(action.id).status == ActionStatus.completed
    assert dispatcher.handle_notification_action({"actionId": action.id}) is False
    assert dispatcher.handle_notification_action({}) is False
    assert dispatcher.handle_notification_action(None) is False


def test_cancel_reminder_removes_pending_notification(stores, backend) -> None:
    dispatcher = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T)
    action = _action(stores)
    dispatcher.schedule_reminder(action)

    assert dispatcher.cancel_reminder(action.id) is True
    assert backend.pending == {}
    assert dispatcher.cancel_reminder("missing") is False


def test_cancel_after_restart_uses_stored_notification_id(stores, backend) -> None:
    OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T).schedule_reminder(
        _action(stores)
    )
    [action] = stores.actions.list_by_status(ActionStatus.pending)

    fresh = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T)
    assert fresh.cancel_reminder(action.id) is True
    assert backend.pending == {}


def test_schedule_pending_from_store_skips_past_actions(stores, backend) -> None:
    _action(stores, minutes_ahead=10)
    _action(stores, minutes_ahead=60 * 24)
    _action(stores, minutes_ahead=-10)

    dispatcher = OnDeviceDispatcher(backend, stores.actions, stores.tasks, clock=lambda: T)
    assert dispatcher.schedule_pending_from_store() == 2
    assert len(backend.pending) == 2


def test_delivered_notification_reaches_callback(stores) -> None:
    delivered = []
    b = InProcessNotificationBackend(delivered.append, clock=lambda: T)
    dispatcher = OnDeviceDispatcher(b, stores.actions, stores.tasks, clock=lambda: T)
    action = _action(stores)
    dispatcher.schedule_reminder(action)

    b._fire(1)
    assert [n.extra for n in delivered] == [{"actionId": action.id}]
    assert b.pending == {}


def test_browser_runtime_is_unavailable(stores) -> None:
    dispatcher = OnDeviceDispatcher(BrowserNotificationBackend(), stores.actions, stores.tasks)
    action = _action(stores)

    assert dispatcher.is_available() is False
    assert dispatcher.schedule_reminder(action) is False
    assert dispatcher.cancel_reminder(action.id) is False
    assert dispatcher.schedule_pending_from_store() == 0
    assert stores.actions.get(action.id).notification_id is None
