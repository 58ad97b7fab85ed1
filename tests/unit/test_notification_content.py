from __future__ import annotations

from datetime import UTC, datetime, timedelta

from voice_task_agent.delivery.content import build_notification_content, format_relative_time
from voice_task_agent.domain.enums import ActionType
from voice_task_agent.storage.records import ScheduledActionRecord, TaskRecord

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


def _action(action_type: ActionType, delta: timedelta, contact: dict | None = None) -> ScheduledActionRecord:
    return ScheduledActionRecord(
        id="a-1",
        task_id="t-1",
        action_type=action_type,
        scheduled_for=NOW + delta,
        contact_info=contact,
        notification_settings={"web_push": True},
    )


def test_relative_phrases() -> None:
    assert format_relative_time(NOW + timedelta(seconds=30), NOW) == "now"
    assert format_relative_time(NOW + timedelta(minutes=1), NOW) == "in 1 minute"
    assert format_relative_time(NOW + timedelta(minutes=45), NOW) == "in 45 minutes"
    assert format_relative_time(NOW + timedelta(hours=3), NOW) == "in 3 hours"
    assert format_relative_time(NOW + timedelta(days=2), NOW) == "in 2 days"
    assert format_relative_time(NOW + timedelta(days=9), NOW, tz_name="UTC") == "on Monday, Mar 23"


def test_call_title_and_contact_line() -> None:
    task = TaskRecord(id="t-1", title="Call Nigel", description="about the invoice")
    content = build_notification_content(
        _action(ActionType.call, timedelta(minutes=10), {"name": "Nigel", "phone": "+44 20 7946 0000"}),
        task,
        NOW,
        tz_name="UTC",
    )
    assert content.title == "Call Nigel in 10 minutes"
    lines = content.body.split("\n")
    assert lines[0] == "about the invoice"
    assert lines[1].startswith("Scheduled for ")
    assert lines[2] == "Contact: Nigel (+44 20 7946 0000)"


def test_reminder_and_fallback_titles() -> None:
    task = TaskRecord(id="t-1", title="Water plants")
    reminder = build_notification_content(_action(ActionType.reminder, timedelta(hours=1)), task, NOW)
    assert reminder.title == "Reminder: Water plants in 1 hour"
    email = build_notification_content(_action(ActionType.email, timedelta(hours=1)), task, NOW)
    assert email.title == "Email contact in 1 hour"
