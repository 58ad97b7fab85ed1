from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from voice_task_agent.processing.time_resolver import resolve

T = datetime(2026, 3, 14, 16, 42, 7, tzinfo=UTC)

_WORDS = [
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen",
    "eighteen", "nineteen", "twenty",
]  # fmt: skip


def test_resolve_is_pure() -> None:
    text = "remind me tomorrow at 3pm"
    assert resolve(text, T) == resolve(text, T)


@pytest.mark.parametrize("n", range(1, 21))
def test_minutes_digits_and_words_agree(n: int) -> None:
    expected = T + timedelta(minutes=n)
    assert resolve(f"in {n} minutes", T) == expected
    assert resolve(f"in {_WORDS[n - 1]} minutes", T) == expected


@pytest.mark.parametrize("n", range(1, 13))
def test_hours_and_days(n: int) -> None:
    assert resolve(f"call bob in {_WORDS[n - 1]} hours", T) == T + timedelta(hours=n)
    assert resolve(f"in {n} days", T) == T + timedelta(days=n)


def test_unit_abbreviations() -> None:
    assert resolve("in 5 mins", T) == T + timedelta(minutes=5)
    assert resolve("in 1 min", T) == T + timedelta(minutes=1)
    assert resolve("in 2 hrs", T) == T + timedelta(hours=2)
    assert resolve("in one hour", T) == T + timedelta(hours=1)
    assert resolve("in 1 day", T) == T + timedelta(days=1)


def test_longest_cardinal_wins() -> None:
    assert resolve("in seventeen minutes", T) == T + timedelta(minutes=17)


def test_tomorrow_at_3pm_ignores_reference_time_of_day() -> None:
    for ref in (T, T.replace(hour=0, minute=5), T.replace(hour=23, minute=59)):
        got = resolve("tomorrow at 3pm", ref)
        assert got == datetime(2026, 3, 15, 15, 0, 0, tzinfo=UTC)


def test_tomorrow_defaults_to_nine() -> None:
    assert resolve("call mom tomorrow", T) == datetime(2026, 3, 15, 9, 0, tzinfo=UTC)


def test_tomorrow_clock_normalization() -> None:
    assert resolve("tomorrow at 12pm", T).hour == 12
    assert resolve("tomorrow at 12am", T).hour == 0
    assert resolve("tomorrow at 9 a.m.", T).hour == 9
    got = resolve("tomorrow at 7:30 pm", T)
    assert (got.hour, got.minute) == (19, 30)
    assert resolve("tomorrow at 17:15", T).hour == 17


def test_tomorrow_invalid_clock_falls_back_to_nine() -> None:
    assert resolve("tomorrow at 25", T).hour == 9


def test_next_week() -> None:
    assert resolve("email the team next week", T) == datetime(2026, 3, 21, 9, 0, tzinfo=UTC)


def test_no_expression_returns_none() -> None:
    assert resolve("call mom", T) is None
    assert resolve("", T) is None
    assert resolve("in 0 minutes", T) is None
    assert resolve("in a minute", T) is None


def test_priority_order_duration_beats_tomorrow() -> None:
    assert resolve("tomorrow, or in 10 minutes", T) == T + timedelta(minutes=10)


def test_result_keeps_reference_timezone() -> None:
    ref = datetime(2026, 3, 7, 20, 0, tzinfo=ZoneInfo("America/New_York"))
    got = resolve("tomorrow at 8am", ref)
    assert got.tzinfo == ref.tzinfo
    assert (got.day, got.hour) == (8, 8)


@pytest.mark.parametrize(
    "text",
    [
        "remind me in 99999999999 minutes",
        "call Nigel in 99999999999 hours",
        "in 99999999999 days",
        "in 2999999 days",
    ],
)
def test_unrepresentable_moment_returns_none(text: str) -> None:
    assert resolve(text, T) is None


def test_tomorrow_past_max_date_returns_none() -> None:
    ref = datetime(9999, 12, 31, 12, 0, tzinfo=UTC)
    assert resolve("tomorrow at 8am", ref) is None
    assert resolve("next week", ref) is None
