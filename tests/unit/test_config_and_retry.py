from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError

from voice_task_agent.common.config import Settings
from voice_task_agent.common.errors import DurablePersistFailed, NotFoundError
from voice_task_agent.storage.retry import RetryPolicy


def test_audio_chunk_size_must_be_power_of_two() -> None:
    with pytest.raises(PydanticValidationError):
        Settings(AUDIO_CHUNK_SIZE=30000)
    assert Settings(AUDIO_CHUNK_SIZE=65536).audio_chunk_size == 65536


def test_settings_file_override(tmp_path, monkeypatch) -> None:
    secret = tmp_path / "openai_key"
    secret.write_text("sk-from-file\n", encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY_FILE", str(secret))
    assert Settings().openai_api_key == "sk-from-file"


def _operational() -> OperationalError:
    return OperationalError("INSERT", {}, Exception("database is locked"))


def test_retry_linear_delay_then_success() -> None:
    sleeps: list[float] = []
    calls = {"n": 0}

    def _op() -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise _operational()
        return "ok"

    policy = RetryPolicy(max_attempts=3, delay_ms=1000, sleep=sleeps.append)
    assert policy.run(_op, op="task_create") == "ok"
    assert sleeps == [1.0, 2.0]


def test_retry_exhaustion_raises_durable_persist_failed() -> None:
    calls = {"n": 0}

    def _op() -> None:
        calls["n"] += 1
        raise _operational()

    policy = RetryPolicy(max_attempts=3, delay_ms=0, sleep=lambda _s: None)
    with pytest.raises(DurablePersistFailed) as exc:
        policy.run(_op, op="task_create")
    assert calls["n"] == 3
    assert exc.value.details["attempts"] == 3


def test_integrity_error_is_not_retried() -> None:
    calls = {"n": 0}

    def _op() -> None:
        calls["n"] += 1
        raise IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

    with pytest.raises(DurablePersistFailed):
        RetryPolicy(max_attempts=3, delay_ms=0, sleep=lambda _s: None).run(_op, op="x")
    assert calls["n"] == 1


def test_app_errors_pass_through() -> None:
    def _op() -> None:
        raise NotFoundError("Задача не найдена")

    with pytest.raises(NotFoundError):
        RetryPolicy(max_attempts=3, delay_ms=0).run(_op, op="x")
