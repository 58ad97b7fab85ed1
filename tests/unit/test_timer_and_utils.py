from __future__ import annotations

import base64
import json
import logging

import pytest

from voice_task_agent.common.errors import EmptyAudio, ErrCode, ValidationError
from voice_task_agent.common.logging import JsonFormatter, scrub_payload
from voice_task_agent.common.timer import ProcessingTimer
from voice_task_agent.common.utils import decode_base64_chunked, safe_dict


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_timer_summary_uses_wire_keys() -> None:
    clock = _Clock()
    timer = ProcessingTimer(clock=clock)
    timer.start("total")
    with timer.stage("transcription"):
        clock.now += 1.25
    timer.start("extraction")
    clock.now += 0.5
    timer.end("extraction")
    timer.end("total")

    assert timer.summary() == {
        "whisperTime": 1250,
        "chatgptTime": 500,
        "databaseTime": 0,
        "totalTime": 1750,
    }


def test_timer_end_without_start_is_ignored() -> None:
    timer = ProcessingTimer(clock=_Clock())
    assert timer.end("database") is None
    assert timer.duration("database") is None


def test_chunked_decode_reassembles_in_order() -> None:
    payload = bytes(range(256)) * 50
    encoded = base64.b64encode(payload).decode()
    assert decode_base64_chunked(encoded, chunk_size=16) == payload
    assert decode_base64_chunked("data:audio/webm;base64," + encoded, chunk_size=1024) == payload


def test_chunked_decode_errors() -> None:
    with pytest.raises(EmptyAudio):
        decode_base64_chunked("  ")
    with pytest.raises(ValidationError) as exc:
        decode_base64_chunked("!!!notbase64!!!", chunk_size=8)
    assert exc.value.code == ErrCode.BAD_AUDIO_PAYLOAD
    with pytest.raises(ValueError):
        decode_base64_chunked("AAAA", chunk_size=6)


def test_safe_dict_truncates() -> None:
    out = safe_dict({"text": "x" * 20, "n": 1}, max_len=5)
    assert out["text"] == "xxxxx...(truncated)"
    assert out["n"] == 1


def test_log_payload_masks_contacts_and_truncates_text() -> None:
    payload = {"phone": "+1 555 0100", "email": "", "text_head": "x" * 400, "action_id": "a1"}
    out = scrub_payload(payload)
    assert out["phone"] == "***"
    assert out["email"] == ""
    assert out["text_head"].endswith("...(truncated)")
    assert out["action_id"] == "a1"

    record = logging.LogRecord("voice-task-agent", logging.INFO, __file__, 1, "sweep_started", None, None)
    record.payload = {"due": 2}
    line = json.loads(JsonFormatter().format(record))
    assert line["msg"] == "sweep_started"
    assert line["payload"] == {"due": 2}
