from __future__ import annotations

from voice_task_agent.stt.base import STTProvider, STTResult


class MockSTTProvider(STTProvider):
    """Заглушка STT: возвращает заданный текст для проверки пайплайна end-to-end."""

    def __init__(self, text: str | None = None) -> None:
        self.text = text
        self.calls = 0

    def transcribe(
        self, *, audio: bytes, filename: str = "audio.webm", mime: str = "audio/webm"
    ) -> STTResult:
        self.calls += 1
        if self.text is not None:
            return STTResult(text=self.text)
        return STTResult(text=f"mock transcript bytes={len(audio)}")
