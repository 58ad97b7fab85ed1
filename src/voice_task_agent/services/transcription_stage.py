"""
Стадия распознавания речи.

Назначение:
- приём аудио (bytes или base64 / data-URL)
- декодирование base64 кусками фиксированного размера (без одной большой аллокации)
- вызов STT-провайдера, без ретраев (политика повтора у оркестратора)

Ошибки:
- EmptyAudio: пустой вход, до любого сетевого вызова
- ValidationError: аудио больше AUDIO_MAX_BYTES или битый base64
- TranscriptionUnavailable: сеть/авторизация/ответ STT
"""

from __future__ import annotations

from dataclasses import dataclass

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import (
    AppError,
    EmptyAudio,
    ErrCode,
    TranscriptionUnavailable,
    ValidationError,
)
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.common.utils import decode_base64_chunked, estimate_b64_decoded_size
from voice_task_agent.stt.base import STTProvider

log = get_project_logger()


@dataclass
class TranscriptionOutput:
    text: str
    audio_length: int


class TranscriptionStage:
    def __init__(
        self,
        provider: STTProvider,
        *,
        chunk_size: int | None = None,
        max_bytes: int | None = None,
    ) -> None:
        s = get_settings()
        self.provider = provider
        self.chunk_size = int(chunk_size or s.audio_chunk_size)
        self.max_bytes = int(max_bytes or s.audio_max_bytes)

    def _too_large(self, size: int) -> ValidationError:
        return ValidationError(
            "Аудио слишком большое",
            {"size": size, "max_bytes": self.max_bytes},
            code=ErrCode.AUDIO_TOO_LARGE,
        )

    def decode(self, audio_b64: str) -> bytes:
        if not audio_b64 or not audio_b64.strip():
            raise EmptyAudio()
        # ранний отказ до декодирования
        if estimate_b64_decoded_size(audio_b64) > self.max_bytes + 3:
            raise self._too_large(estimate_b64_decoded_size(audio_b64))
        return decode_base64_chunked(audio_b64, chunk_size=self.chunk_size)

    def run(
        self,
        audio: bytes | str,
        *,
        filename: str = "audio.webm",
        mime: str = "audio/webm",
    ) -> TranscriptionOutput:
        data = self.decode(audio) if isinstance(audio, str) else bytes(audio or b"")
        if not data:
            raise EmptyAudio()
        if len(data) > self.max_bytes:
            raise self._too_large(len(data))

        try:
            result = self.provider.transcribe(audio=data, filename=filename, mime=mime)
        except TranscriptionUnavailable:
            raise
        except AppError as e:
            raise TranscriptionUnavailable(e.message, {"code": e.code}) from e

        text = (result.text or "").strip()
        log.info(
            "transcription_done",
            extra={"payload": {"audio_bytes": len(data), "text_len": len(text)}},
        )
        return TranscriptionOutput(text=text, audio_length=len(data))
