"""
STT через OpenAI-совместимый endpoint /audio/transcriptions.

Что делает:
- multipart upload записи целиком (file + model)
- Bearer-авторизация
- любые сетевые/HTTP/JSON ошибки → TranscriptionUnavailable (без ретраев)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import TranscriptionUnavailable

from .base import STTProvider, STTResult

log = logging.getLogger(__name__)


@dataclass
class OpenAIWhisperConfig:
    api_base: str
    api_key: str
    model: str = "whisper-1"
    timeout_s: int = 60


class OpenAIWhisperProvider(STTProvider):
    def __init__(
        self,
        *,
        api_base: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout_s: int | None = None,
    ) -> None:
        s = get_settings()
        api_base = api_base or s.stt_api_base or ""
        api_key = api_key or s.stt_api_key or s.openai_api_key or ""

        if not api_base:
            raise TranscriptionUnavailable("STT_API_BASE не задан")
        if not api_key:
            raise TranscriptionUnavailable("STT_API_KEY не задан")

        self.cfg = OpenAIWhisperConfig(
            api_base=api_base,
            api_key=api_key,
            model=model or s.stt_model,
            timeout_s=int(timeout_s or s.stt_timeout_sec),
        )

    def transcribe(
        self, *, audio: bytes, filename: str = "audio.webm", mime: str = "audio/webm"
    ) -> STTResult:
        url = self.cfg.api_base.rstrip("/") + "/audio/transcriptions"
        headers = {"Authorization": f"Bearer {self.cfg.api_key}"}
        files = {"file": (filename, audio, mime)}
        data = {"model": self.cfg.model}

        try:
            resp = requests.post(
                url, headers=headers, files=files, data=data, timeout=self.cfg.timeout_s
            )
        except requests.RequestException as e:
            log.error("stt_http_error", extra={"payload": {"err": str(e)[:200]}})
            raise TranscriptionUnavailable(
                "Ошибка HTTP при вызове STT", {"err": str(e)[:200]}
            ) from e

        if resp.status_code >= 400:
            raise TranscriptionUnavailable(
                "STT вернул ошибку",
                {"status": resp.status_code, "text_head": resp.text[:500]},
            )

        try:
            body = resp.json()
            text = body["text"]
        except (ValueError, KeyError, TypeError) as e:
            raise TranscriptionUnavailable(
                "STT вернул невалидный ответ", {"err": str(e)[:200], "text_head": resp.text[:500]}
            ) from e

        if not isinstance(text, str):
            raise TranscriptionUnavailable("STT вернул не строку", {"type": type(text).__name__})

        return STTResult(text=text.strip(), language=body.get("language"))
