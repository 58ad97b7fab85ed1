"""
Сборка STT-провайдера по настройке STT_PROVIDER.

Тяжёлые зависимости (faster-whisper, PyAV) импортируются только при выборе
whisper_local.
"""

from __future__ import annotations

from voice_task_agent.common.config import get_settings

from .base import STTProvider


def build_stt_provider() -> STTProvider:
    s = get_settings()
    provider = (s.stt_provider or "").strip().lower()

    if provider == "mock":
        from voice_task_agent.stt.mock import MockSTTProvider

        return MockSTTProvider()

    if provider == "whisper_local":
        from voice_task_agent.stt.whisper_local import WhisperLocalProvider

        return WhisperLocalProvider(
            model_size=s.whisper_model_size,
            device=s.whisper_device,
            compute_type=s.whisper_compute_type,
            language=s.whisper_language,
            vad_filter=s.whisper_vad_filter,
            beam_size=s.whisper_beam_size,
        )

    from voice_task_agent.stt.openai_whisper import OpenAIWhisperProvider

    return OpenAIWhisperProvider()
