"""
Централизованная конфигурация проекта (ENV / .env).

Важно:
- настройки читаются из .env и переменных окружения
- типизированные значения через pydantic-settings
- любой параметр можно передать файлом: <ALIAS>_FILE=/run/secrets/...
"""

from __future__ import annotations

import logging
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    app_env: str = Field(default="dev", alias="APP_ENV")
    service_name: str = Field(default="api-gateway", alias="SERVICE_NAME")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8010, alias="API_PORT")
    cors_allowed_origins: str = Field(default="*", alias="CORS_ALLOWED_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------
    database_dsn: str = Field(default="sqlite:///./voice_tasks.db", alias="DATABASE_DSN")
    db_max_retry_attempts: int = Field(default=3, alias="DB_MAX_RETRY_ATTEMPTS")
    db_retry_delay_ms: int = Field(default=1000, alias="DB_RETRY_DELAY_MS")

    # -------------------------------------------------------------------------
    # Audio / recording
    # -------------------------------------------------------------------------
    audio_chunk_size: int = Field(default=32768, alias="AUDIO_CHUNK_SIZE")
    audio_max_bytes: int = Field(default=10 * 1024 * 1024, alias="AUDIO_MAX_BYTES")
    max_recording_duration_sec: int = Field(default=300, alias="MAX_RECORDING_DURATION_SEC")
    recording_sample_rate: int = Field(default=16000, alias="RECORDING_SAMPLE_RATE")
    recording_block_size: int = Field(default=1024, alias="RECORDING_BLOCK_SIZE")
    recording_input_device: str | None = Field(default=None, alias="RECORDING_INPUT_DEVICE")

    # -------------------------------------------------------------------------
    # STT
    # -------------------------------------------------------------------------
    stt_provider: str = Field(
        default="openai_whisper", alias="STT_PROVIDER"
    )  # openai_whisper|whisper_local|mock
    stt_api_base: str = Field(default="https://api.openai.com/v1", alias="STT_API_BASE")
    stt_api_key: str | None = Field(default=None, alias="STT_API_KEY")
    stt_model: str = Field(default="whisper-1", alias="STT_MODEL")
    stt_timeout_sec: int = Field(default=60, alias="STT_TIMEOUT_SEC")

    # Локальный Whisper (faster-whisper)
    whisper_model_size: str = Field(default="small", alias="WHISPER_MODEL_SIZE")
    whisper_device: str = Field(default="cpu", alias="WHISPER_DEVICE")  # cpu|cuda
    whisper_compute_type: str = Field(default="int8", alias="WHISPER_COMPUTE_TYPE")
    whisper_language: str = Field(default="en", alias="WHISPER_LANGUAGE")
    whisper_vad_filter: bool = Field(default=True, alias="WHISPER_VAD_FILTER")
    whisper_beam_size: int = Field(default=1, alias="WHISPER_BEAM_SIZE")

    # -------------------------------------------------------------------------
    # LLM (OpenAI-compatible)
    # -------------------------------------------------------------------------
    llm_provider: str = Field(default="openai_compat", alias="LLM_PROVIDER")  # openai_compat|mock
    openai_api_base: str | None = Field(default="https://api.openai.com/v1", alias="OPENAI_API_BASE")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    llm_model_id: str = Field(default="gpt-4o-mini", alias="LLM_MODEL_ID")
    llm_temperature: float = Field(default=0.3, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=1500, alias="LLM_MAX_TOKENS")
    llm_request_timeout_sec: int = Field(default=30, alias="LLM_REQUEST_TIMEOUT_SEC")
    llm_retries: int = Field(default=2, alias="LLM_RETRIES")
    llm_retry_backoff_ms: int = Field(default=250, alias="LLM_RETRY_BACKOFF_MS")

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------
    user_timezone: str = Field(default="UTC", alias="USER_TIMEZONE")
    fallback_title_max_len: int = Field(default=50, alias="FALLBACK_TITLE_MAX_LEN")
    on_device_notifications: bool = Field(default=False, alias="ON_DEVICE_NOTIFICATIONS")

    # -------------------------------------------------------------------------
    # Notifications / sweep
    # -------------------------------------------------------------------------
    sweep_enabled: bool = Field(default=True, alias="SWEEP_ENABLED")
    sweep_interval_sec: int = Field(default=60, alias="SWEEP_INTERVAL_SEC")
    sweep_batch_limit: int = Field(default=200, alias="SWEEP_BATCH_LIMIT")
    reminder_task_prefix: str = Field(default="Reminder: ", alias="REMINDER_TASK_PREFIX")
    notify_email_default: bool = Field(default=False, alias="NOTIFY_EMAIL_DEFAULT")
    notify_sms_default: bool = Field(default=False, alias="NOTIFY_SMS_DEFAULT")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json|text

    @field_validator("audio_chunk_size")
    @classmethod
    def _chunk_size_power_of_two(cls, v: int) -> int:
        # base64 декодируется кусками, кратными 4 символам
        if v < 4 or v & (v - 1) != 0:
            raise ValueError("AUDIO_CHUNK_SIZE must be a power of two >= 4")
        return v

    def model_post_init(self, __context) -> None:
        _apply_file_overrides(self)


def _apply_file_overrides(settings: Settings) -> None:
    alias_to_field = {}
    for name, field in Settings.model_fields.items():
        alias = field.alias or name
        alias_to_field[str(alias)] = name
        alias_to_field[str(name)] = name

    for key, path in os.environ.items():
        if not key.endswith("_FILE"):
            continue
        base = key[: -len("_FILE")]
        target = alias_to_field.get(base)
        if not target:
            continue
        file_path = (path or "").strip()
        if not file_path:
            continue
        try:
            with open(file_path, encoding="utf-8") as fh:
                value = fh.read().strip()
        except OSError as e:
            logging.getLogger("voice-task-agent").error(
                "config_file_read_failed",
                extra={"payload": {"env_key": key, "path": file_path, "error": str(e)[:200]}},
            )
            raise RuntimeError(f"Failed to read {key} from {file_path}") from e
        setattr(settings, target, value)


_SETTINGS = Settings()


def get_settings() -> Settings:
    return _SETTINGS
