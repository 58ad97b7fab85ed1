"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/воркеров/логов
- единый стиль исключений по проекту
- доменная таксономия голосового пайплайна
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"

    # Аудио / пайплайн
    EMPTY_AUDIO = "empty_audio"
    AUDIO_TOO_LARGE = "audio_too_large"
    BAD_AUDIO_PAYLOAD = "bad_audio_payload"
    TRANSCRIPTION_UNAVAILABLE = "transcription_unavailable"
    EXTRACTION_MALFORMED = "extraction_malformed"

    # Провайдеры
    STT_PROVIDER_ERROR = "stt_provider_error"
    LLM_PROVIDER_ERROR = "llm_provider_error"
    DELIVERY_PROVIDER_ERROR = "delivery_provider_error"

    # Хранилище / доставка
    DURABLE_PERSIST_FAILED = "durable_persist_failed"
    SWEEP_ROW_FAILED = "sweep_row_failed"
    OPTIMISTIC_WRITE_FAILED = "optimistic_write_failed"
    RECORDING_FAILED = "recording_failed"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов/PII)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(
        self,
        message: str = "Ошибка валидации",
        details: dict | None = None,
        code: str = ErrCode.VALIDATION,
    ) -> None:
        super().__init__(code, message, details)


class NotFoundError(AppError):
    def __init__(self, message: str = "Не найдено", details: dict | None = None) -> None:
        super().__init__(ErrCode.NOT_FOUND, message, details)


class ConflictError(AppError):
    def __init__(self, message: str = "Конфликт", details: dict | None = None) -> None:
        super().__init__(ErrCode.CONFLICT, message, details)


class ProviderError(AppError):
    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(code, message, details)


# =============================================================================
# ДОМЕННЫЕ ОШИБКИ ПАЙПЛАЙНА
# =============================================================================
class EmptyAudio(ValidationError):
    """Пустой аудио-payload; отклоняется до любого сетевого вызова."""

    def __init__(self, message: str = "Пустое аудио", details: dict | None = None) -> None:
        super().__init__(message, details, code=ErrCode.EMPTY_AUDIO)


class TranscriptionUnavailable(ProviderError):
    """Сеть/авторизация STT недоступны. Пользователь должен перезаписать."""

    def __init__(self, message: str = "Распознавание недоступно", details: dict | None = None) -> None:
        super().__init__(ErrCode.TRANSCRIPTION_UNAVAILABLE, message, details)


class ExtractionMalformed(ProviderError):
    """LLM вернул невалидный JSON. Восстанавливается эвристикой, наружу не выходит."""

    def __init__(self, message: str = "LLM вернул невалидный ответ", details: dict | None = None) -> None:
        super().__init__(ErrCode.EXTRACTION_MALFORMED, message, details)


class DurablePersistFailed(AppError):
    def __init__(self, message: str = "Не удалось сохранить", details: dict | None = None) -> None:
        super().__init__(ErrCode.DURABLE_PERSIST_FAILED, message, details)


class SweepRowFailed(AppError):
    def __init__(self, message: str = "Ошибка обработки действия", details: dict | None = None) -> None:
        super().__init__(ErrCode.SWEEP_ROW_FAILED, message, details)


class OptimisticWriteFailed(AppError):
    def __init__(self, message: str = "Изменение не сохранено", details: dict | None = None) -> None:
        super().__init__(ErrCode.OPTIMISTIC_WRITE_FAILED, message, details)


class RecordingFailed(AppError):
    def __init__(self, message: str = "Ошибка записи с микрофона", details: dict | None = None) -> None:
        super().__init__(ErrCode.RECORDING_FAILED, message, details)
