"""
Сессия записи с микрофона (машина состояний).

Назначение:
- idle → recording → stopped | failed; retry() возвращает в idle
- старт во время записи отклоняется
- таймер максимальной длительности принудительно останавливает запись
- готовое аудио передаётся обработчику ровно один раз
- остановка записи не отменяет уже запущенный прогон пайплайна
- отмена или сбой остановки сообщаются обработчику abort (прогон возвращается в idle)
"""

from __future__ import annotations

import io
import threading
from collections.abc import Callable
from typing import Any, Protocol

from voice_task_agent.common.config import get_settings
from voice_task_agent.common.errors import ConflictError, RecordingFailed
from voice_task_agent.common.logging import get_project_logger
from voice_task_agent.domain.enums import RecordingState

log = get_project_logger()


class AudioSource(Protocol):
    def start(self) -> None: ...

    def stop(self) -> bytes: ...

    def abort(self) -> None: ...


# =============================================================================
# МИКРОФОН (soundcard + soundfile)
# =============================================================================
def _device_name(device: Any) -> str:
    return str(getattr(device, "name", "") or "").strip()


def _select_microphone(sc_module: Any, input_device: str | None):
    if input_device:
        needle = input_device.strip().lower()
        microphones = list(sc_module.all_microphones())
        for mic in microphones:
            if _device_name(mic).lower() == needle:
                return mic
        for mic in microphones:
            if needle in _device_name(mic).lower():
                return mic
        available = ", ".join(sorted(filter(None, (_device_name(m) for m in microphones))))
        raise RuntimeError(
            f"Requested input device '{input_device}' not found. Available: {available or 'none'}"
        )

    default_mic = sc_module.default_microphone()
    if default_mic is None:
        raise RuntimeError("No microphone device available")
    return default_mic


class MicrophoneAudioSource(AudioSource):
    """
    Запись в фоновом потоке блоками, по stop() WAV собирается в памяти.
    """

    def __init__(
        self,
        *,
        sample_rate: int | None = None,
        block_size: int | None = None,
        input_device: str | None = None,
    ) -> None:
        s = get_settings()
        self.sample_rate = int(sample_rate or s.recording_sample_rate)
        self.block_size = int(block_size or s.recording_block_size)
        self.input_device = input_device or s.recording_input_device
        self.stop_event = threading.Event()
        self.error: Exception | None = None
        self._blocks: list[Any] = []
        self._channels = 1
        self._thread: threading.Thread | None = None

    def _record(self) -> None:
        try:
            try:
                import soundcard as sc
            except ImportError as exc:
                raise RuntimeError("microphone capture requires soundcard (pip install .[audio])") from exc

            mic = _select_microphone(sc, self.input_device)
            with mic.recorder(samplerate=self.sample_rate, channels=1, blocksize=self.block_size) as recorder:
                self._channels = len(recorder.channelmap) if hasattr(recorder, "channelmap") else 1
                while not self.stop_event.is_set():
                    self._blocks.append(recorder.record(numframes=self.block_size))
        except Exception as exc:
            self.error = exc

    def start(self) -> None:
        self.stop_event.clear()
        self._blocks = []
        self.error = None
        self._thread = threading.Thread(target=self._record, name="mic-capture", daemon=True)
        self._thread.start()

    def _join(self) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def stop(self) -> bytes:
        self._join()
        if self.error is not None:
            raise RuntimeError(f"microphone capture failed: {self.error}") from self.error

        try:
            import numpy as np
            import soundfile as sf
        except ImportError as exc:
            raise RuntimeError("WAV encoding requires soundfile + numpy (pip install .[audio])") from exc

        if not self._blocks:
            return b""
        data = np.concatenate(self._blocks, axis=0)
        buf = io.BytesIO()
        sf.write(buf, data, self.sample_rate, format="WAV", subtype="PCM_16")
        return buf.getvalue()

    def abort(self) -> None:
        self._join()
        self._blocks = []


# =============================================================================
# СЕССИЯ
# =============================================================================
class RecordingSession:
    def __init__(
        self,
        source: AudioSource,
        *,
        max_duration_sec: float | None = None,
        on_complete: Callable[[bytes], None] | None = None,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        s = get_settings()
        self.source = source
        self.max_duration_sec = float(max_duration_sec or s.max_recording_duration_sec)
        self._on_complete = on_complete
        self._on_abort: Callable[[], Any] | None = None
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self.state = RecordingState.idle
        self.audio: bytes | None = None
        self.error: Exception | None = None
        self.stop_reason: str | None = None
        self._delivered = False

    def set_completion_handler(self, handler: Callable[[bytes], None] | None) -> None:
        with self._lock:
            self._on_complete = handler

    def set_abort_handler(self, handler: Callable[[], Any] | None) -> None:
        """
        Вызывается, когда запись закончилась без аудио: cancel() или сбой при остановке.
        """
        with self._lock:
            self._on_abort = handler

    def start(self) -> None:
        with self._lock:
            if self.state == RecordingState.recording:
                raise ConflictError("Запись уже идёт")
            if self.state != RecordingState.idle:
                raise ConflictError("Сессия завершена: нужен retry()", {"state": self.state.value})
            try:
                self.source.start()
            except (RuntimeError, OSError) as e:
                self.state = RecordingState.failed
                self.error = e
                log.error("recording_start_failed", extra={"payload": {"err": str(e)[:200]}})
                raise RecordingFailed("Не удалось начать запись", {"err": str(e)[:200]}) from e

            self.state = RecordingState.recording
            self._delivered = False
            self._timer = self._timer_factory(self.max_duration_sec, self._on_max_duration)
            self._timer.daemon = True
            self._timer.start()
        log.info("recording_started", extra={"payload": {"max_duration_sec": self.max_duration_sec}})

    def _on_max_duration(self) -> None:
        log.info("recording_max_duration_reached")
        self.stop(reason="max_duration")

    def stop(self, *, reason: str = "user") -> bytes | None:
        """
        Останавливает запись. Повторный/запоздалый вызов (таймер vs пользователь) → None.
        """
        with self._lock:
            if self.state != RecordingState.recording:
                return None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            try:
                audio = self.source.stop()
            except (RuntimeError, OSError) as e:
                self.state = RecordingState.failed
                self.error = e
                log.error("recording_stop_failed", extra={"payload": {"err": str(e)[:200]}})
                on_abort = self._on_abort
                audio = None
            else:
                on_abort = None
                self.state = RecordingState.stopped
                self.audio = audio
                self.stop_reason = reason
                handler = None if self._delivered else self._on_complete
                self._delivered = True

        if audio is None:
            if on_abort is not None:
                on_abort()
            return None

        log.info("recording_stopped", extra={"payload": {"reason": reason, "bytes": len(audio)}})
        if handler is not None:
            handler(audio)
        return audio

    def cancel(self) -> None:
        """
        Отменяет запись без передачи аудио обработчику.
        """
        with self._lock:
            if self.state != RecordingState.recording:
                return
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.source.abort()
            self.state = RecordingState.idle
            self.audio = None
            on_abort = self._on_abort
        log.info("recording_cancelled")
        if on_abort is not None:
            on_abort()

    def retry(self) -> None:
        with self._lock:
            if self.state not in (RecordingState.stopped, RecordingState.failed):
                raise ConflictError("retry доступен только после остановки/ошибки", {"state": self.state.value})
            self.state = RecordingState.idle
            self.audio = None
            self.error = None
            self.stop_reason = None
            self._delivered = False
