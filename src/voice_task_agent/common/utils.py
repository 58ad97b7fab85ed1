"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from voice_task_agent.common.errors import EmptyAudio, ErrCode, ValidationError

DEFAULT_CHUNK_SIZE = 32 * 1024


def b64_encode(data: bytes) -> str:
    """
    base64(bytes) -> str
    """
    return base64.b64encode(data).decode("utf-8")


def decode_base64_chunked(data_b64: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """
    Декодирует base64 кусками фиксированного размера.

    Каждый кусок (кратный 4 символам) декодируется отдельно, затем куски
    склеиваются в один буфер в исходном порядке. Префикс data-URL отбрасывается.
    """
    if chunk_size < 4 or chunk_size & (chunk_size - 1):
        raise ValueError("chunk_size must be a power of two >= 4")

    text = (data_b64 or "").strip()
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    text = "".join(text.split())
    if not text:
        raise EmptyAudio()

    chunks: list[bytes] = []
    for pos in range(0, len(text), chunk_size):
        piece = text[pos : pos + chunk_size]
        try:
            chunks.append(base64.b64decode(piece, validate=True))
        except (binascii.Error, ValueError) as e:
            raise ValidationError(
                "Некорректный base64 аудио",
                {"offset": pos, "err": str(e)[:200]},
                code=ErrCode.BAD_AUDIO_PAYLOAD,
            ) from e

    result = b"".join(chunks)
    if not result:
        raise EmptyAudio()
    return result


def estimate_b64_decoded_size(data_b64: str) -> int:
    n = len(data_b64 or "")
    return (n * 3) // 4


def safe_dict(d: dict[str, Any], max_len: int = 500) -> dict[str, Any]:
    """
    Безопасное "обрезание" полей для логов (чтобы не утащить большие тексты).
    """
    out: dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, str) and len(v) > max_len:
            out[k] = v[:max_len] + "...(truncated)"
        else:
            out[k] = v
    return out


def head(text: str | None, n: int = 80) -> str:
    value = text or ""
    return value if len(value) <= n else value[:n] + "..."
