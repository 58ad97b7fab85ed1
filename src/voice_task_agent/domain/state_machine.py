"""
Машина состояний прогона голосового пайплайна.

Назначение:
- Централизованное управление переходами idle → recording → processing → ...
- Предсказуемое поведение при повторных/конкурирующих действиях пользователя
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import PipelineState


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    state: PipelineState | None = None
    reason: str | None = None


# =============================================================================
# ДОПУСТИМЫЕ ПЕРЕХОДЫ
# =============================================================================
_ALLOWED: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.idle: frozenset({PipelineState.recording, PipelineState.processing}),
    PipelineState.recording: frozenset({PipelineState.processing, PipelineState.idle, PipelineState.failed}),
    PipelineState.processing: frozenset(
        {PipelineState.reviewing, PipelineState.auto_accepted, PipelineState.failed}
    ),
    # retry возвращает результат в processing, accept/force_accept/cancel завершают прогон
    PipelineState.reviewing: frozenset(
        {PipelineState.processing, PipelineState.accepted, PipelineState.cancelled, PipelineState.failed}
    ),
    PipelineState.auto_accepted: frozenset(),
    PipelineState.accepted: frozenset(),
    PipelineState.cancelled: frozenset(),
    PipelineState.failed: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, nxt in _ALLOWED.items() if not nxt)


def transition(current: PipelineState, target: PipelineState) -> TransitionResult:
    """
    Правила перехода:
    - разрешённый переход → ok
    - из терминального состояния → отказ terminal_state
    - остальное → отказ invalid_transition
    """
    if current in TERMINAL_STATES:
        return TransitionResult(ok=False, state=current, reason="terminal_state")

    if target not in _ALLOWED.get(current, frozenset()):
        return TransitionResult(ok=False, state=current, reason="invalid_transition")

    return TransitionResult(ok=True, state=target)
