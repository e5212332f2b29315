"""
Машина состояний обработки задачи в проходе синхронизации.

Назначение:
- централизованное решение "что делать с задачей" после попытки
- предсказуемое поведение при ошибках (retain / dead-letter / park)
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import ProcessorState, TaskOutcome


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    outcome: TaskOutcome
    retain: bool
    count_attempt: bool
    reason: str | None = None


# =============================================================================
# ПЕРЕХОД ЗАДАЧИ
# =============================================================================
def resolve_outcome(
    *,
    handled: bool,
    succeeded: bool,
    transient: bool = False,
    attempts_before: int = 0,
    max_attempts: int = 0,
) -> TransitionResult:
    """
    Правила:
    - нет обработчика              → parked (остаётся как есть)
    - успех                        → succeeded (удаляется из очереди)
    - transient-ошибка             → failed, попытка не считается
    - прочая ошибка                → failed, attempts+1
    - attempts+1 >= max_attempts   → dead_lettered (max_attempts=0 — без лимита)
    """
    if not handled:
        return TransitionResult(
            outcome=TaskOutcome.parked, retain=True, count_attempt=False, reason="unknown_type"
        )

    if succeeded:
        return TransitionResult(outcome=TaskOutcome.succeeded, retain=False, count_attempt=False)

    if transient:
        return TransitionResult(
            outcome=TaskOutcome.failed, retain=True, count_attempt=False, reason="transient"
        )

    attempts = attempts_before + 1
    if max_attempts > 0 and attempts >= max_attempts:
        return TransitionResult(
            outcome=TaskOutcome.dead_lettered,
            retain=False,
            count_attempt=True,
            reason="max_attempts_reached",
        )

    return TransitionResult(
        outcome=TaskOutcome.failed, retain=True, count_attempt=True, reason="handler_failed"
    )


# =============================================================================
# СОСТОЯНИЕ ПРОЦЕССОРА
# =============================================================================
_PROCESSOR_TRANSITIONS: dict[ProcessorState, set[ProcessorState]] = {
    ProcessorState.idle: {ProcessorState.draining},
    ProcessorState.draining: {ProcessorState.idle},
}


def can_transition(current: ProcessorState, target: ProcessorState) -> bool:
    return target in _PROCESSOR_TRANSITIONS.get(current, set())
